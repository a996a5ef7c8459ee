#!/usr/bin/env python3
"""
NFT Marketplace CLI: View filters

Pure functions producing role- and state-scoped subsets of normalized
entities for the acting account. Inputs are never mutated and output order
follows input order, so re-running a filter yields the same result.

Prices are exact integers in wei: "offer-only" is `price == 0`, never a
truthiness check.
"""

from typing import Iterable, List, Optional, Sequence

from normalize import metadata_key
from utils import same_address

FOR_SALE_FIELDS = ("id", "name", "description", "price", "owner")
OFFER_ELIGIBLE_FIELDS = ("id", "name", "description", "nftContract", "tokenId", "owner")
OWNED_FIELDS = ("id", "name", "description", "image", "tokenId", "owner", "price")
LISTABLE_FIELDS = ("tokenId", "nftContract", "name", "description", "image")
ADDABLE_FIELDS = ("tokenId", "name", "description", "image")
COLLECTION_FIELDS = ("address", "name", "symbol")


def project(record: dict, fields: Sequence[str]) -> dict:
    return {field: record.get(field) for field in fields}


def is_offer_only(item: dict) -> bool:
    """Price 0 is the marketplace's sentinel for "offers only"."""
    return item["price"] == 0


# =============================================================================
# Item views
# =============================================================================


def for_sale(items: Iterable[dict], account: str) -> List[dict]:
    """Fixed-price items the account can buy."""
    return [
        project(item, FOR_SALE_FIELDS)
        for item in items
        if not is_offer_only(item) and not same_address(item["owner"], account)
    ]


def offer_eligible(items: Iterable[dict], account: str) -> List[dict]:
    """Offer-only items owned by someone else."""
    return [
        project(item, OFFER_ELIGIBLE_FIELDS)
        for item in items
        if is_offer_only(item) and not same_address(item["owner"], account)
    ]


def owned_by_account(items: Iterable[dict], account: str) -> List[dict]:
    return [
        project(item, OWNED_FIELDS)
        for item in items
        if same_address(item["owner"], account)
    ]


def owned_offer_candidates(items: Iterable[dict], account: str) -> List[dict]:
    """Offer-only items owned by the account: where its incoming offers live."""
    return [
        item
        for item in items
        if is_offer_only(item) and same_address(item["owner"], account)
    ]


def registered_keys(items: Iterable[dict]) -> set:
    """(tokenId, contract) keys of every marketplace item."""
    return {metadata_key(item, "item") for item in items}


def listable(
    items: Iterable[dict],
    nfts: Iterable[dict],
    owned_collection_addresses: Iterable[str],
) -> List[dict]:
    """
    NFTs in the account's collections that have no marketplace item yet.

    Args:
        items: Marketplace items (normalized)
        nfts: NFT metadata records held by the account
        owned_collection_addresses: Addresses of collections the account owns
    """
    owned = {address.lower() for address in owned_collection_addresses}
    registered = registered_keys(items)
    result = []
    for nft in nfts:
        key = metadata_key(nft, "nft")
        if key[1] not in owned or key in registered:
            continue
        record = dict(nft)
        record["tokenId"] = key[0]
        record["nftContract"] = nft.get("nftContract") or nft.get("nft")
        result.append(project(record, LISTABLE_FIELDS))
    return result


def addable_to_marketplace(
    candidates: Iterable[dict],
    account: str,
    collection_address: str,
    items: Optional[Iterable[dict]] = None,
) -> List[dict]:
    """
    Owned NFTs of a collection that are not yet registered as items.

    Args:
        candidates: Records from loadItemsForAdding(collection, account)
        account: Acting account
        collection_address: Collection the candidates belong to
        items: Marketplace items, to exclude already-registered tokens
    """
    registered = registered_keys(items or [])
    result = []
    for candidate in candidates:
        record = dict(candidate)
        record.setdefault("nftContract", collection_address)
        key = metadata_key(record, "candidate")
        if record.get("owner") and not same_address(record["owner"], account):
            continue
        if record.get("isListed") or record.get("registered") or key in registered:
            continue
        record["tokenId"] = key[0]
        result.append(project(record, ADDABLE_FIELDS))
    return result


# =============================================================================
# Collection views
# =============================================================================


def owned_collections(collections: Iterable[dict], account: str) -> List[dict]:
    return [
        project(collection, COLLECTION_FIELDS)
        for collection in collections
        if same_address(collection.get("owner"), account)
    ]


# =============================================================================
# Offer views
# =============================================================================


def pending_offers_for_account(offers: Iterable[dict], account: str) -> List[dict]:
    """Offers the account, as seller, can still accept."""
    return [
        offer
        for offer in offers
        if same_address(offer.get("seller"), account) and offer["isAccepted"] is False
    ]


def accepted_offers_for_account(offers: Iterable[dict], account: str) -> List[dict]:
    """Offers made by the account that the seller accepted: ready to claim."""
    return [
        offer
        for offer in offers
        if same_address(offer.get("offerer"), account) and offer["isAccepted"] is True
    ]


def offers_by_account(offers: Iterable[dict], account: str) -> List[dict]:
    return [offer for offer in offers if same_address(offer.get("offerer"), account)]


# =============================================================================
# Lookup
# =============================================================================


def find_item(items: Iterable[dict], item_id: int) -> Optional[dict]:
    for item in items:
        if item["id"] == item_id:
            return item
    return None
