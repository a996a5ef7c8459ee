#!/usr/bin/env python3
"""
NFT Marketplace CLI: Entity normalizer

Merges raw on-chain item/offer/collection records with off-chain metadata
into unified view records.

Items are joined to metadata by (tokenId, nftContract). A missing metadata
record means the feed is inconsistent and is raised, never skipped.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from errors import DataIntegrityError, MetadataNotFound
from utils import parse_quantity

METADATA_FIELDS = ("name", "description", "image")

MetadataKey = Tuple[int, str]


# =============================================================================
# Keys
# =============================================================================


def _contract_of(record: dict) -> Optional[str]:
    contract = record.get("nftContract") or record.get("nft")
    return contract.lower() if isinstance(contract, str) else None


def metadata_key(record: dict, field: str = "metadata") -> MetadataKey:
    """(tokenId, contract) key of an item or metadata record."""
    contract = _contract_of(record)
    if not contract:
        raise DataIntegrityError(f"{field} record has no nft contract: {record!r}")
    return parse_quantity(record.get("tokenId"), f"{field}.tokenId"), contract


def _metadata_fields(metadata: dict) -> Dict[str, str]:
    # Gateway returns fields either flat or nested under "data"
    source = metadata.get("data") if isinstance(metadata.get("data"), dict) else metadata
    return {field: source.get(field) or "" for field in METADATA_FIELDS}


# =============================================================================
# Records
# =============================================================================


def normalize_item(raw: dict) -> dict:
    """Coerce a raw item record: exact integers, contract under nftContract."""
    item = dict(raw)
    item["id"] = parse_quantity(raw.get("id"), "item.id")
    item["tokenId"] = parse_quantity(raw.get("tokenId"), "item.tokenId")
    item["price"] = parse_quantity(raw.get("price", 0), "item.price")
    item["nftContract"] = raw.get("nftContract") or raw.get("nft")
    item.pop("nft", None)
    if not item["nftContract"]:
        raise DataIntegrityError(f"Item {item['id']} has no nft contract")
    return item


def normalize_offer(raw: dict, item_id: Optional[int] = None) -> dict:
    """
    Coerce a raw offer record.

    Args:
        raw: Offer as returned by the client
        item_id: Source item id; overrides any itemId in the record

    Returns:
        Offer dict with integer itemId/price/tokenId and bool isAccepted
    """
    offer = dict(raw)
    source_id = item_id if item_id is not None else raw.get("itemId")
    offer["itemId"] = parse_quantity(source_id, "offer.itemId")
    offer["price"] = parse_quantity(raw.get("price"), "offer.price")
    if raw.get("tokenId") is not None:
        offer["tokenId"] = parse_quantity(raw.get("tokenId"), "offer.tokenId")
    accepted = raw.get("isAccepted", False)
    if not isinstance(accepted, bool):
        raise DataIntegrityError(
            f"offer.isAccepted must be a boolean for item {offer['itemId']}, got {accepted!r}"
        )
    offer["isAccepted"] = accepted
    return offer


def normalize_collection(raw: dict, owner: Optional[str] = None) -> dict:
    """Collection record with its separately-queried owner attached."""
    address = raw.get("address") or raw.get("nftContract")
    if not address:
        raise DataIntegrityError(f"Collection record has no address: {raw!r}")
    return {
        "address": address,
        "name": raw.get("name") or "",
        "symbol": raw.get("symbol") or "",
        "owner": owner if owner is not None else raw.get("owner"),
    }


def _merge(item: dict, metadata: dict) -> dict:
    merged = normalize_item(item)
    merged.update(_metadata_fields(metadata))
    return merged


# =============================================================================
# Merge strategies
# =============================================================================


def index_metadata(metadata: Sequence[dict]) -> Dict[MetadataKey, dict]:
    """
    Index metadata records by (tokenId, contract).

    Raises:
        DataIntegrityError: two records share a key
    """
    index: Dict[MetadataKey, dict] = {}
    for record in metadata:
        key = metadata_key(record)
        if key in index:
            raise DataIntegrityError(
                f"Duplicate metadata for token {key[0]} of contract {key[1]}"
            )
        index[key] = record
    return index


def merge_keyed(items: Sequence[dict], metadata: Sequence[dict]) -> List[dict]:
    """
    Merge items with metadata looked up by (tokenId, nftContract).

    Args:
        items: Raw marketplace items
        metadata: Metadata records (any order)

    Returns:
        Merged item records, in input item order

    Raises:
        MetadataNotFound: an item has no matching metadata record
        DataIntegrityError: metadata keys are malformed or duplicated
    """
    index = index_metadata(metadata)
    merged = []
    for item in items:
        key = metadata_key(item, "item")
        record = index.get(key)
        if record is None:
            raise MetadataNotFound(item.get("id"), item.get("nftContract") or item.get("nft"), key[0])
        merged.append(_merge(item, record))
    return merged


def merge_positional(items: Sequence[dict], metadata: Sequence[dict]) -> List[dict]:
    """
    Merge items with metadata by index (metadata[i] describes items[i]).

    Each pair is still checked by key, so a reordered feed fails instead of
    attaching the wrong name to an item.

    Raises:
        DataIntegrityError: lengths differ
        MetadataNotFound: metadata[i] describes a different token than items[i]
    """
    if len(items) != len(metadata):
        raise DataIntegrityError(
            f"Got {len(items)} items but {len(metadata)} metadata records"
        )
    return [merge_single(item, record) for item, record in zip(items, metadata)]


def merge_single(item: dict, metadata: Any) -> dict:
    """Merge one item with the metadata returned alongside it (getItem)."""
    if not isinstance(metadata, dict):
        raise MetadataNotFound(item.get("id"), item.get("nftContract") or item.get("nft"), item.get("tokenId"))
    item_key = metadata_key(item, "item")
    # Records without key fields are trusted to belong to their item
    if metadata.get("tokenId") is not None and _contract_of(metadata):
        if metadata_key(metadata) != item_key:
            raise MetadataNotFound(item.get("id"), item_key[1], item_key[0])
    return _merge(item, metadata)
