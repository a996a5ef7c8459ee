#!/usr/bin/env python3
"""
NFT Marketplace CLI: Precondition guards

Rules shared by every workflow. Each guard raises a PreconditionError
subclass and is checked before any state-mutating call is issued.
"""

from typing import Any, Iterable, Optional

from common import RESULT_SUCCESS
from errors import (
    ItemNotFoundError,
    NotAuthorizedError,
    NotOwnerError,
    OfferStateError,
    PriceModeError,
    RemoteOperationFailure,
    SelfTradeError,
)
from utils import same_address
from views import find_item, is_offer_only


def require_item(items: Iterable[dict], item_id: int) -> dict:
    item = find_item(items, item_id)
    if item is None:
        raise ItemNotFoundError(f"Item {item_id} not found")
    return item


def require_not_own_item(item: dict, account: str) -> None:
    if same_address(item["owner"], account):
        raise SelfTradeError(f"You can't trade item {item['id']}: you own it!")


def require_buyable(item: dict, account: str) -> None:
    """Fixed-price item owned by someone else."""
    if is_offer_only(item):
        raise PriceModeError(f"Item {item['id']} is not for sale, make an offer instead")
    require_not_own_item(item, account)


def require_offerable(item: dict, account: str) -> None:
    """Offer-only item owned by someone else."""
    if not is_offer_only(item):
        raise PriceModeError(f"Item {item['id']} has a fixed price, buy it instead")
    require_not_own_item(item, account)


def require_item_owner(item: dict, account: str) -> None:
    if not same_address(item["owner"], account):
        raise NotOwnerError(f"You don't own item {item['id']}")


def require_pending_offer(offer: Optional[dict], account: str) -> dict:
    """Offer to the account's item that has not been accepted yet."""
    if offer is None:
        raise OfferStateError("No pending offer matches this item and offerer")
    if not same_address(offer.get("seller"), account):
        raise NotOwnerError(f"Offer on item {offer['itemId']} is not addressed to you")
    if offer["isAccepted"] is not False:
        raise OfferStateError(f"Offer on item {offer['itemId']} was already accepted")
    return offer


def require_claimable_offer(offer: Optional[dict], account: str) -> dict:
    """The account's own offer, accepted by the seller."""
    if offer is None:
        raise OfferStateError("You have no offer on this item")
    if not same_address(offer.get("offerer"), account):
        raise NotOwnerError(f"Offer on item {offer['itemId']} is not yours")
    if offer["isAccepted"] is not True:
        raise OfferStateError(f"Offer on item {offer['itemId']} has not been accepted yet")
    return offer


def require_collection_owner(collection: Optional[dict], account: str, address: str = "") -> dict:
    if collection is None:
        raise ItemNotFoundError(f"Collection {address} not found")
    if not same_address(collection.get("owner"), account):
        raise NotOwnerError(f"You don't own collection {collection['address']}")
    return collection


def require_marketplace_owner(session: Any) -> None:
    if not session.is_marketplace_owner():
        raise NotAuthorizedError("Only the marketplace owner can withdraw funds")


def require_success(action: str, result_code: Any) -> Any:
    """
    Classify a result code. Only the integer 1 counts as success.

    Raises:
        RemoteOperationFailure: any other value
    """
    if isinstance(result_code, bool) or not isinstance(result_code, int) or result_code != RESULT_SUCCESS:
        raise RemoteOperationFailure(action, result_code=result_code)
    return result_code
