#!/usr/bin/env python3
"""
NFT Marketplace CLI: Workflows

Multi-step marketplace actions: load fresh data, check preconditions, then
issue exactly one state-mutating call on the marketplace client.

- Buy a fixed-price item
- Make an offer on an offer-only item
- Accept a pending offer on your item
- Claim an item after your offer was accepted
- List an owned item for sale
- Add an owned NFT to the marketplace
- Deploy a collection / mint into it
- Withdraw marketplace funds (owner only)

Operations take explicit ids and return result dicts. The *_flow variants
collect those ids from the user through a Prompter.
"""

import functools
from typing import Any, Callable, Dict, List, Optional, Tuple

import views
from common import (
    EMPTY_MESSAGES,
    MAX_SYMBOL_LENGTH,
    SUCCESS_MESSAGES,
    collection_label,
    format_eth,
    item_label,
    nft_label,
    offer_label,
)
from errors import (
    GatewayError,
    InvalidAddressError,
    InvalidAmountError,
    PreconditionError,
    RemoteOperationFailure,
    ValidationError,
)
from guards import (
    require_buyable,
    require_claimable_offer,
    require_collection_owner,
    require_item,
    require_item_owner,
    require_marketplace_owner,
    require_offerable,
    require_pending_offer,
    require_success,
)
from normalize import merge_keyed, merge_single, normalize_item, normalize_offer
from offers import collect_pending_offers, resolve_collection_owners
from utils import (
    get_logger,
    parse_ether_amount,
    parse_quantity,
    parse_wei_amount,
    same_address,
    validate_address,
)

logger = get_logger("workflows")


# =============================================================================
# Results
# =============================================================================


def _success(action: str, **details) -> dict:
    result = {"success": True, "action": action, "message": SUCCESS_MESSAGES.get(action, "Done.")}
    result.update(details)
    return result


def _empty(action: str, **details) -> dict:
    result = {"success": False, "empty": True, "action": action, "message": EMPTY_MESSAGES[action]}
    result.update(details)
    return result


def _cancelled(action: str) -> dict:
    return {"success": False, "cancelled": True, "action": action, "message": "Cancelled."}


def submit(action: str, call: Callable[..., Any], *args) -> Any:
    """
    Issue one state-mutating call and classify its outcome.

    A non-success result code and a gateway fault both become
    RemoteOperationFailure. Nothing is retried: the call may already have
    reached the chain.
    """
    logger.info(f"Submitting {action}{args}")
    try:
        result_code = call(*args)
    except GatewayError as e:
        logger.error(f"{action} raised: {e}")
        raise RemoteOperationFailure(action, reason=str(e)) from e

    try:
        require_success(action, result_code)
    except RemoteOperationFailure:
        logger.error(f"{action} returned result code {result_code!r}")
        raise

    logger.info(f"{action} succeeded")
    return result_code


# =============================================================================
# Input parsing
# =============================================================================


def parse_id(value: Any, field: str = "Item ID") -> int:
    """
    Parse a user-supplied id (non-negative integer).

    Raises:
        ValidationError: not a non-negative integer
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a non-negative integer")
    if isinstance(value, int):
        if value < 0:
            raise ValidationError(f"{field} must be a non-negative integer")
        return value
    text = str(value or "").strip()
    if not text.isdecimal():
        raise ValidationError(f"{field} must be a non-negative integer, got {value!r}")
    return int(text)


# =============================================================================
# Loaders (fresh on every call)
# =============================================================================


def load_items(session) -> List[dict]:
    """All marketplace items merged with their metadata by key."""
    items, metadata = session.client.load_items()
    return merge_keyed(items, metadata)


def load_raw_items(session) -> List[dict]:
    """Marketplace items without metadata (registration checks only)."""
    items, _ = session.client.load_items()
    return [normalize_item(item) for item in items]


def load_item(session, item_id: Any) -> dict:
    item_id = parse_id(item_id)
    item, metadata = session.client.get_item(item_id)
    return merge_single(item, metadata)


def load_account_offers(session) -> List[dict]:
    account = session.require_account()
    return [normalize_offer(raw) for raw in session.client.get_accounts_offers(account)]


def load_collections(session) -> List[dict]:
    """Marketplace collections with owners resolved concurrently."""
    return resolve_collection_owners(
        session.client, session.client.load_collections(), session.max_workers
    )


def load_owned_collections(session) -> List[dict]:
    return views.owned_collections(load_collections(session), session.require_account())


def find_collection(collections: List[dict], address: str) -> Optional[dict]:
    for collection in collections:
        if same_address(collection["address"], address):
            return collection
    return None


def load_pending_offers(session) -> List[dict]:
    account = session.require_account()
    candidates = views.owned_offer_candidates(load_raw_items(session), account)
    return collect_pending_offers(session.client, candidates, account, session.max_workers)


def load_listable(session) -> List[dict]:
    """NFTs in the account's collections that are not marketplace items yet."""
    account = session.require_account()
    items, nfts = session.client.load_items_for_listing(account)
    owned = [collection["address"] for collection in load_owned_collections(session)]
    return views.listable([normalize_item(item) for item in items], nfts, owned)


def load_addable(session, collection_address: str) -> List[dict]:
    """
    Owned, unregistered NFTs of one of the account's collections.

    Raises:
        InvalidAddressError: malformed collection address
        PreconditionError: collection unknown or not owned by the account
    """
    account = session.require_account()
    address = validate_address(collection_address)
    require_collection_owner(find_collection(load_collections(session), address), account, address)
    candidates = session.client.load_items_for_adding(address, account)
    return views.addable_to_marketplace(candidates, account, address, load_raw_items(session))


# =============================================================================
# Read-only views
# =============================================================================


def show_items(session) -> dict:
    items = load_items(session)
    return {"success": True, "count": len(items), "items": items}


def show_item(session, item_id: Any) -> dict:
    return {"success": True, "item": load_item(session, item_id)}


def my_items(session) -> dict:
    items = views.owned_by_account(load_items(session), session.require_account())
    return {"success": True, "count": len(items), "items": items}


def my_offers(session) -> dict:
    """Offers made by the account, and which of them can be claimed."""
    account = session.require_account()
    offers = load_account_offers(session)
    return {
        "success": True,
        "offers": views.offers_by_account(offers, account),
        "claimable": views.accepted_offers_for_account(offers, account),
    }


def marketplace_balance(session) -> dict:
    balance = parse_quantity(session.client.get_marketplace_balance(), "balance")
    return {
        "success": True,
        "balance_wei": str(balance),
        "balance": format_eth(balance),
        "is_owner": session.is_marketplace_owner() if session.account else None,
    }


def pending_offers(session) -> dict:
    offers = load_pending_offers(session)
    return {"success": True, "count": len(offers), "offers": offers}


# =============================================================================
# Operations
# =============================================================================


def buy_item(session, item_id: Any) -> dict:
    """
    Buy a fixed-price item at its listed price.

    Raises:
        PriceModeError: item is offer-only
        SelfTradeError: account owns the item
        RemoteOperationFailure: buyItem did not succeed
    """
    account = session.require_account()
    item = require_item(load_items(session), parse_id(item_id))
    require_buyable(item, account)

    submit("buy_item", session.client.buy_item, item["id"], item["price"])
    return _success("buy_item", item_id=item["id"], price_wei=str(item["price"]))


def place_offer(session, item_id: Any, amount_wei: Any) -> dict:
    """
    Offer amount_wei for an offer-only item.

    Raises:
        InvalidAmountError: amount is not a positive integer
        PriceModeError: item has a fixed price
        SelfTradeError: account owns the item
    """
    amount = parse_wei_amount(amount_wei)
    account = session.require_account()
    item = require_item(load_items(session), parse_id(item_id))
    require_offerable(item, account)

    submit("place_offer", session.client.place_offer, item["id"], amount)
    return _success("place_offer", item_id=item["id"], amount_wei=str(amount))


def accept_offer(session, item_id: Any, offerer: str) -> dict:
    """
    Accept a pending offer on one of the account's offer-only items.

    Returns an empty-state result without calling the client when the
    account has no pending offers at all.
    """
    item_id = parse_id(item_id)
    offerer = validate_address(offerer)
    account = session.require_account()

    pending = load_pending_offers(session)
    if not pending:
        return _empty("accept_offer")

    match = next(
        (
            offer
            for offer in pending
            if offer["itemId"] == item_id and same_address(offer.get("offerer"), offerer)
        ),
        None,
    )
    offer = require_pending_offer(match, account)

    submit("accept_offer", session.client.accept_offer, item_id, offer["offerer"])
    return _success("accept_offer", item_id=item_id, offerer=offer["offerer"], price_wei=str(offer["price"]))


def claim_item(session, item_id: Any) -> dict:
    """Claim an item whose offer by this account was accepted."""
    item_id = parse_id(item_id)
    account = session.require_account()

    own = [
        offer
        for offer in load_account_offers(session)
        if offer["itemId"] == item_id and same_address(offer.get("offerer"), account)
    ]
    match = next((offer for offer in own if offer["isAccepted"] is True), own[0] if own else None)
    offer = require_claimable_offer(match, account)

    submit("claim_item", session.client.claim_item, item_id, offer["price"])
    return _success("claim_item", item_id=item_id, price_wei=str(offer["price"]))


def list_item_for_sale(session, item_id: Any, price_wei: Any) -> dict:
    """Put an owned marketplace item up for sale at price_wei."""
    price = parse_wei_amount(price_wei)
    account = session.require_account()
    item = require_item(load_items(session), parse_id(item_id))
    require_item_owner(item, account)

    submit(
        "list_item_for_sale",
        session.client.list_item_for_sale,
        item["nftContract"],
        item["tokenId"],
        price,
    )
    return _success("list_item_for_sale", item_id=item["id"], price_wei=str(price))


def add_item_to_marketplace(session, collection_address: str, token_id: Any) -> dict:
    """Register an owned NFT of an owned collection as a marketplace item."""
    token_id = parse_id(token_id, "Token ID")
    address = validate_address(collection_address)

    addable = load_addable(session, address)
    if not any(nft["tokenId"] == token_id for nft in addable):
        raise PreconditionError(
            f"Token {token_id} is not an unregistered NFT you own in {address}"
        )

    submit("add_item_to_marketplace", session.client.add_item_to_marketplace, address, token_id)
    return _success("add_item_to_marketplace", collection=address, token_id=token_id)


def validate_metadata(metadata: dict) -> Dict[str, str]:
    clean = {field: str(metadata.get(field) or "").strip() for field in ("name", "description", "image")}
    if not clean["name"]:
        raise ValidationError("NFT name cannot be empty")
    if not clean["image"]:
        raise ValidationError("NFT image cannot be empty")
    return clean


def mint_nft(session, collection_address: str, metadata: dict) -> dict:
    """
    Pin metadata to IPFS, then mint into an owned collection.

    The mint call is only issued after the upload succeeded.
    """
    document = validate_metadata(metadata)
    account = session.require_account()
    address = validate_address(collection_address)
    require_collection_owner(find_collection(load_collections(session), address), account, address)

    try:
        token_uri = session.get_ipfs().upload_metadata(document)
    except GatewayError as e:
        logger.error(f"Metadata upload failed: {e}")
        raise RemoteOperationFailure("upload_metadata", reason=str(e)) from e

    submit("mint_nft", session.client.mint_nft, address, token_uri)
    return _success("mint_nft", collection=address, token_uri=token_uri)


def validate_collection_fields(name: str, symbol: str) -> Tuple[str, str]:
    name = (name or "").strip()
    symbol = (symbol or "").strip()
    if not name:
        raise ValidationError("Collection name cannot be empty")
    if not symbol:
        raise ValidationError("Collection symbol cannot be empty")
    if len(symbol) > MAX_SYMBOL_LENGTH or not (symbol.isascii() and symbol.isalnum() and symbol == symbol.upper()):
        raise ValidationError(
            f"Symbol must be up to {MAX_SYMBOL_LENGTH} uppercase letters or digits"
        )
    return name, symbol


def deploy_collection(session, name: str, symbol: str) -> dict:
    """Deploy a new NFT collection owned by the account."""
    name, symbol = validate_collection_fields(name, symbol)
    session.require_account()

    logger.info(f"Deploying collection {name} ({symbol})")
    try:
        deployed = session.client.deploy_nft_collection(name, symbol)
    except GatewayError as e:
        raise RemoteOperationFailure("deploy_collection", reason=str(e)) from e

    if not isinstance(deployed, dict) or not deployed.get("address"):
        raise RemoteOperationFailure("deploy_collection", result_code=deployed)

    collection = {
        "address": deployed["address"],
        "name": deployed.get("name") or name,
        "symbol": deployed.get("symbol") or symbol,
    }
    return _success("deploy_collection", collection=collection)


def withdraw(session) -> dict:
    """Withdraw the marketplace balance. Owner only."""
    session.require_account()
    require_marketplace_owner(session)

    balance = parse_quantity(session.client.get_marketplace_balance(), "balance")
    if balance == 0:
        return _empty("withdraw", balance_wei="0")

    submit("withdraw", session.client.withdraw_money)
    return _success("withdraw", amount_wei=str(balance), amount=format_eth(balance))


# =============================================================================
# Interactive flows
# =============================================================================


def interactive(action: str):
    """Keep validation and precondition failures inside the flow."""

    def decorator(flow: Callable[..., dict]) -> Callable[..., dict]:
        @functools.wraps(flow)
        def wrapper(session, prompter) -> dict:
            try:
                return flow(session, prompter)
            except (ValidationError, PreconditionError) as e:
                logger.warning(f"{action} rejected: {e}")
                return {
                    "success": False,
                    "action": action,
                    "message": str(e),
                    "error_type": type(e).__name__,
                }

        return wrapper

    return decorator


def _select_or_back(prompter, message: str, choices: List[Tuple[str, Any]]) -> Any:
    return prompter.select(message, list(choices) + [("Back", None)])


def ask_ether_amount(prompter, message: str) -> Optional[int]:
    """Ask for an ether amount until it parses. Blank input cancels (None)."""
    while True:
        text = prompter.ask(message)
        if not text:
            return None
        try:
            return parse_ether_amount(text)
        except InvalidAmountError as e:
            prompter.show(f"Invalid amount: {e}")


@interactive("items")
def show_items_flow(session, prompter) -> dict:
    result = show_items(session)
    if not result["items"]:
        return _empty("items")
    for item in result["items"]:
        prompter.show(
            f"ID: {item['id']}\n  Name: {item['name']}\n  Description: {item['description']}\n"
            f"  Image: {item['image']}\n  Token ID: {item['tokenId']}\n"
            f"  Owner: {item['owner']}\n  Price: {format_eth(item['price'])}"
        )
    return result


@interactive("item")
def show_item_flow(session, prompter) -> dict:
    while True:
        text = prompter.ask("Enter the ID of the item you want to see")
        if not text:
            return _cancelled("item")
        try:
            item_id = parse_id(text)
            break
        except ValidationError as e:
            prompter.show(str(e))
    result = show_item(session, item_id)
    prompter.show_records([result["item"]])
    return result


@interactive("buy_item")
def buy_flow(session, prompter) -> dict:
    choices = views.for_sale(load_items(session), session.require_account())
    if not choices:
        return _empty("buy_item")

    item_id = _select_or_back(
        prompter, "Select the item you want to buy:", [(item_label(i), i["id"]) for i in choices]
    )
    if item_id is None:
        return _cancelled("buy_item")

    price = next(i["price"] for i in choices if i["id"] == item_id)
    if not prompter.confirm(f"Buy item {item_id} for {format_eth(price)}?", default=True):
        return _cancelled("buy_item")
    return buy_item(session, item_id)


@interactive("place_offer")
def offer_flow(session, prompter) -> dict:
    choices = views.offer_eligible(load_items(session), session.require_account())
    if not choices:
        return _empty("place_offer")

    item_id = _select_or_back(
        prompter,
        "Select the item you want to make an offer for:",
        [(item_label(i), i["id"]) for i in choices],
    )
    if item_id is None:
        return _cancelled("place_offer")

    amount = ask_ether_amount(prompter, "Enter the amount of ETH you want to offer")
    if amount is None:
        return _cancelled("place_offer")
    return place_offer(session, item_id, amount)


@interactive("my_offers")
def my_offers_flow(session, prompter) -> dict:
    result = my_offers(session)
    if not result["offers"]:
        return _empty("my_offers")
    for offer in result["offers"]:
        prompter.show(offer_label(offer))

    claimable = result["claimable"]
    if not claimable:
        return _empty("claim_item")
    if not prompter.confirm("Do you want to claim an item?"):
        return result

    item_id = _select_or_back(
        prompter,
        "Select the item you want to claim:",
        [(offer_label(o), o["itemId"]) for o in claimable],
    )
    if item_id is None:
        return _cancelled("claim_item")
    return claim_item(session, item_id)


@interactive("accept_offer")
def accept_offer_flow(session, prompter) -> dict:
    pending = load_pending_offers(session)
    if not pending:
        return _empty("accept_offer")

    choice = _select_or_back(
        prompter,
        "Select the offer you want to accept:",
        [(offer_label(o), (o["itemId"], o["offerer"])) for o in pending],
    )
    if choice is None:
        return _cancelled("accept_offer")
    return accept_offer(session, *choice)


@interactive("my_items")
def my_items_flow(session, prompter) -> dict:
    result = my_items(session)
    if not result["items"]:
        return _empty("my_items")
    for item in result["items"]:
        prompter.show(item_label(item))
    return result


@interactive("collections")
def collections_flow(session, prompter) -> dict:
    collections = load_owned_collections(session)
    if not collections:
        return _empty("collections")
    for collection in collections:
        prompter.show(collection_label(collection))
    return {"success": True, "count": len(collections), "collections": collections}


@interactive("deploy_collection")
def create_collection_flow(session, prompter) -> dict:
    name = prompter.ask("Collection name")
    if not name:
        return _cancelled("deploy_collection")
    while True:
        symbol = prompter.ask("Collection symbol")
        if not symbol:
            return _cancelled("deploy_collection")
        try:
            validate_collection_fields(name, symbol)
            break
        except ValidationError as e:
            prompter.show(str(e))
    return deploy_collection(session, name, symbol)


def ensure_ipfs_credentials(session, prompter) -> None:
    """Ask for whichever IPFS credential is not configured."""
    ipfs = session.get_ipfs()
    if not ipfs.project_id:
        ipfs.project_id = prompter.ask("IPFS project id")
    if not ipfs.project_secret:
        ipfs.project_secret = prompter.ask_secret("IPFS project secret")


def _select_owned_collection(session, prompter, message: str) -> Tuple[bool, Optional[str]]:
    """(has collections, selected address or None if backed out)"""
    collections = load_owned_collections(session)
    if not collections:
        return False, None
    return True, _select_or_back(prompter, message, [(collection_label(c), c["address"]) for c in collections])


@interactive("mint_nft")
def mint_flow(session, prompter) -> dict:
    found, address = _select_owned_collection(session, prompter, "Select the collection to mint into:")
    if not found:
        return _empty("collections")
    if address is None:
        return _cancelled("mint_nft")

    ensure_ipfs_credentials(session, prompter)
    metadata = {
        "name": prompter.ask("NFT name"),
        "description": prompter.ask("NFT description"),
        "image": prompter.ask("Image URL"),
    }
    return mint_nft(session, address, metadata)


@interactive("add_item_to_marketplace")
def add_item_flow(session, prompter) -> dict:
    found, address = _select_owned_collection(session, prompter, "Select the collection:")
    if not found:
        return _empty("collections")
    if address is None:
        return _cancelled("add_item_to_marketplace")

    addable = load_addable(session, address)
    if not addable:
        return _empty("add_item_to_marketplace")

    token_id = _select_or_back(
        prompter, "Select the NFT to add:", [(nft_label(n), n["tokenId"]) for n in addable]
    )
    if token_id is None:
        return _cancelled("add_item_to_marketplace")
    return add_item_to_marketplace(session, address, token_id)


@interactive("list_item_for_sale")
def list_item_flow(session, prompter) -> dict:
    owned = views.owned_by_account(load_items(session), session.require_account())
    if not owned:
        return _empty("list_item_for_sale")

    item_id = _select_or_back(
        prompter, "Select the item you want to list:", [(item_label(i), i["id"]) for i in owned]
    )
    if item_id is None:
        return _cancelled("list_item_for_sale")

    price = ask_ether_amount(prompter, "Enter the price in ETH")
    if price is None:
        return _cancelled("list_item_for_sale")
    return list_item_for_sale(session, item_id, price)


@interactive("withdraw")
def withdraw_flow(session, prompter) -> dict:
    session.require_account()
    require_marketplace_owner(session)
    balance = parse_quantity(session.client.get_marketplace_balance(), "balance")
    prompter.show(f"Marketplace balance: {format_eth(balance)}")
    if balance and not prompter.confirm("Withdraw all funds?", default=True):
        return _cancelled("withdraw")
    return withdraw(session)


@interactive("connect_wallet")
def connect_wallet_flow(session, prompter) -> dict:
    while True:
        text = prompter.ask("Enter your wallet address")
        if not text:
            return _cancelled("connect_wallet")
        if same_address(text, session.account):
            return {"success": True, "action": "connect_wallet", "account": session.account,
                    "message": f"Already connected as {session.account}"}
        try:
            account = session.connect_wallet(text)
            return {"success": True, "action": "connect_wallet", "account": account,
                    "message": f"Connected {account}"}
        except InvalidAddressError as e:
            prompter.show(str(e))
