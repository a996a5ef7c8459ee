#!/usr/bin/env python3
"""
NFT Marketplace CLI: Shared Constants and Utilities

Centralized configuration for:
- Result code convention of the marketplace client
- Fan-out limits
- Common messages
- Formatting utilities for terminal output
"""

from typing import Optional

from utils import format_wei


# =============================================================================
# Marketplace client conventions
# =============================================================================

# The only result code the marketplace client uses for success
RESULT_SUCCESS = 1

# Upper bound on concurrent per-item reads
MAX_FANOUT_WORKERS = 8

# Menu labels truncate item descriptions to this many characters
DESCRIPTION_PREVIEW_CHARS = 50

# Collection symbols (ERC-721 convention, kept short for wallets)
MAX_SYMBOL_LENGTH = 11


# =============================================================================
# Messages
# =============================================================================

SUCCESS_MESSAGES = {
    "buy_item": "Item bought successfully!",
    "place_offer": "Offer made successfully!",
    "accept_offer": "Offer accepted successfully!",
    "claim_item": "Item claimed successfully!",
    "list_item_for_sale": "Item listed for sale successfully!",
    "add_item_to_marketplace": "Item added to the marketplace successfully!",
    "mint_nft": "NFT minted successfully!",
    "deploy_collection": "Collection deployed successfully!",
    "withdraw": "Funds withdrawn successfully!",
}

EMPTY_MESSAGES = {
    "buy_item": "No items for sale right now.",
    "place_offer": "No items are open for offers right now.",
    "accept_offer": "You don't have any pending offers to accept.",
    "claim_item": "You don't have any accepted offers!",
    "my_offers": "You haven't made any offers yet.",
    "my_items": "You don't own any marketplace items.",
    "list_item_for_sale": "You don't own any items to list.",
    "add_item_to_marketplace": "No NFTs left to add from this collection.",
    "collections": "You don't own any collections.",
    "withdraw": "Marketplace balance is zero, nothing to withdraw.",
    "items": "No items on the marketplace.",
}

FAILURE_MESSAGE = "Something went wrong!"


# =============================================================================
# Formatting Utilities
# =============================================================================


def format_eth(wei: Optional[int]) -> str:
    """Format a wei amount as ether for display."""
    if wei is None:
        return "N/A"
    return f"{format_wei(wei)} ETH"


def truncate_address(address: Optional[str], start: int = 6, end: int = 4) -> str:
    """Truncate address for display: 0x7052...2073"""
    if not address:
        return "N/A"
    if len(address) <= start + end + 3:
        return address
    return f"{address[:start]}...{address[-end:]}"


def truncate_text(text: Optional[str], limit: int = DESCRIPTION_PREVIEW_CHARS) -> str:
    if not text:
        return ""
    return text if len(text) <= limit else text[:limit]


def item_label(item: dict) -> str:
    """Menu label for an item view record."""
    parts = [f"ID: {item['id']}", item.get("name") or "Unnamed"]
    if item.get("description"):
        parts.append(truncate_text(item["description"]))
    if item.get("price", 0) != 0:
        parts.append(format_eth(item["price"]))
    elif "nftContract" in item:
        parts.append(f"nft: {item['nftContract']}")
        parts.append(f"token ID: {item['tokenId']}")
    return " - ".join(parts)


def offer_label(offer: dict) -> str:
    """Menu label for an offer record."""
    status = "Accepted" if offer.get("isAccepted") else "Not accepted"
    return (
        f"ID: {offer['itemId']} - From: {truncate_address(offer.get('offerer'))} - "
        f"{format_eth(offer.get('price'))} | {status}"
    )


def nft_label(nft: dict) -> str:
    """Menu label for an owned NFT that is not a marketplace item."""
    return f"Token ID: {nft['tokenId']} - {nft.get('name') or 'Unnamed'}"


def collection_label(collection: dict) -> str:
    return f"{collection.get('name')} ({collection.get('symbol')}) - {collection['address']}"


# =============================================================================
# CLI Help Text
# =============================================================================

COMMON_EPILOG = """
Environment variables:
  MARKETPLACE_GATEWAY_URL   Marketplace gateway base URL
  MARKETPLACE_GATEWAY_KEY   Gateway API key
  MARKETPLACE_CONTRACT      Marketplace contract address
  IPFS_PROJECT_ID           IPFS project id (minting)
  IPFS_PROJECT_SECRET       IPFS project secret (minting)

Configuration:
  Config file: ~/.nft-marketplace/config.json
  Set values: marketplace.py config set <key> <value>
"""


# =============================================================================
# Module exports
# =============================================================================

__all__ = [
    "RESULT_SUCCESS",
    "MAX_FANOUT_WORKERS",
    "DESCRIPTION_PREVIEW_CHARS",
    "MAX_SYMBOL_LENGTH",
    "SUCCESS_MESSAGES",
    "EMPTY_MESSAGES",
    "FAILURE_MESSAGE",
    "format_eth",
    "truncate_address",
    "truncate_text",
    "item_label",
    "offer_label",
    "nft_label",
    "collection_label",
    "COMMON_EPILOG",
]
