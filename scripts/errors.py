#!/usr/bin/env python3
"""
NFT Marketplace CLI: Errors

Exception hierarchy shared by the workflows, plus conversion of exceptions
into user-friendly messages with actionable suggestions.
"""

from typing import Optional, Dict, Any, List


# =============================================================================
# Exception Hierarchy
# =============================================================================


class MarketplaceError(Exception):
    """Base class for all marketplace CLI errors."""


class ValidationError(MarketplaceError, ValueError):
    """Malformed user-supplied value (amount, id, address, name)."""


class InvalidAmountError(ValidationError):
    """Amount is not a positive, parseable monetary value."""


class InvalidAddressError(ValidationError):
    """Value is not a valid account or contract address."""


class PreconditionError(MarketplaceError):
    """Action is not valid for the item/offer/account at this moment."""


class SelfTradeError(PreconditionError):
    """Account tried to buy or make an offer on its own item."""


class PriceModeError(PreconditionError):
    """Item price mode does not allow the action (fixed price vs offer-only)."""


class NotOwnerError(PreconditionError):
    """Account does not own the item or collection."""


class OfferStateError(PreconditionError):
    """Offer is missing or not in the state the action requires."""


class NotAuthorizedError(PreconditionError):
    """Account is not the marketplace owner."""


class ItemNotFoundError(PreconditionError):
    """Requested item is not part of the current view."""


class DataIntegrityError(MarketplaceError):
    """Inconsistent data feed from the marketplace."""


class MetadataNotFound(DataIntegrityError):
    """No metadata record matches an item's (tokenId, nftContract) key."""

    def __init__(self, item_id: Any, nft_contract: Any, token_id: Any):
        self.item_id = item_id
        self.nft_contract = nft_contract
        self.token_id = token_id
        super().__init__(
            f"Metadata not found for item {item_id} "
            f"(contract {nft_contract}, token {token_id})"
        )


class OfferFetchError(DataIntegrityError):
    """One or more per-item offer fetches failed during aggregation."""

    def __init__(self, failures: Dict[int, Exception]):
        self.failures = failures
        self.item_ids: List[int] = sorted(failures)
        details = ", ".join(f"item {i}: {failures[i]}" for i in self.item_ids)
        super().__init__(f"Failed to fetch offers ({details})")


class RemoteOperationFailure(MarketplaceError):
    """State-mutating call returned a non-success code or raised a fault."""

    def __init__(self, action: str, result_code: Any = None, reason: str = ""):
        self.action = action
        self.result_code = result_code
        message = f"Operation {action} failed"
        if result_code is not None:
            message += f" (result code {result_code})"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class GatewayError(MarketplaceError):
    """Transport or HTTP failure talking to the gateway or IPFS."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
    ):
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


# =============================================================================
# Error Message Mapping
# =============================================================================

ERROR_PATTERNS = {
    "metadata not found": {
        "message": "Item metadata is missing",
        "reasons": [
            "Metadata feed is out of sync with the marketplace",
            "Token metadata was never pinned",
        ],
        "suggestion": "Try again later or check the item with 'item --id'",
    },
    "failed to fetch offers": {
        "message": "Could not load offers for some items",
        "reasons": [
            "Gateway rejected or dropped a request",
            "Network connectivity issue",
        ],
        "suggestion": "Try again in a few moments",
    },
    "invalid address": {
        "message": "Invalid address format",
        "reasons": [
            "Address must be 0x followed by 40 hex characters",
            "Mixed-case checksum does not match",
        ],
        "suggestion": "Copy the address from your wallet",
    },
    "result code": {
        "message": "Transaction failed",
        "reasons": [
            "Insufficient balance for price and gas",
            "Contract rejected the call",
            "Item state changed since it was loaded",
        ],
        "suggestion": "Reload the items and check the state before retrying",
    },
    "timeout": {
        "message": "Request timeout",
        "reasons": [
            "Network connection is slow",
            "Gateway is overloaded",
        ],
        "suggestion": "Try again in a few moments",
    },
    "connection error": {
        "message": "Connection error",
        "reasons": [
            "No internet connection",
            "Gateway is down",
            "Wrong gateway_url in config",
        ],
        "suggestion": "Check 'config get gateway_url' and your connection",
    },
    "401": {
        "message": "Gateway rejected credentials",
        "reasons": [
            "gateway_key is missing or expired",
            "IPFS project id/secret is wrong",
        ],
        "suggestion": "Set keys with 'config set gateway_key <key>'",
    },
    "404": {
        "message": "Gateway endpoint not available",
        "reasons": [
            "Wrong gateway_url",
            "Marketplace contract not indexed by the gateway",
        ],
        "suggestion": "Check the contract address and gateway_url",
    },
}


# =============================================================================
# Error Formatting Functions
# =============================================================================


def format_error(
    error: Any,
    error_type: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Convert technical error into user-friendly format.

    Args:
        error: Error message (string, dict, or exception)
        error_type: Type of error (e.g., "gateway", "workflow")
        context: Additional context (e.g., {"item_id": 3})

    Returns:
        dict with formatted error message
    """
    error_msg = _extract_error_message(error)
    error_lower = error_msg.lower()

    matched_pattern = None
    if not isinstance(error, (ValidationError, PreconditionError)):
        for pattern, info in ERROR_PATTERNS.items():
            if pattern in error_lower:
                matched_pattern = info
                break

    result = {
        "success": False,
        "error": matched_pattern["message"] if matched_pattern else error_msg,
    }

    if matched_pattern:
        result["reasons"] = matched_pattern.get("reasons", [])
        result["suggestion"] = matched_pattern.get("suggestion", "")
        result["details"] = error_msg

    if isinstance(error, MarketplaceError):
        result["error_type"] = type(error).__name__

    if context:
        for key in ("item_id", "offerer", "collection", "endpoint"):
            if key in context:
                result[key] = context[key]

    if error_type == "gateway" and isinstance(error, GatewayError):
        if error.status_code is not None:
            result["status_code"] = error.status_code
        if error.endpoint:
            result["endpoint"] = error.endpoint

    return result


def _extract_error_message(error: Any) -> str:
    """Extract error message from various error types."""
    if isinstance(error, str):
        return error
    elif isinstance(error, dict):
        return str(error.get("error", error))
    else:
        return str(error)


def get_error_suggestion(error: Any) -> Optional[str]:
    """Get suggestion for error if available."""
    error_msg = _extract_error_message(error).lower()
    for pattern, info in ERROR_PATTERNS.items():
        if pattern in error_msg:
            return info.get("suggestion")
    return None
