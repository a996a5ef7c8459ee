#!/usr/bin/env python3
"""
NFT Marketplace CLI: Marketplace gateway client

JSON-over-HTTP client for the marketplace SDK gateway. The gateway owns the
provider, contract bindings and signing; this client only issues reads and
state-mutating commands on behalf of the connected account.

Reads return raw records (normalized later). Writes return the client's
result code: 1 means success, anything else is a failure.
Transport and HTTP failures raise GatewayError.
"""

from typing import Any, List, Optional, Tuple

from errors import GatewayError
from utils import api_request, get_config_value, get_logger

logger = get_logger("gateway")


def _list_payload(data: Any, key: str) -> List[dict]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get(key), list):
        return data[key]
    raise GatewayError(f"Unexpected response shape, expected list of {key}")


def _dict_payload(data: Any, endpoint: str) -> dict:
    if not isinstance(data, dict):
        raise GatewayError("Unexpected response shape, expected object", endpoint=endpoint)
    return data


class MarketplaceClient:
    """Client for one marketplace contract, acting as one account."""

    def __init__(
        self,
        base_url: str,
        contract_address: str,
        account: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: int = 30,
    ):
        self.base_url = base_url.rstrip("/")
        self.contract_address = contract_address
        self.account = account
        self.api_key = api_key
        self.timeout = timeout

    @classmethod
    def from_config(
        cls, contract_address: Optional[str] = None, account: Optional[str] = None
    ) -> "MarketplaceClient":
        """Build a client from config/env (gateway_url, gateway_key, contract_address)."""
        return cls(
            base_url=get_config_value("gateway_url"),
            contract_address=contract_address or get_config_value("contract_address"),
            account=account,
            api_key=get_config_value("gateway_key") or None,
        )

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _request(
        self,
        endpoint: str,
        method: str = "GET",
        params: Optional[dict] = None,
        json_data: Optional[dict] = None,
    ) -> Any:
        """
        Request to the gateway.

        Args:
            endpoint: Endpoint without base URL, e.g. "/items/3/offers"
            method: HTTP method
            params: Query parameters
            json_data: JSON body

        Returns:
            Response payload

        Raises:
            GatewayError: transport failure or non-2xx response
        """
        query = {"contract": self.contract_address}
        if params:
            query.update(params)

        result = api_request(
            url=f"{self.base_url}{endpoint}",
            method=method,
            params=query,
            json_data=json_data,
            api_key=self.api_key,
            timeout=self.timeout,
        )

        if not result["success"]:
            error = result.get("error")
            if isinstance(error, dict):
                error = error.get("error") or error.get("message") or str(error)
            logger.debug(f"{method} {endpoint} failed: {error} ({result.get('status_code')})")
            raise GatewayError(
                f"{method} {endpoint}: {error}",
                status_code=result.get("status_code"),
                endpoint=endpoint,
            )

        return result["data"]

    def _command(self, endpoint: str, payload: Optional[dict] = None) -> Any:
        """POST a state-mutating command and return its result code."""
        if not self.account:
            raise GatewayError("No account connected", endpoint=endpoint)

        body = {"from": self.account, "contract": self.contract_address}
        if payload:
            body.update(payload)

        data = self._request(endpoint, method="POST", json_data=body)
        if isinstance(data, dict) and "result" in data:
            return data["result"]
        return data

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def load_items(self) -> Tuple[List[dict], List[dict]]:
        """All marketplace items and their metadata records."""
        data = _dict_payload(self._request("/items"), "/items")
        items = _list_payload(data, "items")
        metadata = data.get("metadata", data.get("metadataArrModified", []))
        return items, metadata

    def get_item(self, item_id: int) -> Tuple[dict, Any]:
        endpoint = f"/items/{item_id}"
        data = _dict_payload(self._request(endpoint), endpoint)
        return data.get("item", {}), data.get("metadata")

    def get_offers(self, item_id: int) -> List[dict]:
        return _list_payload(self._request(f"/items/{item_id}/offers"), "offers")

    def get_accounts_offers(self, account: str) -> List[dict]:
        return _list_payload(self._request(f"/accounts/{account}/offers"), "offers")

    def load_collections(self) -> List[dict]:
        return _list_payload(self._request("/collections"), "collections")

    def get_collection_owner(self, collection_address: str) -> str:
        data = self._request(f"/collections/{collection_address}/owner")
        return data.get("owner") if isinstance(data, dict) else data

    def load_items_for_listing(self, account: str) -> Tuple[List[dict], List[dict]]:
        """Marketplace items plus metadata of the NFTs the account holds."""
        endpoint = f"/accounts/{account}/nfts"
        data = _dict_payload(self._request(endpoint), endpoint)
        return data.get("items", []), data.get("nfts", [])

    def load_items_for_adding(self, collection_address: str, account: str) -> List[dict]:
        data = self._request(
            f"/collections/{collection_address}/items", params={"account": account}
        )
        return _list_payload(data, "items")

    def is_marketplace_owner(self, account: str) -> bool:
        data = self._request("/owner", params={"account": account})
        if isinstance(data, dict):
            return data.get("isOwner") is True
        return data is True

    def get_marketplace_balance(self) -> Any:
        data = self._request("/balance")
        return data.get("balance") if isinstance(data, dict) else data

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def buy_item(self, item_id: int, price: int) -> Any:
        return self._command(f"/items/{item_id}/buy", {"price": str(price)})

    def place_offer(self, item_id: int, amount: int) -> Any:
        return self._command(f"/items/{item_id}/offers", {"amount": str(amount)})

    def accept_offer(self, item_id: int, offerer: str) -> Any:
        return self._command(f"/items/{item_id}/offers/{offerer}/accept")

    def claim_item(self, item_id: int, price: int) -> Any:
        return self._command(f"/items/{item_id}/claim", {"price": str(price)})

    def list_item_for_sale(self, nft_contract: str, token_id: int, price: int) -> Any:
        return self._command(
            "/listings",
            {"nftContract": nft_contract, "tokenId": str(token_id), "price": str(price)},
        )

    def add_item_to_marketplace(self, collection_address: str, token_id: int) -> Any:
        return self._command(
            "/items", {"nftContract": collection_address, "tokenId": str(token_id)}
        )

    def deploy_nft_collection(self, name: str, symbol: str) -> Any:
        """New collection record, or a failure result code."""
        return self._command("/collections", {"name": name, "symbol": symbol})

    def mint_nft(self, collection_address: str, token_uri: str) -> Any:
        return self._command(
            f"/collections/{collection_address}/mint", {"tokenURI": token_uri}
        )

    def withdraw_money(self) -> Any:
        return self._command("/withdraw")
