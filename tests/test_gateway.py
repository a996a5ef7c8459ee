"""
Unit tests for gateway.py and ipfs.py: request shapes and response handling.

Run with: pytest tests/test_gateway.py -v
"""

import json
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from conftest import ALICE, COLLECTION, CONTRACT  # noqa: E402
from errors import GatewayError  # noqa: E402
from gateway import MarketplaceClient  # noqa: E402
from ipfs import IpfsClient, upload_metadata  # noqa: E402

BASE_URL = "https://gateway.test/api"


def ok(data, status_code=200):
    return MagicMock(ok=True, status_code=status_code, json=lambda: data)


def failed(data, status_code=500, reason="Internal Server Error"):
    return MagicMock(ok=False, status_code=status_code, json=lambda: data, reason=reason)


@pytest.fixture
def client():
    return MarketplaceClient(BASE_URL + "/", CONTRACT, account=ALICE, api_key="gw_key")


def sent(mock_request):
    """(method, url, kwargs) of the last request."""
    args, kwargs = mock_request.call_args
    return args[1], args[2], kwargs


# =============================================================================
# Reads
# =============================================================================


class TestReads:
    @patch("requests.Session.request")
    def test_load_items(self, mock_request, client):
        mock_request.return_value = ok({"items": [{"id": 1}], "metadata": [{"tokenId": 1}]})

        items, metadata = client.load_items()

        method, url, kwargs = sent(mock_request)
        assert (method, url) == ("GET", f"{BASE_URL}/items")
        assert kwargs["params"] == {"contract": CONTRACT}
        assert kwargs["headers"]["Authorization"] == "Bearer gw_key"
        assert items == [{"id": 1}]
        assert metadata == [{"tokenId": 1}]

    @patch("requests.Session.request")
    def test_get_offers_accepts_bare_list(self, mock_request, client):
        mock_request.return_value = ok([{"offerer": ALICE}])

        assert client.get_offers(3) == [{"offerer": ALICE}]
        assert sent(mock_request)[1] == f"{BASE_URL}/items/3/offers"

    @patch("requests.Session.request")
    def test_unexpected_shape_raises(self, mock_request, client):
        mock_request.return_value = ok({"unexpected": True})

        with pytest.raises(GatewayError):
            client.get_offers(3)

    @patch("requests.Session.request")
    def test_load_items_for_adding_passes_account(self, mock_request, client):
        mock_request.return_value = ok({"items": []})

        client.load_items_for_adding(COLLECTION, ALICE)

        _, url, kwargs = sent(mock_request)
        assert url == f"{BASE_URL}/collections/{COLLECTION}/items"
        assert kwargs["params"] == {"contract": CONTRACT, "account": ALICE}

    @patch("requests.Session.request")
    def test_is_marketplace_owner_requires_true(self, mock_request, client):
        mock_request.return_value = ok({"isOwner": True})
        assert client.is_marketplace_owner(ALICE) is True

        mock_request.return_value = ok({"isOwner": "yes"})
        assert client.is_marketplace_owner(ALICE) is False

    @patch("requests.Session.request")
    def test_collection_owner(self, mock_request, client):
        mock_request.return_value = ok({"owner": ALICE})

        assert client.get_collection_owner(COLLECTION) == ALICE

    @patch("requests.Session.request")
    def test_http_error_raises_gateway_error(self, mock_request, client):
        mock_request.return_value = failed({"error": "indexer down"}, status_code=503)

        with pytest.raises(GatewayError) as exc:
            client.load_collections()

        assert exc.value.status_code == 503
        assert exc.value.endpoint == "/collections"
        assert "indexer down" in str(exc.value)

    @pytest.mark.security
    @patch("requests.Session.request")
    def test_api_key_secret_not_logged(self, mock_request, client, capture_logs):
        mock_request.return_value = failed({"error": "bad key"}, status_code=401)

        with pytest.raises(GatewayError):
            client.load_items()

        assert "GET /items failed" in capture_logs.text
        assert "gw_key" not in capture_logs.text

    @patch("requests.Session.request")
    def test_timeout_raises_gateway_error(self, mock_request, client):
        import requests

        mock_request.side_effect = requests.exceptions.Timeout()

        with pytest.raises(GatewayError, match="timeout"):
            client.get_marketplace_balance()


# =============================================================================
# Commands
# =============================================================================


class TestCommands:
    @patch("requests.Session.request")
    def test_buy_item_body(self, mock_request, client):
        mock_request.return_value = ok({"result": 1})

        assert client.buy_item(2, 10**18) == 1

        method, url, kwargs = sent(mock_request)
        assert (method, url) == ("POST", f"{BASE_URL}/items/2/buy")
        assert kwargs["json"] == {"from": ALICE, "contract": CONTRACT, "price": str(10**18)}

    @patch("requests.Session.request")
    def test_non_success_code_returned_unchanged(self, mock_request, client):
        mock_request.return_value = ok({"result": 0})

        assert client.place_offer(3, 5) == 0

    @patch("requests.Session.request")
    def test_accept_offer_path(self, mock_request, client):
        mock_request.return_value = ok({"result": 1})

        client.accept_offer(1, COLLECTION)

        assert sent(mock_request)[1] == f"{BASE_URL}/items/1/offers/{COLLECTION}/accept"

    @patch("requests.Session.request")
    def test_mint_body(self, mock_request, client):
        mock_request.return_value = ok({"result": 1})

        client.mint_nft(COLLECTION, "https://gw/ipfs/Qm")

        assert sent(mock_request)[2]["json"]["tokenURI"] == "https://gw/ipfs/Qm"

    @patch("requests.Session.request")
    def test_deploy_returns_record(self, mock_request, client):
        mock_request.return_value = ok({"address": COLLECTION, "name": "Stars", "symbol": "STAR"})

        assert client.deploy_nft_collection("Stars", "STAR")["address"] == COLLECTION

    @patch("requests.Session.request")
    def test_command_without_account(self, mock_request):
        client = MarketplaceClient(BASE_URL, CONTRACT)

        with pytest.raises(GatewayError):
            client.withdraw_money()

        mock_request.assert_not_called()


class TestFromConfig:
    def test_reads_config(self, mock_config):
        client = MarketplaceClient.from_config()

        assert client.base_url == "https://gateway.test/marketplace"
        assert client.contract_address == CONTRACT
        assert client.api_key == "gw_secret_key_123456"


# =============================================================================
# IPFS
# =============================================================================


class TestIpfsClient:
    @pytest.fixture
    def ipfs(self):
        return IpfsClient(
            "proj",
            "secret",
            api_url="https://ipfs.test/api/v0",
            gateway_url="https://files.test/ipfs",
        )

    @patch("requests.Session.request")
    def test_upload_metadata_returns_token_uri(self, mock_request, ipfs):
        mock_request.return_value = ok({"Name": "metadata.json", "Hash": "QmHash", "Size": "80"})

        uri = ipfs.upload_metadata({"name": "Nova", "description": "New", "image": "ipfs://nova", "extra": 1})

        assert uri == "https://files.test/ipfs/QmHash"
        method, url, kwargs = sent(mock_request)
        assert (method, url) == ("POST", "https://ipfs.test/api/v0/add")
        assert kwargs["params"] == {"pin": "true"}
        assert kwargs["auth"] == ("proj", "secret")
        _, body, _ = kwargs["files"]["file"]
        assert json.loads(body) == {"name": "Nova", "description": "New", "image": "ipfs://nova"}

    @patch("requests.Session.request")
    def test_missing_credentials(self, mock_request):
        ipfs = IpfsClient("", "", api_url="https://ipfs.test", gateway_url="https://files.test/ipfs/")

        with pytest.raises(GatewayError):
            ipfs.upload_metadata({"name": "Nova"})

        mock_request.assert_not_called()

    @patch("requests.Session.request")
    def test_rejected_upload(self, mock_request, ipfs):
        mock_request.return_value = failed("unauthorized", status_code=401, reason="Unauthorized")

        with pytest.raises(GatewayError) as exc:
            ipfs.upload_json({"name": "Nova"})

        assert exc.value.status_code == 401

    @patch("requests.Session.request")
    def test_missing_hash(self, mock_request, ipfs):
        mock_request.return_value = ok({"Name": "metadata.json"})

        with pytest.raises(GatewayError):
            ipfs.upload_json({"name": "Nova"})

    @patch("requests.Session.request")
    def test_module_upload_with_explicit_credentials(self, mock_request, mock_config):
        mock_request.return_value = ok({"Hash": "QmOther"})

        uri = upload_metadata("other", "other_secret", {"name": "Nova", "image": "ipfs://nova"})

        assert uri == "https://charity-file-storage.infura-ipfs.io/ipfs/QmOther"
        assert sent(mock_request)[2]["auth"] == ("other", "other_secret")

    def test_from_config(self, mock_config):
        ipfs = IpfsClient.from_config()

        assert ipfs.project_id == "proj"
        assert ipfs.gateway_url == "https://charity-file-storage.infura-ipfs.io/ipfs/"
