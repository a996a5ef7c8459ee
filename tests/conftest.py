"""
Pytest configuration and shared fixtures for nft-marketplace-cli tests.
"""

import json
import sys
import threading
import time
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from errors import GatewayError  # noqa: E402
from prompts import Prompter  # noqa: E402


# =============================================================================
# Test Data
# =============================================================================

# Digit-only addresses are their own checksum form
ALICE = "0x" + "1" * 40
BOB = "0x" + "2" * 40
CAROL = "0x" + "3" * 40
CONTRACT = "0x" + "4" * 40
COLLECTION = "0x" + "5" * 40
OTHER_COLLECTION = "0x" + "6" * 40
NEW_COLLECTION = "0x" + "7" * 40

INVALID_ADDRESS = "not-a-valid-address"

ONE_ETH = 10**18


def make_items():
    """Raw marketplace items as the gateway returns them."""
    return [
        {"id": 1, "nft": COLLECTION, "tokenId": 1, "owner": ALICE, "price": 0},
        {"id": 2, "nftContract": COLLECTION, "tokenId": "2", "owner": BOB, "price": str(ONE_ETH)},
        {"id": "3", "nftContract": COLLECTION, "tokenId": 3, "owner": BOB, "price": "0x0"},
        {"id": 4, "nftContract": OTHER_COLLECTION, "tokenId": 1, "owner": ALICE, "price": {"hex": hex(ONE_ETH // 2)}},
    ]


def make_metadata():
    """Metadata records, deliberately not in item order."""
    return [
        {"nft": OTHER_COLLECTION, "tokenId": 1, "name": "Moon", "description": "Grey rock", "image": "ipfs://moon"},
        {"nft": COLLECTION, "tokenId": "3", "data": {"name": "Comet", "description": "Fast", "image": "ipfs://comet"}},
        {"nft": COLLECTION, "tokenId": 1, "name": "Sun", "description": "Hot star", "image": "ipfs://sun"},
        {"nft": COLLECTION, "tokenId": 2, "name": "Earth", "description": "Home", "image": "ipfs://earth"},
    ]


# =============================================================================
# Fake marketplace client
# =============================================================================


class FakeMarketplaceClient:
    """
    In-memory stand-in for MarketplaceClient.

    Reads serve the fixture data; commands mutate it the way the contract
    would and are recorded in `calls`. `result_code` is what every command
    returns (1 = success).
    """

    def __init__(self):
        self.contract_address = CONTRACT
        self.account = None
        self.items = make_items()
        self.metadata = make_metadata()
        # item id -> raw offers (no itemId: the aggregator tags them)
        self.offers = {
            1: [
                {"offerer": BOB, "seller": ALICE, "price": str(ONE_ETH // 10), "isAccepted": False},
                {"offerer": CAROL, "seller": ALICE, "price": str(ONE_ETH // 5), "isAccepted": True},
            ],
            3: [{"offerer": ALICE, "seller": BOB, "price": str(ONE_ETH // 4), "isAccepted": False}],
        }
        self.collections = [
            {"address": COLLECTION, "name": "Stars", "symbol": "STAR"},
            {"address": OTHER_COLLECTION, "name": "Rocks", "symbol": "ROCK"},
        ]
        self.collection_owners = {COLLECTION: ALICE, OTHER_COLLECTION: BOB}
        self.nfts = [
            {"nft": COLLECTION, "tokenId": 1, "name": "Sun", "description": "Hot star", "image": "ipfs://sun"},
            {"nft": COLLECTION, "tokenId": 7, "name": "Nova", "description": "New", "image": "ipfs://nova"},
            {"nft": OTHER_COLLECTION, "tokenId": 9, "name": "Dust", "description": "", "image": "ipfs://dust"},
        ]
        self.addable = {
            COLLECTION: [
                {"tokenId": 1, "owner": ALICE, "name": "Sun", "description": "Hot star", "image": "ipfs://sun"},
                {"tokenId": 7, "owner": ALICE, "name": "Nova", "description": "New", "image": "ipfs://nova"},
                {"tokenId": 8, "owner": BOB, "name": "Gift", "description": "", "image": "ipfs://gift"},
            ]
        }
        self.owner = ALICE
        self.balance = str(2 * ONE_ETH)
        self.result_code = 1
        self.deploy_result = None

        self.offer_delays = {}
        self.offer_failures = {}
        self.offer_calls = []
        self.owner_checks = 0
        self.calls = []

        self._lock = threading.Lock()
        self._in_flight = 0
        self.peak_in_flight = 0

    # Reads

    def load_items(self):
        return [dict(item) for item in self.items], [dict(m) for m in self.metadata]

    def get_item(self, item_id):
        for item in self.items:
            if int(item["id"]) == item_id:
                key = (int(item["tokenId"]), (item.get("nftContract") or item["nft"]).lower())
                for record in self.metadata:
                    if (int(record["tokenId"]), record["nft"].lower()) == key:
                        return dict(item), dict(record)
                return dict(item), None
        raise GatewayError(f"GET /items/{item_id}: not found", status_code=404)

    def get_offers(self, item_id):
        with self._lock:
            self.offer_calls.append(item_id)
            self._in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self._in_flight)
        try:
            time.sleep(self.offer_delays.get(item_id, 0))
            if item_id in self.offer_failures:
                raise self.offer_failures[item_id]
            return [dict(offer) for offer in self.offers.get(item_id, [])]
        finally:
            with self._lock:
                self._in_flight -= 1

    def get_accounts_offers(self, account):
        return [
            dict(offer, itemId=item_id)
            for item_id, offers in self.offers.items()
            for offer in offers
            if offer["offerer"].lower() == account.lower()
        ]

    def load_collections(self):
        return [dict(c) for c in self.collections]

    def get_collection_owner(self, collection_address):
        return self.collection_owners[collection_address]

    def load_items_for_listing(self, account):
        return [dict(item) for item in self.items], [dict(n) for n in self.nfts]

    def load_items_for_adding(self, collection_address, account):
        return [dict(n) for n in self.addable.get(collection_address, [])]

    def is_marketplace_owner(self, account):
        self.owner_checks += 1
        return account.lower() == self.owner.lower()

    def get_marketplace_balance(self):
        return self.balance

    # Commands

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        return self.result_code

    def _item(self, item_id):
        return next(item for item in self.items if int(item["id"]) == item_id)

    def buy_item(self, item_id, price):
        code = self._record("buy_item", item_id, price)
        if code == 1:
            self._item(item_id)["owner"] = self.account
        return code

    def place_offer(self, item_id, amount):
        code = self._record("place_offer", item_id, amount)
        if code == 1:
            seller = self._item(item_id)["owner"]
            self.offers.setdefault(item_id, []).append(
                {"offerer": self.account, "seller": seller, "price": str(amount), "isAccepted": False}
            )
        return code

    def accept_offer(self, item_id, offerer):
        code = self._record("accept_offer", item_id, offerer)
        if code == 1:
            for offer in self.offers.get(item_id, []):
                if offer["offerer"].lower() == offerer.lower():
                    offer["isAccepted"] = True
        return code

    def claim_item(self, item_id, price):
        code = self._record("claim_item", item_id, price)
        if code == 1:
            self._item(item_id)["owner"] = self.account
            self.offers[item_id] = [
                o for o in self.offers[item_id] if o["offerer"].lower() != self.account.lower()
            ]
        return code

    def list_item_for_sale(self, nft_contract, token_id, price):
        return self._record("list_item_for_sale", nft_contract, token_id, price)

    def add_item_to_marketplace(self, collection_address, token_id):
        return self._record("add_item_to_marketplace", collection_address, token_id)

    def deploy_nft_collection(self, name, symbol):
        self.calls.append(("deploy_nft_collection", name, symbol))
        if self.deploy_result is not None:
            return self.deploy_result
        return {"address": NEW_COLLECTION, "name": name, "symbol": symbol}

    def mint_nft(self, collection_address, token_uri):
        return self._record("mint_nft", collection_address, token_uri)

    def withdraw_money(self):
        code = self._record("withdraw_money")
        if code == 1:
            self.balance = "0"
        return code

    def command_names(self):
        return [call[0] for call in self.calls]


class FakeIpfs:
    def __init__(self, fail=False, project_id="proj", project_secret="secret"):
        self.fail = fail
        self.project_id = project_id
        self.project_secret = project_secret
        self.uploads = []

    def upload_metadata(self, metadata):
        self.uploads.append(metadata)
        if self.fail:
            raise GatewayError("IPFS upload failed: 401 Unauthorized", status_code=401, endpoint="/add")
        return "https://gateway.test/ipfs/QmFake"


class ScriptedInput:
    """input() replacement answering from a list; EOFError when exhausted."""

    def __init__(self, answers):
        self.answers = list(answers)
        self.questions = []

    def __call__(self, question=""):
        self.questions.append(question)
        if not self.answers:
            raise EOFError
        return self.answers.pop(0)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fake_client():
    return FakeMarketplaceClient()


@pytest.fixture
def session(fake_client):
    """Session acting as ALICE (marketplace owner) over the fake client."""
    from session import Session

    return Session(fake_client, account=ALICE, ipfs=FakeIpfs(), max_workers=4)


@pytest.fixture
def make_prompter():
    """Factory: make_prompter(["1", "0.5"]) -> (Prompter, output lines)."""

    def factory(answers, secrets=None):
        output = []
        secret_answers = ScriptedInput(secrets or [])
        prompter = Prompter(
            input_func=ScriptedInput(answers),
            output=output.append,
            secret_func=secret_answers,
        )
        return prompter, output

    return factory


@pytest.fixture
def mock_config(tmp_path, monkeypatch):
    """Isolated config directory with a gateway and contract configured."""
    temp_skill_dir = tmp_path / "nft-marketplace"
    temp_config_file = temp_skill_dir / "config.json"
    temp_log_file = temp_skill_dir / "marketplace.log"

    temp_skill_dir.mkdir(parents=True, exist_ok=True)

    default_config = {
        "gateway_url": "https://gateway.test/marketplace",
        "gateway_key": "gw_secret_key_123456",
        "contract_address": CONTRACT,
        "default_account": "",
        "ipfs": {"project_id": "proj", "project_secret": "ipfs_secret_abcdef"},
    }
    temp_config_file.write_text(json.dumps(default_config))

    import utils

    monkeypatch.setattr(utils, "SKILL_DIR", temp_skill_dir)
    monkeypatch.setattr(utils, "CONFIG_FILE", temp_config_file)
    monkeypatch.setattr(utils, "LOG_FILE", temp_log_file)
    for env_var in utils.ENV_OVERRIDES:
        monkeypatch.delenv(env_var, raising=False)

    return {
        "skill_dir": temp_skill_dir,
        "config_file": temp_config_file,
        "log_file": temp_log_file,
        "config": default_config,
    }


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers added by setup_logging (they hold captured streams)."""
    import logging

    yield
    logger = logging.getLogger("nft-marketplace")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def capture_logs(caplog):
    import logging

    caplog.set_level(logging.DEBUG, logger="nft-marketplace")
    return caplog


# =============================================================================
# Test Categories (markers)
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "security: Secret handling tests")
    config.addinivalue_line("markers", "slow: Slow tests (skip with -m 'not slow')")
    config.addinivalue_line("markers", "workflows: Workflow tests")
    config.addinivalue_line("markers", "utils: Utils module tests")


def pytest_collection_modifyitems(config, items):
    """Add markers based on test location."""
    for item in items:
        if "test_workflows" in str(item.fspath):
            item.add_marker(pytest.mark.workflows)
        elif "test_utils" in str(item.fspath):
            item.add_marker(pytest.mark.utils)

        if "secret" in item.name.lower():
            item.add_marker(pytest.mark.security)
