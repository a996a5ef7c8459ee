#!/usr/bin/env python3
"""
NFT Marketplace CLI: Session

Explicit session context passed into every workflow: the marketplace client,
the connected account and the once-per-session owner authorization.
Connecting a wallet is the only transition that mutates it.
"""

from typing import Any, Optional

from common import MAX_FANOUT_WORKERS
from errors import PreconditionError
from gateway import MarketplaceClient
from ipfs import IpfsClient
from utils import get_config_value, get_logger, validate_address

logger = get_logger("session")


class Session:
    """Connected account + marketplace client for one CLI run."""

    def __init__(
        self,
        client: Any,
        account: Optional[str] = None,
        ipfs: Optional[Any] = None,
        max_workers: int = MAX_FANOUT_WORKERS,
    ):
        self.client = client
        self.account: Optional[str] = None
        self.ipfs = ipfs
        self.max_workers = max_workers
        self._is_owner: Optional[bool] = None
        if account:
            self.connect_wallet(account)

    @classmethod
    def open(
        cls, contract_address: Optional[str] = None, account: Optional[str] = None
    ) -> "Session":
        """
        Build a session from config.

        Args:
            contract_address: Marketplace contract (defaults to config)
            account: Account address to act as (defaults to config default_account)

        Raises:
            InvalidAddressError: contract or account is malformed
        """
        contract = validate_address(contract_address or get_config_value("contract_address"))
        client = MarketplaceClient.from_config(contract_address=contract)
        workers = get_config_value("limits.max_fanout_workers", MAX_FANOUT_WORKERS)
        session = cls(
            client,
            account=account or get_config_value("default_account") or None,
            max_workers=int(workers),
        )
        logger.info(f"Session opened for contract {contract}")
        return session

    @property
    def contract_address(self) -> Optional[str]:
        return getattr(self.client, "contract_address", None)

    def connect_wallet(self, account: str) -> str:
        """Switch the acting account. Drops the cached owner authorization."""
        checksum = validate_address(account)
        self.account = checksum
        self.client.account = checksum
        self._is_owner = None
        logger.info(f"Connected wallet {checksum} to {self.contract_address}")
        return checksum

    def require_account(self) -> str:
        if not self.account:
            raise PreconditionError("No wallet connected. Connect a wallet first.")
        return self.account

    def is_marketplace_owner(self) -> bool:
        """Owner check against the marketplace, performed once per session."""
        if self._is_owner is None:
            account = self.require_account()
            self._is_owner = bool(self.client.is_marketplace_owner(account))
            logger.debug(f"Marketplace owner check for {account}: {self._is_owner}")
        return self._is_owner

    def get_ipfs(self) -> Any:
        if self.ipfs is None:
            self.ipfs = IpfsClient.from_config()
        return self.ipfs
