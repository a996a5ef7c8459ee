#!/usr/bin/env python3
"""
NFT Marketplace CLI: IPFS metadata pinning

Uploads NFT metadata JSON ({name, description, image}) to an
Infura-compatible IPFS HTTP API and returns the public gateway URL used as
the token URI.
"""

import json
from typing import Optional

from errors import GatewayError
from utils import api_request, get_config_value, get_logger

logger = get_logger("ipfs")


class IpfsClient:
    """IPFS HTTP API client authenticated with a project id/secret pair."""

    def __init__(
        self,
        project_id: str,
        project_secret: str,
        api_url: Optional[str] = None,
        gateway_url: Optional[str] = None,
        timeout: int = 60,
    ):
        self.project_id = project_id
        self.project_secret = project_secret
        self.api_url = (api_url or get_config_value("ipfs.api_url")).rstrip("/")
        self.gateway_url = gateway_url or get_config_value("ipfs.gateway_url")
        if not self.gateway_url.endswith("/"):
            self.gateway_url += "/"
        self.timeout = timeout

    @classmethod
    def from_config(cls) -> "IpfsClient":
        return cls(
            project_id=get_config_value("ipfs.project_id") or "",
            project_secret=get_config_value("ipfs.project_secret") or "",
        )

    def upload_json(self, document: dict) -> str:
        """
        Pin a JSON document.

        Returns:
            Content identifier (CID)

        Raises:
            GatewayError: credentials missing, upload failed, or no CID returned
        """
        if not self.project_id or not self.project_secret:
            raise GatewayError(
                "IPFS credentials not configured. Run: marketplace.py config set ipfs.project_id <id>",
                endpoint="/add",
            )

        body = json.dumps(document, ensure_ascii=False).encode("utf-8")
        result = api_request(
            url=f"{self.api_url}/add",
            method="POST",
            params={"pin": "true"},
            files={"file": ("metadata.json", body, "application/json")},
            auth=(self.project_id, self.project_secret),
            timeout=self.timeout,
            retries=0,
        )

        if not result["success"]:
            raise GatewayError(
                f"IPFS upload failed: {result.get('error')}",
                status_code=result.get("status_code"),
                endpoint="/add",
            )

        data = result["data"]
        cid = data.get("Hash") if isinstance(data, dict) else None
        if not cid:
            raise GatewayError("IPFS upload returned no content hash", endpoint="/add")

        logger.info(f"Pinned metadata {cid} ({len(body)} bytes)")
        return cid

    def upload_metadata(self, metadata: dict) -> str:
        """Pin NFT metadata and return its token URI."""
        document = {
            "name": metadata.get("name", ""),
            "description": metadata.get("description", ""),
            "image": metadata.get("image", ""),
        }
        return f"{self.gateway_url}{self.upload_json(document)}"


def upload_metadata(project_id: str, secret: str, metadata: dict) -> str:
    """Pin {name, description, image} with the given credentials; returns the token URI."""
    return IpfsClient(project_id, secret).upload_metadata(metadata)
