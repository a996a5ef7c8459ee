#!/usr/bin/env python3
"""
NFT Marketplace CLI: Shared utilities

- Config manager
- Logging setup
- HTTP client with retry
- Integer quantity / ether amount parsing
- Address validation
"""

import os
import sys
import json
import logging
import argparse
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional, Union

# Dependencies
try:
    import requests
    from requests.adapters import HTTPAdapter
    from urllib3.util.retry import Retry
except ImportError:
    print(
        json.dumps(
            {"error": "Missing dependency: requests", "install": "pip install requests"}
        )
    )
    sys.exit(1)
    raise SystemExit

try:
    from eth_utils import from_wei, is_address, to_checksum_address, to_wei
except ImportError:
    print(
        json.dumps(
            {
                "error": "Missing dependency: eth-utils",
                "install": "pip install eth-utils eth-hash[pycryptodome]",
            }
        )
    )
    sys.exit(1)
    raise SystemExit

# Local import
script_dir = Path(__file__).parent
sys.path.insert(0, str(script_dir))

from errors import DataIntegrityError, InvalidAddressError, InvalidAmountError  # noqa: E402


# =============================================================================
# Constants
# =============================================================================

SKILL_DIR = Path.home() / ".nft-marketplace"
CONFIG_FILE = SKILL_DIR / "config.json"
LOG_FILE = SKILL_DIR / "marketplace.log"

LOGGER_NAME = "nft-marketplace"

# Largest unit fraction representable in wei
ETHER_DECIMALS = 18

# Environment overrides: env var -> config key (dot notation)
ENV_OVERRIDES = {
    "MARKETPLACE_GATEWAY_URL": "gateway_url",
    "MARKETPLACE_GATEWAY_KEY": "gateway_key",
    "MARKETPLACE_CONTRACT": "contract_address",
    "IPFS_PROJECT_ID": "ipfs.project_id",
    "IPFS_PROJECT_SECRET": "ipfs.project_secret",
}


# =============================================================================
# Config manager
# =============================================================================

DEFAULT_CONFIG = {
    "gateway_url": "http://localhost:8545/marketplace",
    "gateway_key": "",
    "contract_address": "0x705279FAE070DEe258156940d88A6eCF5B302073",
    "network": "sepolia",
    "default_account": "",
    "ipfs": {
        "api_url": "https://ipfs.infura.io:5001/api/v0",
        "gateway_url": "https://charity-file-storage.infura-ipfs.io/ipfs/",
        "project_id": "",
        "project_secret": "",
    },
    "limits": {"max_fanout_workers": 8},
}


def ensure_skill_dir() -> Path:
    """Create the CLI home directory if it does not exist."""
    SKILL_DIR.mkdir(parents=True, exist_ok=True)
    return SKILL_DIR


def _merge_defaults(defaults: dict, stored: dict) -> dict:
    merged = dict(defaults)
    for key, value in stored.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_defaults(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config() -> dict:
    """Load config from file, merged over the defaults."""
    ensure_skill_dir()
    if CONFIG_FILE.exists():
        try:
            with open(CONFIG_FILE, "r") as f:
                config = json.load(f)
            return _merge_defaults(DEFAULT_CONFIG, config)
        except Exception:
            return _merge_defaults(DEFAULT_CONFIG, {})
    return _merge_defaults(DEFAULT_CONFIG, {})


def save_config(config: dict) -> bool:
    """Save config to file."""
    ensure_skill_dir()
    try:
        with open(CONFIG_FILE, "w") as f:
            json.dump(config, f, indent=2, ensure_ascii=False)
        return True
    except Exception:
        return False


def get_config_value(key: str, default: Any = None) -> Any:
    """Get config value by key (supports dot notation: ipfs.project_id).

    Environment overrides from ENV_OVERRIDES take precedence over the file.
    """
    for env_var, config_key in ENV_OVERRIDES.items():
        if config_key == key and os.environ.get(env_var):
            return os.environ[env_var]

    config = load_config()
    keys = key.split(".")
    value = config
    for k in keys:
        if isinstance(value, dict) and k in value:
            value = value[k]
        else:
            return default
    return value


def set_config_value(key: str, value: Any) -> bool:
    """Set config value (supports dot notation)."""
    config = load_config()
    keys = key.split(".")
    target = config
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            target[k] = {}
        target = target[k]
    target[keys[-1]] = value
    return save_config(config)


def mask_secret(value: Optional[str]) -> str:
    """Mask a secret for display: abcd...wxyz"""
    if not value:
        return ""
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}...{value[-4:]}"


def redacted_config(config: dict) -> dict:
    """Copy of config with secrets masked, safe to print or log."""
    shown = json.loads(json.dumps(config))
    if shown.get("gateway_key"):
        shown["gateway_key"] = mask_secret(shown["gateway_key"])
    ipfs = shown.get("ipfs", {})
    if ipfs.get("project_secret"):
        ipfs["project_secret"] = mask_secret(ipfs["project_secret"])
    return shown


# =============================================================================
# Logging
# =============================================================================


def setup_logging(
    log_file: Optional[Path] = None, verbose: bool = False
) -> logging.Logger:
    """Configure logging to file and stderr.

    Safe to call repeatedly: existing handlers are replaced, not duplicated.
    """
    ensure_skill_dir()
    log_file = log_file or LOG_FILE

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    fh = logging.FileHandler(log_file, encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(formatter)
    logger.addHandler(fh)

    sh = logging.StreamHandler(sys.stderr)
    sh.setLevel(logging.DEBUG if verbose else logging.WARNING)
    sh.setFormatter(formatter)
    logger.addHandler(sh)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Child logger of the CLI logger (e.g. get_logger("workflows"))."""
    if not name:
        return logging.getLogger(LOGGER_NAME)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


# =============================================================================
# Quantities, amounts and addresses
# =============================================================================


def parse_quantity(value: Any, field: str = "value") -> int:
    """
    Parse an on-chain integer quantity exactly.

    Accepts int, decimal string, 0x-prefixed hex string and BigNumber-style
    dicts ({"hex": "0x..."} / {"_hex": "0x..."}). Floats and booleans are
    rejected since they cannot carry wei amounts without precision loss.

    Raises:
        DataIntegrityError: value is not an exact non-negative integer
    """
    if isinstance(value, dict):
        value = value.get("hex", value.get("_hex"))
    if isinstance(value, bool) or value is None:
        raise DataIntegrityError(f"{field} must be an integer, got {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise DataIntegrityError(f"{field} must be non-negative, got {value}")
        return value
    if not isinstance(value, str):
        raise DataIntegrityError(
            f"{field} must be int or string, got {type(value).__name__}"
        )

    raw = value.strip()
    if raw.lower().startswith("0x"):
        try:
            return int(raw, 16)
        except ValueError:
            raise DataIntegrityError(f"{field} is not a hex quantity: {value!r}")
    if raw.isdecimal():
        return int(raw, 10)
    raise DataIntegrityError(
        f"{field} must be a decimal integer or 0x-prefixed hex quantity: {value!r}"
    )


def parse_wei_amount(value: Union[int, str]) -> int:
    """
    Validate an amount already expressed in wei.

    Raises:
        InvalidAmountError: not a positive integer (or digit string)
    """
    if isinstance(value, bool):
        raise InvalidAmountError("Amount must be a positive integer number of wei")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, str) and value.strip().isdecimal():
        amount = int(value.strip(), 10)
    else:
        raise InvalidAmountError(f"Amount must be a positive integer number of wei: {value!r}")
    if amount <= 0:
        raise InvalidAmountError("Amount must be greater than zero")
    return amount


def parse_ether_amount(text: str) -> int:
    """
    Convert a user-entered ether amount ("0.25") to wei.

    Args:
        text: Decimal ether amount

    Returns:
        Amount in wei (positive int)

    Raises:
        InvalidAmountError: malformed, non-positive, or finer than 1 wei
    """
    raw = (text or "").strip()
    if not raw:
        raise InvalidAmountError("Amount cannot be empty")

    try:
        amount = Decimal(raw)
    except InvalidOperation:
        raise InvalidAmountError(f"Not a number: {raw!r}")

    if not amount.is_finite():
        raise InvalidAmountError(f"Not a finite number: {raw!r}")
    if amount <= 0:
        raise InvalidAmountError("Amount must be greater than zero")
    if -amount.as_tuple().exponent > ETHER_DECIMALS:
        raise InvalidAmountError(f"At most {ETHER_DECIMALS} decimal places allowed")

    try:
        return int(to_wei(amount, "ether"))
    except ValueError as e:
        raise InvalidAmountError(str(e))


def format_wei(wei: int) -> str:
    """Wei -> ether string without trailing zeros ("1.5")."""
    ether = Decimal(from_wei(int(wei), "ether"))
    if ether == 0:
        return "0"
    text = format(ether.normalize(), "f")
    return text


def validate_address(address: str) -> str:
    """
    Validate an EVM address and return its checksum form.

    Raises:
        InvalidAddressError: not a valid address
    """
    value = (address or "").strip()
    if not is_address(value):
        raise InvalidAddressError(f"Invalid address: {address!r}")
    return to_checksum_address(value)


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    """Case-insensitive address equality; None never matches."""
    if not a or not b:
        return False
    return a.strip().lower() == b.strip().lower()


# =============================================================================
# HTTP client with retry
# =============================================================================


def create_http_session(
    retries: int = 3,
    backoff_factor: float = 0.5,
    status_forcelist: tuple = (500, 502, 503, 504),
    timeout: int = 30,
) -> requests.Session:
    """
    Create an HTTP session with automatic retries.

    Only idempotent methods are retried: a POST may already have reached the
    chain and must never be resent.

    Args:
        retries: Number of retry attempts
        backoff_factor: Delay factor between attempts
        status_forcelist: HTTP codes that trigger a retry
        timeout: Default timeout

    Returns:
        Configured requests.Session
    """
    session = requests.Session()

    retry_strategy = Retry(
        total=retries,
        backoff_factor=backoff_factor,
        status_forcelist=status_forcelist,
        allowed_methods=["HEAD", "GET", "OPTIONS"],
    )

    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("https://", adapter)
    session.mount("http://", adapter)

    # Default timeout via hook
    session.request = lambda method, url, **kwargs: requests.Session.request(  # ty: ignore[invalid-assignment]
        session, method, url, timeout=kwargs.pop("timeout", timeout), **kwargs
    )

    return session


def api_request(
    url: str,
    method: str = "GET",
    headers: Optional[dict] = None,
    params: Optional[dict] = None,
    json_data: Optional[Union[dict, list]] = None,
    api_key: Optional[str] = None,
    api_key_header: str = "Authorization",
    api_key_prefix: str = "Bearer ",
    timeout: int = 30,
    retries: int = 3,
    **request_kwargs,
) -> dict:
    """
    Generic API request with retry and error handling.

    Args:
        url: Request URL
        method: HTTP method
        headers: Extra headers
        params: Query parameters
        json_data: JSON body
        api_key: API key (if any)
        api_key_header: Header carrying the API key
        api_key_prefix: Prefix for the API key value
        timeout: Timeout in seconds
        retries: Number of retries
        **request_kwargs: Passed through to requests (files, auth, ...)

    Returns:
        dict with keys: success, data/error, status_code
    """
    session = create_http_session(retries=retries, timeout=timeout)

    req_headers = {"Accept": "application/json"}
    if headers:
        req_headers.update(headers)
    if api_key:
        req_headers[api_key_header] = f"{api_key_prefix}{api_key}"

    try:
        response = session.request(
            method=method.upper(),
            url=url,
            headers=req_headers,
            params=params,
            json=json_data,
            timeout=timeout,
            **request_kwargs,
        )

        try:
            data = response.json()
        except Exception:
            data = response.text

        if response.ok:
            return {"success": True, "data": data, "status_code": response.status_code}
        else:
            return {
                "success": False,
                "error": data if data else response.reason,
                "status_code": response.status_code,
            }

    except requests.exceptions.Timeout:
        return {"success": False, "error": "Request timeout", "status_code": None}
    except requests.exceptions.ConnectionError:
        return {"success": False, "error": "Connection error", "status_code": None}
    except Exception as e:
        return {"success": False, "error": str(e), "status_code": None}


# =============================================================================
# CLI
# =============================================================================


def main():
    parser = argparse.ArgumentParser(description="NFT Marketplace CLI utilities")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_sub = config_parser.add_subparsers(dest="config_cmd")

    config_get = config_sub.add_parser("get", help="Get config value")
    config_get.add_argument("key", help="Config key (dot notation)")

    config_set = config_sub.add_parser("set", help="Set config value")
    config_set.add_argument("key", help="Config key")
    config_set.add_argument("value", help="Value to set")

    config_sub.add_parser("show", help="Show all config")

    addr_parser = subparsers.add_parser("address", help="Validate an address")
    addr_parser.add_argument("address", help="Address to validate")

    wei_parser = subparsers.add_parser("to-wei", help="Convert ether to wei")
    wei_parser.add_argument("amount", help="Amount in ether")

    args = parser.parse_args()

    if args.command == "config":
        result = run_config_command(args.config_cmd, getattr(args, "key", None), getattr(args, "value", None))
    elif args.command == "address":
        try:
            result = {"address": args.address, "valid": True, "checksum": validate_address(args.address)}
        except InvalidAddressError as e:
            result = {"address": args.address, "valid": False, "error": str(e)}
    elif args.command == "to-wei":
        try:
            result = {"ether": args.amount, "wei": str(parse_ether_amount(args.amount))}
        except InvalidAmountError as e:
            result = {"error": str(e)}
    else:
        parser.print_help()
        return

    print(json.dumps(result, indent=2, ensure_ascii=False))


def run_config_command(config_cmd: Optional[str], key: Optional[str], value: Any) -> dict:
    """Shared implementation of `config get|set|show`."""
    if config_cmd == "get":
        shown = get_config_value(key)
        if key in ("gateway_key", "ipfs.project_secret"):
            shown = mask_secret(shown)
        return {"key": key, "value": shown}
    elif config_cmd == "set":
        try:
            value = json.loads(value)
        except Exception:
            pass
        success = set_config_value(key, value)
        return {"success": success, "key": key}
    elif config_cmd == "show":
        return redacted_config(load_config())
    return {"error": "Unknown config command"}


if __name__ == "__main__":
    main()
