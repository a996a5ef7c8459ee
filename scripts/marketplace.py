#!/usr/bin/env python3
"""
NFT Marketplace CLI

- Interactive shell (default): menu-driven browsing and trading
- One-shot commands printing JSON: items, buy, offer, accept, claim, ...
"""

import sys
import json
import argparse
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Optional

# Local import
script_dir = Path(__file__).parent
sys.path.insert(0, str(script_dir))

import workflows  # noqa: E402
from common import COMMON_EPILOG  # noqa: E402
from errors import (  # noqa: E402
    GatewayError,
    InvalidAddressError,
    MarketplaceError,
    format_error,
)
from prompts import Prompter  # noqa: E402
from session import Session  # noqa: E402
from utils import (  # noqa: E402
    get_config_value,
    get_logger,
    parse_ether_amount,
    run_config_command,
    setup_logging,
    validate_address,
)

logger = get_logger("cli")


# =============================================================================
# Interactive shell
# =============================================================================


class MenuCommand(Enum):
    SHOW_ITEMS = "Show all items"
    SHOW_ITEM = "Show item"
    BUY_ITEM = "Buy item"
    MAKE_OFFER = "Make offer"
    MY_OFFERS = "My offers"
    ACCEPT_OFFER = "Accept offer"
    MY_ITEMS = "My items"
    MY_COLLECTIONS = "My collections"
    CREATE_COLLECTION = "Create collection"
    MINT_NFT = "Mint NFT"
    ADD_ITEM = "Add item to marketplace"
    LIST_ITEM = "List item for sale"
    WITHDRAW = "Withdraw funds"
    CONNECT_WALLET = "Connect wallet"
    EXIT = "Exit"


MENU_ACTIONS: Dict[MenuCommand, Callable[..., dict]] = {
    MenuCommand.SHOW_ITEMS: workflows.show_items_flow,
    MenuCommand.SHOW_ITEM: workflows.show_item_flow,
    MenuCommand.BUY_ITEM: workflows.buy_flow,
    MenuCommand.MAKE_OFFER: workflows.offer_flow,
    MenuCommand.MY_OFFERS: workflows.my_offers_flow,
    MenuCommand.ACCEPT_OFFER: workflows.accept_offer_flow,
    MenuCommand.MY_ITEMS: workflows.my_items_flow,
    MenuCommand.MY_COLLECTIONS: workflows.collections_flow,
    MenuCommand.CREATE_COLLECTION: workflows.create_collection_flow,
    MenuCommand.MINT_NFT: workflows.mint_flow,
    MenuCommand.ADD_ITEM: workflows.add_item_flow,
    MenuCommand.LIST_ITEM: workflows.list_item_flow,
    MenuCommand.WITHDRAW: workflows.withdraw_flow,
    MenuCommand.CONNECT_WALLET: workflows.connect_wallet_flow,
}


def report_error(error: MarketplaceError) -> dict:
    error_type = "gateway" if isinstance(error, GatewayError) else "workflow"
    return format_error(error, error_type=error_type)


def run_menu(session: Session, prompter: Prompter) -> int:
    """
    Menu loop. Each action runs to completion and control returns here;
    remote and data errors are reported without ending the session.
    """
    choices = [(command.value, command) for command in MenuCommand]
    while True:
        command = prompter.select("What do you want to do?", choices)
        if command is MenuCommand.EXIT:
            return 0

        try:
            result = MENU_ACTIONS[command](session, prompter)
        except MarketplaceError as e:
            logger.error(f"{command.value} failed: {e}")
            result = report_error(e)

        prompter.show_result(result)


def ask_address(prompter: Prompter, message: str, default: Optional[str]) -> str:
    while True:
        try:
            return validate_address(prompter.ask(message, default=default or None))
        except InvalidAddressError as e:
            prompter.show(str(e))


def run_shell(args, prompter: Optional[Prompter] = None) -> int:
    """Ask for contract and wallet, then run the menu."""
    prompter = prompter or Prompter()
    prompter.show("Welcome to the NFT-Marketplace CLI")

    contract = args.contract or ask_address(
        prompter, "Enter your contract address", get_config_value("contract_address")
    )
    account = args.account or ask_address(
        prompter, "Enter your wallet address", get_config_value("default_account")
    )

    session = Session.open(contract_address=contract, account=account)
    try:
        return run_menu(session, prompter)
    except (KeyboardInterrupt, EOFError):
        prompter.show("")
        return 0


# =============================================================================
# One-shot commands
# =============================================================================


def _amount_wei(args) -> int:
    if args.wei is not None:
        return args.wei
    return parse_ether_amount(args.amount)


def run_command(args, session: Session) -> dict:
    """Dispatch a one-shot command to its workflow."""
    command = args.command

    if command == "items":
        return workflows.show_items(session)
    elif command == "item":
        return workflows.show_item(session, args.id)
    elif command == "my-items":
        return workflows.my_items(session)
    elif command == "collections":
        if args.mine:
            collections = workflows.load_owned_collections(session)
        else:
            collections = workflows.load_collections(session)
        return {"success": True, "count": len(collections), "collections": collections}
    elif command == "listable":
        nfts = workflows.load_listable(session)
        return {"success": True, "count": len(nfts), "nfts": nfts}
    elif command == "addable":
        nfts = workflows.load_addable(session, args.collection)
        return {"success": True, "count": len(nfts), "nfts": nfts}
    elif command == "offers":
        return workflows.my_offers(session)
    elif command == "pending":
        return workflows.pending_offers(session)
    elif command == "balance":
        return workflows.marketplace_balance(session)
    elif command == "buy":
        return workflows.buy_item(session, args.id)
    elif command == "offer":
        return workflows.place_offer(session, args.id, _amount_wei(args))
    elif command == "accept":
        return workflows.accept_offer(session, args.id, args.offerer)
    elif command == "claim":
        return workflows.claim_item(session, args.id)
    elif command == "list":
        return workflows.list_item_for_sale(session, args.id, _amount_wei(args))
    elif command == "add":
        return workflows.add_item_to_marketplace(session, args.collection, args.token_id)
    elif command == "deploy":
        return workflows.deploy_collection(session, args.name, args.symbol)
    elif command == "mint":
        if sys.stdin.isatty():
            workflows.ensure_ipfs_credentials(session, Prompter())
        metadata = {"name": args.name, "description": args.description, "image": args.image}
        return workflows.mint_nft(session, args.collection, metadata)
    elif command == "withdraw":
        return workflows.withdraw(session)

    return {"success": False, "error": f"Unknown command: {command}"}


# =============================================================================
# CLI
# =============================================================================


def _add_amount_args(parser: argparse.ArgumentParser, what: str) -> None:
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--amount", "-a", help=f"{what} in ETH (e.g. 0.25)")
    group.add_argument("--wei", type=int, help=f"{what} in wei")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Interactive client for an NFT marketplace",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Interactive shell
  %(prog)s

  # All items as JSON
  %(prog)s items

  # Buy a fixed-price item
  %(prog)s --account 0xAbc... buy --id 2

  # Offer 0.5 ETH on an offer-only item
  %(prog)s --account 0xAbc... offer --id 1 --amount 0.5

  # Accept an offer on your item
  %(prog)s --account 0xAbc... accept --id 1 --offerer 0xDef...
"""
        + COMMON_EPILOG,
    )

    parser.add_argument("--contract", "-c", help="Marketplace contract address")
    parser.add_argument(
        "--account", help="Wallet address to act as (or default_account in config)"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging to stderr")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("shell", help="Interactive menu (default)")
    subparsers.add_parser("items", help="List all marketplace items")

    item_p = subparsers.add_parser("item", help="Show one item")
    item_p.add_argument("--id", "-i", required=True, help="Item ID")

    subparsers.add_parser("my-items", help="Items owned by the account")

    coll_p = subparsers.add_parser("collections", help="List collections")
    coll_p.add_argument("--mine", action="store_true", help="Only collections you own")

    subparsers.add_parser("listable", help="Your NFTs not yet on the marketplace")

    addable_p = subparsers.add_parser("addable", help="NFTs you can add from a collection")
    addable_p.add_argument("--collection", required=True, help="Collection address")

    subparsers.add_parser("offers", help="Offers you made")
    subparsers.add_parser("pending", help="Pending offers on your items")
    subparsers.add_parser("balance", help="Marketplace balance")

    buy_p = subparsers.add_parser("buy", help="Buy an item")
    buy_p.add_argument("--id", "-i", required=True, help="Item ID")

    offer_p = subparsers.add_parser("offer", help="Make an offer on an offer-only item")
    offer_p.add_argument("--id", "-i", required=True, help="Item ID")
    _add_amount_args(offer_p, "Offer")

    accept_p = subparsers.add_parser("accept", help="Accept an offer on your item")
    accept_p.add_argument("--id", "-i", required=True, help="Item ID")
    accept_p.add_argument("--offerer", required=True, help="Offerer address")

    claim_p = subparsers.add_parser("claim", help="Claim an item after your offer was accepted")
    claim_p.add_argument("--id", "-i", required=True, help="Item ID")

    list_p = subparsers.add_parser("list", help="List your item for sale")
    list_p.add_argument("--id", "-i", required=True, help="Item ID")
    _add_amount_args(list_p, "Price")

    add_p = subparsers.add_parser("add", help="Add an NFT to the marketplace")
    add_p.add_argument("--collection", required=True, help="Collection address")
    add_p.add_argument("--token-id", required=True, help="Token ID")

    deploy_p = subparsers.add_parser("deploy", help="Deploy a new collection")
    deploy_p.add_argument("--name", "-n", required=True, help="Collection name")
    deploy_p.add_argument("--symbol", "-s", required=True, help="Collection symbol")

    mint_p = subparsers.add_parser("mint", help="Mint an NFT into your collection")
    mint_p.add_argument("--collection", required=True, help="Collection address")
    mint_p.add_argument("--name", "-n", required=True, help="NFT name")
    mint_p.add_argument("--description", "-d", default="", help="NFT description")
    mint_p.add_argument("--image", required=True, help="Image URL")

    subparsers.add_parser("withdraw", help="Withdraw marketplace funds (owner only)")

    config_p = subparsers.add_parser("config", help="Configuration management")
    config_sub = config_p.add_subparsers(dest="config_cmd")
    config_get = config_sub.add_parser("get", help="Get config value")
    config_get.add_argument("key", help="Config key (dot notation)")
    config_set = config_sub.add_parser("set", help="Set config value")
    config_set.add_argument("key", help="Config key")
    config_set.add_argument("value", help="Value to set")
    config_sub.add_parser("show", help="Show all config")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose)

    if args.command == "config":
        result = run_config_command(
            args.config_cmd, getattr(args, "key", None), getattr(args, "value", None)
        )
        print(json.dumps(result, indent=2, ensure_ascii=False))
        return

    if args.command in (None, "shell"):
        try:
            sys.exit(run_shell(args))
        except MarketplaceError as e:
            print(json.dumps(report_error(e), indent=2, ensure_ascii=False))
            sys.exit(1)

    try:
        session = Session.open(contract_address=args.contract, account=args.account)
        result = run_command(args, session)
    except MarketplaceError as e:
        logger.error(f"{args.command} failed: {e}")
        print(json.dumps(report_error(e), indent=2, ensure_ascii=False))
        sys.exit(1)
    except Exception as e:
        logger.exception(f"{args.command} crashed")
        print(json.dumps({"error": f"Unexpected error: {e}"}, indent=2))
        sys.exit(1)

    print(json.dumps(result, indent=2, ensure_ascii=False, default=str))

    if not result.get("success", False):
        sys.exit(1)


if __name__ == "__main__":
    main()
