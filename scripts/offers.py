#!/usr/bin/env python3
"""
NFT Marketplace CLI: Offer aggregation

Offers are indexed per item on-chain, so finding "offers I can accept"
means querying every offer-only item the account owns. Those reads run
concurrently and are joined before returning.

Each result is tagged with its source item id before flattening, so
attribution never depends on completion order. A failed fetch fails the
whole aggregation, naming every failing item.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Hashable, Iterable, List, Sequence, Tuple

from common import MAX_FANOUT_WORKERS
from errors import DataIntegrityError, MarketplaceError, OfferFetchError
from normalize import normalize_collection, normalize_offer
from utils import get_logger
from views import pending_offers_for_account

logger = get_logger("offers")


def fan_out(
    fetch: Callable[[Any], Any],
    keys: Sequence[Hashable],
    max_workers: int = MAX_FANOUT_WORKERS,
) -> Tuple[Dict[Any, Any], Dict[Any, Exception]]:
    """
    Run fetch(key) for every key concurrently and wait for all of them.

    Args:
        fetch: Remote read taking one key
        keys: Keys to fetch (duplicates are fetched once)
        max_workers: Thread pool size cap

    Returns:
        (results by key, marketplace errors by key)
    """
    unique = list(dict.fromkeys(keys))
    results: Dict[Any, Any] = {}
    failures: Dict[Any, Exception] = {}
    if not unique:
        return results, failures

    workers = max(1, min(max_workers, len(unique)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {key: pool.submit(fetch, key) for key in unique}
        for key, future in futures.items():
            try:
                results[key] = future.result()
            except MarketplaceError as e:
                failures[key] = e

    return results, failures


def fetch_offers_by_item(
    client: Any, item_ids: Iterable[int], max_workers: int = MAX_FANOUT_WORKERS
) -> List[dict]:
    """
    Fetch and tag the offers of several items.

    Returns:
        Normalized offers, each with itemId set to its source item,
        flattened in item_ids order

    Raises:
        OfferFetchError: one or more fetches failed
    """
    ids = list(item_ids)
    logger.debug(f"Fetching offers for {len(ids)} items")
    results, failures = fan_out(client.get_offers, ids, max_workers)

    if failures:
        logger.error(f"Offer fetch failed for items {sorted(failures)}")
        raise OfferFetchError(failures)

    tagged = []
    for item_id in dict.fromkeys(ids):
        for raw in results[item_id] or []:
            tagged.append(normalize_offer(raw, item_id=item_id))
    return tagged


def collect_pending_offers(
    client: Any,
    items: Iterable[dict],
    account: str,
    max_workers: int = MAX_FANOUT_WORKERS,
) -> List[dict]:
    """
    Pending offers the account can accept.

    Args:
        client: Marketplace client (get_offers)
        items: The account's offer-only items
        account: Seller account

    Returns:
        Offers with seller == account and isAccepted False
    """
    offers = fetch_offers_by_item(client, [item["id"] for item in items], max_workers)
    pending = pending_offers_for_account(offers, account)
    logger.info(f"Found {len(pending)} pending offers out of {len(offers)}")
    return pending


def resolve_collection_owners(
    client: Any, collections: Iterable[dict], max_workers: int = MAX_FANOUT_WORKERS
) -> List[dict]:
    """
    Attach the separately-queried owner to each collection.

    Raises:
        DataIntegrityError: an owner lookup failed
    """
    records = [normalize_collection(raw) for raw in collections]
    addresses = [record["address"] for record in records]
    results, failures = fan_out(client.get_collection_owner, addresses, max_workers)

    if failures:
        details = ", ".join(f"{address}: {failures[address]}" for address in failures)
        raise DataIntegrityError(f"Failed to fetch collection owners ({details})")

    return [normalize_collection(record, owner=results[record["address"]]) for record in records]
