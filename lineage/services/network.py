import logging
import time
from collections import defaultdict
from typing import Dict, List, Optional

from ..config import get_settings
from ..errors import InvalidDepth
from ..models.assets import (
    AssetEvent,
    AssetRef,
    NetworkConnection,
    NetworkNode,
    NetworkResponse,
    NetworkStats,
    NetworkTransaction,
)
from . import event_store
from .league_family import get_league_family
from .timeline import ensure_known_asset

logger = logging.getLogger(__name__)

DRAFT_EVENT_TYPES = ("draft_selected", "pick_selected")


def transaction_key(event: AssetEvent) -> Optional[str]:
    """
    Key grouping the events that moved together.

    Draft selections have no Sleeper transaction, so the pick and the player it
    became are grouped by draft and pick number instead.
    """
    if event.transaction_id:
        return event.transaction_id
    if event.event_type in DRAFT_EVENT_TYPES and event.details.get("draft_id"):
        return f"draft:{event.details['draft_id']}:{event.details.get('pick_no')}"
    return None


def transaction_type(events: List[AssetEvent]) -> str:
    types = {e.event_type for e in events}
    if types & {"trade", "pick_trade"}:
        return "trade"
    if types & set(DRAFT_EVENT_TYPES):
        return "draft"
    if types & {"waiver_add", "waiver_drop"}:
        return "waiver"
    if types & {"free_agent_add", "free_agent_drop"}:
        return "free_agent"
    return sorted(types)[0]


def validate_depth(depth: int):
    settings = get_settings()
    if depth < settings.network_min_depth or depth > settings.network_max_depth:
        raise InvalidDepth(depth, settings.network_min_depth, settings.network_max_depth)


def importance(count: int, max_count: int) -> float:
    settings = get_settings()
    raw = count / max_count if max_count else 0.0
    return round(min(settings.importance_ceiling, max(settings.importance_floor, raw)), 3)


def build_network(focal: AssetRef, events: List[AssetEvent], depth: int, family: List[str]) -> NetworkResponse:
    """
    Breadth-first expansion around ``focal`` over transaction co-occurrence.

    Level n holds the assets first reached through a transaction touching an
    asset of level n-1. Depth is never reassigned on rediscovery.
    """
    started = time.perf_counter()
    by_transaction: Dict[str, List[AssetEvent]] = defaultdict(list)
    by_asset: Dict[str, List[str]] = defaultdict(list)
    refs: Dict[str, AssetRef] = {}
    for event in events:
        key = transaction_key(event)
        if key is None:
            continue
        ref = event.asset
        refs.setdefault(ref.key, ref)
        by_transaction[key].append(event)
        if key not in by_asset[ref.key]:
            by_asset[ref.key].append(key)

    depths: Dict[str, int] = {focal.key: 0}
    refs.setdefault(focal.key, focal)
    included: Dict[str, int] = {}
    connections: List[NetworkConnection] = []
    frontier = [focal.key]

    for level in range(1, depth + 1):
        next_frontier: List[str] = []
        for asset_key in frontier:
            for tx_key in by_asset.get(asset_key, []):
                if tx_key in included:
                    continue
                included[tx_key] = level
                for other in by_transaction[tx_key]:
                    other_key = other.asset.key
                    if other_key == asset_key:
                        continue
                    if other_key not in depths:
                        depths[other_key] = level
                        next_frontier.append(other_key)
                        connections.append(NetworkConnection(
                            from_asset=asset_key, to_asset=other_key, transaction_id=tx_key, depth=level,
                        ))
        if not next_frontier:
            break
        frontier = next_frontier

    counts: Dict[str, int] = defaultdict(int)
    transactions: List[NetworkTransaction] = []
    type_counts: Dict[str, int] = defaultdict(int)
    for tx_key in included:
        tx_events = by_transaction[tx_key]
        assets: Dict[str, AssetRef] = {}
        for event in tx_events:
            assets.setdefault(event.asset.key, event.asset)
        for asset_key in assets:
            if asset_key in depths:
                counts[asset_key] += 1
        first = tx_events[0]
        tx_type = transaction_type(tx_events)
        type_counts[tx_type] += 1
        transactions.append(NetworkTransaction(
            transaction_id=tx_key,
            type=tx_type,
            league_id=first.league_id,
            season=first.season,
            week=first.week,
            event_time=first.event_time,
            assets=list(assets.values()),
        ))
    transactions.sort(key=lambda t: (t.season or "", t.week or 0, t.event_time or 0, t.transaction_id))

    max_count = max(counts.values(), default=0)
    nodes = [
        NetworkNode(
            asset=refs[asset_key],
            depth=asset_depth,
            importance=importance(counts[asset_key], max_count),
            transaction_count=counts[asset_key],
        )
        for asset_key, asset_depth in sorted(depths.items(), key=lambda item: (item[1], item[0]))
    ]

    depth_distribution: Dict[int, int] = defaultdict(int)
    for asset_depth in depths.values():
        depth_distribution[asset_depth] += 1

    return NetworkResponse(
        focal=focal,
        family=family,
        nodes=nodes,
        transactions=transactions,
        connections=connections,
        stats=NetworkStats(
            total_nodes=len(nodes),
            total_transactions=len(transactions),
            depth_distribution=dict(depth_distribution),
            transaction_types=dict(type_counts),
            build_time_ms=int((time.perf_counter() - started) * 1000),
        ),
    )


async def get_network(db, asset: AssetRef, league_id: str, depth: int = 2) -> NetworkResponse:
    validate_depth(depth)
    family = await get_league_family(db, league_id)
    events = await event_store.family_events(db, family)
    if not any(e.asset == asset for e in events):
        await ensure_known_asset(db, asset, family)
    network = build_network(asset, events, depth, family)
    logger.debug(
        "Network for %s at depth %d: %d nodes, %d transactions",
        asset.key, depth, network.stats.total_nodes, network.stats.total_transactions,
    )
    return network
