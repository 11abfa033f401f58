"""
Trade trees.

Starting from one asset, every trade it was part of branches into the other
assets that moved in that trade, and each of those is expanded the same way.
A pick that was used in a draft continues as the player it became.

Revisits are guarded per path, not globally: an asset is skipped only when it
is an ancestor of the current node or moved in the same trade, since the same
asset can legitimately show up again in an unrelated trade on another branch.
"""
import logging
from typing import Dict, FrozenSet, List, Optional

from ..config import get_settings
from ..models.assets import TRADE_EVENT_TYPES, AssetEvent, AssetRef, TradeBranch, TradeTreeNode
from . import event_store
from .league_family import get_league_family
from .timeline import load_timeline

logger = logging.getLogger(__name__)


def unique_assets(events: List[AssetEvent], exclude: Optional[AssetRef] = None) -> List[AssetRef]:
    """Distinct assets of a list of events, in first-seen order."""
    seen: Dict[str, AssetRef] = {}
    for event in events:
        ref = event.asset
        if exclude is not None and ref == exclude:
            continue
        seen.setdefault(ref.key, ref)
    return list(seen.values())


def drafted_player(events: List[AssetEvent]) -> Optional[AssetRef]:
    for event in events:
        if event.event_type == "pick_selected" and event.details.get("player_id"):
            return AssetRef.player(event.details["player_id"])
    return None


class TradeTreeBuilder:
    def __init__(self, db, family: List[str], max_depth: Optional[int] = None):
        self.db = db
        self.family = family
        self.max_depth = max_depth if max_depth is not None else get_settings().trade_tree_max_depth
        self._timelines: Dict[str, List[AssetEvent]] = {}
        self._transactions: Dict[str, List[AssetEvent]] = {}

    async def timeline(self, asset: AssetRef, root: bool = False) -> List[AssetEvent]:
        if asset.key not in self._timelines:
            if root:
                self._timelines[asset.key] = await load_timeline(self.db, asset, self.family)
            else:
                self._timelines[asset.key] = await event_store.timeline_for(self.db, asset, self.family)
        return self._timelines[asset.key]

    async def transaction(self, transaction_id: str) -> List[AssetEvent]:
        if transaction_id not in self._transactions:
            self._transactions[transaction_id] = await event_store.events_in_transaction(
                self.db, transaction_id, self.family
            )
        return self._transactions[transaction_id]

    async def build(self, asset: AssetRef) -> TradeTreeNode:
        await self.timeline(asset, root=True)
        return await self._node(asset, frozenset(), frozenset(), 0)

    async def _node(self, asset: AssetRef, path: FrozenSet[str], path_transactions: FrozenSet[str],
                    depth: int) -> TradeTreeNode:
        events = await self.timeline(asset)
        node = TradeTreeNode(asset=asset, events=events)
        if depth >= self.max_depth:
            node.truncated = True
            return node

        ancestors = path | {asset.key}
        for event in events:
            transaction_id = event.transaction_id
            if event.event_type not in TRADE_EVENT_TYPES or not transaction_id:
                continue
            if transaction_id in path_transactions or any(b.transaction_id == transaction_id for b in node.branches):
                continue
            siblings = unique_assets(await self.transaction(transaction_id), exclude=asset)
            child_path = ancestors | {s.key for s in siblings}
            child_transactions = path_transactions | {transaction_id}
            branch = TradeBranch(
                transaction_id=transaction_id,
                event_type=event.event_type,
                event_time=event.event_time,
            )
            for sibling in siblings:
                if sibling.key in path:
                    continue
                branch.derived.append(await self._node(sibling, child_path, child_transactions, depth + 1))
            node.branches.append(branch)

        if asset.kind == "pick":
            player = drafted_player(events)
            if player is not None and player.key not in ancestors:
                node.became = await self._node(player, ancestors, path_transactions, depth + 1)
        return node


async def get_trade_tree(db, asset: AssetRef, league_id: str) -> TradeTreeNode:
    family = await get_league_family(db, league_id)
    tree = await TradeTreeBuilder(db, family).build(asset)
    logger.debug("Built trade tree for %s with %d branches", asset.key, len(tree.branches))
    return tree
