"""
Transaction decomposition.

Turns raw Sleeper transactions and draft selections into atomic asset events:
one event per asset that moved. Decomposition only reads its inputs; roster
references are resolved to managers with the roster-owner map of the league
the transaction happened in, and a roster missing from that map leaves the
manager side empty rather than dropping the event.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..models.assets import AssetEvent, PickResolution
from .roster_map import RosterOwnerMap, owner_for

logger = logging.getLogger(__name__)

_MIN_EPOCH_MS = int(datetime(2000, 1, 1, tzinfo=timezone.utc).timestamp() * 1000)
_MAX_EPOCH_MS = int(datetime(2100, 1, 1, tzinfo=timezone.utc).timestamp() * 1000)

CLAIM_EVENT_TYPES = {
    "waiver": ("waiver_add", "waiver_drop"),
    "free_agent": ("free_agent_add", "free_agent_drop"),
}


def to_epoch_ms(value: Any) -> Optional[int]:
    """Accept epoch seconds or milliseconds; anything outside 2000..2100 is discarded."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number <= 0:
        return None
    ms = int(number if number > 1e12 else number * 1000)
    if ms < _MIN_EPOCH_MS or ms > _MAX_EPOCH_MS:
        return None
    return ms


def _as_roster_id(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class _Decomposition:
    """Shared state for decomposing one transaction."""

    def __init__(self, tx: Dict[str, Any], league_id: str, owner_map: RosterOwnerMap,
                 season: Optional[str], week: Optional[int], warnings: Optional[List[str]]):
        self.tx = tx
        self.league_id = league_id
        self.owner_map = owner_map
        self.season = season
        self.week = week if week is not None else tx.get("leg")
        self.warnings = warnings
        self.event_time = to_epoch_ms(tx.get("status_updated")) or to_epoch_ms(tx.get("created"))
        self.transaction_id = str(tx["transaction_id"]) if tx.get("transaction_id") is not None else None
        self.events: List[AssetEvent] = []

    def manager(self, roster_id: Optional[int]) -> Optional[str]:
        if roster_id is None:
            return None
        user_id = owner_for(self.owner_map, roster_id)
        if user_id is None:
            message = (
                f"Roster {roster_id} has no owner in league {self.league_id} "
                f"(transaction {self.transaction_id})"
            )
            logger.warning(message)
            if self.warnings is not None:
                self.warnings.append(message)
        return user_id

    def pick_endpoint(self, value: Any):
        """Pick owners arrive as roster ids, or occasionally as user ids already."""
        if value is None:
            return None, None
        # Sleeper user ids are long digit strings too, so only a string naming a
        # roster of this league is read as a roster id
        if isinstance(value, str) and not (value.isdigit() and int(value) in self.owner_map):
            return value, None
        roster_id = _as_roster_id(value)
        return self.manager(roster_id), roster_id

    def emit(self, event_type: str, asset_kind: str, from_roster: Optional[int] = None,
             to_roster: Optional[int] = None, from_user: Optional[str] = None,
             to_user: Optional[str] = None, **fields):
        details = {"type": self.tx.get("type")}
        details.update(fields.pop("details", {}))
        self.events.append(AssetEvent(
            league_id=self.league_id,
            season=self.season,
            week=self.week,
            event_time=self.event_time,
            event_type=event_type,
            asset_kind=asset_kind,
            from_user_id=from_user if from_user is not None else self.manager(from_roster),
            to_user_id=to_user if to_user is not None else self.manager(to_roster),
            from_roster_id=from_roster,
            to_roster_id=to_roster,
            transaction_id=self.transaction_id,
            details=details,
            **fields,
        ))

    def emit_pick(self, event_type: str, movement: Dict[str, Any]):
        from_user, from_roster = self.pick_endpoint(movement.get("previous_owner_id"))
        to_user, to_roster = self.pick_endpoint(movement.get("owner_id"))
        original = _as_roster_id(movement.get("roster_id", movement.get("roster")))
        self.events.append(AssetEvent(
            league_id=self.league_id,
            season=self.season,
            week=self.week,
            event_time=self.event_time,
            event_type=event_type,
            asset_kind="pick",
            pick_season=str(movement.get("season")) if movement.get("season") is not None else None,
            pick_round=_as_roster_id(movement.get("round")),
            pick_original_roster_id=original,
            from_user_id=from_user,
            to_user_id=to_user,
            from_roster_id=from_roster,
            to_roster_id=to_roster,
            transaction_id=self.transaction_id,
            details={"type": self.tx.get("type")},
        ))


def decompose_transaction(
    tx: Dict[str, Any],
    league_id: str,
    owner_map: RosterOwnerMap,
    season: Optional[str] = None,
    week: Optional[int] = None,
    warnings: Optional[List[str]] = None,
) -> List[AssetEvent]:
    """Decompose one raw transaction into zero or more asset events."""
    status = tx.get("status")
    if status is not None and status != "complete":
        logger.debug("Skipping %s transaction %s", status, tx.get("transaction_id"))
        return []

    d = _Decomposition(tx, league_id, owner_map, season, week, warnings)
    tx_type = tx.get("type")
    adds = {str(k): _as_roster_id(v) for k, v in (tx.get("adds") or {}).items()}
    drops = {str(k): _as_roster_id(v) for k, v in (tx.get("drops") or {}).items()}
    draft_picks = [p for p in (tx.get("draft_picks") or []) if isinstance(p, dict)]

    if tx_type == "trade":
        for player_id, to_roster in adds.items():
            d.emit("trade", "player", from_roster=drops.get(player_id), to_roster=to_roster,
                   player_id=player_id)
        for player_id, from_roster in drops.items():
            if player_id not in adds:
                d.emit("free_agent_drop", "player", from_roster=from_roster, player_id=player_id,
                       details={"via": "trade"})
        for movement in draft_picks:
            d.emit_pick("pick_trade", movement)

    elif tx_type in CLAIM_EVENT_TYPES:
        add_type, drop_type = CLAIM_EVENT_TYPES[tx_type]
        for player_id, to_roster in adds.items():
            d.emit(add_type, "player", to_roster=to_roster, player_id=player_id)
        for player_id, from_roster in drops.items():
            d.emit(drop_type, "player", from_roster=from_roster, player_id=player_id)

    elif tx_type == "commissioner":
        for player_id, to_roster in adds.items():
            d.emit("commissioner", "player", from_roster=drops.get(player_id), to_roster=to_roster,
                   player_id=player_id)
        for player_id, from_roster in drops.items():
            if player_id not in adds:
                d.emit("commissioner", "player", from_roster=from_roster, player_id=player_id)
        for movement in draft_picks:
            d.emit_pick("commissioner", movement)

    else:
        message = f"Unsupported transaction type {tx_type!r} ({d.transaction_id}) in league {league_id}"
        logger.warning(message)
        if warnings is not None:
            warnings.append(message)

    return d.events


def decompose_draft(
    draft: Dict[str, Any],
    picks: List[Dict[str, Any]],
    league_id: str,
    owner_map: RosterOwnerMap,
    resolver,
    warnings: Optional[List[str]] = None,
) -> List[AssetEvent]:
    """
    Synthesize events for every selection of one draft.

    Each selection yields a ``draft_selected`` event for the player. When the
    pick the resolver identifies was not the selecting roster's own, a
    ``pick_selected`` event closes out that pick's history as well.
    """
    season = str(draft.get("season")) if draft.get("season") is not None else None
    event_time = to_epoch_ms(draft.get("start_time"))
    round_size = (draft.get("settings") or {}).get("teams") or draft.get("teams") or len(owner_map) or None
    slot_to_roster = draft.get("slot_to_roster_id") or None
    events: List[AssetEvent] = []

    for selection in sorted(picks, key=lambda p: p.get("pick_no") or 0):
        player_id = selection.get("player_id")
        if not player_id:
            continue
        roster_id = _as_roster_id(selection.get("roster_id"))
        user_id = owner_for(owner_map, roster_id) or selection.get("picked_by") or None
        if user_id is None:
            message = f"Draft {draft.get('draft_id')} pick {selection.get('pick_no')}: roster {roster_id} has no owner"
            logger.warning(message)
            if warnings is not None:
                warnings.append(message)

        resolution: PickResolution = resolver.resolve(
            season=season,
            round=int(selection["round"]),
            user_id=user_id,
            player_id=str(player_id),
            pick_no=int(selection.get("pick_no") or 0),
            round_size=round_size,
            draft_slot=selection.get("draft_slot"),
            slot_to_roster=slot_to_roster,
        )
        pick = resolution.pick
        if pick is None:
            message = (
                f"No pick candidate for {season} round {selection['round']} owned by {user_id} "
                f"(draft {draft.get('draft_id')}, pick {selection.get('pick_no')})"
            )
            logger.warning(message)
            if warnings is not None:
                warnings.append(message)

        pick_ref = (
            {"season": pick.season, "round": pick.round, "original_roster_id": pick.identity_roster_id}
            if pick is not None else None
        )
        base = dict(
            league_id=league_id,
            season=season,
            week=0,
            event_time=event_time,
            from_user_id=None,
            to_user_id=user_id,
            from_roster_id=None,
            to_roster_id=roster_id,
            transaction_id=None,
        )
        events.append(AssetEvent(
            event_type="draft_selected",
            asset_kind="player",
            player_id=str(player_id),
            details={
                "draft_id": draft.get("draft_id"),
                "pick_no": selection.get("pick_no"),
                "round": selection.get("round"),
                "draft_slot": selection.get("draft_slot"),
                "pick": pick_ref,
                "resolution": resolution.audit(),
            },
            **base,
        ))
        if pick is not None and pick.original_roster_id != roster_id:
            events.append(AssetEvent(
                event_type="pick_selected",
                asset_kind="pick",
                pick_season=pick.season,
                pick_round=pick.round,
                pick_original_roster_id=pick.identity_roster_id,
                details={
                    "draft_id": draft.get("draft_id"),
                    "pick_no": selection.get("pick_no"),
                    "player_id": str(player_id),
                    "draft_original_roster_id": pick.original_roster_id,
                    "resolution": resolution.audit(),
                },
                **base,
            ))
    return events
