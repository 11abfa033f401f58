"""
Full rebuild of a league family's asset events.

Stages run in order and each failure is reported with the stage it happened
in: fetch (optional, pulls Sleeper data into the input tables), decompose
(transactions to events), resolve (draft selections, which need every pick
trade of the family first), persist (atomic replacement of the event set).
Nothing is written to the event table unless every stage before persist
succeeded.
"""
import json
import logging
from datetime import datetime
from typing import Dict, List, Optional, Set

from ..config import get_settings
from ..errors import RebuildFailed, RebuildInProgress
from ..models.assets import AssetEvent, RebuildResult
from . import event_store
from .decomposer import decompose_draft, decompose_transaction
from .league_family import LeagueFamilyResolver, client_lookup, get_league_family
from .pick_resolver import PickIdentityResolver, PickLedger, prefer_traded_early
from .roster_map import RosterOwnerMap, load_roster_owner_maps
from .sync import sync_league, sync_players

logger = logging.getLogger(__name__)

_rebuilding: Set[str] = set()
_upstream_families: Dict[str, List[str]] = {}


def is_rebuilding(league_id: str) -> bool:
    return league_id in _rebuilding


async def _set_state(db, league_id: str, status: str, events_written: Optional[int] = None,
                     error: Optional[str] = None):
    now = datetime.utcnow().isoformat()
    if status == "running":
        await db.execute(
            """
            INSERT INTO rebuild_state (league_id, status, started_at, finished_at, events_written, error)
            VALUES (?, 'running', ?, NULL, NULL, NULL)
            ON CONFLICT(league_id) DO UPDATE SET
                status = 'running', started_at = excluded.started_at,
                finished_at = NULL, events_written = NULL, error = NULL
            """,
            (league_id, now),
        )
    else:
        await db.execute(
            "UPDATE rebuild_state SET status = ?, finished_at = ?, events_written = ?, error = ? WHERE league_id = ?",
            (status, now, events_written, error, league_id),
        )
    await db.commit()


async def get_rebuild_state(db, league_id: str) -> Optional[dict]:
    cursor = await db.execute("SELECT * FROM rebuild_state WHERE league_id = ?", (league_id,))
    row = await cursor.fetchone()
    return dict(row) if row else None


async def _family_player_ids(db, family: List[str]) -> Set[str]:
    marks = ", ".join("?" for _ in family)
    player_ids: Set[str] = set()
    cursor = await db.execute(f"SELECT payload FROM transactions WHERE league_id IN ({marks})", tuple(family))
    for row in await cursor.fetchall():
        payload = json.loads(row["payload"])
        player_ids.update((payload.get("adds") or {}).keys())
        player_ids.update((payload.get("drops") or {}).keys())
    cursor = await db.execute(
        f"""
        SELECT dp.player_id FROM draft_picks dp JOIN drafts d ON d.draft_id = dp.draft_id
        WHERE d.league_id IN ({marks}) AND dp.player_id IS NOT NULL
        """,
        tuple(family),
    )
    player_ids.update(row["player_id"] for row in await cursor.fetchall())
    return player_ids


async def fetch_family(client, db, league_id: str) -> List[str]:
    resolver = LeagueFamilyResolver(client_lookup(client), cache=_upstream_families)
    family = await resolver.resolve(league_id)
    # Oldest first so that previous_league_id always points at a stored league
    for family_league_id in reversed(family):
        await sync_league(client, db, family_league_id)
    if get_settings().sync_players:
        player_ids = await _family_player_ids(db, family)
        synced = await sync_players(client, db, player_ids)
        logger.info("Refreshed %d players for family %s", synced, league_id)
    return family


async def decompose_transactions(db, family: List[str], owner_maps: Dict[str, RosterOwnerMap],
                                 warnings: List[str]) -> List[AssetEvent]:
    marks = ", ".join("?" for _ in family)
    cursor = await db.execute(f"SELECT league_id, season FROM leagues WHERE league_id IN ({marks})", tuple(family))
    seasons = {row["league_id"]: row["season"] for row in await cursor.fetchall()}

    cursor = await db.execute(
        f"""
        SELECT t.league_id, t.week, t.payload FROM transactions t
        JOIN leagues l ON l.league_id = t.league_id
        WHERE t.league_id IN ({marks})
        ORDER BY l.season, t.week, t.status_updated, t.transaction_id
        """,
        tuple(family),
    )
    events: List[AssetEvent] = []
    for row in await cursor.fetchall():
        events.extend(decompose_transaction(
            json.loads(row["payload"]),
            row["league_id"],
            owner_maps.get(row["league_id"], {}),
            season=seasons.get(row["league_id"]),
            week=row["week"],
            warnings=warnings,
        ))
    return events


async def decompose_drafts(db, family: List[str], owner_maps: Dict[str, RosterOwnerMap],
                           trade_events: List[AssetEvent], warnings: List[str],
                           strategy=prefer_traded_early) -> List[AssetEvent]:
    marks = ", ".join("?" for _ in family)
    cursor = await db.execute(
        f"SELECT * FROM drafts WHERE league_id IN ({marks}) ORDER BY season, start_time, draft_id",
        tuple(family),
    )
    drafts = [dict(row) for row in await cursor.fetchall()]

    events: List[AssetEvent] = []
    for draft in drafts:
        cursor = await db.execute("SELECT * FROM draft_picks WHERE draft_id = ? ORDER BY pick_no", (draft["draft_id"],))
        picks = [dict(row) for row in await cursor.fetchall()]
        if not picks:
            continue
        league_id = draft["league_id"]
        owner_map = owner_maps.get(league_id, {})
        rounds = draft["rounds"] or max(p["round"] for p in picks)

        ledger = PickLedger()
        ledger.add_natal_picks(draft["season"], rounds, owner_map)
        season_trades = [e for e in trade_events if e.pick_season == draft["season"]]
        ledger.apply_pick_trades(season_trades, league_id, owner_maps, warnings)
        cursor = await db.execute(
            "SELECT * FROM traded_picks WHERE league_id = ? AND season = ?", (league_id, draft["season"])
        )
        ledger.apply_traded_picks([dict(row) for row in await cursor.fetchall()], owner_map)

        draft["slot_to_roster_id"] = json.loads(draft["slot_to_roster_id"]) if draft["slot_to_roster_id"] else None
        resolver = PickIdentityResolver(ledger, strategy=strategy)
        events.extend(decompose_draft(draft, picks, league_id, owner_map, resolver, warnings))
    return events


async def rebuild_family(db, league_id: str, client=None, strategy=prefer_traded_early) -> RebuildResult:
    """
    Regenerate every asset event of the family ``league_id`` belongs to.

    With a client the family's Sleeper data is fetched first; without one the
    rebuild works from what is already stored. A second rebuild of a family
    that is still rebuilding raises RebuildInProgress.
    """
    if league_id in _rebuilding:
        raise RebuildInProgress(league_id)
    # Claimed before the first await so a concurrent request for the same league sees it
    _rebuilding.add(league_id)
    claimed: Set[str] = {league_id}
    try:
        return await _rebuild(db, league_id, client, strategy, claimed)
    finally:
        _rebuilding.difference_update(claimed)


async def _rebuild(db, league_id: str, client, strategy, claimed: Set[str]) -> RebuildResult:
    # Without a client the family must already be stored; UnknownLeague otherwise
    family = await get_league_family(db, league_id) if client is None else None
    warnings: List[str] = []
    stage = "fetch"
    try:
        if family is None:
            family = await fetch_family(client, db, league_id)

        busy = (set(family) - claimed) & _rebuilding
        if busy:
            raise RebuildInProgress(sorted(busy)[0])
        newly_claimed = set(family) - claimed
        _rebuilding.update(newly_claimed)
        claimed.update(newly_claimed)
        await _set_state(db, league_id, "running")
        logger.info("Rebuilding asset events for family %s", ", ".join(family))

        stage = "decompose"
        logger.info("Decomposing transactions for %s", league_id)
        owner_maps = await load_roster_owner_maps(db, family)
        tx_events = await decompose_transactions(db, family, owner_maps, warnings)

        stage = "resolve"
        logger.info("Resolving draft picks for %s (%d transaction events)", league_id, len(tx_events))
        draft_events = await decompose_drafts(db, family, owner_maps, tx_events, warnings, strategy)

        stage = "persist"
        logger.info("Persisting %d events for %s", len(tx_events) + len(draft_events), league_id)
        written = await event_store.replace_family_events(db, family, tx_events + draft_events)
    except RebuildInProgress:
        raise
    except Exception as e:
        logger.exception("Rebuild of %s failed during %s", league_id, stage)
        if await get_rebuild_state(db, league_id):
            await _set_state(db, league_id, "failed", error=f"{stage}: {e!r}")
        raise RebuildFailed(stage, league_id, e) from e

    await _set_state(db, league_id, "complete", events_written=written)
    logger.info("Rebuilt %d events across %d leagues (%d warnings)", written, len(family), len(warnings))
    return RebuildResult(
        league_id=league_id,
        family=family,
        leagues_processed=len(family),
        events_written=written,
        warnings=warnings,
    )
