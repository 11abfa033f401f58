"""
Asset event storage.

The events of a league family are derived data: a rebuild replaces the whole
set inside one transaction, so readers see either the previous set or the new
one. A business-key collision means something upstream emitted an event
twice and aborts the rebuild instead of being silently merged.
"""
import json
import logging
import sqlite3
from typing import Iterable, List, Optional

from ..errors import DuplicateAssetEvent
from ..models.assets import AssetEvent, AssetRef

logger = logging.getLogger(__name__)

COLUMNS = (
    "league_id",
    "season",
    "week",
    "event_time",
    "event_type",
    "asset_kind",
    "player_id",
    "pick_season",
    "pick_round",
    "pick_original_roster_id",
    "from_user_id",
    "to_user_id",
    "from_roster_id",
    "to_roster_id",
    "transaction_id",
    "details",
)

ORDER_BY = "ORDER BY season, week, event_time, id"


def _placeholders(values) -> str:
    return ", ".join("?" for _ in values)


def _row_values(event: AssetEvent) -> tuple:
    data = event.model_dump()
    data["details"] = json.dumps(event.details or {}, sort_keys=True)
    return tuple(data[column] for column in COLUMNS)


def _row_to_event(row) -> AssetEvent:
    data = dict(row)
    data["details"] = json.loads(data["details"]) if data.get("details") else {}
    return AssetEvent(**data)


def check_unique(events: Iterable[AssetEvent]):
    seen = set()
    for event in events:
        key = event.business_key
        if key in seen:
            raise DuplicateAssetEvent(key)
        seen.add(key)


async def replace_family_events(db, league_ids: List[str], events: List[AssetEvent]) -> int:
    """
    Delete every event of the family and insert ``events`` in their place, atomically.

    Raises DuplicateAssetEvent, leaving the stored events untouched, when two
    events share a business key.
    """
    if not league_ids:
        return 0
    check_unique(events)

    await db.execute("BEGIN IMMEDIATE")
    try:
        await db.execute(
            f"DELETE FROM asset_events WHERE league_id IN ({_placeholders(league_ids)})",
            tuple(league_ids),
        )
        if events:
            await db.executemany(
                f"INSERT INTO asset_events ({', '.join(COLUMNS)}) VALUES ({_placeholders(COLUMNS)})",
                [_row_values(event) for event in events],
            )
    except sqlite3.IntegrityError as e:
        await db.rollback()
        raise DuplicateAssetEvent(("integrity", str(e))) from e
    except BaseException:
        await db.rollback()
        raise
    await db.commit()
    logger.info("Stored %d asset events for leagues %s", len(events), ", ".join(league_ids))
    return len(events)


async def timeline_for(db, asset: AssetRef, league_ids: List[str]) -> List[AssetEvent]:
    """Every event for one asset within the family, ordered by (season, week, timestamp)."""
    if not league_ids:
        return []
    if asset.kind == "player":
        where = "asset_kind = 'player' AND player_id = ?"
        params = (asset.player_id,)
    else:
        where = ("asset_kind = 'pick' AND pick_season = ? AND pick_round = ? "
                 "AND pick_original_roster_id = ?")
        params = (asset.pick_season, asset.pick_round, asset.pick_original_roster_id)
    cursor = await db.execute(
        f"SELECT * FROM asset_events WHERE league_id IN ({_placeholders(league_ids)}) AND {where} {ORDER_BY}",
        tuple(league_ids) + params,
    )
    return [_row_to_event(row) for row in await cursor.fetchall()]


async def events_in_transaction(db, transaction_id: str, league_ids: Optional[List[str]] = None) -> List[AssetEvent]:
    sql = "SELECT * FROM asset_events WHERE transaction_id = ?"
    params: tuple = (transaction_id,)
    if league_ids:
        sql += f" AND league_id IN ({_placeholders(league_ids)})"
        params += tuple(league_ids)
    cursor = await db.execute(f"{sql} {ORDER_BY}", params)
    return [_row_to_event(row) for row in await cursor.fetchall()]


async def family_events(db, league_ids: List[str]) -> List[AssetEvent]:
    if not league_ids:
        return []
    cursor = await db.execute(
        f"SELECT * FROM asset_events WHERE league_id IN ({_placeholders(league_ids)}) {ORDER_BY}",
        tuple(league_ids),
    )
    return [_row_to_event(row) for row in await cursor.fetchall()]
