import logging
from typing import Dict, Iterable, List, Optional

from ..errors import UnknownAsset
from ..models.assets import AssetEvent, AssetRef, PlayerSummary, TimelineEvent, TimelineResponse, UserSummary
from . import event_store
from .league_family import get_league_family

logger = logging.getLogger(__name__)


async def get_player_summary(db, player_id: str) -> Optional[PlayerSummary]:
    cursor = await db.execute("SELECT * FROM players WHERE player_id = ?", (player_id,))
    row = await cursor.fetchone()
    if row is None:
        return None
    return PlayerSummary(
        id=row["player_id"],
        name=row["full_name"] or f"Player {player_id}",
        position=row["position"],
        team=row["team"],
        status=row["status"],
    )


async def get_user_summaries(db, user_ids: Iterable[str]) -> Dict[str, UserSummary]:
    wanted = sorted({u for u in user_ids if u})
    if not wanted:
        return {}
    marks = ", ".join("?" for _ in wanted)
    cursor = await db.execute(f"SELECT * FROM users WHERE user_id IN ({marks})", tuple(wanted))
    found = {
        row["user_id"]: UserSummary(id=row["user_id"], username=row["username"],
                                    display_name=row["display_name"] or row["username"])
        for row in await cursor.fetchall()
    }
    # Managers who left the league before their user record was synced
    for user_id in wanted:
        found.setdefault(user_id, UserSummary(id=user_id, display_name=f"User {user_id}"))
    return found


async def ensure_known_asset(db, asset: AssetRef, family: List[str]):
    """Raise UnknownAsset when the asset cannot exist in this family at all."""
    if asset.kind == "player":
        cursor = await db.execute("SELECT 1 FROM players WHERE player_id = ?", (asset.player_id,))
    else:
        marks = ", ".join("?" for _ in family)
        cursor = await db.execute(
            f"SELECT 1 FROM rosters WHERE league_id IN ({marks}) AND roster_id = ? LIMIT 1",
            tuple(family) + (asset.pick_original_roster_id,),
        )
    if await cursor.fetchone() is None:
        raise UnknownAsset(asset.key)


async def load_timeline(db, asset: AssetRef, family: List[str]) -> List[AssetEvent]:
    events = await event_store.timeline_for(db, asset, family)
    if not events:
        await ensure_known_asset(db, asset, family)
    return events


async def get_timeline(db, asset: AssetRef, league_id: str) -> TimelineResponse:
    """Complete ordered history of one asset across the league family."""
    family = await get_league_family(db, league_id)
    events = await load_timeline(db, asset, family)

    users = await get_user_summaries(db, [e.from_user_id for e in events] + [e.to_user_id for e in events])
    timeline = [
        TimelineEvent(
            **event.model_dump(),
            from_user=users.get(event.from_user_id) if event.from_user_id else None,
            to_user=users.get(event.to_user_id) if event.to_user_id else None,
        )
        for event in events
    ]
    player = await get_player_summary(db, asset.player_id) if asset.kind == "player" else None
    return TimelineResponse(family=family, asset=asset, player=player, events=timeline)
