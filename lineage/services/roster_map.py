import logging
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

RosterOwnerMap = Dict[int, Optional[str]]


def build_roster_owner_map(rosters: Iterable[Dict[str, Any]]) -> RosterOwnerMap:
    """
    Map one league's local roster ids to platform-wide manager (user) ids.

    Roster numbering is only meaningful inside the league it came from, so a map
    built here must never be used to read roster ids belonging to another league.
    Orphaned rosters (no owner) map to None.
    """
    owner_map: RosterOwnerMap = {}
    for roster in rosters:
        roster_id = roster.get("roster_id")
        if roster_id is None:
            continue
        owner_map[int(roster_id)] = roster.get("owner_id") or None
    return owner_map


async def load_roster_owner_map(db, league_id: str) -> RosterOwnerMap:
    cursor = await db.execute(
        "SELECT roster_id, owner_id FROM rosters WHERE league_id = ?", (league_id,)
    )
    rows = await cursor.fetchall()
    return build_roster_owner_map(dict(row) for row in rows)


async def load_roster_owner_maps(db, league_ids: List[str]) -> Dict[str, RosterOwnerMap]:
    return {league_id: await load_roster_owner_map(db, league_id) for league_id in league_ids}


def owner_for(owner_map: RosterOwnerMap, roster_id: Optional[int]) -> Optional[str]:
    if roster_id is None:
        return None
    return owner_map.get(int(roster_id))


def translate_roster(
    roster_id: Optional[int],
    source_map: RosterOwnerMap,
    target_map: RosterOwnerMap,
) -> Optional[int]:
    """Roster id in the target league held by the manager owning ``roster_id`` in the source league."""
    manager_id = owner_for(source_map, roster_id)
    if manager_id is None:
        return None
    for target_roster_id, target_manager_id in target_map.items():
        if target_manager_id == manager_id:
            return target_roster_id
    return None
