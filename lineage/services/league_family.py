"""
League family resolution.

A dynasty franchise is one league instance per season, each pointing back at
the previous season's league. Walking those pointers from any league yields
the family, newest first.
"""
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from ..errors import CycleDetected, UnknownLeague

logger = logging.getLogger(__name__)

PreviousLookup = Callable[[str], Awaitable[Optional[str]]]


class LeagueFamilyResolver:
    """
    Follows previous-league pointers with an injected lookup.

    ``lookup(league_id)`` returns the previous league id, or None at the start of
    the chain. Families are cached per head id for the lifetime of the resolver,
    since a league's genealogy never changes once it exists.
    """

    def __init__(self, lookup: PreviousLookup, cache: Optional[Dict[str, List[str]]] = None):
        self._lookup = lookup
        self._cache: Dict[str, List[str]] = cache if cache is not None else {}

    async def resolve(self, league_id: str) -> List[str]:
        if league_id in self._cache:
            return list(self._cache[league_id])

        family: List[str] = []
        seen = set()
        cursor: Optional[str] = league_id
        while cursor:
            if cursor in seen:
                raise CycleDetected(cursor, family)
            seen.add(cursor)
            family.append(cursor)
            cursor = await self._lookup(cursor)
            # Sleeper reports "0" for leagues with no predecessor
            if cursor in ("0", ""):
                cursor = None

        logger.debug("League family for %s: %s", league_id, family)
        self._cache[league_id] = family
        return list(family)

    def clear(self):
        self._cache.clear()


def client_lookup(client) -> PreviousLookup:
    """Lookup that asks the upstream client for each league's metadata."""

    async def lookup(league_id: str) -> Optional[str]:
        league = await client.get_league(league_id)
        if not league:
            raise UnknownLeague(league_id)
        return league.get("previous_league_id")

    return lookup


def database_lookup(db) -> PreviousLookup:
    """Lookup over already-synced ``leagues`` rows; an unsynced league is an error."""

    async def lookup(league_id: str) -> Optional[str]:
        cursor = await db.execute(
            "SELECT previous_league_id FROM leagues WHERE league_id = ?", (league_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            raise UnknownLeague(league_id)
        return row["previous_league_id"]

    return lookup


_family_cache: Dict[str, List[str]] = {}


async def get_league_family(db, league_id: str) -> List[str]:
    """Family of an already-synced league, cached for the process."""
    return await LeagueFamilyResolver(database_lookup(db), cache=_family_cache).resolve(league_id)


def reset_family_cache():
    _family_cache.clear()
