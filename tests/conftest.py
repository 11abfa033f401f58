import asyncio
from typing import Any, Dict, List, Optional

import pytest

from lineage import database
from lineage.services import rebuild
from lineage.services.league_family import reset_family_cache

# Three seasons of one dynasty league. Manager u5 (roster 5 every season) trades
# player pA and their own 2024 1st to u2 in week 3 of 2023; u2 spends that pick
# on pB in the 2024 draft (slot 5) and their own 1st on pC (slot 2).
USERS = [{"user_id": f"u{i}", "username": f"manager{i}", "display_name": f"Manager {i}"} for i in range(1, 7)]
ROSTERS = [{"roster_id": i, "owner_id": f"u{i}", "players": []} for i in range(1, 7)]

LEAGUES = {
    "L2024": {"league_id": "L2024", "name": "Dynasty", "season": "2024", "total_rosters": 6,
              "previous_league_id": "L2023", "settings": {}},
    "L2023": {"league_id": "L2023", "name": "Dynasty", "season": "2023", "total_rosters": 6,
              "previous_league_id": "L2022", "settings": {}},
    "L2022": {"league_id": "L2022", "name": "Dynasty", "season": "2022", "total_rosters": 6,
              "previous_league_id": "0", "settings": {}},
}

TRADE = {
    "transaction_id": "t1",
    "type": "trade",
    "status": "complete",
    "leg": 3,
    "created": 1695000000000,
    "status_updated": 1695000100000,
    "roster_ids": [2, 5],
    "adds": {"pA": 2},
    "drops": {"pA": 5},
    "draft_picks": [
        {"season": "2024", "round": 1, "roster_id": 5, "owner_id": 2, "previous_owner_id": 5},
    ],
}

WAIVER = {
    "transaction_id": "w1",
    "type": "waiver",
    "status": "complete",
    "leg": 2,
    "status_updated": 1726000000000,
    "roster_ids": [3],
    "adds": {"pD": 3},
    "drops": {"pE": 3},
    "draft_picks": [],
}

FAILED_WAIVER = {
    "transaction_id": "w2",
    "type": "waiver",
    "status": "failed",
    "leg": 2,
    "status_updated": 1726000000001,
    "roster_ids": [4],
    "adds": {"pD": 4},
    "drops": None,
    "draft_picks": [],
}

TRANSACTIONS = {
    ("L2023", 3): [TRADE],
    ("L2024", 2): [WAIVER, FAILED_WAIVER],
}

DRAFT_2024 = {
    "draft_id": "d2024",
    "league_id": "L2024",
    "season": "2024",
    "type": "linear",
    "status": "complete",
    "start_time": 1714000000000,
    "settings": {"rounds": 1, "teams": 6},
    "slot_to_roster_id": {str(i): i for i in range(1, 7)},
}

DRAFT_PICKS = {
    "d2024": [
        {"pick_no": 1, "round": 1, "draft_slot": 1, "roster_id": 1, "player_id": "p1", "picked_by": "u1"},
        {"pick_no": 2, "round": 1, "draft_slot": 2, "roster_id": 2, "player_id": "pC", "picked_by": "u2"},
        {"pick_no": 3, "round": 1, "draft_slot": 3, "roster_id": 3, "player_id": "p3", "picked_by": "u3"},
        {"pick_no": 4, "round": 1, "draft_slot": 4, "roster_id": 4, "player_id": "p4", "picked_by": "u4"},
        {"pick_no": 5, "round": 1, "draft_slot": 5, "roster_id": 2, "player_id": "pB", "picked_by": "u2"},
        {"pick_no": 6, "round": 1, "draft_slot": 6, "roster_id": 6, "player_id": "p6", "picked_by": "u6"},
    ],
}

PLAYERS = {
    player_id: {"player_id": player_id, "full_name": f"Player {player_id[1:]}", "position": "WR", "team": "KC",
                "status": "Active"}
    for player_id in ("pA", "pB", "pC", "pD", "pE", "p1", "p3", "p4", "p6")
}


class FakeSleeperClient:
    """In-memory stand-in for SleeperClient serving the scenario above."""

    def __init__(self, leagues: Optional[Dict[str, Dict[str, Any]]] = None,
                 transactions: Optional[Dict[tuple, List[dict]]] = None,
                 rosters: Optional[Dict[str, List[dict]]] = None,
                 draft_picks: Optional[Dict[str, List[dict]]] = None):
        self.leagues = leagues if leagues is not None else LEAGUES
        self.transactions = transactions if transactions is not None else TRANSACTIONS
        self.rosters = rosters or {}
        self.draft_picks = draft_picks if draft_picks is not None else DRAFT_PICKS
        self.calls: List[tuple] = []
        self.fail_on: Optional[str] = None

    def _record(self, name: str, *args):
        self.calls.append((name,) + args)
        if self.fail_on == name:
            raise RuntimeError(f"{name} unavailable")

    async def get_league(self, league_id: str):
        self._record("get_league", league_id)
        return self.leagues.get(league_id)

    async def get_league_users(self, league_id: str):
        self._record("get_league_users", league_id)
        return USERS

    async def get_league_rosters(self, league_id: str):
        self._record("get_league_rosters", league_id)
        return self.rosters.get(league_id, ROSTERS)

    async def get_league_transactions(self, league_id: str, week: int):
        self._record("get_league_transactions", league_id, week)
        return self.transactions.get((league_id, week), [])

    async def get_league_drafts(self, league_id: str):
        self._record("get_league_drafts", league_id)
        return [DRAFT_2024] if league_id == "L2024" else []

    async def get_draft_picks(self, draft_id: str):
        self._record("get_draft_picks", draft_id)
        return self.draft_picks.get(draft_id, [])

    async def get_draft_traded_picks(self, draft_id: str):
        self._record("get_draft_traded_picks", draft_id)
        return []

    async def get_league_traded_picks(self, league_id: str):
        self._record("get_league_traded_picks", league_id)
        if league_id == "L2023":
            return [{"season": "2024", "round": 1, "roster_id": 5, "owner_id": 2, "previous_owner_id": 5}]
        return []

    async def get_all_players(self):
        self._record("get_all_players")
        return PLAYERS


@pytest.fixture(autouse=True)
def db_path(tmp_path, monkeypatch):
    path = str(tmp_path / "lineage.db")
    monkeypatch.setattr(database, "DATABASE_URL", path)
    asyncio.run(database.create_tables())
    reset_family_cache()
    rebuild._rebuilding.clear()
    rebuild._upstream_families.clear()
    yield path
    reset_family_cache()
    rebuild._rebuilding.clear()
    rebuild._upstream_families.clear()


@pytest.fixture
def fake_client():
    return FakeSleeperClient()


@pytest.fixture
def run_with_db():
    """Run ``scenario(db)`` against a fresh connection to the test database."""

    def runner(scenario):
        async def main():
            db = await database.get_db_connection()
            try:
                return await scenario(db)
            finally:
                await db.close()

        return asyncio.run(main())

    return runner


@pytest.fixture
def rebuilt(fake_client, run_with_db):
    """The scenario family fetched and rebuilt once."""
    return run_with_db(lambda db: rebuild.rebuild_family(db, "L2024", client=fake_client))


@pytest.fixture
def make_fake_client():
    return FakeSleeperClient
