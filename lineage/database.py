import aiosqlite
import asyncio

from .config import get_settings

DATABASE_URL = get_settings().database_path

TABLES = [
    """
    CREATE TABLE IF NOT EXISTS api_cache (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        url TEXT UNIQUE NOT NULL,
        data TEXT NOT NULL,
        timestamp DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS leagues (
        league_id TEXT PRIMARY KEY,
        name TEXT,
        season TEXT NOT NULL,
        previous_league_id TEXT,
        total_rosters INTEGER,
        settings TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        user_id TEXT PRIMARY KEY,
        username TEXT,
        display_name TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rosters (
        league_id TEXT NOT NULL REFERENCES leagues(league_id),
        roster_id INTEGER NOT NULL,
        owner_id TEXT,
        PRIMARY KEY (league_id, roster_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS players (
        player_id TEXT PRIMARY KEY,
        full_name TEXT,
        position TEXT,
        team TEXT,
        status TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        transaction_id TEXT PRIMARY KEY,
        league_id TEXT NOT NULL REFERENCES leagues(league_id),
        week INTEGER,
        type TEXT NOT NULL,
        status TEXT,
        status_updated INTEGER,
        payload TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS drafts (
        draft_id TEXT PRIMARY KEY,
        league_id TEXT NOT NULL REFERENCES leagues(league_id),
        season TEXT NOT NULL,
        type TEXT,
        status TEXT,
        start_time INTEGER,
        rounds INTEGER,
        teams INTEGER,
        slot_to_roster_id TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS draft_picks (
        draft_id TEXT NOT NULL REFERENCES drafts(draft_id),
        pick_no INTEGER NOT NULL,
        round INTEGER NOT NULL,
        draft_slot INTEGER,
        roster_id INTEGER,
        player_id TEXT,
        picked_by TEXT,
        PRIMARY KEY (draft_id, pick_no)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS traded_picks (
        league_id TEXT NOT NULL REFERENCES leagues(league_id),
        season TEXT NOT NULL,
        round INTEGER NOT NULL,
        roster_id INTEGER NOT NULL,
        owner_id INTEGER NOT NULL,
        previous_owner_id INTEGER,
        PRIMARY KEY (league_id, season, round, roster_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS asset_events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        league_id TEXT NOT NULL,
        season TEXT,
        week INTEGER,
        event_time INTEGER,
        event_type TEXT NOT NULL,
        asset_kind TEXT NOT NULL CHECK (asset_kind IN ('player', 'pick')),
        player_id TEXT,
        pick_season TEXT,
        pick_round INTEGER,
        pick_original_roster_id INTEGER,
        from_user_id TEXT,
        to_user_id TEXT,
        from_roster_id INTEGER,
        to_roster_id INTEGER,
        transaction_id TEXT,
        details TEXT
    )
    """,
    # NULLs are coalesced so that two rows missing the same fields still collide.
    """
    CREATE UNIQUE INDEX IF NOT EXISTS ux_asset_events_business_key ON asset_events (
        league_id,
        event_type,
        asset_kind,
        COALESCE(player_id, ''),
        COALESCE(pick_season, ''),
        COALESCE(pick_round, -1),
        COALESCE(pick_original_roster_id, -1),
        COALESCE(transaction_id, ''),
        COALESCE(from_user_id, ''),
        COALESCE(to_user_id, '')
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_asset_events_player ON asset_events (asset_kind, player_id)",
    """
    CREATE INDEX IF NOT EXISTS ix_asset_events_pick
        ON asset_events (asset_kind, pick_season, pick_round, pick_original_roster_id)
    """,
    "CREATE INDEX IF NOT EXISTS ix_asset_events_transaction ON asset_events (transaction_id)",
    """
    CREATE TABLE IF NOT EXISTS rebuild_state (
        league_id TEXT PRIMARY KEY,
        status TEXT NOT NULL,
        started_at TEXT,
        finished_at TEXT,
        events_written INTEGER,
        error TEXT
    )
    """,
]


async def get_db_connection():
    db = await aiosqlite.connect(DATABASE_URL)
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA foreign_keys = ON")
    return db


async def create_tables():
    async with aiosqlite.connect(DATABASE_URL) as db:
        for statement in TABLES:
            await db.execute(statement)
        await db.commit()

if __name__ == "__main__":
    asyncio.run(create_tables())
