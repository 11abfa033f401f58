import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from ..config import get_settings
from ..models.assets import SyncResult
from ..models.sleeper import Draft, League, Pick, Player, Roster, Transaction, TradedPick, User

logger = logging.getLogger(__name__)


async def upsert_league(db, league: League):
    await db.execute(
        """
        INSERT INTO leagues (league_id, name, season, previous_league_id, total_rosters, settings)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(league_id) DO UPDATE SET
            name = excluded.name,
            season = excluded.season,
            previous_league_id = excluded.previous_league_id,
            total_rosters = excluded.total_rosters,
            settings = excluded.settings
        """,
        (
            league.league_id,
            league.name,
            str(league.season),
            league.previous_league_id if league.previous_league_id not in ("0", "") else None,
            league.total_rosters,
            json.dumps(league.settings),
        ),
    )


async def upsert_users(db, users: Iterable[User]) -> int:
    count = 0
    for user in users:
        await db.execute(
            """
            INSERT INTO users (user_id, username, display_name) VALUES (?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                username = COALESCE(excluded.username, users.username),
                display_name = COALESCE(excluded.display_name, users.display_name)
            """,
            (user.user_id, user.username, user.display_name),
        )
        count += 1
    return count


async def insert_rosters(db, league_id: str, rosters: Iterable[Roster]) -> int:
    """Roster-to-owner bindings are written once per league and never rebound."""
    count = 0
    for roster in rosters:
        cursor = await db.execute(
            "INSERT OR IGNORE INTO rosters (league_id, roster_id, owner_id) VALUES (?, ?, ?)",
            (league_id, roster.roster_id, roster.owner_id),
        )
        count += cursor.rowcount
    return count


async def upsert_transactions(db, league_id: str, week: int, transactions: Iterable[Dict[str, Any]]) -> int:
    count = 0
    for payload in transactions:
        tx = Transaction(**{**payload, "league_id": league_id})
        await db.execute(
            """
            INSERT INTO transactions (transaction_id, league_id, week, type, status, status_updated, payload)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(transaction_id) DO UPDATE SET
                week = excluded.week,
                type = excluded.type,
                status = excluded.status,
                status_updated = excluded.status_updated,
                payload = excluded.payload
            """,
            (
                tx.transaction_id,
                league_id,
                tx.leg if tx.leg is not None else week,
                tx.type,
                tx.status,
                tx.status_updated,
                json.dumps(payload),
            ),
        )
        count += 1
    return count


async def upsert_draft(db, league_id: str, draft: Draft):
    await db.execute(
        """
        INSERT INTO drafts (draft_id, league_id, season, type, status, start_time, rounds, teams, slot_to_roster_id)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(draft_id) DO UPDATE SET
            status = excluded.status,
            start_time = excluded.start_time,
            rounds = excluded.rounds,
            teams = excluded.teams,
            slot_to_roster_id = excluded.slot_to_roster_id
        """,
        (
            draft.draft_id,
            league_id,
            str(draft.season),
            draft.type,
            draft.status,
            draft.start_time,
            draft.rounds,
            draft.teams,
            json.dumps(draft.slot_to_roster_id) if draft.slot_to_roster_id else None,
        ),
    )


async def upsert_draft_picks(db, draft_id: str, picks: Iterable[Pick]) -> int:
    count = 0
    for pick in picks:
        await db.execute(
            """
            INSERT INTO draft_picks (draft_id, pick_no, round, draft_slot, roster_id, player_id, picked_by)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(draft_id, pick_no) DO UPDATE SET
                round = excluded.round,
                draft_slot = excluded.draft_slot,
                roster_id = excluded.roster_id,
                player_id = excluded.player_id,
                picked_by = excluded.picked_by
            """,
            (draft_id, pick.pick_no, pick.round, pick.draft_slot, pick.roster_id, pick.player_id, pick.picked_by),
        )
        count += 1
    return count


async def upsert_traded_picks(db, league_id: str, picks: Iterable[TradedPick]) -> int:
    count = 0
    for pick in picks:
        await db.execute(
            """
            INSERT INTO traded_picks (league_id, season, round, roster_id, owner_id, previous_owner_id)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(league_id, season, round, roster_id) DO UPDATE SET
                owner_id = excluded.owner_id,
                previous_owner_id = excluded.previous_owner_id
            """,
            (league_id, str(pick.season), pick.round, pick.roster_id, pick.owner_id, pick.previous_owner_id),
        )
        count += 1
    return count


async def sync_league(client, db, league_id: str, weeks: Optional[List[int]] = None) -> SyncResult:
    """Fetch one league's raw history from Sleeper and store it."""
    result = SyncResult(league_id=league_id)

    league = League(**await client.get_league(league_id))
    await upsert_league(db, league)

    users = [User(**u) for u in await client.get_league_users(league_id)]
    result.users = await upsert_users(db, users)

    rosters = [Roster(**r) for r in await client.get_league_rosters(league_id)]
    result.rosters = await insert_rosters(db, league_id, rosters)

    for week in weeks or range(1, get_settings().weeks_per_season + 1):
        transactions = await client.get_league_transactions(league_id, week)
        if not transactions:
            logger.debug("No transactions for league %s week %s", league_id, week)
            continue
        result.transactions += await upsert_transactions(db, league_id, week, transactions)

    for draft_data in await client.get_league_drafts(league_id):
        draft = Draft(**{**draft_data, "league_id": league_id})
        await upsert_draft(db, league_id, draft)
        result.drafts += 1
        picks = [Pick(**p) for p in await client.get_draft_picks(draft.draft_id)]
        result.draft_picks += await upsert_draft_picks(db, draft.draft_id, picks)
        traded = [TradedPick(**p) for p in await client.get_draft_traded_picks(draft.draft_id)]
        result.traded_picks += await upsert_traded_picks(db, league_id, traded)

    traded = [TradedPick(**p) for p in await client.get_league_traded_picks(league_id)]
    result.traded_picks += await upsert_traded_picks(db, league_id, traded)

    await db.commit()
    logger.info(
        "Synced league %s (%s): %d rosters, %d transactions, %d drafts, %d picks",
        league_id, league.season, result.rosters, result.transactions, result.drafts, result.draft_picks,
    )
    return result


async def sync_players(client, db, player_ids: Iterable[str]) -> int:
    """Refresh descriptive attributes for the given players from the full player listing."""
    wanted = set(player_ids)
    if not wanted:
        return 0
    all_players = await client.get_all_players()
    count = 0
    for player_id in sorted(wanted):
        data = all_players.get(player_id)
        if not data:
            continue
        player = Player(**{**data, "player_id": player_id})
        await db.execute(
            """
            INSERT INTO players (player_id, full_name, position, team, status) VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(player_id) DO UPDATE SET
                full_name = excluded.full_name,
                position = excluded.position,
                team = excluded.team,
                status = excluded.status
            """,
            (player_id, player.name, player.position, player.team, player.status),
        )
        count += 1
    await db.commit()
    return count
