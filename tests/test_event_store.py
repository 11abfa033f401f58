import pytest

from lineage.errors import DuplicateAssetEvent
from lineage.models.assets import AssetEvent, AssetRef
from lineage.services import event_store


def player_event(league_id="L1", season="2024", week=1, event_time=1000, event_type="waiver_add",
                 player_id="p1", transaction_id="t1", to_user_id="u1"):
    return AssetEvent(
        league_id=league_id,
        season=season,
        week=week,
        event_time=event_time,
        event_type=event_type,
        asset_kind="player",
        player_id=player_id,
        to_user_id=to_user_id,
        transaction_id=transaction_id,
        details={"type": "waiver"},
    )


def test_replace_is_idempotent(run_with_db):
    events = [player_event(), player_event(player_id="p2", transaction_id="t2")]

    async def scenario(db):
        await event_store.replace_family_events(db, ["L1"], events)
        await event_store.replace_family_events(db, ["L1"], events)
        return await event_store.family_events(db, ["L1"])

    stored = run_with_db(scenario)
    assert len(stored) == 2
    assert sorted(e.business_key for e in stored) == sorted(e.business_key for e in events)
    assert stored[0].details == {"type": "waiver"}


def test_duplicate_business_key_aborts_and_keeps_previous(run_with_db):
    original = [player_event()]
    duplicated = [player_event(), player_event(event_time=2000)]

    async def scenario(db):
        await event_store.replace_family_events(db, ["L1"], original)
        with pytest.raises(DuplicateAssetEvent):
            await event_store.replace_family_events(db, ["L1"], duplicated)
        return await event_store.family_events(db, ["L1"])

    stored = run_with_db(scenario)
    assert len(stored) == 1
    assert stored[0].event_time == 1000


def test_database_rejects_duplicates_even_when_unchecked(run_with_db, monkeypatch):
    monkeypatch.setattr(event_store, "check_unique", lambda events: None)

    async def scenario(db):
        await event_store.replace_family_events(db, ["L1"], [player_event()])
        with pytest.raises(DuplicateAssetEvent):
            await event_store.replace_family_events(db, ["L1"], [player_event(), player_event(event_time=5)])
        return await event_store.family_events(db, ["L1"])

    assert len(run_with_db(scenario)) == 1


def test_replace_only_touches_given_leagues(run_with_db):
    async def scenario(db):
        await event_store.replace_family_events(db, ["L1"], [player_event(league_id="L1")])
        await event_store.replace_family_events(db, ["L2"], [player_event(league_id="L2")])
        await event_store.replace_family_events(db, ["L2"], [])
        return await event_store.family_events(db, ["L1", "L2"])

    stored = run_with_db(scenario)
    assert [e.league_id for e in stored] == ["L1"]


def test_timeline_orders_by_season_week_time(run_with_db):
    events = [
        player_event(season="2024", week=1, event_time=500, transaction_id="a"),
        player_event(season="2023", week=9, event_time=900, transaction_id="b"),
        player_event(season="2023", week=2, event_time=800, transaction_id="c"),
        player_event(season="2023", week=2, event_time=100, transaction_id="d"),
        player_event(player_id="other", transaction_id="e"),
    ]

    async def scenario(db):
        await event_store.replace_family_events(db, ["L1"], events)
        return await event_store.timeline_for(db, AssetRef.player("p1"), ["L1"])

    timeline = run_with_db(scenario)
    assert [e.transaction_id for e in timeline] == ["d", "c", "b", "a"]


def test_pick_timeline_and_transaction_lookup(run_with_db):
    pick = AssetEvent(
        league_id="L1", season="2023", week=3, event_time=10, event_type="pick_trade", asset_kind="pick",
        pick_season="2024", pick_round=1, pick_original_roster_id=5, transaction_id="t9",
    )
    player = player_event(event_type="trade", transaction_id="t9")

    async def scenario(db):
        await event_store.replace_family_events(db, ["L1"], [pick, player])
        timeline = await event_store.timeline_for(db, AssetRef.pick("2024", 1, 5), ["L1"])
        together = await event_store.events_in_transaction(db, "t9", ["L1"])
        elsewhere = await event_store.events_in_transaction(db, "t9", ["L2"])
        return timeline, together, elsewhere

    timeline, together, elsewhere = run_with_db(scenario)
    assert [e.event_type for e in timeline] == ["pick_trade"]
    assert {e.asset.key for e in together} == {"pick:2024-1-5", "player:p1"}
    assert elsewhere == []
