import pytest

from lineage.errors import InvalidAssetRef, InvalidDepth, UnknownAsset
from lineage.models.assets import AssetEvent, AssetRef
from lineage.services import event_store
from lineage.services.league_family import get_league_family
from lineage.services.network import get_network
from lineage.services.timeline import get_timeline
from lineage.services.trade_tree import TradeTreeBuilder, get_trade_tree

PLAYER_A = AssetRef.player("pA")
PLAYER_B = AssetRef.player("pB")
PICK = AssetRef.pick("2024", 1, 5)


def test_asset_ref_parsing():
    assert AssetRef.parse("player:pA") == PLAYER_A
    assert AssetRef.parse("pick:2024-1-5") == PICK
    assert PICK.key == "pick:2024-1-5"
    for raw in ("", "pA", "player:", "pick:2024-1", "pick:2024-x-5", "team:1"):
        with pytest.raises(InvalidAssetRef):
            AssetRef.parse(raw)


def test_player_a_timeline(rebuilt, run_with_db):
    timeline = run_with_db(lambda db: get_timeline(db, PLAYER_A, "L2024"))
    assert [e.event_type for e in timeline.events] == ["trade"]
    trade = timeline.events[0]
    assert (trade.from_user_id, trade.to_user_id) == ("u5", "u2")
    assert trade.from_user.display_name == "Manager 5"
    assert trade.to_user.display_name == "Manager 2"
    assert timeline.player.name == "Player A"
    assert timeline.family == ["L2024", "L2023", "L2022"]


def test_pick_timeline(rebuilt, run_with_db):
    timeline = run_with_db(lambda db: get_timeline(db, PICK, "L2024"))
    assert [e.event_type for e in timeline.events] == ["pick_trade", "pick_selected"]
    assert (timeline.events[0].from_user_id, timeline.events[0].to_user_id) == ("u5", "u2")
    assert timeline.player is None


def test_player_b_timeline(rebuilt, run_with_db):
    timeline = run_with_db(lambda db: get_timeline(db, PLAYER_B, "L2024"))
    assert [e.event_type for e in timeline.events] == ["draft_selected"]
    assert timeline.events[0].to_user_id == "u2"


def test_timeline_from_older_league_sees_only_its_family(rebuilt, run_with_db):
    timeline = run_with_db(lambda db: get_timeline(db, PICK, "L2023"))
    assert [e.event_type for e in timeline.events] == ["pick_trade"]


def test_unknown_asset_differs_from_empty_history(rebuilt, run_with_db):
    with pytest.raises(UnknownAsset):
        run_with_db(lambda db: get_timeline(db, AssetRef.player("nobody"), "L2024"))
    with pytest.raises(UnknownAsset):
        run_with_db(lambda db: get_timeline(db, AssetRef.pick("2025", 1, 99), "L2024"))
    # A real pick that never moved has no events but is not an error
    untouched = run_with_db(lambda db: get_timeline(db, AssetRef.pick("2025", 1, 3), "L2024"))
    assert untouched.events == []


def test_trade_tree_follows_pick_into_drafted_player(rebuilt, run_with_db):
    tree = run_with_db(lambda db: get_trade_tree(db, PLAYER_A, "L2024"))
    assert tree.asset == PLAYER_A
    [branch] = tree.branches
    assert branch.transaction_id == "t1"
    [pick_node] = branch.derived
    assert pick_node.asset == PICK
    # The trade that brought the pick in is not expanded again
    assert pick_node.branches == []
    assert pick_node.became is not None
    assert pick_node.became.asset == PLAYER_B
    assert [e.event_type for e in pick_node.became.events] == ["draft_selected"]


def test_trade_tree_from_pick_excludes_ancestors(rebuilt, run_with_db):
    tree = run_with_db(lambda db: get_trade_tree(db, PICK, "L2024"))
    [branch] = tree.branches
    [player_node] = branch.derived
    assert player_node.asset == PLAYER_A
    assert player_node.branches == []
    assert tree.became.asset == PLAYER_B


def test_trade_tree_depth_cap(rebuilt, run_with_db):
    async def capped(db):
        family = await get_league_family(db, "L2024")
        return await TradeTreeBuilder(db, family, max_depth=1).build(PLAYER_A)

    tree = run_with_db(capped)
    [pick_node] = tree.branches[0].derived
    assert pick_node.truncated
    assert pick_node.became is None


def test_network_depth_one(rebuilt, run_with_db):
    network = run_with_db(lambda db: get_network(db, PLAYER_A, "L2024", depth=1))
    depths = {node.asset.key: node.depth for node in network.nodes}
    assert depths == {"player:pA": 0, "pick:2024-1-5": 1}
    assert [t.transaction_id for t in network.transactions] == ["t1"]
    assert network.transactions[0].type == "trade"
    assert network.stats.total_nodes == 2
    assert network.stats.depth_distribution == {0: 1, 1: 1}
    [connection] = network.connections
    assert (connection.from_asset, connection.to_asset) == ("player:pA", "pick:2024-1-5")


def test_network_depth_two_reaches_drafted_player(rebuilt, run_with_db):
    network = run_with_db(lambda db: get_network(db, PLAYER_A, "L2024", depth=2))
    depths = {node.asset.key: node.depth for node in network.nodes}
    assert depths == {"player:pA": 0, "pick:2024-1-5": 1, "player:pB": 2}
    assert network.stats.transaction_types == {"trade": 1, "draft": 1}

    importance = {node.asset.key: node.importance for node in network.nodes}
    assert importance["pick:2024-1-5"] == 1.0
    assert importance["player:pA"] == 0.5
    assert all(0.1 <= value <= 1.0 for value in importance.values())


def test_network_first_discovery_depth_is_kept(rebuilt, run_with_db):
    shallow = run_with_db(lambda db: get_network(db, PICK, "L2024", depth=1))
    deep = run_with_db(lambda db: get_network(db, PICK, "L2024", depth=5))
    shallow_depths = {node.asset.key: node.depth for node in shallow.nodes}
    deep_depths = {node.asset.key: node.depth for node in deep.nodes}
    assert shallow_depths == {"pick:2024-1-5": 0, "player:pA": 1, "player:pB": 1}
    assert deep_depths == shallow_depths


@pytest.mark.parametrize("depth", [0, 6, -1])
def test_network_depth_out_of_range(depth, rebuilt, run_with_db):
    with pytest.raises(InvalidDepth):
        run_with_db(lambda db: get_network(db, PLAYER_A, "L2024", depth=depth))


def test_network_for_unknown_asset(rebuilt, run_with_db):
    with pytest.raises(UnknownAsset):
        run_with_db(lambda db: get_network(db, AssetRef.player("nobody"), "L2024", depth=1))


def test_trade_tree_repeats_asset_on_separate_branches(run_with_db):
    # u1 trades A for B and C, then flips B for D and later trades C along with D
    def moved(transaction_id, player_id, from_user, to_user, event_time):
        return AssetEvent(
            league_id="LX", season="2024", week=event_time // 1000, event_time=event_time,
            event_type="trade", asset_kind="player", player_id=player_id,
            from_user_id=from_user, to_user_id=to_user, transaction_id=transaction_id,
        )

    events = [
        moved("tx1", "A", "u1", "u2", 1000),
        moved("tx1", "B", "u2", "u1", 1000),
        moved("tx1", "C", "u2", "u1", 1000),
        moved("tx2", "B", "u1", "u3", 2000),
        moved("tx2", "D", "u3", "u1", 2000),
        moved("tx3", "C", "u1", "u4", 3000),
        moved("tx3", "D", "u1", "u4", 3000),
        moved("tx3", "E", "u4", "u1", 3000),
    ]

    async def scenario(db):
        await db.execute("INSERT INTO leagues (league_id, name, season) VALUES ('LX', 'Solo', '2024')")
        await db.commit()
        await event_store.replace_family_events(db, ["LX"], events)
        return await get_trade_tree(db, AssetRef.player("A"), "LX")

    tree = run_with_db(scenario)
    [branch] = tree.branches
    children = {node.asset.player_id: node for node in branch.derived}
    assert sorted(children) == ["B", "C"]
    [via_b] = children["B"].branches
    assert via_b.transaction_id == "tx2"
    assert [node.asset.player_id for node in via_b.derived] == ["D"]
    [via_c] = children["C"].branches
    assert via_c.transaction_id == "tx3"
    assert sorted(node.asset.player_id for node in via_c.derived) == ["D", "E"]
    # D's own trade with C is not expanded again beneath the C branch
    d_under_c = next(node for node in via_c.derived if node.asset.player_id == "D")
    assert [b.transaction_id for b in d_under_c.branches] == ["tx2"]
