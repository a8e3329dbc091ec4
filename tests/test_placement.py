import asyncio

import pytest

from models import Node, HoldingTankEntry, LEFT, RIGHT
from mlm_system.errors import SlotTakenError, InvalidPlacementError, NodeNotFoundError
from mlm_system.results import HoldingTankSnapshot
from mlm_system.services.tree_service import TreeService


def countNodes(sessionFactory):
    session = sessionFactory()
    try:
        return session.query(Node).count()
    finally:
        session.close()


def test_first_member_becomes_root(engine):
    rootId = asyncio.run(engine.enrollMember(None, memberRef="founder"))
    root = asyncio.run(engine.getNode(rootId))

    assert root.isPlaced
    assert root.parentId is None
    assert root.sponsorId is None
    assert root.depth == 0
    assert root.rank == "bronze"


def test_second_root_is_rejected(engine):
    asyncio.run(engine.enrollMember(None))
    with pytest.raises(InvalidPlacementError):
        asyncio.run(engine.enrollMember(None))


def test_left_strategy_descends_outer_left_edge(engine):
    async def scenario():
        root = await engine.enrollMember(None)
        ids = [await engine.enrollMember(root, "left") for _ in range(3)]
        return root, ids

    root, ids = asyncio.run(scenario())
    nodes = [asyncio.run(engine.getNode(i)) for i in ids]

    assert [n.parentId for n in nodes] == [root, ids[0], ids[1]]
    assert all(n.position == LEFT for n in nodes)
    assert [n.depth for n in nodes] == [1, 2, 3]
    assert all(n.sponsorId == root for n in nodes)


def test_right_strategy_descends_outer_right_edge(engine):
    async def scenario():
        root = await engine.enrollMember(None)
        first = await engine.enrollMember(root, "right")
        second = await engine.enrollMember(root, "extreme_right")
        return first, second

    first, second = asyncio.run(scenario())
    node = asyncio.run(engine.getNode(second))
    assert node.parentId == first
    assert node.position == RIGHT


def test_weaker_leg_follows_lifetime_volume(engine):
    async def scenario():
        root = await engine.enrollMember(None)
        first = await engine.enrollMember(root, "weaker_leg")
        await engine.creditPurchase(first, 100, 0)
        second = await engine.enrollMember(root, "weaker_leg")
        return root, first, second

    root, first, second = asyncio.run(scenario())

    # Tie goes left, then the empty right leg is the weaker one
    assert asyncio.run(engine.getNode(first)).position == LEFT
    node = asyncio.run(engine.getNode(second))
    assert node.parentId == root
    assert node.position == RIGHT


def test_alternating_switches_sides_per_sponsor(engine):
    async def scenario():
        root = await engine.enrollMember(None)
        return root, [await engine.enrollMember(root, "alternating") for _ in range(3)]

    root, (a, b, c) = asyncio.run(scenario())

    assert asyncio.run(engine.getNode(a)).position == LEFT
    assert asyncio.run(engine.getNode(b)).position == RIGHT
    third = asyncio.run(engine.getNode(c))
    assert third.parentId == a
    assert third.position == LEFT


def test_spillover_keeps_sponsor(engine):
    async def scenario():
        root = await engine.enrollMember(None)
        a = await engine.enrollMember(root, explicitPosition=LEFT)
        await engine.enrollMember(root, explicitPosition=RIGHT)
        x = await engine.enrollMember(root, "left")
        return root, a, x

    root, a, x = asyncio.run(scenario())
    node = asyncio.run(engine.getNode(x))

    assert node.parentId == a
    assert node.sponsorId == root
    assert asyncio.run(engine.getNode(root)).directRecruitCount == 3
    assert asyncio.run(engine.getNode(a)).directRecruitCount == 0


def test_explicit_position_taken_creates_nothing(engine, sessionFactory):
    async def scenario():
        root = await engine.enrollMember(None)
        occupant = await engine.enrollMember(root, explicitPosition=LEFT)
        return root, occupant

    root, occupant = asyncio.run(scenario())
    before = countNodes(sessionFactory)

    with pytest.raises(SlotTakenError) as exc:
        asyncio.run(engine.enrollMember(root, explicitPosition=LEFT))

    assert exc.value.parentId == root
    assert exc.value.position == LEFT
    assert exc.value.occupantId == occupant
    assert countNodes(sessionFactory) == before
    assert asyncio.run(engine.getNode(root)).directRecruitCount == 1


def test_unknown_sponsor(engine):
    asyncio.run(engine.enrollMember(None))
    with pytest.raises(NodeNotFoundError):
        asyncio.run(engine.enrollMember(999, "left"))


def test_unknown_strategy_rejected(engine, sessionFactory):
    root = asyncio.run(engine.enrollMember(None))
    with pytest.raises(InvalidPlacementError) as exc:
        asyncio.run(engine.enrollMember(root, "zigzag"))

    assert "zigzag" in str(exc.value)
    assert countNodes(sessionFactory) == 1
    with pytest.raises(InvalidPlacementError):
        asyncio.run(engine.setPlacementPreference(root, spilloverPreference="zigzag"))


# region Holding tank

def test_holding_tank_flow_with_pending_volume(engine):
    async def park():
        root = await engine.enrollMember(None)
        parked = await engine.enrollMember(root, "holding_tank")
        return root, parked

    root, parked = asyncio.run(park())
    assert isinstance(parked, HoldingTankSnapshot)
    assert parked.sponsorId == root

    pendingId = parked.pendingUserId
    node = asyncio.run(engine.getNode(pendingId))
    assert not node.isPlaced
    assert node.parentId is None

    # Volume bought while waiting is held, not rolled up
    asyncio.run(engine.creditPurchase(pendingId, 80, 0))
    assert asyncio.run(engine.getNode(pendingId)).pendingVolume == 80
    assert asyncio.run(engine.getNode(root)).leftVolume == 0

    tank = asyncio.run(engine.getHoldingTank(root))
    assert [entry.pendingUserId for entry in tank] == [pendingId]

    placedId = asyncio.run(engine.placePendingMember(pendingId, root, RIGHT))
    assert placedId == pendingId

    node = asyncio.run(engine.getNode(pendingId))
    rootNode = asyncio.run(engine.getNode(root))
    assert node.isPlaced
    assert node.parentId == root
    assert node.position == RIGHT
    assert node.pendingVolume == 0
    assert rootNode.rightVolume == 80
    assert rootNode.rightChildId == pendingId
    assert asyncio.run(engine.getHoldingTank(root)) == []


def test_sponsor_holding_tank_setting(engine):
    async def scenario():
        root = await engine.enrollMember(None)
        await engine.setPlacementPreference(root, holdingTank="enabled")
        return root, await engine.enrollMember(root)

    root, result = asyncio.run(scenario())
    assert isinstance(result, HoldingTankSnapshot)


def test_sponsor_spillover_preference(engine):
    async def scenario():
        root = await engine.enrollMember(None)
        snapshot = await engine.setPlacementPreference(root, spilloverPreference="extreme_right")
        return root, snapshot, await engine.enrollMember(root)

    root, snapshot, nodeId = asyncio.run(scenario())
    assert asyncio.run(engine.getNode(nodeId)).position == RIGHT


def test_invalid_preference_rejected(engine):
    root = asyncio.run(engine.enrollMember(None))
    with pytest.raises(InvalidPlacementError):
        asyncio.run(engine.setPlacementPreference(root, holdingTank="sometimes"))


def test_place_member_not_in_tank(engine):
    async def scenario():
        root = await engine.enrollMember(None)
        return root, await engine.enrollMember(root, "left")

    root, placed = asyncio.run(scenario())
    with pytest.raises(InvalidPlacementError):
        asyncio.run(engine.placePendingMember(placed, root, RIGHT))


def test_place_under_missing_parent(engine):
    async def scenario():
        root = await engine.enrollMember(None)
        return await engine.enrollMember(root, "holding_tank")

    parked = asyncio.run(scenario())
    with pytest.raises(InvalidPlacementError):
        asyncio.run(engine.placePendingMember(parked.pendingUserId, 999, LEFT))


def test_place_under_own_subtree_is_rejected(engine):
    async def scenario():
        root = await engine.enrollMember(None)
        parked = await engine.enrollMember(root, "holding_tank")
        return parked.pendingUserId

    pendingId = asyncio.run(scenario())
    with pytest.raises(InvalidPlacementError):
        asyncio.run(engine.placePendingMember(pendingId, pendingId, LEFT))


def test_concurrent_placements_into_one_slot(engine):
    async def scenario():
        root = await engine.enrollMember(None)
        first = await engine.enrollMember(root, "holding_tank")
        second = await engine.enrollMember(root, "holding_tank")
        results = await asyncio.gather(
            engine.placePendingMember(first.pendingUserId, root, LEFT),
            engine.placePendingMember(second.pendingUserId, root, LEFT),
            return_exceptions=True
        )
        return root, first, second, results

    root, first, second, results = asyncio.run(scenario())

    assert results[0] == first.pendingUserId
    assert isinstance(results[1], SlotTakenError)
    assert asyncio.run(engine.getNode(root)).leftChildId == first.pendingUserId
    # The loser stays in the tank for another try
    tank = asyncio.run(engine.getHoldingTank(root))
    assert [entry.pendingUserId for entry in tank] == [second.pendingUserId]


def test_slot_constraint_catches_missed_check(engine, monkeypatch):
    async def scenario():
        root = await engine.enrollMember(None)
        await engine.enrollMember(root, explicitPosition=LEFT)
        return root, await engine.enrollMember(root, "holding_tank")

    root, parked = asyncio.run(scenario())

    # Simulate a writer in another process claiming the slot after our check
    monkeypatch.setattr(TreeService, "getChild", lambda self, parentId, position: None)

    with pytest.raises(SlotTakenError) as exc:
        asyncio.run(engine.placePendingMember(parked.pendingUserId, root, LEFT))

    assert exc.value.occupantId is None
    monkeypatch.undo()
    assert not asyncio.run(engine.getNode(parked.pendingUserId)).isPlaced
    assert len(asyncio.run(engine.getHoldingTank(root))) == 1


def test_enrollment_into_concurrently_claimed_slot(engine, sessionFactory, monkeypatch):
    root = asyncio.run(engine.enrollMember(None))
    taken = asyncio.run(engine.enrollMember(root, explicitPosition=RIGHT))

    monkeypatch.setattr(TreeService, "getChild", lambda self, parentId, position: None)

    with pytest.raises(SlotTakenError) as exc:
        asyncio.run(engine.enrollMember(root, explicitPosition=RIGHT))

    assert exc.value.parentId == root
    assert exc.value.position == RIGHT
    monkeypatch.undo()
    assert countNodes(sessionFactory) == 2
    assert asyncio.run(engine.getNode(root)).rightChildId == taken


def test_holding_tank_entries_are_unique_per_member(sessionFactory, engine):
    async def scenario():
        root = await engine.enrollMember(None)
        return root, await engine.enrollMember(root, "holding_tank")

    root, parked = asyncio.run(scenario())

    session = sessionFactory()
    try:
        assert session.query(HoldingTankEntry).filter_by(pendingUserID=parked.pendingUserId).count() == 1
    finally:
        session.close()

# endregion
