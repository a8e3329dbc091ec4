import asyncio
from decimal import Decimal

from mlm_system.config.ranks import COMMISSION_BINARY


def binaryRecords(engine, nodeId):
    history = asyncio.run(engine.getCommissionHistory(nodeId))
    return [record for record in history if record["type"] == COMMISSION_BINARY]


def resultFor(summary, nodeId):
    return next(r for r in summary.results if r.nodeId == nodeId)


def test_pairs_are_floored_and_remainder_carried(engine, pairTree):
    root, left, right = pairTree(150, 320)

    summary = asyncio.run(engine.runPayoutCycle())
    result = resultFor(summary, root)

    assert result.pairsMatched == 3
    assert result.commissionPaid == Decimal("30")
    node = asyncio.run(engine.getNode(root))
    assert node.leftVolume == 0
    assert node.rightVolume == 170
    # Lifetime totals are never flushed
    assert node.leftVolumeTotal == 150
    assert node.rightVolumeTotal == 320
    assert node.cumulativeEarnings == Decimal("30")


def test_daily_cap_truncates_but_flushes_all_matched_volume(engine, planSettings, pairTree):
    root, left, right = pairTree(1000, 1000)

    summary = asyncio.run(engine.runPayoutCycle(dict(planSettings, dailyCapAmount="100")))
    result = resultFor(summary, root)

    assert result.pairsMatched == 20
    assert result.commissionPaid == Decimal("100")
    assert result.cappedAmount == Decimal("100")
    assert summary.totalForfeited == Decimal("100")

    node = asyncio.run(engine.getNode(root))
    assert node.leftVolume == 0
    assert node.rightVolume == 0
    assert node.cumulativeEarnings == Decimal("100")

    (record,) = binaryRecords(engine, root)
    assert record["amount"] == Decimal("100")
    assert record["cappedAmount"] == Decimal("100")
    assert record["pairsMatched"] == 20


def test_second_cycle_without_new_volume_pays_nothing(engine, pairTree):
    root, left, right = pairTree(150, 320)

    asyncio.run(engine.runPayoutCycle())
    before = asyncio.run(engine.getNode(root))
    summary = asyncio.run(engine.runPayoutCycle())
    after = asyncio.run(engine.getNode(root))

    assert summary.totalCommissionPaid == 0
    assert resultFor(summary, root).pairsMatched == 0
    assert after.cumulativeEarnings == before.cumulativeEarnings
    assert after.rightVolume == before.rightVolume == 170
    assert len(binaryRecords(engine, root)) == 1


def test_daily_cap_spans_cycles_of_the_same_day(engine, planSettings, pairTree):
    capped = dict(planSettings, dailyCapAmount="100")
    root, left, right = pairTree(400, 400)

    first = asyncio.run(engine.runPayoutCycle(capped))
    assert resultFor(first, root).commissionPaid == Decimal("80")

    asyncio.run(engine.creditPurchase(left, 250, 0))
    asyncio.run(engine.creditPurchase(right, 250, 0))
    second = asyncio.run(engine.runPayoutCycle(capped))
    result = resultFor(second, root)
    assert result.pairsMatched == 5
    assert result.commissionPaid == Decimal("20")
    assert result.cappedAmount == Decimal("30")


def test_daily_cap_resets_next_day(engine, planSettings, pairTree):
    from mlm_system.utils.time_machine import timeMachine

    capped = dict(planSettings, dailyCapAmount="100")
    root, left, right = pairTree(1000, 1000)
    asyncio.run(engine.runPayoutCycle(capped))

    timeMachine.advanceTime(days=1)
    asyncio.run(engine.creditPurchase(left, 250, 0))
    asyncio.run(engine.creditPurchase(right, 250, 0))
    summary = asyncio.run(engine.runPayoutCycle(capped))

    assert resultFor(summary, root).commissionPaid == Decimal("50")
    days = {record["payoutDay"] for record in binaryRecords(engine, root)}
    assert len(days) == 2


def test_uneven_ratio(engine, planSettings, pairTree):
    root, left, right = pairTree(200, 130)

    summary = asyncio.run(engine.runPayoutCycle(dict(planSettings, pairRatio="2:1")))
    result = resultFor(summary, root)

    # min(200 // 100, 130 // 50) = 2
    assert result.pairsMatched == 2
    assert result.commissionPaid == Decimal("20")
    assert result.leftRemainder == 0
    assert result.rightRemainder == 30


def test_heavy_side_can_be_right(engine, planSettings, pairTree):
    root, left, right = pairTree(100, 100)

    summary = asyncio.run(engine.runPayoutCycle(dict(planSettings, pairRatio="1:2")))
    result = resultFor(summary, root)

    assert result.pairsMatched == 1
    assert result.leftRemainder == 50
    assert result.rightRemainder == 0


def test_weak_leg_percent_commission(engine, planSettings, pairTree):
    root, left, right = pairTree(150, 320)

    summary = asyncio.run(engine.runPayoutCycle(dict(planSettings, commissionType="WEAK_LEG_PERCENT")))

    # 10% of the 150 PV matched on the weak leg
    assert resultFor(summary, root).commissionPaid == Decimal("15.00")


def test_flush_carry_forward(engine, planSettings, pairTree):
    root, left, right = pairTree(150, 320)

    asyncio.run(engine.runPayoutCycle(dict(planSettings, flushCarryForward=True)))

    node = asyncio.run(engine.getNode(root))
    assert node.leftVolume == 0
    assert node.rightVolume == 0


def test_inactive_nodes_are_not_paired(engine, pairTree):
    root, left, right = pairTree(150, 150)
    asyncio.run(engine.deactivateMember(root))

    summary = asyncio.run(engine.runPayoutCycle())

    assert root not in [r.nodeId for r in summary.results]
    node = asyncio.run(engine.getNode(root))
    assert node.leftVolume == 150
    assert node.cumulativeEarnings == 0


def test_below_one_unit_nothing_flushed(engine, pairTree):
    root, left, right = pairTree(49, 500)

    summary = asyncio.run(engine.runPayoutCycle())

    assert resultFor(summary, root).pairsMatched == 0
    node = asyncio.run(engine.getNode(root))
    assert node.leftVolume == 49
    assert node.rightVolume == 500
    assert binaryRecords(engine, root) == []
