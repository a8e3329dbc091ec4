import asyncio
from decimal import Decimal

import pytest

from models import PayoutRun, CommissionRecord
from mlm_system.errors import InsufficientConfigError
from mlm_system.events.event_bus import eventBus, MLMEvents
from mlm_system.services.rank_service import RankService
from mlm_system.utils.time_machine import timeMachine


def countRows(sessionFactory, model):
    session = sessionFactory()
    try:
        return session.query(model).count()
    finally:
        session.close()


@pytest.mark.parametrize("missing", ["pairRatio", "pairUnit", "commissionValue", "dailyCapAmount"])
def test_missing_money_settings_abort_before_any_change(engine, sessionFactory, planSettings, pairTree, missing):
    root, left, right = pairTree(150, 320)
    settings = dict(planSettings)
    settings.pop(missing)

    with pytest.raises(InsufficientConfigError) as exc:
        asyncio.run(engine.runPayoutCycle(settings))

    assert any(missing in problem for problem in exc.value.problems)
    node = asyncio.run(engine.getNode(root))
    assert node.leftVolume == 150
    assert node.rightVolume == 320
    assert countRows(sessionFactory, PayoutRun) == 0
    assert countRows(sessionFactory, CommissionRecord) == 0


@pytest.mark.parametrize("settings", [
    {"pairRatio": "1:0"},
    {"pairRatio": "even"},
    {"pairUnit": "0"},
    {"dailyCapAmount": "-5"},
    {"commissionType": "PER_MOON"},
    {"matchingBonusGenerations": None},
])
def test_invalid_settings_abort(engine, planSettings, pairTree, settings):
    pairTree(150, 150)

    with pytest.raises(InsufficientConfigError):
        asyncio.run(engine.runPayoutCycle(dict(planSettings, **settings)))


def test_failure_mid_cycle_rolls_everything_back(engine, sessionFactory, pairTree, monkeypatch):
    root, left, right = pairTree(150, 320)

    failures = []
    eventBus.subscribe(MLMEvents.PAYOUT_CYCLE_FAILED, failures.append)

    async def explode(self, thresholds=None, payoutRunId=None):
        raise RuntimeError("rank store unavailable")

    monkeypatch.setattr(RankService, "evaluateAll", explode)

    with pytest.raises(RuntimeError):
        asyncio.run(engine.runPayoutCycle())

    node = asyncio.run(engine.getNode(root))
    assert node.leftVolume == 150
    assert node.rightVolume == 320
    assert node.cumulativeEarnings == 0
    assert countRows(sessionFactory, PayoutRun) == 0
    assert countRows(sessionFactory, CommissionRecord) == 0

    (entry,) = asyncio.run(engine.getSystemLog(action="COMMISSION_RUN_FAILED"))
    assert entry["type"] == "ERROR"
    assert "rank store unavailable" in entry["details"]
    assert failures == [{"error": "rank store unavailable"}]


def test_original_error_survives_failed_failure_record(engine, pairTree, monkeypatch):
    pairTree(150, 320)

    async def explode(self, thresholds=None, payoutRunId=None):
        raise RuntimeError("rank store unavailable")

    async def storageDown(error):
        raise RuntimeError("audit store unavailable")

    monkeypatch.setattr(RankService, "evaluateAll", explode)
    monkeypatch.setattr(engine, "_recordCycleFailure", storageDown)

    with pytest.raises(RuntimeError, match="rank store unavailable"):
        asyncio.run(engine.runPayoutCycle())


def test_cycle_records_run_and_audit_trail(engine, sessionFactory, pairTree):
    root, left, right = pairTree(150, 320)

    summary = asyncio.run(engine.runPayoutCycle())

    assert summary.nodesProcessed == 3
    assert summary.totalCommissionPaid == Decimal("30")
    assert summary.asOf == timeMachine.now

    session = sessionFactory()
    try:
        run = session.query(PayoutRun).one()
        assert run.payoutRunID == summary.payoutRunId
        assert run.status == "completed"
        assert run.nodesProcessed == 3
        assert run.totalCommissionPaid == Decimal("30")
        assert run.configSnapshot["pairRatio"] == "1:1"
    finally:
        session.close()

    actions = [entry["action"] for entry in asyncio.run(engine.getSystemLog(limit=10))]
    assert actions[0] == "COMMISSION_RUN_COMPLETE"
    assert "BINARY_PAYOUT" in actions
    assert "COMMISSION_RUN_START" in actions


def test_events_are_emitted_after_commit(engine, sessionFactory, pairTree):
    root, left, right = pairTree(150, 320)
    seen = []

    def onCommission(data):
        # A fresh session must already see the committed payout
        session = sessionFactory()
        try:
            paid = session.query(CommissionRecord).filter_by(recipientID=data["nodeId"]).count()
        finally:
            session.close()
        seen.append((data["nodeId"], data["amount"], paid))

    eventBus.subscribe(MLMEvents.BINARY_COMMISSION_PAID, onCommission)
    asyncio.run(engine.runPayoutCycle())

    assert seen == [(root, Decimal("30"), 1)]


def test_failing_subscriber_does_not_undo_cycle(engine, pairTree):
    root, left, right = pairTree(150, 150)

    def broken(data):
        raise RuntimeError("wallet service down")

    eventBus.subscribe(MLMEvents.PAYOUT_CYCLE_COMPLETED, broken)
    summary = asyncio.run(engine.runPayoutCycle())

    assert summary.totalCommissionPaid == Decimal("30")
    assert asyncio.run(engine.getNode(root)).leftVolume == 0


def test_cycle_on_empty_network(engine):
    summary = asyncio.run(engine.runPayoutCycle())

    assert summary.nodesProcessed == 0
    assert summary.totalCommissionPaid == 0
