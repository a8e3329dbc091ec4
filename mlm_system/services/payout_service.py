# mlm_system/services/payout_service.py
"""
Payout cycle orchestrator.

One cycle = pairing for every active node, matching bonuses on what was
paid, rank evaluation, one audit-logged batch. The caller runs it inside a
single transaction so a failure leaves the tree exactly as it was.
"""
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session
import logging

from models import PayoutRun
from mlm_system.config.compensation import CompensationConfig
from mlm_system.events.event_bus import MLMEvents
from mlm_system.results import PayoutSummary
from mlm_system.services.audit_service import AuditService
from mlm_system.services.bonus_service import BonusService
from mlm_system.services.pairing_service import PairingService
from mlm_system.services.rank_service import RankService
from mlm_system.utils.money import ZERO
from mlm_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


class PayoutService:
    """Service sequencing a full payout cycle."""

    def __init__(self, session: Session, outbox: Optional[list] = None):
        self.session = session
        self.outbox = outbox if outbox is not None else []
        self.audit = AuditService(session)
        self.pairingService = PairingService(session, self.outbox)
        self.bonusService = BonusService(session, self.outbox)
        self.rankService = RankService(session, self.outbox)

    async def runPayoutCycle(
            self,
            config: CompensationConfig,
            asOf: Optional[datetime] = None
    ) -> PayoutSummary:
        # Fail closed before anything is written
        config.validateForPayout()
        asOf = asOf or timeMachine.now
        payoutDay = timeMachine.payoutDay(asOf)

        run = PayoutRun(asOf=asOf, status="running", configSnapshot=config.toDict())
        self.session.add(run)
        self.session.flush()
        runId = run.payoutRunID

        self.audit.log("COMMISSION_RUN_START", f"Payout cycle {runId} started as of {asOf}", payoutRunId=runId)

        summary = PayoutSummary(payoutRunId=runId, asOf=asOf)

        # 1. Pairing
        summary.results = await self.pairingService.runPairingCycle(config, asOf, runId)
        summary.nodesProcessed = len(summary.results)

        # 2. Matching bonus on whatever pairing actually paid
        for result in summary.results:
            summary.totalCommissionPaid += result.commissionPaid
            summary.totalForfeited += result.cappedAmount
            if result.commissionPaid <= 0:
                continue
            records = await self.bonusService.distributeMatchingBonus(
                result.nodeId, result.commissionPaid, config, runId, payoutDay
            )
            summary.totalMatchingPaid += sum((r.amount for r in records), ZERO)

        # 3. Ranks, after every earning of the cycle is in
        summary.rankChanges = await self.rankService.evaluateAll(config.rankThresholds, runId)

        run.status = "completed"
        run.nodesProcessed = summary.nodesProcessed
        run.totalCommissionPaid = summary.totalCommissionPaid
        run.totalMatchingPaid = summary.totalMatchingPaid
        run.totalForfeited = summary.totalForfeited
        run.rankChanges = len(summary.rankChanges)

        self.audit.log(
            "COMMISSION_RUN_COMPLETE",
            f"Payout cycle {runId}: processed {summary.nodesProcessed} nodes, "
            f"binary {summary.totalCommissionPaid}, matching {summary.totalMatchingPaid}, "
            f"forfeited {summary.totalForfeited}, rank changes {len(summary.rankChanges)}",
            "SUCCESS",
            payoutRunId=runId,
            payload={
                "nodesProcessed": summary.nodesProcessed,
                "totalCommissionPaid": summary.totalCommissionPaid,
                "totalMatchingPaid": summary.totalMatchingPaid,
                "totalForfeited": summary.totalForfeited
            }
        )
        self.outbox.append((MLMEvents.PAYOUT_CYCLE_COMPLETED, {
            "payoutRunId": runId,
            "nodesProcessed": summary.nodesProcessed,
            "totalCommissionPaid": summary.totalCommissionPaid
        }))
        return summary
