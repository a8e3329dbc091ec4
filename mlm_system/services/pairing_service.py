# mlm_system/services/pairing_service.py
"""
Pairing engine - matches left/right volume into commissionable pairs.

For every active placed node, exactly once per cycle:

    pairs   = floor(min(left / (leftRatio * unit), right / (rightRatio * unit)))
    raw     = pairs * commissionValue                  (FIXED_PAIR)
            = matched weak-leg PV * commissionValue%   (WEAK_LEG_PERCENT)
    paid    = min(raw, dailyCap - alreadyPaidToday), never negative
    left   -= pairs * leftRatio * unit
    right  -= pairs * rightRatio * unit

Matched volume is flushed in full even when the cap truncates the payout;
the truncated part is forfeited and recorded as cappedAmount.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
import logging

from models import Node, CommissionRecord
from mlm_system.config.compensation import CompensationConfig, WEAK_LEG_PERCENT
from mlm_system.config.ranks import COMMISSION_BINARY
from mlm_system.events.event_bus import MLMEvents
from mlm_system.results import PairingResult
from mlm_system.services.audit_service import AuditService
from mlm_system.services.tree_service import TreeService
from mlm_system.utils.money import money, percentOf, ZERO
from mlm_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


class PairingService:
    """Service for binary pairing cycles."""

    def __init__(self, session: Session, outbox: Optional[list] = None):
        self.session = session
        self.tree = TreeService(session)
        self.audit = AuditService(session)
        self.outbox = outbox if outbox is not None else []

    async def runPairingCycle(
            self,
            config: CompensationConfig,
            asOf: Optional[datetime] = None,
            payoutRunId: Optional[int] = None
    ) -> List[PairingResult]:
        """Evaluate every active placed node once, deepest first."""
        config.validateForPayout()
        asOf = asOf or timeMachine.now
        payoutDay = timeMachine.payoutDay(asOf)

        results = []
        for node in self.tree.nodesBottomUp(activeOnly=True):
            results.append(await self._pairNode(node, config, payoutDay, payoutRunId))

        paired = sum(1 for r in results if r.pairsMatched > 0)
        logger.info(
            f"Pairing cycle for {payoutDay}: evaluated={len(results)}, paired={paired}, "
            f"paid={sum((r.commissionPaid for r in results), ZERO)}"
        )
        return results

    async def _pairNode(
            self,
            node: Node,
            config: CompensationConfig,
            payoutDay: date,
            payoutRunId: Optional[int]
    ) -> PairingResult:
        leftRatio, rightRatio = config.ratio
        leftQuantum = config.pairUnit * leftRatio
        rightQuantum = config.pairUnit * rightRatio

        left = node.leftVolume or ZERO
        right = node.rightVolume or ZERO

        # Decimal // on non-negative values is floor division
        pairs = int(min(left // leftQuantum, right // rightQuantum))
        if pairs <= 0:
            return PairingResult(
                nodeId=node.nodeID,
                pairsMatched=0,
                commissionPaid=ZERO,
                leftRemainder=left,
                rightRemainder=right
            )

        leftFlush = pairs * leftQuantum
        rightFlush = pairs * rightQuantum

        rawCommission = self._rawCommission(pairs, leftFlush, rightFlush, config)
        paidToday = self.paidToday(node.nodeID, payoutDay)
        room = max(config.dailyCapAmount - paidToday, ZERO)
        commissionPaid = money(min(rawCommission, room))
        cappedAmount = rawCommission - commissionPaid

        node.leftVolume = left - leftFlush
        node.rightVolume = right - rightFlush

        carryFlushed = ZERO
        if config.flushCarryForward:
            carryFlushed = node.leftVolume + node.rightVolume
            node.leftVolume = ZERO
            node.rightVolume = ZERO

        node.cumulativeEarnings = (node.cumulativeEarnings or ZERO) + commissionPaid

        self.audit.recordCommission(
            recipientId=node.nodeID,
            commissionType=COMMISSION_BINARY,
            amount=commissionPaid,
            sourceNodeId=node.nodeID,
            originAmount=rawCommission,
            rate=config.commissionValue,
            pairsMatched=pairs,
            cappedAmount=cappedAmount,
            payoutRunId=payoutRunId,
            payoutDay=payoutDay,
            notes=f"Matched {pairs} pairs" + (" (capped)" if cappedAmount > 0 else "")
        )

        details = (
            f"Node {node.nodeID}: matched {pairs} pairs, paid {commissionPaid}, "
            f"flushed L{leftFlush}/R{rightFlush}, carry L{node.leftVolume}/R{node.rightVolume}"
        )
        if cappedAmount > 0:
            details += f", {cappedAmount} over daily cap forfeited"
        self.audit.log(
            "BINARY_PAYOUT",
            details,
            "WARNING" if cappedAmount > 0 else "INFO",
            nodeId=node.nodeID,
            payoutRunId=payoutRunId,
            payload={
                "pairsMatched": pairs,
                "rawCommission": rawCommission,
                "commissionPaid": commissionPaid,
                "cappedAmount": cappedAmount,
                "paidTodayBefore": paidToday,
                "leftFlushed": leftFlush,
                "rightFlushed": rightFlush,
                "carryFlushed": carryFlushed,
                "leftRemainder": node.leftVolume,
                "rightRemainder": node.rightVolume
            }
        )

        if commissionPaid > 0:
            self.outbox.append((MLMEvents.BINARY_COMMISSION_PAID, {
                "nodeId": node.nodeID,
                "amount": commissionPaid,
                "pairsMatched": pairs,
                "payoutRunId": payoutRunId
            }))

        return PairingResult(
            nodeId=node.nodeID,
            pairsMatched=pairs,
            commissionPaid=commissionPaid,
            leftRemainder=node.leftVolume,
            rightRemainder=node.rightVolume,
            cappedAmount=cappedAmount
        )

    def _rawCommission(
            self,
            pairs: int,
            leftFlush: Decimal,
            rightFlush: Decimal,
            config: CompensationConfig
    ) -> Decimal:
        if config.commissionType == WEAK_LEG_PERCENT:
            return percentOf(min(leftFlush, rightFlush), config.commissionValue)
        return money(pairs * config.commissionValue)

    def paidToday(self, nodeId: int, payoutDay: date) -> Decimal:
        """Binary commission already paid to nodeId on this calendar day."""
        total = self.session.query(func.sum(CommissionRecord.amount)).filter(
            CommissionRecord.recipientID == nodeId,
            CommissionRecord.commissionType == COMMISSION_BINARY,
            CommissionRecord.payoutDay == payoutDay
        ).scalar()
        return Decimal(str(total)) if total is not None else ZERO
