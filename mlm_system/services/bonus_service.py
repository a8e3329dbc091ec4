# mlm_system/services/bonus_service.py
"""
Bonus distributor - referral and matching bonuses along the sponsor chain.

Both bonuses follow sponsorID only. Placement parents are never consulted
here, even when a member spilled over far below their sponsor.
"""
from datetime import date
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.orm import Session
import logging

from models import Node, CommissionRecord
from mlm_system.config.compensation import CompensationConfig
from mlm_system.config.ranks import COMMISSION_REFERRAL, COMMISSION_MATCHING
from mlm_system.events.event_bus import MLMEvents
from mlm_system.services.audit_service import AuditService
from mlm_system.services.tree_service import TreeService
from mlm_system.utils.money import percentOf, purchaseAmount, toDecimal, ZERO

logger = logging.getLogger(__name__)


class BonusService:
    """Service for referral and matching bonuses."""

    def __init__(self, session: Session, outbox: Optional[list] = None):
        self.session = session
        self.tree = TreeService(session)
        self.audit = AuditService(session)
        self.outbox = outbox if outbox is not None else []

    def _credit(self, recipient: Node, amount: Decimal):
        recipient.cumulativeEarnings = (recipient.cumulativeEarnings or ZERO) + amount

    async def distributeReferralBonus(
            self,
            purchaserId: int,
            pv,
            price,
            config: CompensationConfig
    ) -> Optional[CommissionRecord]:
        """
        Pay the purchaser's direct sponsor price * referralBonusPercentage%.
        Returns None for the root or when the bonus rounds to zero.
        """
        config.validateForPurchase()
        price = purchaseAmount(price, "Purchase price", allowZero=True)

        purchaser = self.tree.getNode(purchaserId)
        if purchaser.sponsorID is None:
            return None

        sponsor = self.tree.getNode(purchaser.sponsorID)
        bonusAmount = percentOf(price, config.referralBonusPercentage)
        if bonusAmount <= 0:
            logger.info(f"Referral bonus for purchase by {purchaserId} is zero, skipped")
            return None

        self._credit(sponsor, bonusAmount)
        record = self.audit.recordCommission(
            recipientId=sponsor.nodeID,
            commissionType=COMMISSION_REFERRAL,
            amount=bonusAmount,
            sourceNodeId=purchaserId,
            originAmount=toDecimal(price),
            rate=config.referralBonusPercentage,
            generation=1,
            notes=f"Referral bonus for purchase of {pv} PV by node {purchaserId}"
        )

        self.audit.log(
            "REFERRAL_BONUS",
            f"Sponsor {sponsor.nodeID} earned {bonusAmount} "
            f"({config.referralBonusPercentage}% of {price}) from node {purchaserId}",
            nodeId=sponsor.nodeID,
            payload={
                "sourceNodeId": purchaserId,
                "pv": toDecimal(pv),
                "price": toDecimal(price),
                "percentage": config.referralBonusPercentage,
                "amount": bonusAmount
            }
        )
        self.outbox.append((MLMEvents.REFERRAL_BONUS_PAID, {
            "nodeId": sponsor.nodeID,
            "sourceNodeId": purchaserId,
            "amount": bonusAmount
        }))
        return record

    async def distributeMatchingBonus(
            self,
            nodeId: int,
            commissionPaid,
            config: CompensationConfig,
            payoutRunId: Optional[int] = None,
            payoutDay: Optional[date] = None
    ) -> List[CommissionRecord]:
        """
        Generation k sponsor of nodeId gets commissionPaid * generations[k]%.
        Stops early when the sponsor chain reaches the root.
        """
        base = toDecimal(commissionPaid)
        generations = config.matchingBonusGenerations or []
        if base <= 0 or not generations:
            return []

        records = []
        sponsors = self.tree.getSponsorChain(nodeId, len(generations))

        for generation, sponsor in enumerate(sponsors, start=1):
            rate = generations[generation - 1]
            bonusAmount = percentOf(base, rate)
            if bonusAmount <= 0:
                continue

            self._credit(sponsor, bonusAmount)
            records.append(self.audit.recordCommission(
                recipientId=sponsor.nodeID,
                commissionType=COMMISSION_MATCHING,
                amount=bonusAmount,
                sourceNodeId=nodeId,
                originAmount=base,
                rate=rate,
                generation=generation,
                payoutRunId=payoutRunId,
                payoutDay=payoutDay,
                notes=f"Matching bonus ({rate}%) on binary income of node {nodeId}"
            ))

            self.audit.log(
                "MATCHING_BONUS",
                f"Sponsor {sponsor.nodeID} earned {bonusAmount} "
                f"(generation {generation}, {rate}% of {base}) from node {nodeId}",
                nodeId=sponsor.nodeID,
                payoutRunId=payoutRunId,
                payload={
                    "sourceNodeId": nodeId,
                    "generation": generation,
                    "originAmount": base,
                    "rate": rate,
                    "amount": bonusAmount
                }
            )
            self.outbox.append((MLMEvents.MATCHING_BONUS_PAID, {
                "nodeId": sponsor.nodeID,
                "sourceNodeId": nodeId,
                "generation": generation,
                "amount": bonusAmount,
                "payoutRunId": payoutRunId
            }))

        if len(sponsors) < len(generations):
            logger.debug(
                f"Matching bonus for node {nodeId} stopped at generation {len(sponsors)}: sponsor chain ended"
            )
        return records
