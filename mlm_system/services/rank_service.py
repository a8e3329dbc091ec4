# mlm_system/services/rank_service.py
"""
Rank evaluator - highest rank whose earnings and recruit targets are met.
"""
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.orm import Session
import logging

from models import Node, RankHistory
from mlm_system.config.compensation import RankThreshold, defaultRankThresholds
from mlm_system.config.ranks import COMMISSION_RANK_BONUS
from mlm_system.events.event_bus import MLMEvents
from mlm_system.results import RankChange
from mlm_system.services.audit_service import AuditService
from mlm_system.services.tree_service import TreeService
from mlm_system.utils.money import money, ZERO

logger = logging.getLogger(__name__)


class RankService:
    """Service for rank qualification and advancement."""

    def __init__(self, session: Session, outbox: Optional[list] = None):
        self.session = session
        self.tree = TreeService(session)
        self.audit = AuditService(session)
        self.outbox = outbox if outbox is not None else []

    @staticmethod
    def rankIndex(rank: Optional[str], thresholds: List[RankThreshold]) -> int:
        """Position of rank in the ladder, -1 when unranked or unknown."""
        for index, threshold in enumerate(thresholds):
            if threshold.name == rank:
                return index
        return -1

    @staticmethod
    def qualifiedIndex(node: Node, thresholds: List[RankThreshold]) -> int:
        """Highest ladder position the node currently qualifies for."""
        earnings = node.cumulativeEarnings or ZERO
        recruits = node.directRecruitCount or 0

        best = -1
        for index, threshold in enumerate(thresholds):
            if earnings >= threshold.earningsTarget and recruits >= threshold.recruitsTarget:
                best = index
        return best

    async def evaluateRank(
            self,
            nodeId: int,
            thresholds: Optional[List[RankThreshold]] = None,
            payoutRunId: Optional[int] = None
    ) -> Optional[RankChange]:
        """
        Advance the node to the highest rank it qualifies for.
        Ranks never go down here; returns a change record only on advancement.
        """
        thresholds = thresholds or defaultRankThresholds()
        node = self.tree.getNode(nodeId)

        currentIndex = self.rankIndex(node.rank, thresholds)
        newIndex = self.qualifiedIndex(node, thresholds)
        if newIndex <= currentIndex:
            return None

        previousRank = node.rank
        newRank = thresholds[newIndex].name

        # One-time achievement bonus for every rank reached, including skipped ones
        rankBonus = money(sum(
            (t.rankBonus for t in thresholds[currentIndex + 1:newIndex + 1]),
            ZERO
        ))

        node.rank = newRank
        self.session.add(RankHistory(
            nodeID=node.nodeID,
            payoutRunID=payoutRunId,
            previousRank=previousRank,
            newRank=newRank,
            cumulativeEarnings=node.cumulativeEarnings,
            directRecruits=node.directRecruitCount
        ))

        self.audit.log(
            "RANK_ADVANCED",
            f"Node {node.nodeID} rank {previousRank} -> {newRank} "
            f"(earnings={node.cumulativeEarnings}, recruits={node.directRecruitCount})",
            "SUCCESS",
            nodeId=node.nodeID,
            payoutRunId=payoutRunId,
            payload={
                "previousRank": previousRank,
                "newRank": newRank,
                "cumulativeEarnings": node.cumulativeEarnings,
                "directRecruits": node.directRecruitCount
            }
        )

        if rankBonus > 0:
            await self._payRankBonus(node, newRank, rankBonus, payoutRunId)

        self.outbox.append((MLMEvents.RANK_ACHIEVED, {
            "nodeId": node.nodeID,
            "previousRank": previousRank,
            "newRank": newRank
        }))

        logger.info(f"Node {node.nodeID} rank updated: {previousRank} -> {newRank}")
        return RankChange(
            nodeId=node.nodeID,
            previousRank=previousRank,
            newRank=newRank,
            rankBonusPaid=rankBonus
        )

    async def _payRankBonus(self, node: Node, newRank: str, amount: Decimal, payoutRunId: Optional[int]):
        node.cumulativeEarnings = (node.cumulativeEarnings or ZERO) + amount

        self.audit.recordCommission(
            recipientId=node.nodeID,
            commissionType=COMMISSION_RANK_BONUS,
            amount=amount,
            sourceNodeId=node.nodeID,
            payoutRunId=payoutRunId,
            notes=f"Promoted to {newRank}"
        )
        self.audit.log(
            "RANK_BONUS",
            f"Node {node.nodeID} earned {amount} rank achievement bonus for {newRank}",
            nodeId=node.nodeID,
            payoutRunId=payoutRunId,
            payload={"rank": newRank, "amount": amount}
        )
        self.outbox.append((MLMEvents.RANK_BONUS_PAID, {
            "nodeId": node.nodeID,
            "rank": newRank,
            "amount": amount
        }))

    async def evaluateAll(
            self,
            thresholds: Optional[List[RankThreshold]] = None,
            payoutRunId: Optional[int] = None
    ) -> List[RankChange]:
        """Evaluate every member, holding tank included; any failure aborts the cycle."""
        changes = []
        for node in self.tree.allNodes():
            change = await self.evaluateRank(node.nodeID, thresholds, payoutRunId)
            if change:
                changes.append(change)

        logger.info(f"Rank check complete: updated={len(changes)}")
        return changes
