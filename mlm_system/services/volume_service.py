# mlm_system/services/volume_service.py
"""
Volume router - personal volume and roll-up along the placement chain.
"""
from decimal import Decimal
from sqlalchemy.orm import Session
import logging

from models import Node
from mlm_system.events.event_bus import MLMEvents
from mlm_system.services.audit_service import AuditService
from mlm_system.services.tree_service import TreeService
from mlm_system.utils.money import purchaseAmount, ZERO

logger = logging.getLogger(__name__)


class VolumeService:
    """Service for crediting purchased volume."""

    def __init__(self, session: Session, outbox: list = None):
        self.session = session
        self.tree = TreeService(session)
        self.audit = AuditService(session)
        self.outbox = outbox if outbox is not None else []

    async def creditPurchase(self, nodeId: int, pv) -> None:
        """
        Credit PV to the purchaser and roll it up to the root.
        Runs inside the caller's transaction: either the purchaser and every
        ancestor are updated, or nothing is.
        """
        amount = purchaseAmount(pv, "Purchase volume")

        node = self.tree.getNode(nodeId, lock=True)
        wasActive = bool(node.isActive)

        await self._updatePersonalVolume(node, amount)

        if node.isPlaced:
            touched = await self._rollUp(node, amount)
        else:
            # Held until the member is placed
            node.pendingVolume = (node.pendingVolume or ZERO) + amount
            touched = 0
            logger.info(f"Node {nodeId} is unplaced, {amount} PV held for roll-up at placement")

        self.audit.log(
            "PURCHASE_CREDITED",
            f"Node {nodeId} credited {amount} PV, rolled up through {touched} ancestors",
            nodeId=nodeId,
            payload={"pv": amount, "ancestors": touched, "placed": bool(node.isPlaced)}
        )
        self.outbox.append((MLMEvents.PURCHASE_CREDITED, {"nodeId": nodeId, "pv": amount}))
        if not wasActive:
            self.outbox.append((MLMEvents.MEMBER_ACTIVATED, {"nodeId": nodeId}))

    async def _updatePersonalVolume(self, node: Node, amount: Decimal):
        node.personalVolume = (node.personalVolume or ZERO) + amount
        node.isActive = True

        logger.info(f"Updated PV for node {node.nodeID}: total={node.personalVolume}")

    async def _rollUp(self, node: Node, amount: Decimal) -> int:
        """Add amount to the matching leg of every ancestor; rows are locked first."""
        chain = self.tree.getPlacementChain(node.nodeID, lock=True)

        for ancestor, side in chain:
            # Inactive ancestors still accumulate; only pairing is gated on activity
            ancestor.addLegVolume(side, amount)
            logger.debug(
                f"Node {ancestor.nodeID} {side} leg +{amount}: "
                f"left={ancestor.leftVolume}, right={ancestor.rightVolume}"
            )

        if chain:
            self.outbox.append((MLMEvents.VOLUME_UPDATED, {
                "originNodeId": node.nodeID,
                "pv": amount,
                "ancestorIds": [ancestor.nodeID for ancestor, _ in chain]
            }))
        return len(chain)

    async def rollUpPendingVolume(self, node: Node) -> Decimal:
        """Roll up PV bought while the member waited in the holding tank."""
        pending = node.pendingVolume or ZERO
        if pending <= 0 or not node.isPlaced:
            return ZERO

        touched = await self._rollUp(node, pending)
        node.pendingVolume = ZERO

        self.audit.log(
            "PENDING_VOLUME_ROLLED_UP",
            f"Node {node.nodeID} placed, {pending} held PV rolled up through {touched} ancestors",
            nodeId=node.nodeID,
            payload={"pv": pending, "ancestors": touched}
        )
        return pending

    async def deactivateMember(self, nodeId: int, reason: str = "") -> None:
        """Tombstone a member: keeps the position and history, stops pairing."""
        node = self.tree.getNode(nodeId, lock=True)
        node.isActive = False

        self.audit.log(
            "MEMBER_DEACTIVATED",
            f"Node {nodeId} deactivated" + (f": {reason}" if reason else ""),
            "WARNING",
            nodeId=nodeId
        )
        self.outbox.append((MLMEvents.MEMBER_DEACTIVATED, {"nodeId": nodeId, "reason": reason}))
