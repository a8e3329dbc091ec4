# mlm_system/services/placement_service.py
"""
Placement resolver - decides where a new or pending member attaches.

Each strategy is one descent function. Descent starts at the sponsor and
keeps moving into the occupied child the strategy points at until it finds
an open slot, so spillover below the sponsor needs no extra logic.
"""
from typing import List, Optional, Tuple, Union
from sqlalchemy.orm import Session
import logging

from models import Node, HoldingTankEntry, LEFT, RIGHT, POSITIONS, otherSide
from mlm_system.config.placement import (
    PlacementStrategy, PENDING,
    HOLDING_TANK_ENABLED, HOLDING_TANK_DISABLED
)
from mlm_system.config.ranks import DEFAULT_RANK
from mlm_system.errors import SlotTakenError, InvalidPlacementError
from mlm_system.events.event_bus import MLMEvents
from mlm_system.services.audit_service import AuditService
from mlm_system.services.tree_service import TreeService

logger = logging.getLogger(__name__)

Slot = Tuple[int, str]


class PlacementService:
    """Service for enrolling members and placing them in the binary tree."""

    def __init__(self, session: Session, outbox: Optional[list] = None):
        self.session = session
        self.tree = TreeService(session)
        self.audit = AuditService(session)
        self.outbox = outbox if outbox is not None else []

        self._descents = {
            PlacementStrategy.LEFT: self._descendLeft,
            PlacementStrategy.RIGHT: self._descendRight,
            PlacementStrategy.WEAKER_LEG: self._descendWeakerLeg,
            PlacementStrategy.ALTERNATING: self._descendAlternating,
        }

    async def resolvePlacement(
            self,
            sponsorId: int,
            strategy,
            explicitPosition: Optional[str] = None
    ) -> Union[Slot, str]:
        """
        Find the slot for a member sponsored by sponsorId.
        Returns (parentId, position), or PENDING for the holding tank.
        """
        sponsor = self.tree.getNode(sponsorId)

        if explicitPosition is not None:
            if explicitPosition not in POSITIONS:
                raise InvalidPlacementError(f"Unknown position {explicitPosition!r}")
            self._requirePlaced(sponsor)
            occupant = self.tree.getChild(sponsor.nodeID, explicitPosition)
            if occupant is not None:
                raise SlotTakenError(sponsor.nodeID, explicitPosition, occupant.nodeID)
            return sponsor.nodeID, explicitPosition

        strategy = PlacementStrategy.parse(strategy)
        if strategy == PlacementStrategy.HOLDING_TANK:
            return PENDING

        self._requirePlaced(sponsor)
        return self._descents[strategy](sponsor)

    def _requirePlaced(self, sponsor: Node):
        if not sponsor.isPlaced:
            raise InvalidPlacementError(
                f"Sponsor {sponsor.nodeID} is still in the holding tank and has no tree position"
            )

    def _descendSide(self, start: Node, side: str) -> Slot:
        current = start
        while True:
            child = self.tree.getChild(current.nodeID, side)
            if child is None:
                return current.nodeID, side
            current = child

    def _descendLeft(self, sponsor: Node) -> Slot:
        return self._descendSide(sponsor, LEFT)

    def _descendRight(self, sponsor: Node) -> Slot:
        return self._descendSide(sponsor, RIGHT)

    def _descendAlternating(self, sponsor: Node) -> Slot:
        side = otherSide(sponsor.lastPlacementSide) if sponsor.lastPlacementSide else LEFT
        return self._descendSide(sponsor, side)

    def _descendWeakerLeg(self, sponsor: Node) -> Slot:
        current = sponsor
        while True:
            # Ties go left
            side = LEFT if current.totalOn(LEFT) <= current.totalOn(RIGHT) else RIGHT
            child = self.tree.getChild(current.nodeID, side)
            if child is None:
                return current.nodeID, side
            current = child

    def chooseStrategy(
            self,
            sponsor: Node,
            requested=None,
            defaultMode: PlacementStrategy = PlacementStrategy.WEAKER_LEG
    ) -> PlacementStrategy:
        """
        Explicit request first, then the sponsor's own holding tank and
        spillover settings, then the configured default.
        """
        if requested is not None:
            return PlacementStrategy.parse(requested)

        if sponsor.holdingTankSetting == HOLDING_TANK_ENABLED:
            return PlacementStrategy.HOLDING_TANK

        strategy = defaultMode
        if sponsor.spilloverPreference:
            strategy = PlacementStrategy.parse(sponsor.spilloverPreference)

        if strategy == PlacementStrategy.HOLDING_TANK and sponsor.holdingTankSetting == HOLDING_TANK_DISABLED:
            return PlacementStrategy.WEAKER_LEG
        return strategy

    async def createRoot(self, memberRef: Optional[str] = None) -> Node:
        if self.tree.getRoot() is not None:
            raise InvalidPlacementError("The network already has a root; a sponsor is required")

        root = Node(
            memberRef=memberRef,
            sponsorID=None,
            parentID=None,
            position=None,
            depth=0,
            isPlaced=True,
            rank=DEFAULT_RANK
        )
        self.session.add(root)
        self.session.flush()

        self.audit.log("ROOT_CREATED", f"Root node {root.nodeID} created", "SUCCESS", nodeId=root.nodeID)
        self.outbox.append((MLMEvents.MEMBER_ENROLLED, {"nodeId": root.nodeID, "sponsorId": None}))
        return root

    async def enrollMember(
            self,
            sponsorId: Optional[int],
            placementStrategy=None,
            explicitPosition: Optional[str] = None,
            memberRef: Optional[str] = None,
            defaultMode: PlacementStrategy = PlacementStrategy.WEAKER_LEG
    ) -> Union[Node, HoldingTankEntry]:
        """Create the member's node and place it, or park it in the holding tank."""
        if sponsorId is None:
            return await self.createRoot(memberRef)

        sponsor = self.tree.getNode(sponsorId)
        strategy = self.chooseStrategy(sponsor, placementStrategy, defaultMode)

        # Resolve before creating anything so a taken slot leaves no trace
        slot = await self.resolvePlacement(sponsor.nodeID, strategy, explicitPosition)

        node = Node(
            memberRef=memberRef,
            sponsorID=sponsor.nodeID,
            isPlaced=False,
            rank=DEFAULT_RANK
        )
        self.session.add(node)
        self.session.flush()

        sponsor.directRecruitCount = (sponsor.directRecruitCount or 0) + 1

        if slot == PENDING:
            entry = HoldingTankEntry(pendingUserID=node.nodeID, sponsorID=sponsor.nodeID)
            self.session.add(entry)
            self.session.flush()

            self.audit.log(
                "MEMBER_PARKED",
                f"Node {node.nodeID} sponsored by {sponsor.nodeID} parked in holding tank",
                nodeId=node.nodeID,
                payload={"sponsorId": sponsor.nodeID, "strategy": strategy.value}
            )
            self.outbox.append((MLMEvents.MEMBER_PARKED, {
                "nodeId": node.nodeID,
                "sponsorId": sponsor.nodeID,
                "entryId": entry.entryID
            }))
            return entry

        parentId, position = slot
        await self._attach(node, parentId, position, strategy.value)
        self.outbox.append((MLMEvents.MEMBER_ENROLLED, {
            "nodeId": node.nodeID,
            "sponsorId": sponsor.nodeID,
            "parentId": parentId,
            "position": position
        }))
        return node

    async def placePendingMember(self, pendingUserId: int, parentId: int, position: str) -> Node:
        """Move a holding tank member into an explicit slot. Occupied slot -> SlotTakenError."""
        entry = self.session.query(HoldingTankEntry).filter_by(
            pendingUserID=pendingUserId
        ).first()
        if not entry:
            raise InvalidPlacementError(f"Node {pendingUserId} is not waiting in the holding tank")

        parent = self.tree.findNode(parentId)
        if not parent:
            raise InvalidPlacementError(f"Target parent {parentId} does not exist")

        node = self.tree.getNode(pendingUserId)
        await self._attach(node, parent.nodeID, position, "manual")

        self.session.delete(entry)
        self.session.flush()

        self.outbox.append((MLMEvents.MEMBER_PLACED, {
            "nodeId": node.nodeID,
            "sponsorId": node.sponsorID,
            "parentId": parent.nodeID,
            "position": position
        }))
        return node

    async def _attach(self, node: Node, parentId: int, position: str, method: str):
        parent = self.tree.getNode(parentId)
        self.tree.attach(node, parent, position)

        sponsor = self.tree.findNode(node.sponsorID)
        if sponsor is not None:
            leg = self.tree.legUnder(node.nodeID, sponsor.nodeID)
            if leg is not None:
                sponsor.lastPlacementSide = leg

        spillover = node.sponsorID is not None and node.sponsorID != parent.nodeID
        self.audit.log(
            "MEMBER_PLACED",
            f"Node {node.nodeID} placed under {parent.nodeID} ({position})"
            + (f", spillover from sponsor {node.sponsorID}" if spillover else ""),
            nodeId=node.nodeID,
            payload={
                "sponsorId": node.sponsorID,
                "parentId": parent.nodeID,
                "position": position,
                "depth": node.depth,
                "method": method
            }
        )

    async def getHoldingTank(self, sponsorId: int) -> List[HoldingTankEntry]:
        return self.session.query(HoldingTankEntry).filter_by(
            sponsorID=sponsorId
        ).order_by(HoldingTankEntry.createdAt, HoldingTankEntry.entryID).all()
