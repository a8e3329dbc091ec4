# mlm_system/services/tree_service.py
"""
Tree store - structural access to the placement tree and the sponsor chain.

No compensation logic lives here, only the node graph and its placement
invariants: one member per (parent, position) slot, a single root, no
cycles.
"""
from typing import Dict, List, Optional, Tuple
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from models import Node, LEFT, RIGHT, POSITIONS
from mlm_system.errors import NodeNotFoundError, SlotTakenError, InvalidPlacementError

logger = logging.getLogger(__name__)


class TreeService:
    """Service for reading and attaching nodes of the binary tree."""

    def __init__(self, session: Session):
        self.session = session

    def getNode(self, nodeId: int, lock: bool = False) -> Node:
        query = self.session.query(Node).filter(Node.nodeID == nodeId)
        if lock:
            query = query.with_for_update()
        node = query.first()
        if not node:
            raise NodeNotFoundError(nodeId)
        return node

    def findNode(self, nodeId: Optional[int]) -> Optional[Node]:
        if nodeId is None:
            return None
        return self.session.query(Node).filter_by(nodeID=nodeId).first()

    def getRoot(self) -> Optional[Node]:
        return self.session.query(Node).filter(
            Node.parentID.is_(None),
            Node.isPlaced == True
        ).first()

    def getChild(self, parentId: int, position: str) -> Optional[Node]:
        return self.session.query(Node).filter_by(
            parentID=parentId,
            position=position
        ).first()

    def getChildren(self, nodeId: int) -> Dict[str, Optional[int]]:
        """{'left': childId | None, 'right': childId | None}"""
        children = {LEFT: None, RIGHT: None}
        rows = self.session.query(Node.nodeID, Node.position).filter(
            Node.parentID == nodeId
        ).all()
        for childId, position in rows:
            children[position] = childId
        return children

    def getPlacementChain(self, nodeId: int, lock: bool = False) -> List[Tuple[Node, str]]:
        """
        Ancestors from the parent up to the root, each paired with the side
        the walk arrived from. With lock=True every row is selected FOR UPDATE.
        """
        chain = []
        current = self.getNode(nodeId, lock=lock)
        seen = {current.nodeID}

        while current.parentID is not None:
            ancestor = self.getNode(current.parentID, lock=lock)
            if ancestor.nodeID in seen:
                raise InvalidPlacementError(f"Placement cycle detected at node {ancestor.nodeID}")
            seen.add(ancestor.nodeID)

            chain.append((ancestor, current.position))
            current = ancestor

        return chain

    def getSponsorChain(self, nodeId: int, limit: int) -> List[Node]:
        """Up to `limit` sponsors above nodeId, nearest first."""
        chain = []
        current = self.getNode(nodeId)
        seen = {current.nodeID}

        while current.sponsorID is not None and len(chain) < limit:
            sponsor = self.findNode(current.sponsorID)
            if not sponsor or sponsor.nodeID in seen:
                break
            seen.add(sponsor.nodeID)
            chain.append(sponsor)
            current = sponsor

        return chain

    def isDescendant(self, nodeId: int, ancestorId: int) -> bool:
        """True if ancestorId is on nodeId's placement chain (or is nodeId)."""
        if nodeId == ancestorId:
            return True
        node = self.findNode(nodeId)
        if not node or not node.isPlaced:
            return False
        return any(a.nodeID == ancestorId for a, _ in self.getPlacementChain(nodeId))

    def legUnder(self, nodeId: int, ancestorId: int) -> Optional[str]:
        """Which leg of ancestorId the node sits in, None if it is not below it."""
        for ancestor, side in self.getPlacementChain(nodeId):
            if ancestor.nodeID == ancestorId:
                return side
        return None

    def attach(self, node: Node, parent: Node, position: str):
        """Write the placement of node under parent; the slot must be free."""
        if position not in POSITIONS:
            raise InvalidPlacementError(f"Unknown position {position!r}")
        if not parent.isPlaced:
            raise InvalidPlacementError(f"Parent {parent.nodeID} is not placed in the tree")
        if node.nodeID == parent.nodeID or self.isDescendant(parent.nodeID, node.nodeID):
            raise InvalidPlacementError(
                f"Placing node {node.nodeID} under {parent.nodeID} would create a cycle"
            )

        occupant = self.getChild(parent.nodeID, position)
        if occupant is not None:
            raise SlotTakenError(parent.nodeID, position, occupant.nodeID)

        parentId = parent.nodeID
        node.parentID = parentId
        node.position = position
        node.depth = (parent.depth or 0) + 1
        node.isPlaced = True

        try:
            self.session.flush()
        except IntegrityError as e:
            # Another writer claimed the slot between the check and the flush.
            # The failed flush expires every loaded row, so only locals are read here.
            logger.warning(f"Slot {position} of node {parentId} claimed concurrently: {e.orig}")
            raise SlotTakenError(parentId, position) from e

        logger.info(f"Node {node.nodeID} attached to {parent.nodeID} ({position}) at depth {node.depth}")

    def nodesBottomUp(self, activeOnly: bool = False) -> List[Node]:
        """Placed nodes, deepest first, for leaves-before-ancestors processing."""
        query = self.session.query(Node).filter(Node.isPlaced == True)
        if activeOnly:
            query = query.filter(Node.isActive == True)
        return query.order_by(Node.depth.desc(), Node.nodeID).all()


    def allNodes(self) -> List[Node]:
        """Every member, placed or still in the holding tank."""
        return self.session.query(Node).order_by(Node.nodeID).all()
