# mlm_system/errors.py
"""
Errors raised by the compensation engine.
"""
from typing import List, Optional


class CompensationError(Exception):
    """Base class for engine errors surfaced to callers."""


class NodeNotFoundError(CompensationError):
    def __init__(self, nodeId):
        self.nodeId = nodeId
        super().__init__(f"Node {nodeId} not found")


class SlotTakenError(CompensationError):
    """The (parent, position) slot is already occupied. Never retried automatically."""

    def __init__(self, parentId: int, position: str, occupantId: Optional[int] = None):
        self.parentId = parentId
        self.position = position
        self.occupantId = occupantId
        occupant = f" by node {occupantId}" if occupantId is not None else ""
        super().__init__(f"Slot {position} of node {parentId} is already taken{occupant}")


class InvalidPlacementError(CompensationError):
    """Placement references a missing parent or would break the tree."""


class InsufficientConfigError(CompensationError):
    """Money-moving configuration is missing or invalid; nothing was mutated."""

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__("Invalid compensation config: " + "; ".join(self.problems))


class InvalidPurchaseError(CompensationError):
    """Purchase volume or price is not a usable amount."""
