# mlm_system/results.py
"""
Plain result records returned to collaborators.

ORM rows never leave a transaction; everything the engine hands out is one
of these detached snapshots.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from models import Node, HoldingTankEntry, LEFT, RIGHT


@dataclass(frozen=True)
class NodeSnapshot:
    nodeId: int
    memberRef: Optional[str]
    sponsorId: Optional[int]
    parentId: Optional[int]
    position: Optional[str]
    depth: Optional[int]
    isPlaced: bool
    personalVolume: Decimal
    leftVolume: Decimal
    rightVolume: Decimal
    leftVolumeTotal: Decimal
    rightVolumeTotal: Decimal
    pendingVolume: Decimal
    active: bool
    rank: Optional[str]
    cumulativeEarnings: Decimal
    directRecruitCount: int
    leftChildId: Optional[int] = None
    rightChildId: Optional[int] = None

    @classmethod
    def fromNode(cls, node: Node, children: Optional[dict] = None) -> "NodeSnapshot":
        children = children or {}
        return cls(
            nodeId=node.nodeID,
            memberRef=node.memberRef,
            sponsorId=node.sponsorID,
            parentId=node.parentID,
            position=node.position,
            depth=node.depth,
            isPlaced=bool(node.isPlaced),
            personalVolume=Decimal(node.personalVolume or 0),
            leftVolume=Decimal(node.leftVolume or 0),
            rightVolume=Decimal(node.rightVolume or 0),
            leftVolumeTotal=Decimal(node.leftVolumeTotal or 0),
            rightVolumeTotal=Decimal(node.rightVolumeTotal or 0),
            pendingVolume=Decimal(node.pendingVolume or 0),
            active=bool(node.isActive),
            rank=node.rank,
            cumulativeEarnings=Decimal(node.cumulativeEarnings or 0),
            directRecruitCount=node.directRecruitCount or 0,
            leftChildId=children.get(LEFT),
            rightChildId=children.get(RIGHT),
        )

    def toDict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class HoldingTankSnapshot:
    entryId: int
    pendingUserId: int
    sponsorId: int
    createdAt: datetime

    @classmethod
    def fromEntry(cls, entry: HoldingTankEntry) -> "HoldingTankSnapshot":
        return cls(
            entryId=entry.entryID,
            pendingUserId=entry.pendingUserID,
            sponsorId=entry.sponsorID,
            createdAt=entry.createdAt,
        )


@dataclass(frozen=True)
class PairingResult:
    nodeId: int
    pairsMatched: int
    commissionPaid: Decimal
    leftRemainder: Decimal
    rightRemainder: Decimal
    cappedAmount: Decimal = Decimal("0")


@dataclass(frozen=True)
class RankChange:
    nodeId: int
    previousRank: Optional[str]
    newRank: str
    rankBonusPaid: Decimal = Decimal("0")


@dataclass
class PayoutSummary:
    payoutRunId: int
    asOf: datetime
    nodesProcessed: int = 0
    totalCommissionPaid: Decimal = Decimal("0")
    totalMatchingPaid: Decimal = Decimal("0")
    totalForfeited: Decimal = Decimal("0")
    results: List[PairingResult] = field(default_factory=list)
    rankChanges: List[RankChange] = field(default_factory=list)
