# models/node.py
"""
Node model - one member's position in the binary network.

Two relationships live on the same row and must never be mixed up:
sponsorID (who recruited the member, used for referral/matching bonuses)
and parentID + position (where the member sits in the binary tree, used
for volume roll-up and pairing).
"""
from decimal import Decimal
from sqlalchemy import Column, Integer, String, DECIMAL, Boolean, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin

LEFT = "left"
RIGHT = "right"
POSITIONS = (LEFT, RIGHT)


def otherSide(position: str) -> str:
    return RIGHT if position == LEFT else LEFT


class Node(Base, AuditMixin):
    __tablename__ = 'nodes'
    __table_args__ = (
        # A (parent, position) slot holds at most one member
        UniqueConstraint('parentID', 'position', name='uq_nodes_slot'),
        CheckConstraint("position IN ('left', 'right')", name='ck_nodes_position'),
        CheckConstraint('"personalVolume" >= 0', name='ck_nodes_pv'),
        CheckConstraint('"leftVolume" >= 0 AND "rightVolume" >= 0', name='ck_nodes_leg_volume'),
        CheckConstraint('"cumulativeEarnings" >= 0', name='ck_nodes_earnings'),
    )

    # Primary identification
    nodeID = Column(Integer, primary_key=True, autoincrement=True)
    memberRef = Column(String, unique=True, nullable=True)  # ID участника во внешней системе

    # Sponsorship (recruitment) chain
    sponsorID = Column(Integer, ForeignKey('nodes.nodeID'), nullable=True, index=True)

    # Placement in the binary tree
    parentID = Column(Integer, ForeignKey('nodes.nodeID'), nullable=True, index=True)
    position = Column(String, nullable=True)  # left, right
    depth = Column(Integer, nullable=True, index=True)
    isPlaced = Column(Boolean, default=False, nullable=False, index=True)

    # Volumes
    personalVolume = Column(DECIMAL(14, 2), default=Decimal("0"), nullable=False)
    leftVolume = Column(DECIMAL(14, 2), default=Decimal("0"), nullable=False)  # не спарено слева
    rightVolume = Column(DECIMAL(14, 2), default=Decimal("0"), nullable=False)  # не спарено справа
    leftVolumeTotal = Column(DECIMAL(14, 2), default=Decimal("0"), nullable=False)
    rightVolumeTotal = Column(DECIMAL(14, 2), default=Decimal("0"), nullable=False)
    pendingVolume = Column(DECIMAL(14, 2), default=Decimal("0"), nullable=False)  # PV до размещения

    # Status
    isActive = Column(Boolean, default=False, nullable=False, index=True)
    rank = Column(String, nullable=True, index=True)
    cumulativeEarnings = Column(DECIMAL(12, 2), default=Decimal("0"), nullable=False)
    directRecruitCount = Column(Integer, default=0, nullable=False)

    # Placement preferences when this node sponsors someone
    spilloverPreference = Column(String, nullable=True)  # left, right, weaker_leg, alternating, holding_tank
    holdingTankSetting = Column(String, default="system", nullable=False)  # system, enabled, disabled
    lastPlacementSide = Column(String, nullable=True)

    # Relationships
    sponsor = relationship('Node', foreign_keys=[sponsorID], remote_side=[nodeID])
    parent = relationship('Node', foreign_keys=[parentID], remote_side=[nodeID])

    def volumeOn(self, position: str) -> Decimal:
        return (self.leftVolume if position == LEFT else self.rightVolume) or Decimal("0")

    def totalOn(self, position: str) -> Decimal:
        return (self.leftVolumeTotal if position == LEFT else self.rightVolumeTotal) or Decimal("0")

    def addLegVolume(self, position: str, amount: Decimal):
        """Credit rolled-up volume to one leg (unflushed and lifetime)."""
        if position == LEFT:
            self.leftVolume = (self.leftVolume or Decimal("0")) + amount
            self.leftVolumeTotal = (self.leftVolumeTotal or Decimal("0")) + amount
        else:
            self.rightVolume = (self.rightVolume or Decimal("0")) + amount
            self.rightVolumeTotal = (self.rightVolumeTotal or Decimal("0")) + amount

    def __repr__(self):
        return (
            f"<Node(nodeID={self.nodeID}, sponsor={self.sponsorID}, "
            f"parent={self.parentID}, position={self.position}, rank={self.rank})>"
        )
