# models/holding_tank.py
"""
HoldingTankEntry model - enrolled members waiting for manual placement.
"""
from sqlalchemy import Column, Integer, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, utcnow


class HoldingTankEntry(Base):
    __tablename__ = 'holding_tank'

    entryID = Column(Integer, primary_key=True, autoincrement=True)

    # Relations
    pendingUserID = Column(Integer, ForeignKey('nodes.nodeID'), unique=True, nullable=False)
    sponsorID = Column(Integer, ForeignKey('nodes.nodeID'), nullable=False, index=True)

    createdAt = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    pendingUser = relationship('Node', foreign_keys=[pendingUserID])
    sponsor = relationship('Node', foreign_keys=[sponsorID])

    def __repr__(self):
        return f"<HoldingTankEntry(pending={self.pendingUserID}, sponsor={self.sponsorID})>"
