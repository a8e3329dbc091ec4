# models/mlm/rank_history.py
"""
RankHistory model - tracks rank achievements.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, utcnow


class RankHistory(Base):
    __tablename__ = 'rank_history'

    historyID = Column(Integer, primary_key=True, autoincrement=True)
    createdAt = Column(DateTime, default=utcnow)

    # Relations
    nodeID = Column(Integer, ForeignKey('nodes.nodeID'), nullable=False, index=True)
    payoutRunID = Column(Integer, ForeignKey('payout_runs.payoutRunID'), nullable=True)

    # Rank details
    previousRank = Column(String, nullable=True)
    newRank = Column(String, nullable=False)

    # Qualification metrics at time of achievement
    cumulativeEarnings = Column(DECIMAL(12, 2), nullable=True)
    directRecruits = Column(Integer, nullable=True)

    # Relationships
    node = relationship('Node', backref='rank_history')

    def __repr__(self):
        return f"<RankHistory(node={self.nodeID}, rank={self.newRank}, date={self.createdAt})>"
