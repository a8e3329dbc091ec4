# models/commission.py
"""
CommissionRecord model - every payable amount the engine computes.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, Date, Text, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin


class CommissionRecord(Base, AuditMixin):
    __tablename__ = 'commissions'

    # Primary key
    commissionID = Column(Integer, primary_key=True, autoincrement=True)

    # Relations
    recipientID = Column(Integer, ForeignKey('nodes.nodeID'), nullable=False, index=True)  # Кто получает
    sourceNodeID = Column(Integer, ForeignKey('nodes.nodeID'), nullable=True)  # Из-за кого
    payoutRunID = Column(Integer, ForeignKey('payout_runs.payoutRunID'), nullable=True, index=True)

    # Commission details
    commissionType = Column(String, nullable=False, index=True)  # binary, referral, matching, rank_bonus
    generation = Column(Integer, nullable=True)  # Sponsor generation for matching bonus (1, 2, 3...)
    originAmount = Column(DECIMAL(14, 2), nullable=True)  # Base the rate was applied to
    rate = Column(DECIMAL(8, 4), nullable=True)  # Percent, 10 for 10%
    pairsMatched = Column(Integer, nullable=True)

    # Amounts
    amount = Column(DECIMAL(12, 2), nullable=False)
    cappedAmount = Column(DECIMAL(12, 2), nullable=True)  # Forfeited over the daily cap
    payoutDay = Column(Date, nullable=True, index=True)  # Calendar day for daily cap accounting

    notes = Column(Text, nullable=True)

    # Relationships
    recipient = relationship('Node', foreign_keys=[recipientID])
    sourceNode = relationship('Node', foreign_keys=[sourceNodeID])

    def __repr__(self):
        return (
            f"<CommissionRecord(id={self.commissionID}, type={self.commissionType}, "
            f"recipient={self.recipientID}, amount={self.amount})>"
        )
