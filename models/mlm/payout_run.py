# models/mlm/payout_run.py
"""
PayoutRun model - one administrator-triggered payout cycle.
"""
from decimal import Decimal
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, Text, JSON
from models.base import Base, utcnow


class PayoutRun(Base):
    __tablename__ = 'payout_runs'

    payoutRunID = Column(Integer, primary_key=True, autoincrement=True)
    createdAt = Column(DateTime, default=utcnow)

    # Period
    asOf = Column(DateTime, nullable=False)

    # Results
    status = Column(String, default='running')  # running, completed
    nodesProcessed = Column(Integer, default=0)
    totalCommissionPaid = Column(DECIMAL(14, 2), default=Decimal("0"))
    totalMatchingPaid = Column(DECIMAL(14, 2), default=Decimal("0"))
    totalForfeited = Column(DECIMAL(14, 2), default=Decimal("0"))
    rankChanges = Column(Integer, default=0)

    # Plan settings used for the run
    configSnapshot = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)

    def __repr__(self):
        return f"<PayoutRun(id={self.payoutRunID}, asOf={self.asOf}, paid={self.totalCommissionPaid})>"
