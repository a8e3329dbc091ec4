# models/mlm/system_log.py
"""
SystemLog model - append-only audit trail read by the system log viewer.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, ForeignKey
from models.base import Base, utcnow


class SystemLog(Base):
    __tablename__ = 'system_log'

    logID = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, default=utcnow, index=True)

    action = Column(String, nullable=False, index=True)  # BINARY_PAYOUT, MATCHING_BONUS, RANK_ADVANCED...
    details = Column(Text, nullable=False)
    logType = Column(String, default='INFO')  # INFO, WARNING, ERROR, SUCCESS

    # Context
    nodeID = Column(Integer, ForeignKey('nodes.nodeID'), nullable=True, index=True)
    payoutRunID = Column(Integer, nullable=True, index=True)
    payload = Column(JSON, nullable=True)

    def __repr__(self):
        return f"<SystemLog(action={self.action}, type={self.logType}, node={self.nodeID})>"
