# mlm_system/services/audit_service.py
"""
Audit trail writer.

Entries are only ever added: the system log viewer and support tooling read
this trail to answer "why was I paid this", so nothing here updates or
deletes a row.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
import logging

from models import CommissionRecord, SystemLog

logger = logging.getLogger(__name__)

LOG_LEVELS = {
    "INFO": logging.INFO,
    "SUCCESS": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def _jsonSafe(payload: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if payload is None:
        return None
    return {
        key: str(value) if isinstance(value, Decimal) else value
        for key, value in payload.items()
    }


class AuditService:
    """Append-only access to the system log and the commission ledger."""

    def __init__(self, session: Session):
        self.session = session

    def log(
            self,
            action: str,
            details: str,
            logType: str = "INFO",
            nodeId: Optional[int] = None,
            payoutRunId: Optional[int] = None,
            payload: Optional[Dict[str, Any]] = None
    ) -> SystemLog:
        entry = SystemLog(
            action=action,
            details=details,
            logType=logType,
            nodeID=nodeId,
            payoutRunID=payoutRunId,
            payload=_jsonSafe(payload)
        )
        self.session.add(entry)

        logger.log(LOG_LEVELS.get(logType, logging.INFO), f"[{action}] {details}")
        return entry

    def recordCommission(
            self,
            recipientId: int,
            commissionType: str,
            amount: Decimal,
            sourceNodeId: Optional[int] = None,
            originAmount: Optional[Decimal] = None,
            rate: Optional[Decimal] = None,
            generation: Optional[int] = None,
            pairsMatched: Optional[int] = None,
            cappedAmount: Optional[Decimal] = None,
            payoutRunId: Optional[int] = None,
            payoutDay=None,
            notes: Optional[str] = None
    ) -> CommissionRecord:
        record = CommissionRecord(
            recipientID=recipientId,
            commissionType=commissionType,
            amount=amount,
            sourceNodeID=sourceNodeId,
            originAmount=originAmount,
            rate=rate,
            generation=generation,
            pairsMatched=pairsMatched,
            cappedAmount=cappedAmount,
            payoutRunID=payoutRunId,
            payoutDay=payoutDay,
            notes=notes
        )
        self.session.add(record)
        return record

    def recentEntries(self, limit: int = 100, action: Optional[str] = None) -> List[SystemLog]:
        query = self.session.query(SystemLog)
        if action:
            query = query.filter(SystemLog.action == action)
        return query.order_by(SystemLog.logID.desc()).limit(limit).all()

    def commissionHistory(self, nodeId: int) -> List[CommissionRecord]:
        return self.session.query(CommissionRecord).filter(
            CommissionRecord.recipientID == nodeId
        ).order_by(CommissionRecord.commissionID).all()
