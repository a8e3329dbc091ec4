# models/mlm/__init__.py
"""
Payout-cycle models: run summaries, rank history and the audit trail.
"""

from models.mlm.payout_run import PayoutRun
from models.mlm.rank_history import RankHistory
from models.mlm.system_log import SystemLog

__all__ = [
    'PayoutRun',
    'RankHistory',
    'SystemLog',
]
