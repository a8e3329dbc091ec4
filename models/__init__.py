# models/__init__.py
"""
Database models for the binary network.
Import everything here so Base.metadata knows every table.
"""

# Base and mixins
from models.base import Base, AuditMixin

# Tree
from models.node import Node, LEFT, RIGHT, POSITIONS, otherSide
from models.holding_tank import HoldingTankEntry
from models.commission import CommissionRecord

# Payout cycle
from models.mlm.payout_run import PayoutRun
from models.mlm.rank_history import RankHistory
from models.mlm.system_log import SystemLog

__all__ = [
    # Base
    'Base',
    'AuditMixin',

    # Tree
    'Node',
    'LEFT',
    'RIGHT',
    'POSITIONS',
    'otherSide',
    'HoldingTankEntry',
    'CommissionRecord',

    # Payout cycle
    'PayoutRun',
    'RankHistory',
    'SystemLog',
]
