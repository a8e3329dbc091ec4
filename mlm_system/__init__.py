# mlm_system/__init__.py
"""
MLM System - binary-tree compensation engine.
"""

# Facade
from mlm_system.engine import CompensationEngine

# Services
from mlm_system.services.tree_service import TreeService
from mlm_system.services.placement_service import PlacementService
from mlm_system.services.volume_service import VolumeService
from mlm_system.services.pairing_service import PairingService
from mlm_system.services.bonus_service import BonusService
from mlm_system.services.rank_service import RankService
from mlm_system.services.payout_service import PayoutService

# Models and configuration
from mlm_system.config.ranks import Rank, RANK_CONFIG
from mlm_system.config.placement import PlacementStrategy
from mlm_system.config.compensation import CompensationConfig, RankThreshold

# Errors
from mlm_system.errors import (
    CompensationError, NodeNotFoundError, SlotTakenError,
    InvalidPlacementError, InsufficientConfigError, InvalidPurchaseError
)

# Utilities
from mlm_system.utils.time_machine import timeMachine

# Events
from mlm_system.events.event_bus import eventBus, MLMEvents

__all__ = [
    'CompensationEngine',

    # Services
    'TreeService',
    'PlacementService',
    'VolumeService',
    'PairingService',
    'BonusService',
    'RankService',
    'PayoutService',

    # Config
    'Rank',
    'RANK_CONFIG',
    'PlacementStrategy',
    'CompensationConfig',
    'RankThreshold',

    # Errors
    'CompensationError',
    'NodeNotFoundError',
    'SlotTakenError',
    'InvalidPlacementError',
    'InsufficientConfigError',
    'InvalidPurchaseError',

    # Utils
    'timeMachine',

    # Events
    'eventBus',
    'MLMEvents',
]
