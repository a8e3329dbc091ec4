# mlm_system/config/placement.py
"""
Placement strategies for new members.
"""
from enum import Enum

from mlm_system.errors import InvalidPlacementError


class PlacementStrategy(Enum):
    LEFT = "left"
    RIGHT = "right"
    WEAKER_LEG = "weaker_leg"
    ALTERNATING = "alternating"
    HOLDING_TANK = "holding_tank"

    @classmethod
    def parse(cls, value) -> "PlacementStrategy":
        """Accept enum members, canonical names and the legacy spillover names."""
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return cls.HOLDING_TANK if value else cls.WEAKER_LEG
        key = str(value).strip().lower()
        try:
            return cls(LEGACY_ALIASES.get(key, key))
        except ValueError:
            raise InvalidPlacementError(f"Unknown placement strategy {value!r}")


LEGACY_ALIASES = {
    "extreme_left": "left",
    "extreme_right": "right",
    "balanced": "alternating",
    "alternate": "alternating",
}

# Node.holdingTankSetting values
HOLDING_TANK_SYSTEM = "system"
HOLDING_TANK_ENABLED = "enabled"
HOLDING_TANK_DISABLED = "disabled"
HOLDING_TANK_SETTINGS = (HOLDING_TANK_SYSTEM, HOLDING_TANK_ENABLED, HOLDING_TANK_DISABLED)

# Returned by the resolver instead of a slot
PENDING = "PENDING"
