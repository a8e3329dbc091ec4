# mlm_system/config/ranks.py
"""
Rank ladder configuration and constants.
"""
from enum import Enum
from decimal import Decimal


class Rank(Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    DIAMOND = "diamond"


# Ordered lowest to highest. The evaluator trusts this order and does not
# check that targets increase.
RANK_CONFIG = {
    Rank.BRONZE: {
        "earningsTarget": Decimal("0"),
        "recruitsTarget": 0,
        "rankBonus": Decimal("0")
    },
    Rank.SILVER: {
        "earningsTarget": Decimal("1000"),
        "recruitsTarget": 0,
        "rankBonus": Decimal("50")
    },
    Rank.GOLD: {
        "earningsTarget": Decimal("5000"),
        "recruitsTarget": 0,
        "rankBonus": Decimal("200")
    },
    Rank.DIAMOND: {
        "earningsTarget": Decimal("20000"),
        "recruitsTarget": 0,
        "rankBonus": Decimal("1000")
    }
}

DEFAULT_RANK = Rank.BRONZE.value

# Commission types written to CommissionRecord.commissionType
COMMISSION_BINARY = "binary"
COMMISSION_REFERRAL = "referral"
COMMISSION_MATCHING = "matching"
COMMISSION_RANK_BONUS = "rank_bonus"
