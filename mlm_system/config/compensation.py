# mlm_system/config/compensation.py
"""
Compensation plan settings consumed by the engine.

The settings are owned by an external store; the engine only parses and
validates them. Money-moving values are never defaulted: a payout cycle
with a missing ratio, unit, commission value or cap aborts before touching
the tree.
"""
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Tuple

from mlm_system.config.placement import PlacementStrategy
from mlm_system.config.ranks import RANK_CONFIG
from mlm_system.errors import InsufficientConfigError, InvalidPlacementError

FIXED_PAIR = "FIXED_PAIR"
WEAK_LEG_PERCENT = "WEAK_LEG_PERCENT"
COMMISSION_TYPES = (FIXED_PAIR, WEAK_LEG_PERCENT)


@dataclass(frozen=True)
class RankThreshold:
    name: str
    earningsTarget: Decimal
    recruitsTarget: int = 0
    rankBonus: Decimal = Decimal("0")


def defaultRankThresholds() -> List[RankThreshold]:
    return [
        RankThreshold(
            name=rank.value,
            earningsTarget=settings["earningsTarget"],
            recruitsTarget=settings["recruitsTarget"],
            rankBonus=settings["rankBonus"],
        )
        for rank, settings in RANK_CONFIG.items()
    ]


def _toDecimal(value, name: str, problems: List[str]) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        problems.append(f"{name} is not a number: {value!r}")
        return None


def parseRatio(value) -> Tuple[int, int]:
    """'2:1' -> (2, 1); the first number is the left leg."""
    parts = str(value).split(":")
    if len(parts) != 2:
        raise ValueError(f"ratio must look like 'L:R', got {value!r}")
    left, right = int(parts[0]), int(parts[1])
    if left <= 0 or right <= 0:
        raise ValueError(f"ratio parts must be positive, got {value!r}")
    return left, right


@dataclass
class CompensationConfig:
    pairRatio: Optional[str] = None
    pairUnit: Optional[Decimal] = None
    commissionValue: Optional[Decimal] = None
    dailyCapAmount: Optional[Decimal] = None
    referralBonusPercentage: Optional[Decimal] = None
    matchingBonusGenerations: Optional[List[Decimal]] = None
    holdingTankMode: PlacementStrategy = PlacementStrategy.WEAKER_LEG
    commissionType: str = FIXED_PAIR
    flushCarryForward: bool = False
    rankThresholds: List[RankThreshold] = field(default_factory=defaultRankThresholds)

    @classmethod
    def fromDict(cls, data: Dict) -> "CompensationConfig":
        """Build from a settings dict (camelCase keys, strings or numbers)."""
        problems: List[str] = []

        generations = data.get("matchingBonusGenerations")
        if isinstance(generations, str):
            generations = [g for g in generations.split(",") if g.strip()]
        if generations is not None:
            generations = [_toDecimal(g, "matchingBonusGenerations", problems) for g in generations]

        mode = data.get("holdingTankMode", PlacementStrategy.WEAKER_LEG)
        try:
            mode = PlacementStrategy.parse(mode)
        except InvalidPlacementError:
            problems.append(f"unknown holdingTankMode: {mode!r}")
            mode = PlacementStrategy.WEAKER_LEG

        ranks = data.get("rankThresholds")
        if ranks is None:
            rankThresholds = defaultRankThresholds()
        else:
            rankThresholds = []
            for rank in ranks:
                if isinstance(rank, RankThreshold):
                    rankThresholds.append(rank)
                    continue
                rankThresholds.append(RankThreshold(
                    name=rank["name"],
                    earningsTarget=_toDecimal(rank.get("earningsTarget", 0), "earningsTarget", problems) or Decimal("0"),
                    recruitsTarget=int(rank.get("recruitsTarget", 0)),
                    rankBonus=_toDecimal(rank.get("rankBonus", 0), "rankBonus", problems) or Decimal("0"),
                ))

        flush = data.get("flushCarryForward", False)
        if isinstance(flush, str):
            flush = flush.lower() in ("1", "true", "yes")

        config = cls(
            pairRatio=data.get("pairRatio") or None,
            pairUnit=_toDecimal(data.get("pairUnit"), "pairUnit", problems),
            commissionValue=_toDecimal(data.get("commissionValue"), "commissionValue", problems),
            dailyCapAmount=_toDecimal(data.get("dailyCapAmount"), "dailyCapAmount", problems),
            referralBonusPercentage=_toDecimal(
                data.get("referralBonusPercentage"), "referralBonusPercentage", problems
            ),
            matchingBonusGenerations=generations,
            holdingTankMode=mode,
            commissionType=(data.get("commissionType") or FIXED_PAIR).upper(),
            flushCarryForward=bool(flush),
            rankThresholds=rankThresholds,
        )

        if problems:
            raise InsufficientConfigError(problems)
        return config

    @property
    def ratio(self) -> Tuple[int, int]:
        return parseRatio(self.pairRatio)

    def payoutProblems(self) -> List[str]:
        """Everything wrong with the settings a payout cycle needs."""
        problems = []

        if not self.pairRatio:
            problems.append("pairRatio is missing")
        else:
            try:
                parseRatio(self.pairRatio)
            except ValueError as e:
                problems.append(f"pairRatio is invalid: {e}")

        if self.pairUnit is None:
            problems.append("pairUnit is missing")
        elif self.pairUnit <= 0:
            problems.append("pairUnit must be positive")

        if self.commissionValue is None:
            problems.append("commissionValue is missing")
        elif self.commissionValue < 0:
            problems.append("commissionValue must not be negative")

        if self.dailyCapAmount is None:
            problems.append("dailyCapAmount is missing")
        elif self.dailyCapAmount <= 0:
            problems.append("dailyCapAmount must be positive")

        if self.commissionType not in COMMISSION_TYPES:
            problems.append(f"commissionType must be one of {COMMISSION_TYPES}")

        if self.matchingBonusGenerations is None:
            problems.append("matchingBonusGenerations is missing")
        elif any(g is None or g < 0 for g in self.matchingBonusGenerations):
            problems.append("matchingBonusGenerations must be non-negative percentages")

        return problems

    def validateForPayout(self):
        problems = self.payoutProblems()
        if problems:
            raise InsufficientConfigError(problems)

    def validateForPurchase(self):
        if self.referralBonusPercentage is None:
            raise InsufficientConfigError(["referralBonusPercentage is missing"])
        if self.referralBonusPercentage < 0:
            raise InsufficientConfigError(["referralBonusPercentage must not be negative"])

    def toDict(self) -> Dict:
        """JSON-safe snapshot stored with each payout run."""
        return {
            "pairRatio": self.pairRatio,
            "pairUnit": str(self.pairUnit) if self.pairUnit is not None else None,
            "commissionValue": str(self.commissionValue) if self.commissionValue is not None else None,
            "dailyCapAmount": str(self.dailyCapAmount) if self.dailyCapAmount is not None else None,
            "referralBonusPercentage": (
                str(self.referralBonusPercentage) if self.referralBonusPercentage is not None else None
            ),
            "matchingBonusGenerations": (
                [str(g) for g in self.matchingBonusGenerations]
                if self.matchingBonusGenerations is not None else None
            ),
            "holdingTankMode": self.holdingTankMode.value,
            "commissionType": self.commissionType,
            "flushCarryForward": self.flushCarryForward,
            "rankThresholds": [
                {
                    "name": r.name,
                    "earningsTarget": str(r.earningsTarget),
                    "recruitsTarget": r.recruitsTarget,
                    "rankBonus": str(r.rankBonus),
                }
                for r in self.rankThresholds
            ],
        }
