import os
from dotenv import load_dotenv

# Загрузка .env
load_dotenv()

# База данных
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///binary_network.db")
TRANSACTION_RETRIES = int(os.getenv("TRANSACTION_RETRIES", "3"))

# Логирование
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Compensation plan. Money-moving values have no defaults: a missing value
# must fail validation instead of paying out on a guess.
PAIR_RATIO = os.getenv("PAIR_RATIO")
PAIR_UNIT = os.getenv("PAIR_UNIT")
COMMISSION_VALUE = os.getenv("COMMISSION_VALUE")
COMMISSION_TYPE = os.getenv("COMMISSION_TYPE", "FIXED_PAIR")
DAILY_CAP_AMOUNT = os.getenv("DAILY_CAP_AMOUNT")
REFERRAL_BONUS_PERCENTAGE = os.getenv("REFERRAL_BONUS_PERCENTAGE")
MATCHING_BONUS_GENERATIONS = os.getenv("MATCHING_BONUS_GENERATIONS")  # "10,5,2"
FLUSH_CARRY_FORWARD = os.getenv("FLUSH_CARRY_FORWARD", "false").lower() in ("1", "true", "yes")

# Placement
HOLDING_TANK_MODE = os.getenv("HOLDING_TANK_MODE", "weaker_leg")


def compensation_settings() -> dict:
    """Raw compensation settings as read from the environment."""
    return {
        "pairRatio": PAIR_RATIO,
        "pairUnit": PAIR_UNIT,
        "commissionValue": COMMISSION_VALUE,
        "commissionType": COMMISSION_TYPE,
        "dailyCapAmount": DAILY_CAP_AMOUNT,
        "referralBonusPercentage": REFERRAL_BONUS_PERCENTAGE,
        "matchingBonusGenerations": MATCHING_BONUS_GENERATIONS,
        "flushCarryForward": FLUSH_CARRY_FORWARD,
        "holdingTankMode": HOLDING_TANK_MODE,
    }
