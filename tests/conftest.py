"""
Shared fixtures: a throwaway SQLite network per test and an engine bound to it.
"""
import asyncio
from datetime import datetime, timezone

import pytest

from init import get_session, init_tables
from models import LEFT, RIGHT
from mlm_system.config.compensation import CompensationConfig
from mlm_system.engine import CompensationEngine
from mlm_system.events.event_bus import eventBus
from mlm_system.utils.time_machine import timeMachine

CYCLE_TIME = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def cleanGlobals():
    eventBus.clear()
    timeMachine.setTime(CYCLE_TIME)
    yield
    eventBus.clear()
    timeMachine.resetToRealTime()


@pytest.fixture
def sessionFactory(tmp_path):
    factory, dbEngine = get_session(f"sqlite:///{tmp_path / 'network.db'}")
    init_tables(dbEngine)
    yield factory
    dbEngine.dispose()


@pytest.fixture
def planSettings():
    return {
        "pairRatio": "1:1",
        "pairUnit": "50",
        "commissionValue": "10",
        "dailyCapAmount": "1000",
        "referralBonusPercentage": "10",
        "matchingBonusGenerations": ["10", "5", "2"],
        "holdingTankMode": "weaker_leg",
    }


@pytest.fixture
def plan(planSettings):
    return CompensationConfig.fromDict(planSettings)


@pytest.fixture
def engine(sessionFactory, plan):
    return CompensationEngine(sessionFactory, plan)


@pytest.fixture
def pairTree(engine):
    """
    Active root with one left and one right child, legs loaded with the given
    PV. Purchases are priced at 0 so no referral bonus muddies earnings.
    """

    def build(leftPv, rightPv):
        async def scenario():
            root = await engine.enrollMember(None, memberRef="root")
            await engine.creditPurchase(root, 10, 0)
            left = await engine.enrollMember(root, explicitPosition=LEFT)
            right = await engine.enrollMember(root, explicitPosition=RIGHT)
            await engine.creditPurchase(left, leftPv, 0)
            await engine.creditPurchase(right, rightPv, 0)
            return root, left, right

        return asyncio.run(scenario())

    return build
