# mlm_system/utils/transaction.py
"""
Transaction boundary for engine operations.

Every operation (one purchase credit, one placement, one payout cycle) runs
in a fresh session and commits once. Transient storage errors retry the
whole unit; nothing is ever resumed half way.
"""
import asyncio
from typing import Awaitable, Callable, TypeVar
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def runInTransaction(
        sessionFactory: Callable[[], Session],
        operation: Callable[[Session], Awaitable[T]],
        attempts: int = 3,
        retryDelay: float = 0.05
) -> T:
    """Run operation(session) and commit, rolling back on any error."""
    attempt = 0
    while True:
        attempt += 1
        session = sessionFactory()
        try:
            result = await operation(session)
            session.commit()
            return result
        except OperationalError as e:
            session.rollback()
            if attempt >= attempts:
                logger.error(f"Transaction failed after {attempt} attempts: {e}")
                raise
            logger.warning(f"Transient storage error (attempt {attempt}/{attempts}), retrying: {e}")
            await asyncio.sleep(retryDelay * attempt)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
