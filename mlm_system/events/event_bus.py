# mlm_system/events/event_bus.py
"""
Event bus for payable events and notifications.

The engine only computes amounts; crediting wallets and notifying members
is done by collaborators subscribed here. Events are emitted after the
transaction that produced them has committed.
"""
from typing import Dict, List, Callable, Any, Tuple
import logging
import inspect

logger = logging.getLogger(__name__)


def _handlerName(handler: Callable) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


class EventBus:
    """
    In-process publish/subscribe for engine events.
    A failing handler is logged and skipped; it never reaches the engine
    and never stops the remaining handlers.
    """

    _instance = None
    _handlers: Dict[str, List[Callable]] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._handlers = {}
        return cls._instance

    def subscribe(self, eventName: str, handler: Callable) -> Callable:
        """Register handler (sync or async) for eventName; returns the handler."""
        self._handlers.setdefault(eventName, []).append(handler)
        logger.debug(f"Handler {_handlerName(handler)} subscribed to {eventName}")
        return handler

    def unsubscribe(self, eventName: str, handler: Callable):
        handlers = self._handlers.get(eventName, [])
        if handler in handlers:
            handlers.remove(handler)
            logger.debug(f"Handler {_handlerName(handler)} unsubscribed from {eventName}")

    def handlersFor(self, eventName: str) -> List[Callable]:
        return list(self._handlers.get(eventName, []))

    async def emit(self, eventName: str, data: Dict[str, Any]):
        handlers = self.handlersFor(eventName)
        if not handlers:
            return

        logger.debug(f"Emitting {eventName} to {len(handlers)} handler(s): {data}")
        for handler in handlers:
            try:
                result = handler(data)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Handler {_handlerName(handler)} failed on {eventName}: {e}", exc_info=True)

    async def emitAll(self, events: List[Tuple[str, Dict[str, Any]]]):
        """Emit events collected during a committed transaction, in order."""
        for eventName, data in events:
            await self.emit(eventName, data)

    def clear(self):
        """Drop every subscription (tests, reconfiguration)."""
        self._handlers.clear()


# Global event bus instance
eventBus = EventBus()


# Predefined events
class MLMEvents:
    """Standard network events."""

    MEMBER_ENROLLED = "member.enrolled"
    MEMBER_PARKED = "member.parked"
    MEMBER_PLACED = "member.placed"
    MEMBER_ACTIVATED = "member.activated"
    MEMBER_DEACTIVATED = "member.deactivated"

    PURCHASE_CREDITED = "purchase.credited"
    VOLUME_UPDATED = "volume.updated"

    BINARY_COMMISSION_PAID = "binary_commission.paid"
    REFERRAL_BONUS_PAID = "referral_bonus.paid"
    MATCHING_BONUS_PAID = "matching_bonus.paid"
    RANK_BONUS_PAID = "rank_bonus.paid"
    RANK_ACHIEVED = "rank.achieved"

    PAYOUT_CYCLE_COMPLETED = "payout_cycle.completed"
    PAYOUT_CYCLE_FAILED = "payout_cycle.failed"
