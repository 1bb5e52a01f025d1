# backend/reflist/services/notifications.py
"""
In-process notification bus.

One NotificationBus instance is created per application and handed to
whoever publishes or subscribes. Dispatch is synchronous: publish() awaits
every handler in subscription order. A failing handler is logged and does not
stop the others or fail the publisher.
"""

from __future__ import annotations

import inspect
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from loguru import logger


@dataclass(frozen=True)
class PhoneVerified:
    phone_number: str
    account_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class AccountCreated:
    account_id: uuid.UUID
    email: str
    phone_number: Optional[str] = None
    claim_ticket: Optional[str] = None


@dataclass(frozen=True)
class LoggedIn:
    account_id: uuid.UUID
    phone_number_pending_claim: Optional[str] = None
    claim_ticket: Optional[str] = None


Handler = Callable[[Any], Union[Awaitable[None], None]]


def _handler_name(handler: Handler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


class NotificationBus:
    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = {}

    def subscribe(self, event_type: type, handler: Handler) -> bool:
        """Returns False (and changes nothing) when the handler is already subscribed."""
        handlers = self._handlers.setdefault(event_type, [])
        if handler in handlers:
            logger.warning("Handler {} already subscribed to {}", _handler_name(handler), event_type.__name__)
            return False
        handlers.append(handler)
        logger.debug("Handler {} subscribed to {}", _handler_name(handler), event_type.__name__)
        return True

    def unsubscribe(self, event_type: type, handler: Handler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            logger.debug("Handler {} unsubscribed from {}", _handler_name(handler), event_type.__name__)

    def handlers_for(self, event_type: type) -> list[Handler]:
        return list(self._handlers.get(event_type, []))

    async def publish(self, event: Any) -> int:
        """Deliver `event` to its subscribers; returns how many handled it without error."""
        handlers = self.handlers_for(type(event))
        if not handlers:
            logger.debug("No handlers for {}", type(event).__name__)
            return 0

        delivered = 0
        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception:
                logger.exception("Error in handler {} for {}", _handler_name(handler), type(event).__name__)
        return delivered

    def clear(self) -> None:
        self._handlers.clear()
