"""Notification gating and static dispatch tables."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

import msgspec

from ..protocol.methods import Method, Notification, parse_method, parse_notification
from ..state.context import SessionState

logger = logging.getLogger("moonbridge.service.router")

ResponseHandler = Callable[[Any], None]
NotificationHandler = Callable[[Any], None]

_HANDLER_ERRORS: tuple[type[Exception], ...] = (
    ValueError,
    TypeError,
    KeyError,
    AttributeError,
    IndexError,
    msgspec.ValidationError,
)


class SubscriptionGate:
    """Latch that holds back notifications until the subscribe ack."""

    def __init__(self, state: SessionState) -> None:
        self._state = state

    @property
    def is_open(self) -> bool:
        return self._state.accepting_notifications

    def open(self) -> None:
        if not self._state.accepting_notifications:
            logger.debug("Subscription gate opened")
        self._state.accepting_notifications = True

    def close(self) -> None:
        self._state.accepting_notifications = False


class ResponseRegistry:
    """Maps logical request names to response handlers."""

    def __init__(self, state: SessionState | None = None) -> None:
        self._state = state
        self._handlers: dict[Method, ResponseHandler] = {}

    def register(self, method: Method, handler: ResponseHandler) -> None:
        self._handlers[method] = handler

    def bulk_register(self, mapping: Mapping[Method, ResponseHandler]) -> None:
        self._handlers.update(mapping)

    def get(self, method: Method) -> ResponseHandler | None:
        return self._handlers.get(method)

    def dispatch(self, method: str, result: Any) -> bool:
        parsed = parse_method(method)
        handler = self.get(parsed) if parsed is not None else None
        if handler is None:
            logger.debug("No response handler for %s", method)
            return False
        return _invoke(handler, result, name=method, state=self._state)


class NotificationRouter:
    """Routes push notifications to their handlers behind the subscription gate."""

    def __init__(self, state: SessionState, gate: SubscriptionGate) -> None:
        self._state = state
        self._gate = gate
        self._handlers: dict[Notification, NotificationHandler] = {}

    def register(self, notification: Notification, handler: NotificationHandler) -> None:
        self._handlers[notification] = handler

    def bulk_register(self, mapping: Mapping[Notification, NotificationHandler]) -> None:
        self._handlers.update(mapping)

    def dispatch(self, method: str, params: Any) -> bool:
        if not self._gate.is_open:
            self._state.counters.notifications_dropped += 1
            logger.debug("Dropping %s; subscription not acknowledged yet", method)
            return False
        notification = parse_notification(method)
        handler = self._handlers.get(notification) if notification is not None else None
        if handler is None:
            logger.debug("Unhandled notification %s", method)
            return False
        self._state.counters.notifications_accepted += 1
        return _invoke(handler, params, name=method, state=self._state)


def _invoke(
    handler: Callable[[Any], None],
    payload: Any,
    *,
    name: str,
    state: SessionState | None = None,
) -> bool:
    try:
        handler(payload)
    except _HANDLER_ERRORS:
        logger.critical("Handler for %s failed", name, exc_info=True)
        if state is not None:
            state.counters.handler_failures += 1
        return False
    return True


__all__ = [
    "NotificationHandler",
    "NotificationRouter",
    "ResponseHandler",
    "ResponseRegistry",
    "SubscriptionGate",
]
