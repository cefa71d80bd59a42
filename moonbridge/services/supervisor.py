"""Connection lifecycle and error handling for the controller link."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from transitions import Machine

from ..config.settings import RuntimeConfig
from ..protocol.structures import ConnectionState, PrinterInfo, PrinterState
from ..state.context import SessionState
from .base import Notifier
from .bootstrap import BootstrapSequencer
from .errors import ErrorAction, classify_error
from .retry import RetryScheduler
from .router import SubscriptionGate

logger = logging.getLogger("moonbridge.service.supervisor")


class ConnectionSupervisor:
    """Owns ConnectionState and reacts to transport lifecycle events."""

    if TYPE_CHECKING:
        # FSM generated methods and attributes for static analysis
        fsm_state: str
        begin_connecting: Callable[[], bool]
        connection_opened: Callable[[], bool]
        connection_closed: Callable[[], bool]
        connection_failed: Callable[[], bool]
        connection_recovered: Callable[[], bool]

    def __init__(
        self,
        *,
        config: RuntimeConfig,
        state: SessionState,
        retry: RetryScheduler,
        gate: SubscriptionGate,
        bootstrap: BootstrapSequencer,
        notifier: Notifier,
    ) -> None:
        self._config = config
        self._state = state
        self._retry = retry
        self._gate = gate
        self._bootstrap = bootstrap
        self._notifier = notifier

        self.state_machine = Machine(
            model=self,
            states=[
                ConnectionState.DISCONNECTED.value,
                ConnectionState.CONNECTING.value,
                ConnectionState.OPEN.value,
                ConnectionState.ERROR.value,
            ],
            initial=ConnectionState.DISCONNECTED.value,
            ignore_invalid_triggers=True,
            after_state_change="_mirror_state",
            model_attribute="fsm_state",
        )

        self.state_machine.add_transition(
            trigger="begin_connecting",
            source=[
                ConnectionState.DISCONNECTED.value,
                ConnectionState.CONNECTING.value,
                ConnectionState.ERROR.value,
            ],
            dest=ConnectionState.CONNECTING.value,
        )
        self.state_machine.add_transition(
            trigger="connection_opened",
            source=[ConnectionState.DISCONNECTED.value, ConnectionState.CONNECTING.value],
            dest=ConnectionState.OPEN.value,
        )
        self.state_machine.add_transition(
            trigger="connection_closed", source="*", dest=ConnectionState.DISCONNECTED.value
        )
        self.state_machine.add_transition(
            trigger="connection_failed",
            source=[ConnectionState.CONNECTING.value, ConnectionState.OPEN.value],
            dest=ConnectionState.ERROR.value,
        )
        self.state_machine.add_transition(
            trigger="connection_recovered",
            source=ConnectionState.ERROR.value,
            dest=ConnectionState.OPEN.value,
        )

    def _mirror_state(self) -> None:
        self._state.connection_state = ConnectionState(self.fsm_state)

    @property
    def connection_state(self) -> ConnectionState:
        return ConnectionState(self.fsm_state)

    @property
    def manual_refresh_available(self) -> bool:
        """Offer a manual refresh only while not auto-reconnecting."""
        return not self._state.is_reconnect

    # --- Transport events -------------------------------------------------

    def on_connecting(self, is_reconnect: bool) -> None:
        self._state.is_reconnect = is_reconnect
        self.begin_connecting()
        logger.info("Connecting to Moonraker%s", " (reconnect)" if is_reconnect else "")

    def on_open(self) -> None:
        self.connection_opened()
        logger.info("Connection open; starting bootstrap")
        self._bootstrap.start()

    def on_close(self) -> None:
        self._retry.cancel()
        self._gate.close()
        self._state.reset_connection()
        self._bootstrap.reset()
        self.connection_closed()
        logger.info("Connection closed; session state cleared")

    def on_error(self, code: int, message: str) -> None:
        classification = classify_error(code, message)
        if classification.action is ErrorAction.SURFACE:
            self._state.counters.errors_surfaced += 1
            logger.info("Request failed (%d): %s", code, classification.text)
            self._notifier.notify_error(classification.text)
            return
        if classification.action is ErrorAction.RETRY:
            logger.warning("Klippy unavailable (%d): %s", code, message)
            self._retry.cancel()
            self._gate.close()
            self._state.reset_session()
            self._bootstrap.reset()
            self._state.printer_info = PrinterInfo(
                state=PrinterState.ERROR.value,
                state_message=message,
            )
            self._state.last_error_message = message
            self.connection_failed()
            self._retry.arm(
                self._config.klippy_retry_delay,
                self._bootstrap.probe,
                reason="service_unavailable",
            )
            self._state.counters.retries_armed += 1
            return
        self._state.counters.errors_unclassified += 1
        logger.warning(
            "Unclassified controller error %d: %s",
            code,
            message,
            extra={"error_code": code},
        )

    def note_response(self) -> None:
        """A successful response proves the controller answers again."""
        if self.connection_recovered():
            logger.info("Controller responding again")

    # --- Klippy lifecycle -------------------------------------------------

    def restart_session(self, reason: str) -> None:
        """Reset Klippy-derived state and re-probe without touching the socket."""
        logger.info("Klippy %s; restarting bootstrap", reason)
        self._retry.cancel()
        self._gate.close()
        self._state.reset_session()
        self._bootstrap.reset()
        self._bootstrap.probe()


__all__ = ["ConnectionSupervisor"]
