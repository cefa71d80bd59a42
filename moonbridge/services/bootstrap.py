"""Ordered startup sequence against Moonraker/Klippy.

Stages::

    idle -> probing -> waiting -> probing ...      (Klippy not ready, polled)
                    -> loading -> discovering -> subscribing -> live

Each response is accepted only in the stage that requested it, so answers
to requests issued before a reset are dropped instead of repopulating a
fresh session.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import msgspec
from transitions import Machine

from ..config.settings import RuntimeConfig
from ..const import MACRO_NAMESPACE, MENU_NAMESPACE
from ..protocol.methods import PLUGIN_INIT_METHODS, Method
from ..protocol.structures import PrinterInfo, ServerInfo
from ..state.context import SessionState
from .base import FileManager
from .console import ConsoleComponent
from .history import HistoryReconstructor
from .retry import RetryScheduler
from .router import SubscriptionGate

logger = logging.getLogger("moonbridge.service.bootstrap")

RequestSender = Callable[[Method, Mapping[str, Any] | None], None]
StatusSink = Callable[[Any], None]


class BootstrapEvent(StrEnum):
    PROBE = "probe_printer"
    NOT_READY = "klippy_not_ready"
    READY = "klippy_ready"
    HISTORY_LOADED = "history_loaded"
    OBJECTS_LISTED = "objects_listed"
    SUBSCRIBED = "subscribed"
    RESET = "reset_stage"


def macro_name(key: str) -> str:
    """``gcode_macro PRINT_START`` -> ``PRINT_START``."""
    return " ".join(key.split(" ")[1:])


class BootstrapSequencer:
    """Explicit state machine for the bootstrap request sequence."""

    if TYPE_CHECKING:
        # FSM generated methods and attributes for static analysis
        stage: str
        probe_printer: Callable[[], bool]
        klippy_not_ready: Callable[[], bool]
        klippy_ready: Callable[[], bool]
        history_loaded: Callable[[], bool]
        objects_listed: Callable[[], bool]
        subscribed: Callable[[], bool]
        reset_stage: Callable[[], bool]

    # FSM States
    STAGE_IDLE = "idle"
    STAGE_PROBING = "probing"
    STAGE_WAITING = "waiting"
    STAGE_LOADING = "loading"
    STAGE_DISCOVERING = "discovering"
    STAGE_SUBSCRIBING = "subscribing"
    STAGE_LIVE = "live"

    _HISTORY_STAGES = frozenset({STAGE_LOADING, STAGE_DISCOVERING, STAGE_SUBSCRIBING, STAGE_LIVE})

    def __init__(
        self,
        *,
        config: RuntimeConfig,
        state: SessionState,
        send: RequestSender,
        retry: RetryScheduler,
        gate: SubscriptionGate,
        console: ConsoleComponent,
        history: HistoryReconstructor,
        file_manager: FileManager,
        on_status: StatusSink,
    ) -> None:
        self._config = config
        self._state = state
        self._send = send
        self._retry = retry
        self._gate = gate
        self._console = console
        self._history = history
        self._file_manager = file_manager
        self._on_status = on_status

        self.state_machine = Machine(
            model=self,
            states=[
                self.STAGE_IDLE,
                self.STAGE_PROBING,
                self.STAGE_WAITING,
                self.STAGE_LOADING,
                self.STAGE_DISCOVERING,
                self.STAGE_SUBSCRIBING,
                {"name": self.STAGE_LIVE, "on_enter": "_on_fsm_live"},
            ],
            initial=self.STAGE_IDLE,
            ignore_invalid_triggers=True,
            after_state_change="_mirror_stage",
            model_attribute="stage",
        )

        self.state_machine.add_transition(trigger=BootstrapEvent.PROBE.value, source="*", dest=self.STAGE_PROBING)
        self.state_machine.add_transition(
            trigger=BootstrapEvent.NOT_READY.value, source=self.STAGE_PROBING, dest=self.STAGE_WAITING
        )
        self.state_machine.add_transition(
            trigger=BootstrapEvent.READY.value, source=self.STAGE_PROBING, dest=self.STAGE_LOADING
        )
        self.state_machine.add_transition(
            trigger=BootstrapEvent.HISTORY_LOADED.value, source=self.STAGE_LOADING, dest=self.STAGE_DISCOVERING
        )
        self.state_machine.add_transition(
            trigger=BootstrapEvent.OBJECTS_LISTED.value, source=self.STAGE_DISCOVERING, dest=self.STAGE_SUBSCRIBING
        )
        self.state_machine.add_transition(
            trigger=BootstrapEvent.SUBSCRIBED.value, source=self.STAGE_SUBSCRIBING, dest=self.STAGE_LIVE
        )
        self.state_machine.add_transition(trigger=BootstrapEvent.RESET.value, source="*", dest=self.STAGE_IDLE)

    def _mirror_stage(self) -> None:
        self._state.bootstrap_stage = self.stage

    def _on_fsm_live(self) -> None:
        logger.info("Bootstrap complete; %d objects subscribed", len(self._state.subscriptions))

    def advance(self, event: BootstrapEvent) -> bool:
        """Fire *event*; returns False when it does not apply to the current stage."""
        return bool(self.trigger(event.value))

    # --- Outbound ---------------------------------------------------------

    def start(self) -> None:
        """Connection opened: probe Klippy and Moonraker together."""
        self._send(Method.SERVER_INFO, None)
        self.probe()

    def probe(self) -> None:
        self.advance(BootstrapEvent.PROBE)
        self._send(Method.PRINTER_INFO, None)

    def reset(self) -> None:
        self.advance(BootstrapEvent.RESET)

    # --- Responses --------------------------------------------------------

    def _accepts(self, method: Method, *stages: str) -> bool:
        if self.stage in stages:
            return True
        logger.debug("Dropping %s response in stage %s", method.value, self.stage)
        return False

    def on_printer_info(self, payload: Any) -> None:
        if not self._accepts(Method.PRINTER_INFO, self.STAGE_PROBING):
            return
        info = msgspec.convert(payload, PrinterInfo, strict=False)
        self._state.printer_info = info
        if not info.is_ready:
            logger.info(
                "Klippy not ready (%s); polling again in %.1fs",
                info.state,
                self._config.klippy_retry_delay,
            )
            self.advance(BootstrapEvent.NOT_READY)
            self._retry.arm(self._config.klippy_retry_delay, self.probe, reason="klippy_not_ready")
            self._state.counters.retries_armed += 1
            return

        self.advance(BootstrapEvent.READY)
        for method in (
            Method.SERVER_INFO,
            Method.GCODE_STORE,
            Method.TEMPERATURE_STORE,
            Method.GCODE_HELP,
        ):
            self._send(method, None)

    def on_server_info(self, payload: Any) -> None:
        info = msgspec.convert(payload, ServerInfo, strict=False)
        self._state.server_info = info
        for plugin in info.failed_plugins:
            if plugin not in self._state.failed_plugins:
                logger.warning("Moonraker plugin failed to load: %s", plugin)
                self._state.failed_plugins.append(plugin)
        for plugin, method in PLUGIN_INIT_METHODS.items():
            if plugin in info.plugins and plugin not in self._state.initialized_plugins:
                self._state.initialized_plugins.add(plugin)
                self._send(method, None)
        if info.registered_directories:
            self._state.registered_directories = list(info.registered_directories)
            self._file_manager.on_registered_directories(self._state.registered_directories)

    def on_gcode_help(self, payload: Any) -> None:
        if not self._accepts(Method.GCODE_HELP, *self._HISTORY_STAGES):
            return
        if not isinstance(payload, Mapping):
            raise TypeError("gcode help payload must be a mapping")
        self._state.gcode_help = {str(key): str(value) for key, value in payload.items()}

    def on_gcode_store(self, payload: Any) -> None:
        if not self._accepts(Method.GCODE_STORE, *self._HISTORY_STAGES):
            return
        self._history.on_gcode_store(payload)

    def on_temperature_store(self, payload: Any) -> None:
        if not self._accepts(Method.TEMPERATURE_STORE, self.STAGE_LOADING):
            return
        self._history.on_temperature_store(payload)
        self.advance(BootstrapEvent.HISTORY_LOADED)
        self._send(Method.OBJECTS_LIST, None)

    def on_printer_objects_list(self, payload: Any) -> None:
        if not self._accepts(Method.OBJECTS_LIST, self.STAGE_DISCOVERING):
            return
        objects = payload.get("objects", []) if isinstance(payload, Mapping) else payload
        if not isinstance(objects, list):
            raise TypeError("objects list payload must contain a list")

        subscriptions: dict[str, None] = {}
        for key in objects:
            if not isinstance(key, str):
                continue
            if MACRO_NAMESPACE in key:
                name = macro_name(key)
                if name:
                    self._console.add_macro(name)
                continue
            if MENU_NAMESPACE in key:
                continue
            subscriptions[key] = None
            self._state.printer_objects.setdefault(key, {})

        self._state.subscriptions = subscriptions
        self.advance(BootstrapEvent.OBJECTS_LISTED)
        self._send(Method.OBJECTS_SUBSCRIBE, {"objects": dict(subscriptions)})

    def on_printer_objects_subscribe(self, payload: Any) -> None:
        if not self._accepts(Method.OBJECTS_SUBSCRIBE, self.STAGE_SUBSCRIBING):
            return
        self._gate.open()
        self.advance(BootstrapEvent.SUBSCRIBED)
        status = payload.get("status", {}) if isinstance(payload, Mapping) else {}
        self._on_status(status)


__all__ = [
    "BootstrapEvent",
    "BootstrapSequencer",
    "RequestSender",
    "macro_name",
]
