"""Session state shared by the Moonbridge service layers."""

from __future__ import annotations

import time
from typing import Any

import msgspec

from ..config.settings import RuntimeConfig
from ..const import DEFAULT_CHART_RETENTION, DEFAULT_CONSOLE_RETENTION
from ..protocol.structures import (
    ConnectionState,
    Macro,
    PrinterInfo,
    SensorSeries,
    ServerInfo,
)
from .queues import ChartBuffer, ConsoleBuffer


def _printer_info_factory() -> PrinterInfo:
    return PrinterInfo()


def _chart_buffer_factory() -> ChartBuffer:
    return ChartBuffer(max_items=DEFAULT_CHART_RETENTION)


def _console_buffer_factory() -> ConsoleBuffer:
    return ConsoleBuffer(max_items=DEFAULT_CONSOLE_RETENTION)


def _objects_factory() -> dict[str, dict[str, Any]]:
    return {}


def _subscriptions_factory() -> dict[str, None]:
    return {}


def _macros_factory() -> dict[str, Macro]:
    return {}


def _series_factory() -> dict[str, SensorSeries]:
    return {}


def _str_dict_factory() -> dict[str, str]:
    return {}


def _str_list_factory() -> list[str]:
    return []


def _str_set_factory() -> set[str]:
    return set()


def _counters_factory() -> SessionCounters:
    return SessionCounters()


def _supervisor_stats_factory() -> dict[str, SupervisorStats]:
    return {}


class SessionCounters(msgspec.Struct):
    """Monotonic counters exported as metrics."""

    notifications_accepted: int = 0
    notifications_dropped: int = 0
    chart_samples: int = 0
    retries_armed: int = 0
    errors_surfaced: int = 0
    errors_unclassified: int = 0
    session_resets: int = 0
    handler_failures: int = 0

    def as_dict(self) -> dict[str, Any]:
        return msgspec.structs.asdict(self)


class SupervisorStats(msgspec.Struct):
    """Task supervisor statistics."""

    restarts: int = 0
    last_failure_unix: float = 0.0
    last_exception: str | None = None
    backoff_seconds: float = 0.0
    fatal: bool = False

    def as_dict(self) -> dict[str, Any]:
        return msgspec.structs.asdict(self)


class SessionState(msgspec.Struct):
    """Client-side view of the controller and its telemetry history."""

    connection_state: ConnectionState = ConnectionState.DISCONNECTED
    is_reconnect: bool = False
    printer_info: PrinterInfo = msgspec.field(default_factory=_printer_info_factory)
    server_info: ServerInfo | None = None
    failed_plugins: list[str] = msgspec.field(default_factory=_str_list_factory)
    initialized_plugins: set[str] = msgspec.field(default_factory=_str_set_factory)
    registered_directories: list[str] = msgspec.field(default_factory=_str_list_factory)
    printer_objects: dict[str, dict[str, Any]] = msgspec.field(default_factory=_objects_factory)
    subscriptions: dict[str, None] = msgspec.field(default_factory=_subscriptions_factory)
    macros: dict[str, Macro] = msgspec.field(default_factory=_macros_factory)
    gcode_help: dict[str, str] = msgspec.field(default_factory=_str_dict_factory)
    endstops: dict[str, str] = msgspec.field(default_factory=_str_dict_factory)
    series: dict[str, SensorSeries] = msgspec.field(default_factory=_series_factory)
    chart: ChartBuffer = msgspec.field(default_factory=_chart_buffer_factory)
    console: ConsoleBuffer = msgspec.field(default_factory=_console_buffer_factory)
    accepting_notifications: bool = False
    ready: bool = False
    bootstrap_stage: str = "idle"
    last_error_message: str | None = None
    console_receive_prefix: str = ""
    counters: SessionCounters = msgspec.field(default_factory=_counters_factory)
    supervisor_stats: dict[str, SupervisorStats] = msgspec.field(default_factory=_supervisor_stats_factory)

    def configure(self, config: RuntimeConfig) -> None:
        self.chart.update_limit(config.chart_retention)
        self.console.update_limit(config.console_retention)
        self.console_receive_prefix = config.console_receive_prefix

    def reset_session(self) -> None:
        """Forget everything learned from Klippy; keep connection-level data."""
        self.accepting_notifications = False
        self.ready = False
        self.printer_info = PrinterInfo()
        self.printer_objects.clear()
        self.subscriptions.clear()
        self.macros.clear()
        self.gcode_help.clear()
        self.endstops.clear()
        self.series.clear()
        self.chart.clear()
        self.console.clear()
        self.last_error_message = None
        self.counters.session_resets += 1

    def reset_connection(self) -> None:
        """Full reset after the transport closed."""
        self.reset_session()
        self.server_info = None
        self.failed_plugins.clear()
        self.initialized_plugins.clear()
        self.registered_directories.clear()

    def record_supervisor_failure(
        self,
        name: str,
        *,
        backoff: float,
        exc: BaseException,
        fatal: bool = False,
    ) -> None:
        stats = self.supervisor_stats.get(name)
        if stats is None:
            stats = SupervisorStats()
            self.supervisor_stats[name] = stats
        stats.restarts += 1
        stats.last_failure_unix = time.time()
        stats.last_exception = f"{exc.__class__.__name__}: {exc}"
        stats.backoff_seconds = backoff
        stats.fatal = fatal

    def note_supervisor_backoff(self, name: str, backoff: float) -> None:
        stats = self.supervisor_stats.get(name)
        if stats is not None:
            stats.backoff_seconds = backoff

    def mark_supervisor_fatal(self, name: str) -> None:
        stats = self.supervisor_stats.get(name)
        if stats is not None:
            stats.fatal = True

    def mark_supervisor_healthy(self, name: str) -> None:
        stats = self.supervisor_stats.get(name)
        if stats is None:
            return
        stats.backoff_seconds = 0.0
        stats.fatal = False

    def build_metrics_snapshot(self) -> dict[str, Any]:
        last_point = self.chart.last
        return {
            "connection_state": str(self.connection_state),
            "connection_open": self.connection_state == ConnectionState.OPEN,
            "printer_state": self.printer_info.state,
            "printer_ready": self.printer_info.is_ready,
            "bootstrap_stage": self.bootstrap_stage,
            "session_ready": self.ready,
            "accepting_notifications": self.accepting_notifications,
            "tracked_objects": len(self.printer_objects),
            "macros": len(self.macros),
            "chart_points": len(self.chart),
            "console_entries": len(self.console),
            "failed_plugins": len(self.failed_plugins),
            "counters": self.counters.as_dict(),
            "sensors": dict(last_point.values) if last_point is not None else {},
            "supervisor": {name: stats.as_dict() for name, stats in self.supervisor_stats.items()},
        }


def create_session_state(config: RuntimeConfig | dict[str, Any]) -> SessionState:
    if isinstance(config, dict):
        config = RuntimeConfig(**config)
    state = SessionState()
    state.configure(config)
    return state


__all__ = [
    "SessionCounters",
    "SessionState",
    "SupervisorStats",
    "create_session_state",
]
