"""Prometheus exporter for the Moonbridge session.

Serves ``GET /metrics`` from a small asyncio server. Every scrape reads the
live :class:`SessionState`; nothing is cached between scrapes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator, Mapping
from typing import Any

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from prometheus_client.core import (
    CounterMetricFamily,
    GaugeMetricFamily,
    InfoMetricFamily,
    StateSetMetricFamily,
)
from prometheus_client.registry import Collector

from .protocol.structures import ConnectionState
from .state.context import SessionState

logger = logging.getLogger("moonbridge.metrics")

BOOTSTRAP_STAGES = ("idle", "probing", "waiting", "loading", "discovering", "subscribing", "live")

# (counter field, metric name, label, help); a label is (name, value)
_COUNTERS: tuple[tuple[str, str, tuple[str, str] | None, str], ...] = (
    ("notifications_accepted", "moonbridge_notifications", ("outcome", "accepted"), "Push notifications by gate outcome"),
    ("notifications_dropped", "moonbridge_notifications", ("outcome", "dropped"), "Push notifications by gate outcome"),
    ("errors_surfaced", "moonbridge_controller_errors", ("action", "surfaced"), "Controller error responses by action"),
    ("errors_unclassified", "moonbridge_controller_errors", ("action", "unclassified"), "Controller error responses by action"),
    ("chart_samples", "moonbridge_chart_samples", None, "Live chart points recorded"),
    ("retries_armed", "moonbridge_retries_armed", None, "printer.info polls scheduled"),
    ("session_resets", "moonbridge_session_resets", None, "Klippy session resets"),
    ("handler_failures", "moonbridge_handler_failures", None, "Handlers that raised while dispatching"),
)

_SIZE_GAUGES: tuple[tuple[str, str, str], ...] = (
    ("tracked_objects", "moonbridge_tracked_objects", "Printer objects with live state"),
    ("macros", "moonbridge_macros", "Known gcode macros"),
    ("chart_points", "moonbridge_chart_points", "Points held in the chart buffer"),
    ("console_entries", "moonbridge_console_entries", "Entries held in the console buffer"),
    ("failed_plugins", "moonbridge_failed_plugins", "Moonraker plugins that failed to load"),
)

_REASONS = {200: "OK", 400: "Bad Request", 404: "Not Found", 405: "Method Not Allowed"}


def _stateset(name: str, doc: str, current: str, states: tuple[str, ...]) -> StateSetMetricFamily:
    family = StateSetMetricFamily(name, doc)
    family.add_metric([], {state: state == current for state in states})
    return family


class SessionCollector(Collector):
    """Projects the session snapshot onto named metric families."""

    def __init__(self, state: SessionState) -> None:
        self._state = state

    def collect(self) -> Iterator[Any]:
        snapshot = self._state.build_metrics_snapshot()
        info = self._state.printer_info

        yield _stateset(
            "moonbridge_connection_state",
            "Controller connection state",
            snapshot["connection_state"],
            tuple(state.value for state in ConnectionState),
        )
        yield _stateset(
            "moonbridge_bootstrap_stage",
            "Bootstrap sequence stage",
            snapshot["bootstrap_stage"],
            BOOTSTRAP_STAGES,
        )

        printer = InfoMetricFamily("moonbridge_printer", "Klippy host reported by printer.info")
        printer.add_metric(
            [],
            {
                "state": info.state,
                "hostname": info.hostname,
                "software_version": info.software_version,
            },
        )
        yield printer

        for name, doc, flag in (
            ("moonbridge_session_ready", "First status update processed", snapshot["session_ready"]),
            ("moonbridge_gate_open", "Notifications are being accepted", snapshot["accepting_notifications"]),
            ("moonbridge_printer_ready", "Klippy reports ready", snapshot["printer_ready"]),
        ):
            yield GaugeMetricFamily(name, doc, value=1.0 if flag else 0.0)

        for key, name, doc in _SIZE_GAUGES:
            yield GaugeMetricFamily(name, doc, value=float(snapshot[key]))

        yield from self._counters(snapshot["counters"])
        yield self._sensors(snapshot["sensors"])
        yield from self._supervisor(snapshot["supervisor"])

    def _counters(self, counters: Mapping[str, int]) -> Iterator[CounterMetricFamily]:
        families: dict[str, CounterMetricFamily] = {}
        for field, name, label, doc in _COUNTERS:
            family = families.get(name)
            if family is None:
                family = CounterMetricFamily(name, doc, labels=[label[0]] if label else [])
                families[name] = family
            family.add_metric([label[1]] if label else [], float(counters[field]))
        yield from families.values()

    def _sensors(self, sensors: Mapping[str, float]) -> GaugeMetricFamily:
        family = GaugeMetricFamily(
            "moonbridge_sensor_value",
            "Latest chart value per label (temperature, target, power or speed)",
            labels=["label"],
        )
        for label, value in sorted(sensors.items()):
            family.add_metric([label], value)
        return family

    def _supervisor(self, stats: Mapping[str, Mapping[str, Any]]) -> Iterator[Any]:
        restarts = CounterMetricFamily("moonbridge_task_restarts", "Supervised task restarts", labels=["task"])
        backoff = GaugeMetricFamily("moonbridge_task_backoff_seconds", "Current restart backoff", labels=["task"])
        fatal = GaugeMetricFamily("moonbridge_task_fatal", "Task gave up restarting", labels=["task"])
        for task, entry in sorted(stats.items()):
            restarts.add_metric([task], float(entry["restarts"]))
            backoff.add_metric([task], float(entry["backoff_seconds"]))
            fatal.add_metric([task], 1.0 if entry["fatal"] else 0.0)
        yield restarts
        yield backoff
        yield fatal


class PrometheusExporter:
    """Minimal HTTP endpoint for the session metrics."""

    def __init__(self, state: SessionState, host: str, port: int) -> None:
        self._host = host
        self._port = port
        self._server: asyncio.AbstractServer | None = None
        self._registry = CollectorRegistry(auto_describe=False)
        self._registry.register(SessionCollector(state))

    @property
    def port(self) -> int:
        """Bound port; differs from the configured one when that was 0."""
        if self._server is not None and self._server.sockets:
            return int(self._server.sockets[0].getsockname()[1])
        return self._port

    def render(self) -> bytes:
        return generate_latest(self._registry)

    async def start(self) -> None:
        if self._server is None:
            self._server = await asyncio.start_server(self._serve, self._host, self._port)
            logger.info("Prometheus exporter listening", extra={"host": self._host, "port": self.port})

    async def stop(self) -> None:
        server, self._server = self._server, None
        if server is not None:
            server.close()
            await server.wait_closed()

    async def run(self) -> None:
        await self.start()
        assert self._server is not None
        try:
            await self._server.serve_forever()
        finally:
            await self.stop()

    async def _serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            status, body, content_type = await self._route(reader)
            head = (
                f"HTTP/1.1 {status} {_REASONS[status]}\r\n"
                f"Content-Type: {content_type}\r\n"
                f"Content-Length: {len(body)}\r\n"
                "Connection: close\r\n\r\n"
            )
            writer.write(head.encode("ascii") + body)
            await writer.drain()
        except (OSError, asyncio.IncompleteReadError) as exc:
            logger.debug("Metrics client went away: %s", exc)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                logger.debug("Error closing metrics client connection", exc_info=True)

    async def _route(self, reader: asyncio.StreamReader) -> tuple[int, bytes, str]:
        plain = "text/plain; charset=utf-8"
        request = (await reader.readline()).decode("latin-1").split()
        # Drain headers; the scrape carries no body.
        while (await reader.readline()).strip():
            pass
        if len(request) < 2:
            return 400, b"", plain
        method, path = request[0], request[1].split("?", 1)[0]
        if path not in ("/", "/metrics"):
            return 404, b"", plain
        if method != "GET":
            return 405, b"", plain
        return 200, self.render(), CONTENT_TYPE_LATEST


__all__ = ["BOOTSTRAP_STAGES", "PrometheusExporter", "SessionCollector"]
