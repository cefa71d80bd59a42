"""Reconstruction of console and temperature history.

``server.temperature_store`` returns up to :data:`HISTORY_TARGET_LENGTH`
samples per sensor at a 1 s cadence, fewer if Moonraker started recently.
Every series is aligned to the same length before the chart window is cut,
so all labels in a seeded chart point describe the same instant. The
controller payload is never modified; normalisation builds new series.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import msgspec

from ..const import HISTORY_TARGET_LENGTH, HISTORY_WINDOW
from ..protocol.structures import ChartPoint, SensorSeries
from ..state.context import SessionState
from .console import ConsoleComponent
from .telemetry import chart_label, reports_target

logger = logging.getLogger("moonbridge.service.history")


def _align(values: Sequence[float], length: int, fill: float) -> list[float]:
    if len(values) >= length:
        return list(values[len(values) - length :])
    return [fill] * (length - len(values)) + list(values)


def _align_optional(values: Sequence[float] | None, length: int) -> list[float] | None:
    if values is None:
        return None
    return _align(values, length, 0.0)


def normalize_sensor(key: str, series: SensorSeries, *, target_length: int = HISTORY_TARGET_LENGTH) -> SensorSeries:
    temperatures = series.temperatures
    if not temperatures:
        logger.debug("Sensor %s has no temperature history; padding with zeros", key)
    lead = temperatures[0] if temperatures else 0.0
    return SensorSeries(
        temperatures=_align(temperatures, target_length, lead),
        targets=_align_optional(series.targets, target_length) if reports_target(key) else None,
        powers=_align_optional(series.powers, target_length),
        speeds=_align_optional(series.speeds, target_length),
    )


def normalize_series(
    raw: Mapping[str, Any],
    *,
    target_length: int = HISTORY_TARGET_LENGTH,
) -> dict[str, SensorSeries]:
    """Convert a temperature-store payload into aligned series."""
    normalized: dict[str, SensorSeries] = {}
    for key, value in raw.items():
        series = value if isinstance(value, SensorSeries) else msgspec.convert(value, SensorSeries, strict=False)
        normalized[key] = normalize_sensor(key, series, target_length=target_length)
    return normalized


def build_chart_window(
    series: Mapping[str, SensorSeries],
    now: float,
    *,
    window_size: int = HISTORY_WINDOW,
) -> list[ChartPoint]:
    """Cut the most recent *window_size* samples into chart points."""
    points: list[ChartPoint] = []
    for index in range(window_size):
        source = index + window_size
        values: dict[str, float] = {}
        for key, sensor in series.items():
            label = chart_label(key)
            if source < len(sensor.temperatures):
                values[label] = sensor.temperatures[source]
            for suffix, field in (
                ("Target", sensor.targets),
                ("Power", sensor.powers),
                ("Speed", sensor.speeds),
            ):
                if field is not None and source < len(field):
                    values[f"{label}{suffix}"] = field[source]
        points.append(ChartPoint(timestamp=now - (window_size - index), values=values))
    return points


class HistoryReconstructor:
    """Seeds session state from the bulk history calls."""

    def __init__(
        self,
        state: SessionState,
        console: ConsoleComponent,
        *,
        clock: Callable[[], float] = time.time,
        target_length: int = HISTORY_TARGET_LENGTH,
        window_size: int = HISTORY_WINDOW,
    ) -> None:
        self._state = state
        self._console = console
        self._clock = clock
        self._target_length = target_length
        self._window_size = window_size

    def on_temperature_store(self, payload: Any) -> list[ChartPoint]:
        if not isinstance(payload, Mapping):
            raise TypeError("temperature store payload must be a mapping")
        series = normalize_series(payload, target_length=self._target_length)
        self._state.series = series
        points = build_chart_window(series, self._clock(), window_size=self._window_size)
        self._state.chart.extend(points)
        logger.info(
            "Seeded chart with %d points from %d sensors",
            len(points),
            len(series),
        )
        return points

    def on_gcode_store(self, payload: Any) -> int:
        entries = payload.get("gcode_store", []) if isinstance(payload, Mapping) else payload
        if not isinstance(entries, list):
            raise TypeError("gcode store payload must contain a list")
        prefix = self._state.console_receive_prefix
        replayed = 0
        for raw in entries:
            if not isinstance(raw, Mapping):
                continue
            self._console.add_console_entry(
                {
                    "message": f"{prefix}{raw.get('message', '')}",
                    "time": raw.get("time"),
                    "type": raw.get("type"),
                }
            )
            replayed += 1
        return replayed


__all__ = [
    "HistoryReconstructor",
    "build_chart_window",
    "normalize_sensor",
    "normalize_series",
]
