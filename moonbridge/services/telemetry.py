"""Live object state and rate-limited chart sampling."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from ..const import (
    CHART_SAMPLE_INTERVAL,
    CHARTABLE_SENSOR_PREFIXES,
    MACRO_NAMESPACE,
    TARGETLESS_SENSOR_PREFIXES,
)
from ..protocol.structures import ChartPoint
from ..state.context import SessionState

logger = logging.getLogger("moonbridge.service.telemetry")

ChartablePredicate = Callable[[str, Mapping[str, Any]], bool]


def is_chartable_sensor(key: str, status: Mapping[str, Any]) -> bool:
    """Heaters, temperature fans and sensors that report a temperature."""
    return key.startswith(CHARTABLE_SENSOR_PREFIXES) and "temperature" in status


def reports_target(key: str) -> bool:
    return not key.startswith(TARGETLESS_SENSOR_PREFIXES)


def chart_label(key: str) -> str:
    """``temperature_sensor chamber`` charts as ``chamber``."""
    if " " in key:
        return key.split(" ")[1]
    return key


def merge_status(target: dict[str, Any], update: Mapping[str, Any]) -> None:
    """Deep-merge a partial status update into *target* without aliasing it."""
    for key, value in update.items():
        if isinstance(value, Mapping):
            current = target.get(key)
            if not isinstance(current, dict):
                current = {}
                target[key] = current
            merge_status(current, value)
        elif isinstance(value, list):
            target[key] = list(value)
        else:
            target[key] = value


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def build_chart_values(objects: Mapping[str, Mapping[str, Any]], keys: Iterable[str]) -> dict[str, float]:
    values: dict[str, float] = {}
    for key in keys:
        status = objects.get(key)
        if status is None:
            continue
        label = chart_label(key)
        temperature = _as_float(status.get("temperature"))
        if temperature is None:
            continue
        values[label] = temperature
        target = _as_float(status.get("target"))
        if target is not None and reports_target(key):
            values[f"{label}Target"] = target
        power = _as_float(status.get("power"))
        if power is not None:
            values[f"{label}Power"] = power
        speed = _as_float(status.get("speed"))
        if speed is not None:
            values[f"{label}Speed"] = speed
    return values


class TelemetrySampler:
    """Applies status updates and records at most one chart point per interval."""

    def __init__(
        self,
        state: SessionState,
        *,
        clock: Callable[[], float] = time.time,
        interval: float = CHART_SAMPLE_INTERVAL,
        chartable: ChartablePredicate = is_chartable_sensor,
    ) -> None:
        self._state = state
        self._clock = clock
        self._interval = interval
        self._chartable = chartable

    def chartable_keys(self) -> list[str]:
        return [key for key, status in self._state.printer_objects.items() if self._chartable(key, status)]

    def on_status_update(self, status: Any) -> None:
        if not isinstance(status, Mapping):
            logger.debug("Ignoring non-mapping status payload: %r", type(status).__name__)
            return
        objects = self._state.printer_objects
        for key, update in status.items():
            if MACRO_NAMESPACE in key:
                continue
            if not isinstance(update, Mapping):
                continue
            merge_status(objects.setdefault(key, {}), update)

        self.sample()

        if not self._state.ready:
            self._state.ready = True
            logger.info("Printer session ready (%d objects)", len(objects))

    def sample(self) -> ChartPoint | None:
        now = self._clock()
        last = self._state.chart.last
        if last is not None and now - last.timestamp <= self._interval:
            return None
        values = build_chart_values(self._state.printer_objects, self.chartable_keys())
        if not values:
            return None
        point = ChartPoint(timestamp=now, values=values)
        self._state.chart.append(point)
        self._state.counters.chart_samples += 1
        return point


__all__ = [
    "ChartablePredicate",
    "TelemetrySampler",
    "build_chart_values",
    "chart_label",
    "is_chartable_sensor",
    "merge_status",
    "reports_target",
]
