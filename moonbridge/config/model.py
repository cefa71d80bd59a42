"""Data model for Moonbridge configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from urllib.parse import urlparse

from ..const import (
    DEFAULT_CHART_RETENTION,
    DEFAULT_CONSOLE_RECEIVE_PREFIX,
    DEFAULT_CONSOLE_RETENTION,
    DEFAULT_DEBUG_LOGGING,
    DEFAULT_KLIPPY_RETRY_DELAY,
    DEFAULT_METRICS_ENABLED,
    DEFAULT_METRICS_HOST,
    DEFAULT_METRICS_PORT,
    DEFAULT_MOONRAKER_URL,
    DEFAULT_RECONNECT_DELAY,
)

logger = logging.getLogger("moonbridge.config")

_WEBSOCKET_SCHEMES = frozenset({"ws", "wss"})


@dataclass(slots=True)
class RuntimeConfig:
    """Strongly typed configuration for the daemon."""

    moonraker_url: str = DEFAULT_MOONRAKER_URL
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY
    klippy_retry_delay: float = DEFAULT_KLIPPY_RETRY_DELAY
    chart_retention: int = DEFAULT_CHART_RETENTION
    console_retention: int = DEFAULT_CONSOLE_RETENTION
    console_receive_prefix: str = DEFAULT_CONSOLE_RECEIVE_PREFIX
    hidden_macros: tuple[str, ...] = field(default_factory=tuple)
    debug_logging: bool = DEFAULT_DEBUG_LOGGING
    metrics_enabled: bool = DEFAULT_METRICS_ENABLED
    metrics_host: str = DEFAULT_METRICS_HOST
    metrics_port: int = DEFAULT_METRICS_PORT

    def __post_init__(self) -> None:
        self.moonraker_url = self._normalize_url(self.moonraker_url)
        self.reconnect_delay = self._require_positive_float(
            "reconnect_delay", float(self.reconnect_delay)
        )
        self.klippy_retry_delay = self._require_positive_float(
            "klippy_retry_delay", float(self.klippy_retry_delay)
        )
        self.chart_retention = self._require_positive(
            "chart_retention", int(self.chart_retention)
        )
        self.console_retention = self._require_positive(
            "console_retention", int(self.console_retention)
        )
        self.hidden_macros = tuple(
            name.strip() for name in self.hidden_macros if name and name.strip()
        )
        if not 0 <= self.metrics_port <= 65535:
            raise ValueError("metrics_port must be between 0 and 65535")
        if self.metrics_enabled and self.metrics_host not in ("127.0.0.1", "localhost", "::1"):
            logger.warning(
                "Prometheus exporter bound to non-loopback address %s; "
                "printer telemetry will be reachable from the network.",
                self.metrics_host,
            )

    @staticmethod
    def _normalize_url(value: str) -> str:
        candidate = (value or "").strip()
        parsed = urlparse(candidate)
        if parsed.scheme not in _WEBSOCKET_SCHEMES or not parsed.netloc:
            raise ValueError("moonraker_url must be a ws:// or wss:// URL with a host")
        return candidate

    @staticmethod
    def _require_positive(name: str, value: int) -> int:
        if value <= 0:
            raise ValueError(f"{name} must be a positive integer")
        return value

    @staticmethod
    def _require_positive_float(name: str, value: float) -> float:
        if value <= 0.0:
            raise ValueError(f"{name} must be a positive number")
        return value


__all__ = ["RuntimeConfig"]
