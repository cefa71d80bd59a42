"""Shared constants for the Moonbridge sync client."""

from __future__ import annotations

from typing import Final

DEFAULT_MOONRAKER_URL: Final[str] = "ws://localhost:7125/websocket"
DEFAULT_CONFIG_PATH: Final[str] = "/etc/moonbridge/moonbridge.toml"
CONFIG_PATH_ENV: Final[str] = "MOONBRIDGE_CONFIG"

DEFAULT_RECONNECT_DELAY: Final[float] = 5.0
DEFAULT_KLIPPY_RETRY_DELAY: Final[float] = 1.5
DEFAULT_CHART_RETENTION: Final[int] = 600
DEFAULT_CONSOLE_RETENTION: Final[int] = 1000
DEFAULT_CONSOLE_RECEIVE_PREFIX: Final[str] = ""
DEFAULT_DEBUG_LOGGING: Final[bool] = False
DEFAULT_METRICS_ENABLED: Final[bool] = False
DEFAULT_METRICS_HOST: Final[str] = "127.0.0.1"
DEFAULT_METRICS_PORT: Final[int] = 9131

# Minimum wall-clock gap between two live chart points, in seconds.
CHART_SAMPLE_INTERVAL: Final[float] = 1.0
# Samples returned by server.temperature_store (20 minutes at 1 Hz).
HISTORY_TARGET_LENGTH: Final[int] = 1200
# Most recent samples used to seed the chart.
HISTORY_WINDOW: Final[int] = 600

CONSOLE_LINE_BREAK: Final[str] = "<br />"

MACRO_NAMESPACE: Final[str] = "gcode_macro"
MENU_NAMESPACE: Final[str] = "menu"

# Object classes that never report a meaningful target.
TARGETLESS_SENSOR_PREFIXES: Final[tuple[str, ...]] = (
    "temperature_probe",
    "temperature_sensor",
)

CHARTABLE_SENSOR_PREFIXES: Final[tuple[str, ...]] = (
    "extruder",
    "heater_bed",
    "heater_generic",
    "temperature_fan",
    "temperature_probe",
    "temperature_sensor",
)

SUPERVISOR_DEFAULT_MIN_BACKOFF: Final[float] = 1.0
SUPERVISOR_DEFAULT_MAX_BACKOFF: Final[float] = 30.0
SUPERVISOR_PROMETHEUS_RESTART_INTERVAL: Final[float] = 5.0
