"""Moonbridge data structures.

Records exchanged with the controller and held in session state. Inbound
payloads are converted with ``msgspec.convert``; unknown fields are ignored.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

import msgspec

from .methods import JSONRPC_VERSION


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    ERROR = "error"


class PrinterState(StrEnum):
    STARTUP = "startup"
    READY = "ready"
    ERROR = "error"
    SHUTDOWN = "shutdown"
    DISCONNECTED = "disconnected"


class ConsoleEntryType(StrEnum):
    COMMAND = "command"
    RESPONSE = "response"


class PrinterInfo(msgspec.Struct):
    """Subset of the ``printer.info`` result tracked by the session."""

    # Kept as str so states newer than PrinterState survive.
    state: str = PrinterState.DISCONNECTED.value
    state_message: str = ""
    hostname: str = ""
    software_version: str = ""

    @property
    def is_ready(self) -> bool:
        return self.state == PrinterState.READY


class ServerInfo(msgspec.Struct):
    klippy_connected: bool = False
    klippy_state: str = ""
    plugins: list[str] = msgspec.field(default_factory=list)
    failed_plugins: list[str] = msgspec.field(default_factory=list)
    registered_directories: list[str] | None = None
    moonraker_version: str = ""


class SensorSeries(msgspec.Struct, frozen=True):
    """Historical arrays for one sensor, oldest sample first."""

    temperatures: list[float] = msgspec.field(default_factory=list)
    targets: list[float] | None = None
    powers: list[float] | None = None
    speeds: list[float] | None = None


class ChartPoint(msgspec.Struct, frozen=True):
    timestamp: float
    values: dict[str, float] = msgspec.field(default_factory=dict)


class ConsoleEntry(msgspec.Struct, frozen=True):
    message: str
    time: int
    type: ConsoleEntryType = ConsoleEntryType.RESPONSE


class Macro(msgspec.Struct):
    name: str
    visible: bool = True
    config: dict[str, Any] | None = None


class RpcRequest(msgspec.Struct, frozen=True):
    method: str
    id: int
    params: dict[str, Any] = msgspec.field(default_factory=dict)
    jsonrpc: str = JSONRPC_VERSION


class RpcError(msgspec.Struct, frozen=True):
    code: int
    message: str = ""


class RpcInbound(msgspec.Struct, frozen=True):
    """Any frame received from the controller: response, error or notification."""

    jsonrpc: str = JSONRPC_VERSION
    id: int | None = None
    method: str | None = None
    params: Any = None
    result: Any = None
    error: RpcError | None = None

    @property
    def is_notification(self) -> bool:
        return self.id is None and self.method is not None


__all__ = [
    "ChartPoint",
    "ConnectionState",
    "ConsoleEntry",
    "ConsoleEntryType",
    "Macro",
    "PrinterInfo",
    "PrinterState",
    "RpcError",
    "RpcInbound",
    "RpcRequest",
    "SensorSeries",
    "ServerInfo",
]
