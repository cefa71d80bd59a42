"""Collaborator interfaces consumed by the sync services."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from ..config.settings import RuntimeConfig
from ..protocol.methods import FileListAction

logger = logging.getLogger("moonbridge.service.collaborators")


class RpcTransport(Protocol):
    """Outbound half of the controller connection."""

    async def request(self, method: str, params: Mapping[str, Any] | None = None) -> None: ...


class FileManager(Protocol):
    def on_registered_directories(self, directories: Sequence[str]) -> None: ...

    def on_file_list_changed(self, action: FileListAction, payload: Mapping[str, Any]) -> None: ...

    def on_metadata_update(self, payload: Mapping[str, Any]) -> None: ...


class DevicePower(Protocol):
    def on_devices(self, payload: Mapping[str, Any]) -> None: ...

    def on_status(self, status: Mapping[str, Any]) -> None: ...


class SoftwareUpdate(Protocol):
    def on_update_response(self, payload: Mapping[str, Any]) -> None: ...

    def on_update_status(self, payload: Mapping[str, Any]) -> None: ...


class ConfigProvider(Protocol):
    def hidden_macros(self) -> Sequence[str]: ...


class Notifier(Protocol):
    def notify_error(self, text: str) -> None: ...


class LoggingCollaborators:
    """Headless stand-in for every UI-side collaborator.

    The daemon has no file browser, power panel or toast area; events are
    logged so the stream stays observable.
    """

    def __init__(self, config: RuntimeConfig) -> None:
        self._config = config

    def on_registered_directories(self, directories: Sequence[str]) -> None:
        logger.info("Registered directories: %s", ", ".join(directories))

    def on_file_list_changed(self, action: FileListAction, payload: Mapping[str, Any]) -> None:
        item = payload.get("item")
        path = item.get("path") if isinstance(item, Mapping) else None
        logger.info("File list changed: %s %s", action.value, path or "")

    def on_metadata_update(self, payload: Mapping[str, Any]) -> None:
        logger.debug("Metadata updated for %s", payload.get("filename"))

    def on_devices(self, payload: Mapping[str, Any]) -> None:
        devices = payload.get("devices")
        logger.info("Power devices: %d", len(devices) if isinstance(devices, list) else 0)

    def on_status(self, status: Mapping[str, Any]) -> None:
        for device, value in status.items():
            logger.info("Power device %s is %s", device, value)

    def on_update_response(self, payload: Mapping[str, Any]) -> None:
        logger.info("Update: %s", payload.get("message", ""))

    def on_update_status(self, payload: Mapping[str, Any]) -> None:
        logger.debug("Update status refreshed (busy=%s)", payload.get("busy"))

    def hidden_macros(self) -> Sequence[str]:
        return self._config.hidden_macros

    def notify_error(self, text: str) -> None:
        logger.error("Controller error: %s", text)


__all__ = [
    "ConfigProvider",
    "DevicePower",
    "FileManager",
    "LoggingCollaborators",
    "Notifier",
    "RpcTransport",
    "SoftwareUpdate",
]
