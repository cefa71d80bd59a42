"""Service façade wiring the sync components together."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from websockets.exceptions import WebSocketException

from ..config.settings import RuntimeConfig
from ..protocol.methods import Method, Notification, parse_file_action
from ..state.context import SessionState
from .base import (
    ConfigProvider,
    DevicePower,
    FileManager,
    LoggingCollaborators,
    Notifier,
    RpcTransport,
    SoftwareUpdate,
)
from .bootstrap import BootstrapSequencer
from .console import ConsoleComponent
from .history import HistoryReconstructor
from .retry import RetryScheduler
from .router import NotificationRouter, ResponseRegistry, SubscriptionGate
from .supervisor import ConnectionSupervisor
from .telemetry import ChartablePredicate, TelemetrySampler, is_chartable_sensor

logger = logging.getLogger("moonbridge.service")

_ACKNOWLEDGED_METHODS = (
    Method.PRINT_START,
    Method.PRINT_PAUSE,
    Method.PRINT_RESUME,
    Method.PRINT_CANCEL,
    Method.EMERGENCY_STOP,
    Method.RESTART,
    Method.FIRMWARE_RESTART,
)


class SyncService:
    """Single entry point for transport events.

    The transport reports lifecycle events, responses (by the logical method
    name of the originating request) and notifications. Outbound requests
    are fire-and-forget: ``send`` schedules them and returns immediately,
    and the answer arrives later through ``handle_response``.
    """

    def __init__(
        self,
        config: RuntimeConfig,
        state: SessionState,
        *,
        file_manager: FileManager | None = None,
        device_power: DevicePower | None = None,
        software_update: SoftwareUpdate | None = None,
        config_provider: ConfigProvider | None = None,
        notifier: Notifier | None = None,
        chartable: ChartablePredicate = is_chartable_sensor,
        clock: Callable[[], float] = time.time,
        retry: RetryScheduler | None = None,
    ) -> None:
        self.config = config
        self.state = state
        self._transport: RpcTransport | None = None
        self._pending: set[asyncio.Task[None]] = set()

        fallback = LoggingCollaborators(config)
        self._file_manager: FileManager = file_manager or fallback
        self._device_power: DevicePower = device_power or fallback
        self._software_update: SoftwareUpdate = software_update or fallback

        self.retry = retry or RetryScheduler()
        self.gate = SubscriptionGate(state)
        self.console = ConsoleComponent(
            config,
            state,
            config_provider=config_provider or fallback,
            clock=clock,
        )
        self.telemetry = TelemetrySampler(state, clock=clock, chartable=chartable)
        self.history = HistoryReconstructor(state, self.console, clock=clock)
        self.bootstrap = BootstrapSequencer(
            config=config,
            state=state,
            send=self.send,
            retry=self.retry,
            gate=self.gate,
            console=self.console,
            history=self.history,
            file_manager=self._file_manager,
            on_status=self.telemetry.on_status_update,
        )
        self.supervisor = ConnectionSupervisor(
            config=config,
            state=state,
            retry=self.retry,
            gate=self.gate,
            bootstrap=self.bootstrap,
            notifier=notifier or fallback,
        )

        self.responses = ResponseRegistry(state)
        self.responses.bulk_register(
            {
                Method.PRINTER_INFO: self.bootstrap.on_printer_info,
                Method.SERVER_INFO: self.bootstrap.on_server_info,
                Method.GCODE_STORE: self.bootstrap.on_gcode_store,
                Method.TEMPERATURE_STORE: self.bootstrap.on_temperature_store,
                Method.GCODE_HELP: self.bootstrap.on_gcode_help,
                Method.OBJECTS_LIST: self.bootstrap.on_printer_objects_list,
                Method.OBJECTS_SUBSCRIBE: self.bootstrap.on_printer_objects_subscribe,
                Method.GCODE_SCRIPT: self.console.on_gcode_script,
                Method.QUERY_ENDSTOPS: self._on_endstops,
                Method.POWER_DEVICES: self._device_power.on_devices,
                Method.UPDATE_STATUS: self._software_update.on_update_status,
            }
        )
        for method in _ACKNOWLEDGED_METHODS:
            self.responses.register(method, self._acknowledged(method))

        self.notifications = NotificationRouter(state, self.gate)
        self.notifications.bulk_register(
            {
                Notification.STATUS_UPDATE: self.telemetry.on_status_update,
                Notification.GCODE_RESPONSE: self.console.on_gcode_response,
                Notification.KLIPPY_DISCONNECTED: self._on_klippy_disconnected,
                Notification.KLIPPY_SHUTDOWN: self._on_klippy_shutdown,
                Notification.KLIPPY_READY: self._on_klippy_ready,
                Notification.FILELIST_CHANGED: self._on_filelist_changed,
                Notification.METADATA_UPDATE: self._file_manager.on_metadata_update,
                Notification.POWER_CHANGED: self._on_power_changed,
                Notification.UPDATE_RESPONSE: self._software_update.on_update_response,
                Notification.UPDATE_REFRESHED: self._software_update.on_update_status,
            }
        )

    async def __aenter__(self) -> SyncService:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.retry.cancel()
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def register_transport(self, transport: RpcTransport) -> None:
        """Allow the transport to provide its request coroutine."""
        self._transport = transport

    # --- Outbound ---------------------------------------------------------

    def send(self, method: Method, params: Mapping[str, Any] | None = None) -> None:
        if self._transport is None:
            logger.error("Transport not registered; cannot send %s", method.value)
            return
        task = asyncio.get_running_loop().create_task(
            self._request(self._transport, method, params),
            name=f"rpc-{method.value}",
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _request(
        self,
        transport: RpcTransport,
        method: Method,
        params: Mapping[str, Any] | None,
    ) -> None:
        try:
            await transport.request(method.value, params)
        except (OSError, ConnectionError, WebSocketException) as exc:
            logger.warning("Request %s failed to send: %s", method.value, exc)

    def send_gcode(self, script: str) -> None:
        self.console.add_console_entry({"message": script, "type": "command"})
        self.send(Method.GCODE_SCRIPT, {"script": script})

    def query_endstops(self) -> None:
        self.send(Method.QUERY_ENDSTOPS, None)

    # --- Transport events -------------------------------------------------

    def on_connecting(self, is_reconnect: bool) -> None:
        self.supervisor.on_connecting(is_reconnect)

    def on_open(self) -> None:
        self.supervisor.on_open()

    def on_close(self) -> None:
        self.supervisor.on_close()

    def on_error(self, code: int, message: str) -> None:
        self.supervisor.on_error(code, message)

    def handle_response(self, method: str, result: Any) -> bool:
        self.supervisor.note_response()
        return self.responses.dispatch(method, result)

    def handle_notification(self, method: str, params: Any) -> bool:
        return self.notifications.dispatch(method, params)

    # --- Handlers ---------------------------------------------------------

    def _acknowledged(self, method: Method) -> Callable[[Any], None]:
        def _log_ack(result: Any) -> None:
            logger.debug("%s acknowledged: %s", method.value, result)

        return _log_ack

    def _on_endstops(self, payload: Any) -> None:
        if not isinstance(payload, Mapping):
            raise TypeError("endstop payload must be a mapping")
        self.state.endstops = {str(key): str(value) for key, value in payload.items()}

    def _on_klippy_disconnected(self, _payload: Any) -> None:
        self.supervisor.restart_session("disconnected")

    def _on_klippy_shutdown(self, _payload: Any) -> None:
        self.supervisor.restart_session("shutdown")

    def _on_klippy_ready(self, _payload: Any) -> None:
        logger.debug("Klippy reported ready")

    def _on_filelist_changed(self, payload: Any) -> None:
        if not isinstance(payload, Mapping):
            raise TypeError("filelist payload must be a mapping")
        action = parse_file_action(payload.get("action"))
        if action is None:
            logger.warning("Unrecognised file list action %r; ignoring", payload.get("action"))
            return
        self._file_manager.on_file_list_changed(action, payload)

    def _on_power_changed(self, payload: Any) -> None:
        if not isinstance(payload, Mapping):
            raise TypeError("power payload must be a mapping")
        device = payload.get("device")
        if not isinstance(device, str):
            raise KeyError("device")
        self._device_power.on_status({device: payload.get("status")})


__all__ = ["SyncService"]
