"""Tests for the Moonraker WebSocket transport."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import msgspec
import pytest
from websockets.exceptions import ConnectionClosedOK

from moonbridge.config.settings import RuntimeConfig
from moonbridge.services.runtime import SyncService
from moonbridge.state.context import SessionState
from moonbridge.transport import MoonrakerTransport, SessionEnded, notification_payload


class FakeWebSocket:
    """Async-iterable socket that yields queued frames then ends."""

    def __init__(self, frames: list[str] | None = None) -> None:
        self.sent: list[str] = []
        self.frames = list(frames or [])
        self.closed = False

    async def send(self, data: str) -> None:
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True

    def __aiter__(self) -> FakeWebSocket:
        return self

    async def __anext__(self) -> str:
        if not self.frames:
            raise StopAsyncIteration
        return self.frames.pop(0)

    async def __aenter__(self) -> FakeWebSocket:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.closed = True


@pytest.fixture
def service() -> MagicMock:
    return MagicMock(spec=SyncService)


@pytest.fixture
def transport(runtime_config: RuntimeConfig, session_state: SessionState, service: MagicMock) -> MoonrakerTransport:
    return MoonrakerTransport(runtime_config, session_state, service)


def test_notification_payload_unwraps_first_element() -> None:
    assert notification_payload([{"extruder": {}}, 1234.5]) == {"extruder": {}}
    assert notification_payload([]) is None
    assert notification_payload(None) is None
    assert notification_payload({"a": 1}) == {"a": 1}


@pytest.mark.asyncio
async def test_request_assigns_incrementing_ids(transport: MoonrakerTransport) -> None:
    ws = FakeWebSocket()
    transport._ws = ws

    await transport.request("printer.info")
    await transport.request("printer.objects.subscribe", {"objects": {"extruder": None}})

    first = msgspec.json.decode(ws.sent[0])
    second = msgspec.json.decode(ws.sent[1])
    assert first == {"method": "printer.info", "id": 1, "params": {}, "jsonrpc": "2.0"}
    assert second["id"] == 2
    assert second["params"] == {"objects": {"extruder": None}}
    assert transport.pending_requests == {1: "printer.info", 2: "printer.objects.subscribe"}


@pytest.mark.asyncio
async def test_request_dropped_when_disconnected(transport: MoonrakerTransport) -> None:
    await transport.request("printer.info")
    assert transport.pending_requests == {}


@pytest.mark.asyncio
async def test_request_send_failure_clears_pending(transport: MoonrakerTransport) -> None:
    ws = MagicMock()
    ws.send = AsyncMock(side_effect=ConnectionClosedOK(None, None))
    transport._ws = ws

    with pytest.raises(ConnectionClosedOK):
        await transport.request("printer.info")
    assert transport.pending_requests == {}


def test_response_routed_by_method_name(transport: MoonrakerTransport, service: MagicMock) -> None:
    transport._pending[7] = "printer.info"

    transport.handle_frame('{"jsonrpc": "2.0", "id": 7, "result": {"state": "ready"}}')

    service.handle_response.assert_called_once_with("printer.info", {"state": "ready"})
    assert transport.pending_requests == {}


def test_error_frame_routed_to_on_error(transport: MoonrakerTransport, service: MagicMock) -> None:
    transport._pending[3] = "printer.gcode.script"

    transport.handle_frame('{"jsonrpc": "2.0", "id": 3, "error": {"code": 503, "message": "Klippy Disconnected"}}')

    service.on_error.assert_called_once_with(503, "Klippy Disconnected")
    service.handle_response.assert_not_called()


def test_unknown_id_ignored(transport: MoonrakerTransport, service: MagicMock) -> None:
    transport.handle_frame('{"jsonrpc": "2.0", "id": 99, "result": "ok"}')
    service.handle_response.assert_not_called()


def test_notification_frame(transport: MoonrakerTransport, service: MagicMock) -> None:
    transport.handle_frame(
        '{"jsonrpc": "2.0", "method": "notify_status_update", "params": [{"extruder": {"temperature": 21.0}}, 555.2]}'
    )

    service.handle_notification.assert_called_once_with(
        "notify_status_update", {"extruder": {"temperature": 21.0}}
    )


def test_frame_without_id_or_method_ignored(transport: MoonrakerTransport, service: MagicMock) -> None:
    transport.handle_frame('{"jsonrpc": "2.0", "result": 1}')
    transport.handle_frame('{"jsonrpc": "2.0", "params": [{}]}')

    service.handle_response.assert_not_called()
    service.handle_notification.assert_not_called()
    service.on_error.assert_not_called()


def test_malformed_frame_discarded(transport: MoonrakerTransport, service: MagicMock) -> None:
    transport.handle_frame("not json")
    transport.handle_frame('{"id": "abc"}')

    service.handle_response.assert_not_called()
    service.handle_notification.assert_not_called()


@pytest.mark.asyncio
async def test_session_lifecycle(runtime_config: RuntimeConfig, session_state: SessionState, service: MagicMock) -> None:
    ws = FakeWebSocket(['{"jsonrpc": "2.0", "method": "notify_klippy_ready"}'])
    connect = MagicMock(return_value=ws)
    transport = MoonrakerTransport(runtime_config, session_state, service, connect=connect)

    with pytest.raises(SessionEnded):
        await transport._session(1)

    connect.assert_called_once_with(runtime_config.moonraker_url, max_size=None)
    service.on_connecting.assert_called_once_with(False)
    service.on_open.assert_called_once_with()
    service.handle_notification.assert_called_once_with("notify_klippy_ready", None)
    service.on_close.assert_called_once_with()
    assert transport.connected is False


@pytest.mark.asyncio
async def test_run_reconnects_after_close(
    runtime_config: RuntimeConfig, session_state: SessionState, service: MagicMock
) -> None:
    attempts: list[FakeWebSocket] = []
    reconnected = asyncio.Event()

    def _connect(url: str, **kwargs: Any) -> FakeWebSocket:
        ws = FakeWebSocket()
        attempts.append(ws)
        if len(attempts) >= 2:
            reconnected.set()
        return ws

    transport = MoonrakerTransport(runtime_config, session_state, service, connect=_connect)
    task = asyncio.create_task(transport.run())
    await asyncio.wait_for(reconnected.wait(), timeout=1.0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert service.on_connecting.call_args_list[0].args == (False,)
    assert service.on_connecting.call_args_list[1].args == (True,)


@pytest.mark.asyncio
async def test_close_closes_socket(transport: MoonrakerTransport) -> None:
    ws = FakeWebSocket()
    transport._ws = ws

    await transport.close()

    assert ws.closed is True
