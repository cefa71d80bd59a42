"""Moonraker WebSocket transport (JSON-RPC 2.0)."""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, cast

import msgspec
import tenacity
import websockets
from websockets.exceptions import WebSocketException

from ..config.settings import RuntimeConfig
from ..protocol.structures import RpcInbound, RpcRequest
from ..state.context import SessionState

if TYPE_CHECKING:
    from ..services.runtime import SyncService

logger = logging.getLogger("moonbridge.transport.websocket")


class SessionEnded(ConnectionError):
    """The controller closed the socket; a reconnect should follow."""


_RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    OSError,
    asyncio.TimeoutError,
    WebSocketException,
    SessionEnded,
)


def _log_retry_attempt(retry_state: tenacity.RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.info(
        "Moonraker link lost (%s); reconnecting in %.2fs (attempt %d)",
        exc,
        retry_state.next_action.sleep if retry_state.next_action else 0,
        retry_state.attempt_number + 1,
    )


def notification_payload(params: Any) -> Any:
    """Moonraker wraps notification arguments in a list; keep the first."""
    if isinstance(params, list):
        return params[0] if params else None
    return params


class MoonrakerTransport:
    """Keeps one WebSocket open to Moonraker and feeds frames to the service.

    Requests carry incrementing ids; the id is mapped back to the method
    name so responses reach the service under their logical name. Reconnects
    use a fixed delay with no attempt limit.
    """

    def __init__(
        self,
        config: RuntimeConfig,
        state: SessionState,
        service: SyncService,
        *,
        connect: Callable[..., Any] = websockets.connect,
    ) -> None:
        self.config = config
        self.state = state
        self.service = service
        self._connect = connect
        self._ws: Any = None
        self._ids = itertools.count(1)
        self._pending: dict[int, str] = {}
        self._decoder = msgspec.json.Decoder(RpcInbound)
        self._encoder = msgspec.json.Encoder()

    @property
    def connected(self) -> bool:
        return self._ws is not None

    @property
    def pending_requests(self) -> dict[int, str]:
        return dict(self._pending)

    async def request(self, method: str, params: Mapping[str, Any] | None = None) -> None:
        ws = self._ws
        if ws is None:
            logger.warning("Moonraker not connected; dropping %s", method)
            return
        request_id = next(self._ids)
        self._pending[request_id] = method
        frame = RpcRequest(method=method, id=request_id, params=dict(params or {}))
        logger.debug("-> %s (id=%d)", method, request_id)
        try:
            await ws.send(self._encoder.encode(frame).decode("utf-8"))
        except WebSocketException:
            self._pending.pop(request_id, None)
            raise

    def handle_frame(self, raw: str | bytes) -> None:
        try:
            frame = self._decoder.decode(raw)
        except msgspec.DecodeError as exc:
            logger.warning("Discarding malformed frame from Moonraker: %s", exc)
            return

        if frame.id is not None:
            method = self._pending.pop(frame.id, None)
            if method is None:
                logger.debug("Response for unknown request id %s", frame.id)
                return
            if frame.error is not None:
                self.service.on_error(frame.error.code, frame.error.message)
                return
            self.service.handle_response(method, frame.result)
            return

        if frame.is_notification:
            self.service.handle_notification(cast(str, frame.method), notification_payload(frame.params))
            return

        logger.debug("Ignoring frame without id or method")

    async def _session(self, attempt_number: int) -> None:
        self.service.on_connecting(attempt_number > 1)
        async with self._connect(self.config.moonraker_url, max_size=None) as ws:
            self._ws = ws
            logger.info("Connected to %s", self.config.moonraker_url)
            self.service.on_open()
            try:
                async for message in ws:
                    self.handle_frame(message)
            finally:
                self._ws = None
                self._pending.clear()
                self.service.on_close()
        raise SessionEnded("connection closed by Moonraker")

    async def run(self) -> None:
        """Main run loop with reconnection logic."""
        retryer = tenacity.AsyncRetrying(
            wait=tenacity.wait_fixed(self.config.reconnect_delay),
            stop=tenacity.stop_never,
            retry=tenacity.retry_if_exception_type(_RETRYABLE_ERRORS),
            before_sleep=_log_retry_attempt,
            reraise=True,
        )
        try:
            async for attempt in retryer:
                with attempt:
                    await self._session(attempt.retry_state.attempt_number)
        except asyncio.CancelledError:
            logger.info("Moonraker transport stopping.")
            raise

    async def close(self) -> None:
        ws = self._ws
        if ws is not None:
            await ws.close()


__all__ = ["MoonrakerTransport", "SessionEnded", "notification_payload"]
