"""Pytest configuration for Moonbridge tests."""

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
if str(PACKAGE_ROOT) not in sys.path:
    sys.path.insert(0, str(PACKAGE_ROOT))

from moonbridge.config.settings import RuntimeConfig  # noqa: E402
from moonbridge.protocol.methods import Method  # noqa: E402
from moonbridge.state.context import SessionState, create_session_state  # noqa: E402


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "asyncio: mark test to run on asyncio loop")


@pytest.fixture(autouse=True)
def reset_logging_handlers():
    """Close and remove all logging handlers after each test to prevent ResourceWarnings."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        try:
            handler.close()
        except (OSError, RuntimeError):
            pass
        root.removeHandler(handler)


@pytest.fixture(autouse=True)
def logging_mock_level_fix():
    """Ensure all handlers have a numeric level to avoid comparisons with MagicMock."""
    original_handlers = []
    loggers = [logging.getLogger(name) for name in logging.root.manager.loggerDict]
    loggers.append(logging.getLogger())

    for logger in loggers:
        for handler in logger.handlers:
            if isinstance(handler.level, MagicMock):
                original_handlers.append((handler, handler.level))
                handler.level = logging.NOTSET

    yield

    for handler, level in original_handlers:
        handler.level = level


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSender:
    """Stand-in for ``SyncService.send`` that records outbound requests."""

    def __init__(self) -> None:
        self.calls: list[tuple[Method, Mapping[str, Any] | None]] = []

    def __call__(self, method: Method, params: Mapping[str, Any] | None = None) -> None:
        self.calls.append((method, params))

    @property
    def methods(self) -> list[Method]:
        return [method for method, _ in self.calls]

    def clear(self) -> None:
        self.calls.clear()


class FakeTransport:
    """Records request coroutines issued by the service."""

    def __init__(self) -> None:
        self.requests: list[tuple[str, Mapping[str, Any] | None]] = []

    async def request(self, method: str, params: Mapping[str, Any] | None = None) -> None:
        self.requests.append((method, params))

    @property
    def methods(self) -> list[str]:
        return [method for method, _ in self.requests]


@pytest.fixture()
def runtime_config() -> RuntimeConfig:
    return RuntimeConfig(
        moonraker_url="ws://printer.local:7125/websocket",
        reconnect_delay=0.01,
        klippy_retry_delay=0.01,
        chart_retention=600,
        console_retention=50,
        console_receive_prefix="",
        hidden_macros=("_HIDDEN",),
        debug_logging=False,
        metrics_enabled=False,
    )


@pytest.fixture()
def session_state(runtime_config: RuntimeConfig) -> SessionState:
    return create_session_state(runtime_config)


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture()
def fake_transport() -> FakeTransport:
    return FakeTransport()
