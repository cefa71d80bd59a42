"""Tests for connection lifecycle and error handling."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from moonbridge.config.settings import RuntimeConfig
from moonbridge.protocol.structures import ConnectionState, Macro
from moonbridge.services.bootstrap import BootstrapSequencer
from moonbridge.services.retry import RetryScheduler
from moonbridge.services.router import SubscriptionGate
from moonbridge.services.supervisor import ConnectionSupervisor
from moonbridge.state.context import SessionState


@pytest.fixture
def retry() -> MagicMock:
    return MagicMock(spec=RetryScheduler)


@pytest.fixture
def bootstrap() -> MagicMock:
    return MagicMock(spec=BootstrapSequencer)


@pytest.fixture
def notifier() -> MagicMock:
    return MagicMock()


@pytest.fixture
def supervisor(
    runtime_config: RuntimeConfig,
    session_state: SessionState,
    retry: MagicMock,
    bootstrap: MagicMock,
    notifier: MagicMock,
) -> ConnectionSupervisor:
    return ConnectionSupervisor(
        config=runtime_config,
        state=session_state,
        retry=retry,
        gate=SubscriptionGate(session_state),
        bootstrap=bootstrap,
        notifier=notifier,
    )


def test_connect_open_close_cycle(
    supervisor: ConnectionSupervisor, session_state: SessionState, bootstrap: MagicMock, retry: MagicMock
) -> None:
    supervisor.on_connecting(False)
    assert session_state.connection_state is ConnectionState.CONNECTING
    assert supervisor.manual_refresh_available is True

    supervisor.on_open()
    assert supervisor.connection_state is ConnectionState.OPEN
    bootstrap.start.assert_called_once_with()

    session_state.accepting_notifications = True
    session_state.failed_plugins.append("history")
    session_state.initialized_plugins.add("power")
    supervisor.on_close()

    assert session_state.connection_state is ConnectionState.DISCONNECTED
    assert session_state.accepting_notifications is False
    assert session_state.failed_plugins == []
    assert session_state.initialized_plugins == set()
    retry.cancel.assert_called_once_with()
    bootstrap.reset.assert_called_once_with()


def test_reconnect_hides_manual_refresh(supervisor: ConnectionSupervisor) -> None:
    supervisor.on_connecting(True)
    assert supervisor.manual_refresh_available is False


def test_client_error_is_surfaced_without_state_change(
    supervisor: ConnectionSupervisor, session_state: SessionState, notifier: MagicMock, retry: MagicMock
) -> None:
    supervisor.on_connecting(False)
    supervisor.on_open()
    session_state.accepting_notifications = True

    supervisor.on_error(400, "{'code': 400, 'message': 'Unknown command: \"FOO\"'}")

    notifier.notify_error.assert_called_once()
    assert session_state.accepting_notifications is True
    assert supervisor.connection_state is ConnectionState.OPEN
    assert session_state.counters.errors_surfaced == 1
    retry.arm.assert_not_called()


def test_service_unavailable_resets_and_retries(
    supervisor: ConnectionSupervisor,
    session_state: SessionState,
    retry: MagicMock,
    bootstrap: MagicMock,
    runtime_config: RuntimeConfig,
) -> None:
    supervisor.on_connecting(False)
    supervisor.on_open()
    session_state.accepting_notifications = True
    session_state.macros["PRINT_START"] = Macro(name="PRINT_START")
    session_state.printer_objects["extruder"] = {"temperature": 200.0}

    supervisor.on_error(503, "Klippy Disconnected")

    assert supervisor.connection_state is ConnectionState.ERROR
    assert session_state.accepting_notifications is False
    assert session_state.macros == {}
    assert session_state.printer_objects == {}
    assert session_state.printer_info.state == "error"
    assert session_state.printer_info.state_message == "Klippy Disconnected"
    assert session_state.last_error_message == "Klippy Disconnected"
    bootstrap.reset.assert_called_once_with()
    retry.arm.assert_called_once_with(
        runtime_config.klippy_retry_delay,
        bootstrap.probe,
        reason="service_unavailable",
    )

    supervisor.note_response()
    assert supervisor.connection_state is ConnectionState.OPEN


def test_unclassified_error_only_counts(
    supervisor: ConnectionSupervisor, session_state: SessionState, notifier: MagicMock, retry: MagicMock
) -> None:
    supervisor.on_error(-32601, "Method not found")

    assert session_state.counters.errors_unclassified == 1
    notifier.notify_error.assert_not_called()
    retry.arm.assert_not_called()


def test_restart_session_reprobes(
    supervisor: ConnectionSupervisor, session_state: SessionState, bootstrap: MagicMock, retry: MagicMock
) -> None:
    supervisor.on_connecting(False)
    supervisor.on_open()
    session_state.server_info = None
    session_state.failed_plugins.append("history")
    session_state.console.append("line")

    supervisor.restart_session("shutdown")

    assert supervisor.connection_state is ConnectionState.OPEN
    assert session_state.failed_plugins == ["history"]
    assert len(session_state.console) == 0
    retry.cancel.assert_called_once_with()
    bootstrap.reset.assert_called_once_with()
    bootstrap.probe.assert_called_once_with()
