"""Tests for daemon task supervision."""

from __future__ import annotations

import asyncio
import dataclasses

import pytest

from moonbridge.config.settings import RuntimeConfig
from moonbridge.daemon import SupervisedTaskSpec, SyncDaemon


def test_daemon_wires_transport(runtime_config: RuntimeConfig) -> None:
    daemon = SyncDaemon(runtime_config)

    specs = daemon._setup_supervision()

    assert [spec.name for spec in specs] == ["moonraker-link"]
    assert daemon.service._transport is daemon.transport
    assert daemon.exporter is None


def test_daemon_adds_exporter_when_enabled(runtime_config: RuntimeConfig) -> None:
    config = dataclasses.replace(runtime_config, metrics_enabled=True, metrics_port=0)
    daemon = SyncDaemon(config)

    specs = daemon._setup_supervision()

    assert [spec.name for spec in specs] == ["moonraker-link", "prometheus-exporter"]
    assert daemon.exporter is not None


@pytest.mark.asyncio
async def test_supervisor_restarts_failed_task(runtime_config: RuntimeConfig) -> None:
    daemon = SyncDaemon(runtime_config)
    calls: list[int] = []

    async def _flaky() -> None:
        calls.append(1)
        if len(calls) == 1:
            raise OSError("connection refused")

    spec = SupervisedTaskSpec(name="flaky", factory=_flaky, min_backoff=0.01, max_backoff=0.02)
    await asyncio.wait_for(daemon._supervise_task(spec), timeout=1.0)

    assert len(calls) == 2
    stats = daemon.state.supervisor_stats["flaky"]
    assert stats.restarts == 1
    assert stats.last_exception == "OSError: connection refused"
    assert stats.fatal is False


@pytest.mark.asyncio
async def test_supervisor_gives_up_after_max_restarts(runtime_config: RuntimeConfig) -> None:
    daemon = SyncDaemon(runtime_config)

    async def _broken() -> None:
        raise RuntimeError("bad state")

    spec = SupervisedTaskSpec(
        name="broken",
        factory=_broken,
        max_restarts=1,
        min_backoff=0.01,
        max_backoff=0.02,
    )

    with pytest.raises(RuntimeError, match="bad state"):
        await asyncio.wait_for(daemon._supervise_task(spec), timeout=1.0)

    stats = daemon.state.supervisor_stats["broken"]
    assert stats.restarts == 2
    assert stats.fatal is True


@pytest.mark.asyncio
async def test_supervisor_propagates_cancellation(runtime_config: RuntimeConfig) -> None:
    daemon = SyncDaemon(runtime_config)
    started = asyncio.Event()

    async def _forever() -> None:
        started.set()
        await asyncio.Event().wait()

    task = asyncio.create_task(daemon._supervise_task(SupervisedTaskSpec(name="forever", factory=_forever)))
    await asyncio.wait_for(started.wait(), timeout=1.0)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert "forever" not in daemon.state.supervisor_stats
