#!/usr/bin/env python3
"""Async orchestrator for the Moonbridge daemon.

Architecture:
    main() -> SyncDaemon -> TaskGroup
        ├── moonraker-link (MoonrakerTransport)
        └── prometheus-exporter (optional)
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from collections.abc import Awaitable, Callable
from typing import NoReturn

import msgspec
import tenacity
import uvloop

from moonbridge.config.logging import configure_logging
from moonbridge.config.settings import RuntimeConfig, load_runtime_config, resolve_config_path
from moonbridge.const import (
    SUPERVISOR_DEFAULT_MAX_BACKOFF,
    SUPERVISOR_DEFAULT_MIN_BACKOFF,
    SUPERVISOR_PROMETHEUS_RESTART_INTERVAL,
)
from moonbridge.metrics import PrometheusExporter
from moonbridge.services.runtime import SyncService
from moonbridge.state.context import SessionState, create_session_state
from moonbridge.transport import MoonrakerTransport

logger = logging.getLogger("moonbridge")


class SupervisedTaskSpec(msgspec.Struct):
    """Specification for a supervised async task."""

    name: str
    factory: Callable[[], Awaitable[None]]
    max_restarts: int | None = None
    min_backoff: float = SUPERVISOR_DEFAULT_MIN_BACKOFF
    max_backoff: float = SUPERVISOR_DEFAULT_MAX_BACKOFF
    healthy_after: float = 10.0


class SyncDaemon:
    """Owns the session state, the sync service and their tasks."""

    def __init__(self, config: RuntimeConfig):
        self.config = config
        self.state = create_session_state(config)
        self.service = SyncService(config, self.state)
        self.transport = MoonrakerTransport(config, self.state, self.service)
        self.service.register_transport(self.transport)
        self.exporter: PrometheusExporter | None = None

    def _setup_supervision(self) -> list[SupervisedTaskSpec]:
        """Prepare the list of tasks to be supervised."""
        specs: list[SupervisedTaskSpec] = [
            SupervisedTaskSpec(
                name="moonraker-link",
                factory=self.transport.run,
            ),
        ]

        if self.config.metrics_enabled:
            self.exporter = PrometheusExporter(
                self.state,
                self.config.metrics_host,
                self.config.metrics_port,
            )
            specs.append(
                SupervisedTaskSpec(
                    name="prometheus-exporter",
                    factory=self.exporter.run,
                    max_restarts=5,
                    healthy_after=SUPERVISOR_PROMETHEUS_RESTART_INTERVAL,
                )
            )

        return specs

    async def _supervise_task(self, spec: SupervisedTaskSpec) -> None:
        """Run *spec.factory* restarting it on failures using tenacity."""
        log = logging.getLogger("moonbridge.supervisor")
        callbacks = self._SupervisorCallbacks(spec.name, log, self.state)

        retryer = tenacity.AsyncRetrying(
            wait=tenacity.wait_exponential(multiplier=spec.min_backoff, max=spec.max_backoff),
            retry=tenacity.retry_if_not_exception_type(
                (asyncio.CancelledError, SystemExit, KeyboardInterrupt, GeneratorExit)
            ),
            stop=tenacity.stop_after_attempt(spec.max_restarts + 1)
            if spec.max_restarts is not None
            else tenacity.stop_never,
            before_sleep=callbacks.before_sleep,
            after=callbacks.after_retry,
            reraise=True,
        )

        last_start_time = 0.0
        try:
            while True:
                try:
                    async for attempt in retryer:
                        with attempt:
                            last_start_time = time.monotonic()
                            await spec.factory()
                            log.warning("%s task exited cleanly; supervisor exiting", spec.name)
                            self.state.mark_supervisor_healthy(spec.name)
                            return
                except (asyncio.CancelledError, KeyboardInterrupt, SystemExit):
                    raise
                except Exception:
                    if last_start_time > 0 and (time.monotonic() - last_start_time) > spec.healthy_after:
                        log.info("%s was healthy long enough; resetting backoff", spec.name)
                        self.state.mark_supervisor_healthy(spec.name)
                        continue
                    log.critical("%s exhausted its restarts; giving up", spec.name)
                    self.state.mark_supervisor_fatal(spec.name)
                    raise
        except asyncio.CancelledError:
            log.debug("%s supervisor cancelled", spec.name)
            raise

    class _SupervisorCallbacks:
        """Helper to avoid nested functions in supervisor."""

        __slots__ = ("name", "log", "state")

        def __init__(self, name: str, log: logging.Logger, state: SessionState):
            self.name = name
            self.log = log
            self.state = state

        def before_sleep(self, retry_state: tenacity.RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            self.log.error("%s failed (%s); restarting in %.1fs", self.name, exc, delay)
            self.state.note_supervisor_backoff(self.name, delay)

        def after_retry(self, retry_state: tenacity.RetryCallState) -> None:
            # Runs before the stop decision; the backoff is filled in by before_sleep.
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            if exc:
                self.state.record_supervisor_failure(self.name, backoff=0.0, exc=exc)

    async def run(self) -> None:
        """Main async entry point."""
        supervised_tasks = self._setup_supervision()

        try:
            async with self.service:
                async with asyncio.TaskGroup() as task_group:
                    for spec in supervised_tasks:
                        task_group.create_task(self._supervise_task(spec), name=spec.name)
        except* asyncio.CancelledError:
            logger.info("Main task cancelled; shutting down.")
        except* Exception as exc_group:
            for group_exc in exc_group.exceptions:
                logger.critical(
                    "Unhandled exception in main task group: %s",
                    group_exc,
                    exc_info=group_exc,
                )
            raise
        finally:
            logger.info("Moonbridge daemon stopped.")


def main() -> NoReturn:  # pragma: no cover (Entry point wrapper)
    try:
        config = load_runtime_config()
    except ValueError as exc:
        logging.basicConfig(level=logging.ERROR)
        logger.critical("Configuration error in %s: %s", resolve_config_path(), exc)
        sys.exit(1)
    configure_logging(config)

    logger.info("Starting Moonbridge daemon. Moonraker: %s", config.moonraker_url)

    try:
        daemon = SyncDaemon(config)
        asyncio.run(daemon.run(), loop_factory=uvloop.new_event_loop)
        sys.exit(0)
    except KeyboardInterrupt:
        logger.info("Daemon interrupted by user.")
        sys.exit(0)
    except ExceptionGroup as exc_group:
        for group_exc in exc_group.exceptions:
            logger.critical("Fatal error in task group: %s", group_exc, exc_info=group_exc)
        sys.exit(1)
    except OSError as exc:
        logger.critical("System/OS error during daemon execution: %s", exc, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
