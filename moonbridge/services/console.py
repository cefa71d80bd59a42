"""Console history and macro registry."""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Mapping
from typing import Any

from ..config.settings import RuntimeConfig
from ..const import CONSOLE_LINE_BREAK
from ..protocol.structures import ConsoleEntry, ConsoleEntryType, Macro
from ..state.context import SessionState
from .base import ConfigProvider

logger = logging.getLogger("moonbridge.service.console")

_NEWLINE_RE = re.compile(r"\r\n|\r|\n")
_SCRIPT_OK = "ok"


def normalize_console_message(message: str) -> str:
    return _NEWLINE_RE.sub(CONSOLE_LINE_BREAK, message)


def _entry_type(value: Any) -> ConsoleEntryType:
    if value is None:
        return ConsoleEntryType.RESPONSE
    try:
        return ConsoleEntryType(value)
    except ValueError:
        logger.debug("Unknown console entry type %r; using response", value)
        return ConsoleEntryType.RESPONSE


class ConsoleComponent:
    """Normalises console lines and tracks gcode macros."""

    def __init__(
        self,
        config: RuntimeConfig,
        state: SessionState,
        *,
        config_provider: ConfigProvider,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.state = state
        self._config_provider = config_provider
        self._clock = clock

    def add_console_entry(self, entry: Mapping[str, Any]) -> ConsoleEntry:
        raw_time = entry.get("time")
        if not isinstance(raw_time, (int, float)) or raw_time <= 0:
            raw_time = self._clock()
        console_entry = ConsoleEntry(
            message=normalize_console_message(str(entry.get("message", ""))),
            time=int(raw_time),
            type=_entry_type(entry.get("type")),
        )
        self.state.console.append(console_entry)
        return console_entry

    def on_gcode_response(self, payload: Any) -> None:
        message = payload if isinstance(payload, str) else str(payload)
        self.add_console_entry({"message": f"{self.state.console_receive_prefix}{message}"})

    def on_gcode_script(self, result: Any) -> None:
        if result == _SCRIPT_OK:
            return
        self.add_console_entry({"message": f"{self.state.console_receive_prefix}{result}"})

    def is_macro_hidden(self, name: str) -> bool:
        hidden = {entry.lower() for entry in self._config_provider.hidden_macros()}
        return name.lower() in hidden

    def add_macro(self, name: str, *, config: dict[str, Any] | None = None) -> Macro:
        macro = Macro(name=name, visible=not self.is_macro_hidden(name), config=config)
        self.state.macros[name] = macro
        return macro

    def update_macro(self, name: str, *, config: dict[str, Any] | None = None) -> Macro:
        """Re-evaluate visibility for *name*, keeping its config unless given."""
        current = self.state.macros.get(name)
        if config is None and current is not None:
            config = current.config
        return self.add_macro(name, config=config)


__all__ = ["ConsoleComponent", "normalize_console_message"]
