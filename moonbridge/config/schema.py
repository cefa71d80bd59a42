"""Marshmallow schema for RuntimeConfig validation."""

from __future__ import annotations

from typing import Any, Dict

from marshmallow import EXCLUDE, Schema, fields, post_load, pre_load, validate

from ..const import (
    DEFAULT_CHART_RETENTION,
    DEFAULT_CONSOLE_RECEIVE_PREFIX,
    DEFAULT_CONSOLE_RETENTION,
    DEFAULT_KLIPPY_RETRY_DELAY,
    DEFAULT_METRICS_HOST,
    DEFAULT_METRICS_PORT,
    DEFAULT_MOONRAKER_URL,
    DEFAULT_RECONNECT_DELAY,
)
from .model import RuntimeConfig


class RuntimeConfigSchema(Schema):
    """Declarative validation schema for Moonbridge configuration."""

    class Meta:
        unknown = EXCLUDE

    # Connection
    moonraker_url = fields.Str(
        load_default=DEFAULT_MOONRAKER_URL,
        validate=validate.Regexp(r"^wss?://.+", error="moonraker_url must be a ws:// or wss:// URL"),
    )
    reconnect_delay = fields.Float(load_default=DEFAULT_RECONNECT_DELAY, validate=validate.Range(min=0.1))
    klippy_retry_delay = fields.Float(load_default=DEFAULT_KLIPPY_RETRY_DELAY, validate=validate.Range(min=0.1))

    # Session buffers
    chart_retention = fields.Int(load_default=DEFAULT_CHART_RETENTION, validate=validate.Range(min=1))
    console_retention = fields.Int(load_default=DEFAULT_CONSOLE_RETENTION, validate=validate.Range(min=1))
    console_receive_prefix = fields.Str(load_default=DEFAULT_CONSOLE_RECEIVE_PREFIX)
    hidden_macros = fields.List(fields.Str(), load_default=tuple)

    # System
    debug_logging = fields.Bool(load_default=False)
    metrics_enabled = fields.Bool(load_default=False)
    metrics_host = fields.Str(load_default=DEFAULT_METRICS_HOST, validate=validate.Length(min=1))
    metrics_port = fields.Int(load_default=DEFAULT_METRICS_PORT, validate=validate.Range(min=0, max=65535))

    @pre_load
    def split_hidden_macros(self, data: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
        # "A B C" is accepted as well as a TOML array.
        hidden = data.get("hidden_macros")
        if isinstance(hidden, str):
            data = dict(data)
            data["hidden_macros"] = hidden.split()
        return data

    @post_load
    def make_config(self, data: Dict[str, Any], **kwargs: Any) -> RuntimeConfig:
        data["hidden_macros"] = tuple(data.get("hidden_macros", ()))
        return RuntimeConfig(**data)
