"""Transport to the Moonraker API."""

from .websocket import MoonrakerTransport, SessionEnded, notification_payload

__all__ = ["MoonrakerTransport", "SessionEnded", "notification_payload"]
