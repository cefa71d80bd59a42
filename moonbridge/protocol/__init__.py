"""Protocol names and records for the Moonraker API."""

from . import methods, structures
from .methods import FileListAction, Method, Notification, Plugin

__all__ = [
    "FileListAction",
    "Method",
    "Notification",
    "Plugin",
    "methods",
    "structures",
]
