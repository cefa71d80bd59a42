"""Moonraker JSON-RPC method and notification names."""

from __future__ import annotations

from enum import StrEnum
from typing import Final

JSONRPC_VERSION: Final[str] = "2.0"


class Method(StrEnum):
    PRINTER_INFO = "printer.info"  # Klippy state and host info
    SERVER_INFO = "server.info"  # Moonraker plugins and directories
    GCODE_STORE = "server.gcode_store"  # Console history
    TEMPERATURE_STORE = "server.temperature_store"  # Sensor history
    GCODE_HELP = "printer.gcode.help"  # Command descriptions
    OBJECTS_LIST = "printer.objects.list"  # All printer objects
    OBJECTS_SUBSCRIBE = "printer.objects.subscribe"  # Status subscription
    GCODE_SCRIPT = "printer.gcode.script"  # Run a gcode script
    QUERY_ENDSTOPS = "printer.query_endstops.status"  # Endstop states
    PRINT_START = "printer.print.start"
    PRINT_PAUSE = "printer.print.pause"
    PRINT_RESUME = "printer.print.resume"
    PRINT_CANCEL = "printer.print.cancel"
    EMERGENCY_STOP = "printer.emergency_stop"
    RESTART = "printer.restart"
    FIRMWARE_RESTART = "printer.firmware_restart"
    POWER_DEVICES = "machine.device_power.devices"  # Power plugin devices
    UPDATE_STATUS = "machine.update.status"  # Update manager status


class Notification(StrEnum):
    STATUS_UPDATE = "notify_status_update"
    GCODE_RESPONSE = "notify_gcode_response"
    KLIPPY_DISCONNECTED = "notify_klippy_disconnected"
    KLIPPY_SHUTDOWN = "notify_klippy_shutdown"
    KLIPPY_READY = "notify_klippy_ready"
    FILELIST_CHANGED = "notify_filelist_changed"
    METADATA_UPDATE = "notify_metadata_update"
    POWER_CHANGED = "notify_power_changed"
    UPDATE_RESPONSE = "notify_update_response"
    UPDATE_REFRESHED = "notify_update_refreshed"


class FileListAction(StrEnum):
    CREATE_FILE = "create_file"
    DELETE_FILE = "delete_file"
    MOVE_FILE = "move_file"
    MODIFY_FILE = "modify_file"
    CREATE_DIR = "create_dir"
    DELETE_DIR = "delete_dir"
    MOVE_DIR = "move_dir"
    ROOT_UPDATE = "root_update"


class Plugin(StrEnum):
    POWER = "power"  # machine.device_power
    UPDATE_MANAGER = "update_manager"  # machine.update


# Moonraker plugins whose state is fetched once per connection.
PLUGIN_INIT_METHODS: Final[dict[Plugin, Method]] = {
    Plugin.POWER: Method.POWER_DEVICES,
    Plugin.UPDATE_MANAGER: Method.UPDATE_STATUS,
}


def parse_method(value: str) -> Method | None:
    try:
        return Method(value)
    except ValueError:
        return None


def parse_notification(value: str) -> Notification | None:
    try:
        return Notification(value)
    except ValueError:
        return None


def parse_file_action(value: object) -> FileListAction | None:
    if not isinstance(value, str):
        return None
    try:
        return FileListAction(value)
    except ValueError:
        return None


__all__ = [
    "FileListAction",
    "JSONRPC_VERSION",
    "Method",
    "Notification",
    "PLUGIN_INIT_METHODS",
    "Plugin",
    "parse_file_action",
    "parse_method",
    "parse_notification",
]
