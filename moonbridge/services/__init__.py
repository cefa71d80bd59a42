"""Service layer for the Moonbridge sync client."""

from .base import (
    ConfigProvider,
    DevicePower,
    FileManager,
    LoggingCollaborators,
    Notifier,
    RpcTransport,
    SoftwareUpdate,
)
from .bootstrap import BootstrapEvent, BootstrapSequencer
from .console import ConsoleComponent
from .errors import ErrorAction, classify_error
from .history import HistoryReconstructor
from .retry import RetryScheduler
from .router import NotificationRouter, ResponseRegistry, SubscriptionGate
from .runtime import SyncService
from .supervisor import ConnectionSupervisor
from .telemetry import TelemetrySampler

__all__ = [
    "BootstrapEvent",
    "BootstrapSequencer",
    "ConfigProvider",
    "ConnectionSupervisor",
    "ConsoleComponent",
    "DevicePower",
    "ErrorAction",
    "FileManager",
    "HistoryReconstructor",
    "LoggingCollaborators",
    "NotificationRouter",
    "Notifier",
    "ResponseRegistry",
    "RetryScheduler",
    "RpcTransport",
    "SoftwareUpdate",
    "SubscriptionGate",
    "SyncService",
    "TelemetrySampler",
    "classify_error",
]
