"""Utility modules for the SolidTime timer client."""

from solidtime_timer.utils.logging import setup_logging
from solidtime_timer.utils.notifications import ConsoleNotifier, Notifier, RecordingNotifier
from solidtime_timer.utils.storage import StorageManager

__all__ = [
    "setup_logging",
    "ConsoleNotifier",
    "Notifier",
    "RecordingNotifier",
    "StorageManager",
]
