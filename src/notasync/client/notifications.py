"""User-visible sync notices.

This module provides:
- Notification / NotificationType: a notice to show the user
- Notifier: callable the coordinator reports notices to
- log_notifier: default notifier writing notices to the log
- send_notification: native desktop notification (macOS, Linux)
- Notice builders for connectivity and manual sync results
"""

from __future__ import annotations

import logging
import platform
import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

logger = logging.getLogger(__name__)

APP_NAME = "Nota"


class NotificationType(Enum):
    """Type of notification."""

    INFO = auto()
    SUCCESS = auto()
    WARNING = auto()
    ERROR = auto()


@dataclass(frozen=True)
class Notification:
    """Represents a notification to display."""

    title: str
    message: str
    type: NotificationType = NotificationType.INFO


Notifier = Callable[[Notification], Any]

_LOG_LEVELS = {
    NotificationType.INFO: logging.INFO,
    NotificationType.SUCCESS: logging.INFO,
    NotificationType.WARNING: logging.WARNING,
    NotificationType.ERROR: logging.ERROR,
}


def log_notifier(notification: Notification) -> None:
    """Report a notice through logging."""
    logger.log(
        _LOG_LEVELS[notification.type],
        "%s: %s",
        notification.title,
        notification.message,
    )


def _notify_macos(notification: Notification) -> bool:
    try:
        title = notification.title.replace('"', '\\"')
        message = notification.message.replace('"', '\\"')
        script = f'display notification "{message}" with title "{title}"'
        subprocess.run(["osascript", "-e", script], capture_output=True, check=True)
        return True
    except (OSError, subprocess.CalledProcessError) as e:
        logger.debug("macOS notification failed: %s", e)
        return False


def _notify_linux(notification: Notification) -> bool:
    urgency = "critical" if notification.type == NotificationType.ERROR else "normal"
    try:
        subprocess.run(
            [
                "notify-send",
                "--urgency", urgency,
                "--app-name", APP_NAME,
                notification.title,
                notification.message,
            ],
            capture_output=True,
            check=True,
        )
        return True
    except FileNotFoundError:
        logger.debug("notify-send not found")
        return False
    except (OSError, subprocess.CalledProcessError) as e:
        logger.debug("Linux notification failed: %s", e)
        return False


def send_notification(notification: Notification) -> bool:
    """Show a native notification, falling back to the log.

    Returns:
        True if a native notification was shown.
    """
    system = platform.system()
    if system == "Darwin":
        shown = _notify_macos(notification)
    elif system == "Linux":
        shown = _notify_linux(notification)
    else:
        shown = False
    if not shown:
        log_notifier(notification)
    return shown


def online_notice() -> Notification:
    return Notification(
        title=f"{APP_NAME} - Online",
        message="Back online - syncing now...",
        type=NotificationType.SUCCESS,
    )


def offline_notice() -> Notification:
    return Notification(
        title=f"{APP_NAME} - Offline",
        message="You are offline - changes will sync when reconnected",
        type=NotificationType.WARNING,
    )


def sync_result_notice(success: bool, errors: list[str] | None = None) -> Notification:
    """Notice for a manual sync outcome."""
    if success:
        return Notification(
            title=f"{APP_NAME} - Sync Complete",
            message="All data is up to date",
            type=NotificationType.SUCCESS,
        )
    detail = f" ({', '.join(errors)})" if errors else ""
    return Notification(
        title=f"{APP_NAME} - Sync Failed",
        message=f"Some data could not be synced{detail}",
        type=NotificationType.ERROR,
    )
