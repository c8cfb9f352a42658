"""
Notification sinks.
"""

import logging

from .interfaces import NotificationKind, Notifier

logger = logging.getLogger(__name__)

_LEVELS = {
    NotificationKind.INFO: logging.INFO,
    NotificationKind.SUCCESS: logging.INFO,
    NotificationKind.ERROR: logging.ERROR,
    NotificationKind.NETWORK_ERROR: logging.WARNING,
}


class LoggingNotifier(Notifier):
    """Sends notifications to the log."""

    def __init__(self, name: str = "neo_wallet_engine.alerts"):
        self.logger = logging.getLogger(name)

    def notify(self, kind: NotificationKind, message: str) -> None:
        self.logger.log(_LEVELS.get(kind, logging.INFO), f"[{kind.value}] {message}")


def safe_notify(notifier: Notifier, kind: NotificationKind, message: str) -> None:
    """Notify without letting a faulty sink break the caller."""
    try:
        notifier.notify(kind, message)
    except Exception as e:
        logger.error(f"Notifier failed to deliver '{message}': {e}")
