"""
Desktop notifications.

Every success milestone and failure of the pipeline is surfaced through
``Notifier.notify``. Notifications are best effort: a failing backend is
logged and otherwise ignored.
"""

import logging

from plyer import notification

logger = logging.getLogger(__name__)


class Notifier:
    """Thin wrapper around ``plyer.notification``."""

    def __init__(self, enabled: bool = True, app_name: str = "recap", timeout: int = 5):
        self.enabled = enabled
        self.app_name = app_name
        self.timeout = timeout

    def notify(self, title: str, message: str, timeout: int | None = None) -> bool:
        """Show a notification and log it.

        Returns:
            bool: True if a notification was shown.
        """
        logger.info(f"[{title}] {message}")
        if not self.enabled:
            return False
        try:
            notification.notify(
                title=title or self.app_name,
                message=message,
                app_name=self.app_name,
                timeout=timeout or self.timeout,
            )
            return True
        except Exception as e:
            logger.warning(f"Notification failed: {e}")
            return False
