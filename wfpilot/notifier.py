"""
Desktop notifications for finished workflow runs
"""
import platform
import subprocess

from plyer import notification

from .logging_config import get_logger

logger = get_logger("wfpilot.notifier")

APP_NAME = "wfpilot"


class Notifier:
    def __init__(self):
        self.system = platform.system()

    def notify(self, title: str, message: str, urgency: str = "normal") -> bool:
        """
        Send a desktop notification

        Args:
            title: Notification title
            message: Notification body
            urgency: low, normal, or critical (Linux only)

        Returns:
            True if the notification was sent
        """
        try:
            if self.system == "Linux":
                return self._notify_linux(title, message, urgency)
            return self._notify_plyer(title, message)
        except Exception as e:
            logger.warning(f"Notification error: {e}")
            return False

    def _notify_linux(self, title: str, message: str, urgency: str) -> bool:
        """notify-send when available, plyer otherwise"""
        try:
            subprocess.run(
                ["notify-send", "-u", urgency, "-a", APP_NAME, title, message],
                check=True,
                capture_output=True,
            )
            return True
        except (FileNotFoundError, subprocess.CalledProcessError):
            return self._notify_plyer(title, message)

    def _notify_plyer(self, title: str, message: str) -> bool:
        notification.notify(title=title, message=message, app_name=APP_NAME, timeout=10)
        return True


# Global instance
notifier = Notifier()


def notify_workflow_finished(project_url: str, summary: dict) -> bool:
    """Convenience function for end-of-run notifications"""
    failed = summary.get("failed", 0)
    return notifier.notify(
        title="wfpilot - workflow failed" if failed else "wfpilot - workflow finished",
        message=(
            f"{summary.get('successful', 0)} ok, {failed} failed, "
            f"{summary.get('skipped', 0)} skipped\n{project_url}"
        ),
        urgency="critical" if failed else "normal",
    )
