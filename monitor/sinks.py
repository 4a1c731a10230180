"""Alert sinks and routing of fired alerts to them."""
import logging
from typing import Optional, Tuple

from processor.models import AlertKind, FiredAlert, Preferences

logger = logging.getLogger(__name__)

PERMISSION_DENIED_NOTICE = (
    "Notification permission was denied. Check your system notification settings."
)


class AlertSink:
    """
    Audio and notification output.

    The base class has no capabilities: every call is a no-op and permission
    requests are refused.
    """

    def play_alert(self, kind: AlertKind, spoken_text: Optional[str] = None) -> None:
        pass

    def notify(self, title: str, body: str) -> None:
        pass

    def request_notification_permission(self) -> bool:
        return False


class LoggingAlertSink(AlertSink):
    """Headless sink writing alerts to the log."""

    def play_alert(self, kind: AlertKind, spoken_text: Optional[str] = None) -> None:
        logger.warning(
            f"ALERT [{kind.value}] {spoken_text or ''}".rstrip(),
            extra={'alert_kind': kind.value}
        )

    def notify(self, title: str, body: str) -> None:
        logger.warning(f"NOTIFY {title}: {body}")

    def request_notification_permission(self) -> bool:
        return True


class AlertDispatcher:
    """Routes fired alerts to a sink according to the user's channel preferences."""

    def __init__(self, sink: AlertSink):
        self.sink = sink

    def dispatch(self, alert: FiredAlert, preferences: Preferences) -> None:
        """
        Deliver one alert, fire-and-forget.

        Sink failures are logged and never propagate to the tick loop.
        """
        logger.info(
            f"Alert fired: {alert.title}",
            extra={'race_id': alert.key.race_id, 'alert_kind': alert.kind.value}
        )

        if preferences.audio_enabled:
            spoken_text = alert.spoken_text if preferences.voice_alerts else None
            try:
                self.sink.play_alert(alert.kind, spoken_text)
            except Exception as e:
                logger.error(f"Audio alert failed: {e}", exc_info=True)

        if preferences.notifications_enabled:
            try:
                self.sink.notify(alert.title, alert.body)
            except Exception as e:
                logger.error(f"Notification failed: {e}", exc_info=True)


def enable_notifications(
    preferences: Preferences, sink: AlertSink
) -> Tuple[Preferences, Optional[str]]:
    """
    Turn desktop notifications on if the sink is allowed to show them.

    Returns:
        Tuple of (updated preferences, notice for the user or None)
    """
    if sink.request_notification_permission():
        try:
            sink.notify("Notifications enabled", "Race alerts will appear here.")
        except Exception as e:
            logger.error(f"Confirmation notification failed: {e}", exc_info=True)
        return preferences.replace(notifications_enabled=True), None

    logger.info("Notification permission denied")
    return preferences.replace(notifications_enabled=False), PERMISSION_DENIED_NOTICE
