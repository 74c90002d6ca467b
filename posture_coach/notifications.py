# Notification Sinks - user-facing alert delivery
from posture_coach import logger
from posture_coach.models import BreakSession


class NullNotificationSink:
    def posture_alert(self):
        pass

    def break_started(self, session: BreakSession):
        pass

    def break_ended(self, completed: bool):
        pass


class LoggerNotificationSink:
    """Prints notifications to the console log"""

    def __init__(self, muted: bool = False):
        self.muted = muted
        self.sent = []

    def _send(self, title: str, body: str):
        self.sent.append((title, body))
        if self.muted:
            return
        logger.log_warning(title, {"message": body})

    def posture_alert(self):
        self._send("Posture Alert!", "Please correct your posture and sit upright.")

    def break_started(self, session: BreakSession):
        minutes = session.duration_minutes
        plural = "s" if minutes > 1 else ""
        self._send(
            f"Break Time: {minutes} minute{plural}",
            session.reason or "Stand up, stretch, and rest your eyes"
        )

    def break_ended(self, completed: bool):
        if completed:
            self._send("Break Complete!", "Time to resume tracking. Sit with good posture!")
