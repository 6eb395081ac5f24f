import logging
import shlex
import subprocess

import requests

from db import NotificationRepository, SettingsRepository
from drill_service import DrillSnapshot, PhaseEndEvent
from timer_service import TimerSnapshot

logger = logging.getLogger(__name__)


class NotificationService:
    """Sound and user-facing alerts fired when a timer phase ends.

    Every method here is a side effect of a state transition that has
    already happened, so failures are logged and never propagated.
    """

    def __init__(
        self,
        repo: NotificationRepository,
        settings: SettingsRepository,
        http=None,
    ) -> None:
        self.repo = repo
        self.settings = settings
        self.http = http or requests

    def play_sound(self, kind: str = "timer-done") -> bool:
        if not self.settings.get_bool("sound_enabled", True):
            return False
        command = self.settings.get_text("sound_command", "").strip()
        if not command:
            logger.debug("sound '%s' skipped, no sound_command configured", kind)
            return False
        try:
            result = subprocess.run(
                shlex.split(command),
                capture_output=True,
                text=True,
                timeout=5,
            )
        except (OSError, subprocess.SubprocessError, ValueError) as e:
            logger.warning("could not play sound '%s': %s", kind, e)
            return False
        if result.returncode != 0:
            logger.warning("sound command failed: %s", result.stderr.strip())
            return False
        return True

    def notify(self, title: str, body: str) -> int | None:
        if not self.settings.get_bool("notifications_enabled", True):
            return None
        nid = self.repo.add(f"{title} {body}")
        url = self.settings.get_text("notification_webhook_url", "")
        if url.startswith(("http://", "https://")):
            try:
                resp = self.http.post(url, json={"title": title, "body": body}, timeout=5)
                resp.raise_for_status()
            except requests.RequestException as e:
                logger.warning("webhook notification failed: %s", e)
        return nid

    def rest_complete(self, snapshot: TimerSnapshot) -> None:
        self.play_sound("timer-done")
        self.notify("Rest Complete!", "Time for your next set")

    def drill_phase_end(self, event: PhaseEndEvent) -> None:
        self.play_sound("beep")

    def drills_complete(self, snapshot: DrillSnapshot) -> None:
        self.notify("Drills Complete!", f"All {snapshot.drill_count} drills done")
