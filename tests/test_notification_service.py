import os
import subprocess
import sys
import unittest
from unittest import mock

import requests

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import NotificationRepository, SettingsRepository
from notification_service import NotificationService
from timer_service import TimerSnapshot


class FakeResponse:
    def __init__(self, status: int = 200) -> None:
        self.status = status

    def raise_for_status(self) -> None:
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")


class FakeHttp:
    def __init__(self, response=None, error=None) -> None:
        self.calls = []
        self.response = response or FakeResponse()
        self.error = error

    def post(self, url, json=None, timeout=None):
        self.calls.append((url, json))
        if self.error is not None:
            raise self.error
        return self.response


class NotificationServiceTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_notify.db"
        self.yaml_path = "test_notify.yaml"
        for p in [self.db_path, self.yaml_path]:
            if os.path.exists(p):
                os.remove(p)
        self.settings = SettingsRepository(self.db_path, self.yaml_path)
        self.repo = NotificationRepository(self.db_path)
        self.http = FakeHttp()
        self.service = NotificationService(self.repo, self.settings, http=self.http)

    def tearDown(self) -> None:
        for p in [self.db_path, self.yaml_path]:
            if os.path.exists(p):
                os.remove(p)

    def test_notify_stores_message(self) -> None:
        nid = self.service.notify("Rest Complete!", "Time for your next set")
        self.assertIsNotNone(nid)
        notes = self.repo.fetch_all()
        self.assertEqual(notes[0]["message"], "Rest Complete! Time for your next set")
        self.assertEqual(self.http.calls, [])

    def test_notify_posts_to_webhook(self) -> None:
        self.settings.set_text("notification_webhook_url", "https://hooks.example/rest")
        self.service.notify("Drills Complete!", "All 3 drills done")
        self.assertEqual(
            self.http.calls,
            [("https://hooks.example/rest", {"title": "Drills Complete!", "body": "All 3 drills done"})],
        )

    def test_webhook_failure_is_logged(self) -> None:
        self.settings.set_text("notification_webhook_url", "https://hooks.example/rest")
        self.service.http = FakeHttp(error=requests.ConnectionError("offline"))
        with self.assertLogs("notification_service", level="WARNING"):
            nid = self.service.notify("Rest Complete!", "go")
        self.assertIsNotNone(nid)
        self.assertEqual(self.repo.unread_count(), 1)

    def test_notifications_disabled(self) -> None:
        self.settings.set_bool("notifications_enabled", False)
        self.assertIsNone(self.service.notify("Rest Complete!", "go"))
        self.assertEqual(self.repo.fetch_all(), [])

    def test_play_sound_without_command(self) -> None:
        self.assertFalse(self.service.play_sound())

    def test_play_sound_runs_command(self) -> None:
        self.settings.set_text("sound_command", "aplay /usr/share/sounds/done.wav")
        done = subprocess.CompletedProcess(args=[], returncode=0, stdout="", stderr="")
        with mock.patch("notification_service.subprocess.run", return_value=done) as run:
            self.assertTrue(self.service.play_sound("timer-done"))
        self.assertEqual(run.call_args[0][0], ["aplay", "/usr/share/sounds/done.wav"])

    def test_play_sound_failure_is_logged(self) -> None:
        self.settings.set_text("sound_command", "missing-player beep.wav")
        with mock.patch("notification_service.subprocess.run", side_effect=OSError("not found")):
            with self.assertLogs("notification_service", level="WARNING"):
                self.assertFalse(self.service.play_sound())

    def test_sound_disabled(self) -> None:
        self.settings.set_text("sound_command", "aplay done.wav")
        self.settings.set_bool("sound_enabled", False)
        with mock.patch("notification_service.subprocess.run") as run:
            self.assertFalse(self.service.play_sound())
        run.assert_not_called()

    def test_rest_complete_hook(self) -> None:
        snap = TimerSnapshot(False, False, True, 0, 90)
        self.service.rest_complete(snap)
        self.assertEqual(self.repo.unread_count(), 1)


if __name__ == "__main__":
    unittest.main()
