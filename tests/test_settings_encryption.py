import os
import sys
import unittest
import keyring
import yaml
sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from config import YamlConfig
from db import SettingsRepository

class DummyKeyring(keyring.backend.KeyringBackend):
    priority = 1
    def __init__(self):
        self.store = {}
    def get_password(self, service, username):
        return self.store.get((service, username))
    def set_password(self, service, username, password):
        self.store[(service, username)] = password
    def delete_password(self, service, username):
        self.store.pop((service, username), None)

class SettingsEncryptionTest(unittest.TestCase):
    def setUp(self) -> None:
        keyring.set_keyring(DummyKeyring())
        os.environ['ENCRYPT_SETTINGS'] = '1'
        self.path = 'enc_settings.yaml'
        if os.path.exists(self.path):
            os.remove(self.path)

    def tearDown(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)
        os.environ.pop('ENCRYPT_SETTINGS', None)

    def test_encrypt_and_load(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.save({'notification_webhook_url': 'https://hooks.example/secret', 'rest_timer_seconds': 90})
        with open(self.path, 'r', encoding='utf-8') as f:
            raw = yaml.safe_load(f)
        self.assertIs(raw['notification_webhook_url'], True)
        data = cfg.load()
        self.assertEqual(data['notification_webhook_url'], 'https://hooks.example/secret')
        self.assertEqual(data['rest_timer_seconds'], 90)

    def test_empty_secret_not_stored(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.save({'notification_webhook_url': ''})
        self.assertNotIn('notification_webhook_url', cfg.load())

    def test_clearing_secret_removes_keyring_entry(self) -> None:
        cfg = YamlConfig(self.path, service="liftclock-test")
        cfg.save({"notification_webhook_url": "https://hooks.example/secret"})
        backend = keyring.get_keyring()
        self.assertIn(("liftclock-test", "notification_webhook_url"), backend.store)
        cfg.save({"notification_webhook_url": ""})
        self.assertEqual(backend.store, {})
        self.assertNotIn("notification_webhook_url", cfg.load())

    def test_missing_keyring_entry_dropped(self) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump({"notification_webhook_url": True, "sound_enabled": False}, f)
        data = YamlConfig(self.path).load()
        self.assertEqual(data, {"sound_enabled": False})


class SettingsValidationTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = 'test_settings.db'
        self.path = 'test_settings.yaml'
        for p in [self.db_path, self.path]:
            if os.path.exists(p):
                os.remove(p)

    def tearDown(self) -> None:
        for p in [self.db_path, self.path]:
            if os.path.exists(p):
                os.remove(p)

    def test_yaml_overrides_defaults(self) -> None:
        with open(self.path, 'w', encoding='utf-8') as f:
            yaml.safe_dump({'rest_timer_seconds': 120, 'sound_enabled': False}, f)
        settings = SettingsRepository(self.db_path, self.path)
        self.assertEqual(settings.get_int('rest_timer_seconds', 90), 120)
        self.assertFalse(settings.get_bool('sound_enabled', True))
        self.assertEqual(settings.get_int('drill_countdown_seconds', 0), 5)

    def test_invalid_values_rejected(self) -> None:
        for bad in ({'rest_timer_seconds': 0}, {'log_level': 'LOUD'}, {'tick_interval_ms': 5}):
            with open(self.path, 'w', encoding='utf-8') as f:
                yaml.safe_dump(bad, f)
            with self.assertRaises(ValueError):
                SettingsRepository(self.db_path, self.path)
