import contextlib
import logging
import os

import keyring
import yaml
from keyring.errors import PasswordDeleteError

APP_VERSION = "1.0.0"
KEYRING_SERVICE = "liftclock"

logger = logging.getLogger(__name__)


class YamlConfig:
    """Timer settings kept in a YAML file.

    With ``ENCRYPT_SETTINGS=1`` the webhook URL is stored in the OS keyring
    and the file only records ``true`` in its place. Saving an empty URL
    removes the keyring entry.
    """

    SECRET_KEYS = ("notification_webhook_url",)

    def __init__(self, path: str = "settings.yaml", service: str = KEYRING_SERVICE) -> None:
        self.path = path
        self.service = service
        self.encrypt = os.environ.get("ENCRYPT_SETTINGS") == "1"

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def load(self) -> dict:
        data = self._read()
        if not self.encrypt:
            return data
        for key in self.SECRET_KEYS:
            if key not in data:
                continue
            secret = keyring.get_password(self.service, key)
            if secret:
                data[key] = secret
            else:
                logger.debug("no keyring entry for %s", key)
                del data[key]
        return data

    def save(self, data: dict) -> None:
        out = dict(data)
        if self.encrypt:
            previous = self._read()
            for key in self.SECRET_KEYS:
                value = out.pop(key, None)
                if value is True:
                    # already in the keyring
                    out[key] = True
                elif value:
                    keyring.set_password(self.service, key, str(value))
                    out[key] = True
                elif previous.get(key) is True:
                    with contextlib.suppress(PasswordDeleteError):
                        keyring.delete_password(self.service, key)
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(out, f)
