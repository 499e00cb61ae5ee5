"""Private on-disk storage for the portal account."""

import json
import logging
import os
from pathlib import Path

from .errors import CredentialStoreError

logger = logging.getLogger(__name__)


class CredentialStore:
    """Stores one username/password pair keyed by application identity.

    The file is written atomically with owner-only permissions. Loading never
    fails: missing or unreadable data yields empty strings.
    """

    def __init__(self, path: Path, app_id: str):
        self.path = path
        self.app_id = app_id

    def load(self) -> tuple[str, str]:
        """Return (username, password), empty strings if nothing is stored."""
        if not self.path.exists():
            return ("", "")

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load credentials: {e}")
            return ("", "")

        entry = data.get(self.app_id) if isinstance(data, dict) else None
        if not isinstance(entry, dict):
            return ("", "")

        username = entry.get("username")
        password = entry.get("password")
        return (
            username if isinstance(username, str) else "",
            password if isinstance(password, str) else "",
        )

    def save(self, username: str, password: str) -> None:
        """Persist the account.

        Raises:
            CredentialStoreError: If the file cannot be written
        """
        data: dict = {}
        if self.path.exists():
            try:
                with open(self.path, encoding="utf-8") as f:
                    existing = json.load(f)
                if isinstance(existing, dict):
                    data = existing
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Overwriting unreadable credential file: {e}")

        data[self.app_id] = {"username": username, "password": password}

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)

            # Write atomically, readable by the owner only
            temp_file = self.path.with_suffix(".tmp")
            fd = os.open(temp_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.chmod(temp_file, 0o600)
            temp_file.rename(self.path)
        except OSError as e:
            raise CredentialStoreError(
                "Failed to save credentials", {"path": self.path}, cause=e
            ) from e

        logger.info(f"Saved credentials for '{username}'")
