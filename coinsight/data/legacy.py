"""
Legacy local key-value snapshot, as written by the pre-sync client.
"""

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Namespaced keys of the old local storage
NOTIFICATIONS_KEY = "coinsight_notifications"
SETTINGS_KEY = "coinsight_settings"


class LegacyStorage:
    """JSON file holding namespaced keys of the legacy local store."""

    def __init__(self, path: str):
        self.path = Path(path)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value by key, or default if absent or unreadable."""
        data = self._read()
        if key not in data:
            return default
        return data[key]

    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value under key."""
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> bool:
        """
        Remove key from the snapshot.

        Returns:
            True if the key was present
        """
        data = self._read()
        if key not in data:
            return False
        del data[key]
        self._write(data)
        return True

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error reading legacy snapshot {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Legacy snapshot {self.path} is not a JSON object")
            return {}
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
