"""
Preference Repository

Tiny JSON key/value file for values the user sets at runtime, such as
the knowledge base created from within the application.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from todonote.core.errors import StoreWriteError
from todonote.core.files import atomic_write_bytes

logger = logging.getLogger(__name__)

KNOWLEDGE_BASE_ID_KEY = "knowledgeBaseId"


class PreferenceStore:
    """Reads and writes ``preferences.json``; unreadable files count as empty."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def _load(self) -> dict[str, Any]:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable preferences %s: %s", self._path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Any:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_bytes(
                self._path, json.dumps(data, indent=2).encode("utf-8")
            )
        except OSError as e:
            raise StoreWriteError(f"Could not write {self._path}: {e}") from e

    @property
    def knowledge_base_id(self) -> str | None:
        value = self.get(KNOWLEDGE_BASE_ID_KEY)
        return value if isinstance(value, str) and value else None

    @knowledge_base_id.setter
    def knowledge_base_id(self, value: str) -> None:
        self.set(KNOWLEDGE_BASE_ID_KEY, value)
