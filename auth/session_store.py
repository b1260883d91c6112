"""
Persisted session storage.

Implements the storage interface the Supabase auth client uses for
persist_session (async get_item / set_item / remove_item) on top of a single
JSON file per storage key.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional

import orjson

from auth.results import Result

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "swa-antarang-auth"


class FileSessionStore:
    def __init__(self, directory: Path | str = "data", storage_key: str = DEFAULT_STORAGE_KEY):
        self.storage_key = storage_key
        self.path = Path(directory) / f"{storage_key}.json"

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = orjson.loads(self.path.read_bytes())
        except orjson.JSONDecodeError:
            logger.warning("Discarding unreadable session file %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, str]) -> None:
        if not data:
            self.path.unlink(missing_ok=True)
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_bytes(orjson.dumps(data, option=orjson.OPT_INDENT_2))

    def read(self, key: Optional[str] = None) -> Optional[str]:
        return self._load().get(key or self.storage_key)

    def write(self, value: str, key: Optional[str] = None) -> None:
        data = self._load()
        data[key or self.storage_key] = value
        self._save(data)

    def has_session(self) -> bool:
        return bool(self._load())

    # Supabase auth storage interface
    async def get_item(self, key: str) -> Optional[str]:
        return self.read(key)

    async def set_item(self, key: str, value: str) -> None:
        self.write(value, key)

    async def remove_item(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)

    def clear(self) -> Result:
        """Wipe everything persisted under this storage key."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not clear session store %s: %s", self.path, exc)
            return Result.failed(exc)
        return Result.success()
