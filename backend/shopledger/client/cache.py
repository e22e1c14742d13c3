# Overview: Persisted last-known-good snapshot (JSON files keyed by entity type).

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

CACHED_CATEGORIES = "cached_categories"
CACHED_BALANCES = "cached_balances"
SESSION_TOKEN = "session_token"


class LocalCache:
    """
    Small key/value store, one JSON file per key.

    Reads never raise for bad data: an unreadable or corrupt entry is logged
    and reported as missing, so callers fall through to a live fetch.
    """

    def __init__(self, directory):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def read(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable cache entry %s: %s", key, exc)
            return None

    def write(self, key: str, value: Any) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            json.dump(value, fh)
        os.replace(tmp, path)

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass

    def clear(self) -> None:
        for key in (CACHED_CATEGORIES, CACHED_BALANCES, SESSION_TOKEN):
            self.remove(key)
