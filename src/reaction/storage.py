"""
Durable keyed storage: one JSON document mapping string keys to JSON values.
"""
from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from psychopy import logging


class JsonFileStore:
    """Key/value store persisted as a single JSON object on disk.

    Every set()/remove() rewrites the whole file through a temporary file and
    os.replace(), so readers never see a partially written document.  A missing
    or corrupt file reads as an empty store.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            doc = self._read()
            doc[key] = value
            self._write(doc)

    def remove(self, key: str) -> None:
        with self._lock:
            doc = self._read()
            if key in doc:
                del doc[key]
                self._write(doc)

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path) as f:
                doc = json.load(f)
        except (OSError, ValueError) as exc:
            logging.warning(f"Storage file {self._path} unreadable ({exc}); treating as empty")
            return {}
        if not isinstance(doc, dict):
            logging.warning(f"Storage file {self._path} is not a JSON object; treating as empty")
            return {}
        return doc

    def _write(self, doc: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=self._path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(doc, f, indent=2)
            os.replace(tmp, self._path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
