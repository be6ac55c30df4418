"""Key-value persistence used for the selected backend."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Protocol

_LOGGER = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Async string store, the shape of the app's settings storage."""

    async def get_item(self, key: str) -> str | None: ...

    async def set_item(self, key: str, value: str) -> None: ...

    async def remove_item(self, key: str) -> None: ...


class MemoryStore:
    """In-process store, used in tests and for throwaway sessions."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> str | None:
        return self._data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """Store backed by a single JSON object on disk.

    The file is created on first write. A missing or corrupt file reads as
    empty so a damaged settings file never prevents the scale from starting.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    def _load(self) -> dict[str, str]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as err:
            _LOGGER.warning("Ignoring corrupt settings file %s: %s", self._path, err)
            return {}
        if not isinstance(data, dict):
            _LOGGER.warning("Ignoring settings file %s: not a JSON object", self._path)
            return {}
        return {str(key): str(value) for key, value in data.items()}

    def _dump(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(self._path)

    async def get_item(self, key: str) -> str | None:
        async with self._lock:
            return self._load().get(key)

    async def set_item(self, key: str, value: str) -> None:
        async with self._lock:
            data = self._load()
            data[key] = value
            self._dump(data)
        _LOGGER.debug("Stored %s in %s", key, self._path)

    async def remove_item(self, key: str) -> None:
        async with self._lock:
            data = self._load()
            if data.pop(key, None) is not None:
                self._dump(data)
