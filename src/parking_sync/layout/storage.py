"""Key/value stores backing the persisted layout cache."""

import asyncio
import logging
import re
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Async string key/value storage."""

    async def get_item(self, key: str) -> Optional[str]: ...

    async def set_item(self, key: str, value: str) -> None: ...

    async def remove_item(self, key: str) -> None: ...


class MemoryStore:
    """In-process store, used when no cache directory is configured and in tests."""

    def __init__(self) -> None:
        self.items: dict[str, str] = {}

    async def get_item(self, key: str) -> Optional[str]:
        return self.items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    async def remove_item(self, key: str) -> None:
        self.items.pop(key, None)


class JsonFileStore:
    """
    Stores each key as a JSON file in a directory.

    File I/O runs in a worker thread so the event loop is never blocked.
    """

    def __init__(self, directory: str | Path):
        """
        Initialize the file store.

        Args:
            directory: Directory holding one file per key (created on first write)
        """
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        safe_key = re.sub(r"[^A-Za-z0-9_.-]", "_", key)
        return self.directory / f"{safe_key}.json"

    def _read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _write(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(value, encoding="utf-8")
        tmp_path.replace(path)

    def _remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    async def get_item(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._read, key)

    async def set_item(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, key, value)
        logger.debug(f"Wrote cache entry '{key}' to {self.directory}")

    async def remove_item(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)
