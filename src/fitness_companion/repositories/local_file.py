"""JSON-file backed local key-value store."""

import asyncio
import json
from pathlib import Path
from typing import Dict, Optional, Union

import structlog

from .base import KeyValueStore, LocalStoreError

logger = structlog.get_logger()


class JsonFileKeyValueStore(KeyValueStore):
    """Keeps every key in a single JSON object on disk.

    The file is read on each access so several stores pointing at the same
    path see each other's writes. A file that does not parse as a JSON
    object is treated as empty and overwritten on the next write.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path).expanduser()
        self._lock = asyncio.Lock()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("local_store_unreadable", path=str(self.path), error=str(e))
            return {}
        if not isinstance(data, dict):
            logger.warning("local_store_unexpected_shape", path=str(self.path))
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _write(self, data: Dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(data), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as e:
            raise LocalStoreError(f"Cannot write {self.path}: {e}") from e

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._read().get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    async def remove(self, key: str) -> None:
        async with self._lock:
            data = self._read()
            if data.pop(key, None) is not None:
                self._write(data)
