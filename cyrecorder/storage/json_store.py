"""JSON file key-value store with atomic replace writes."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Mapping

from cyrecorder.storage.base import KeyValueStore

logger = logging.getLogger("cyrecorder.storage.json_store")


class JsonFileStore(KeyValueStore):
    """Persist a flat JSON object on disk."""

    def __init__(self, path: Path):
        self.path = path
        self._lock = asyncio.Lock()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable store file %s: %s", self.path, exc)
            return {}
        if not isinstance(payload, dict):
            return {}
        return payload

    def _write(self, values: Mapping[str, Any]) -> None:
        payload = self._read()
        payload.update(values)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".json.tmp")
        temp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        temp_path.replace(self.path)

    async def get(self, key: str, default: Any = None) -> Any:
        async with self._lock:
            payload = await asyncio.to_thread(self._read)
        return payload.get(key, default)

    async def set_many(self, values: Mapping[str, Any]) -> None:
        async with self._lock:
            await asyncio.to_thread(self._write, dict(values))
