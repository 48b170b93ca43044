"""Store selection from recorder configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from cyrecorder.storage.base import KeyValueStore
from cyrecorder.storage.json_store import JsonFileStore
from cyrecorder.storage.sqlite_store import SqliteStore


def create_store(config: dict[str, Any]) -> KeyValueStore:
    """Return the configured durable store."""
    path = Path(config["storage_path"]).expanduser()
    if config["storage_backend"] == "sqlite":
        return SqliteStore(path)
    return JsonFileStore(path)
