"""Async key-value store interface used for durable session records."""

from __future__ import annotations

from typing import Any, Mapping


class KeyValueStore:
    """Minimal get/set persistence contract."""

    async def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    async def set(self, key: str, value: Any) -> None:
        await self.set_many({key: value})

    async def set_many(self, values: Mapping[str, Any]) -> None:
        """Persist all values in one write; either all keys land or none."""
        raise NotImplementedError

    async def close(self) -> None:
        return None
