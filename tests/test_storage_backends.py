"""Tests for the durable key-value stores behind the session record."""

import asyncio
import tempfile
import unittest
from pathlib import Path

from cyrecorder.storage.factory import create_store
from cyrecorder.storage.json_store import JsonFileStore
from cyrecorder.storage.sqlite_store import SqliteStore


class StorageBackendTests(unittest.IsolatedAsyncioTestCase):
    """Both backends must persist status and blocks in one write."""

    async def _exercise(self, store) -> None:
        self.assertIsNone(await store.get("recStatus"))
        self.assertEqual(await store.get("codeBlocks", []), [])
        await store.set_many({"recStatus": "on", "codeBlocks": [{"code": "cy.visit('/');", "prompt": "visit"}]})
        await store.set("recStatus", "paused")
        self.assertEqual(await store.get("recStatus"), "paused")
        self.assertEqual((await store.get("codeBlocks"))[0]["code"], "cy.visit('/');")
        await store.close()

    async def test_json_store_round_trip(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "nested" / "session.json"
            await self._exercise(JsonFileStore(path))
            self.assertTrue(path.exists())
            self.assertFalse(path.with_suffix(".json.tmp").exists())
            self.assertEqual(await JsonFileStore(path).get("recStatus"), "paused")

    async def test_json_store_concurrent_writes_all_land(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = JsonFileStore(Path(tmpdir) / "session.json")
            await asyncio.gather(*(store.set(f"key{index}", index) for index in range(20)))
            for index in range(20):
                self.assertEqual(await store.get(f"key{index}"), index)

    async def test_json_store_ignores_corrupt_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "session.json"
            path.write_text("{not json", encoding="utf-8")
            store = JsonFileStore(path)
            self.assertEqual(await store.get("recStatus", "off"), "off")

    async def test_sqlite_store_round_trip(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "session.db"
            await self._exercise(SqliteStore(path))
            self.assertEqual(await SqliteStore(path).get("recStatus"), "paused")

    def test_factory_selects_backend(self) -> None:
        self.assertIsInstance(
            create_store({"storage_backend": "sqlite", "storage_path": "/tmp/x.db"}),
            SqliteStore,
        )
        self.assertIsInstance(
            create_store({"storage_backend": "json", "storage_path": "/tmp/x.json"}),
            JsonFileStore,
        )


if __name__ == "__main__":
    unittest.main()
