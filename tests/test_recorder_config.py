"""Tests for persistent recorder configuration."""

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from cyrecorder.config import default_config, load_config, save_config, validate_config


class RecorderConfigTests(unittest.TestCase):
    """Validate config schema, normalization and fallback behavior."""

    def test_validate_config_rejects_unknown_backend(self) -> None:
        with self.assertRaises(ValueError):
            validate_config({"schema_version": "config.v1", "storage_backend": "redis"})

    def test_validate_config_rejects_bad_port_and_retries(self) -> None:
        with self.assertRaises(ValueError):
            validate_config({"server_port": 70000})
        with self.assertRaises(ValueError):
            validate_config({"persist_retries": 0})

    def test_validate_config_normalizes_attribute_lists(self) -> None:
        validated = validate_config(
            {
                "custom_selector_attributes": [" data-qa ", "data-qa", "", "data-cy"],
                "storage_backend": "SQLite",
            }
        )
        self.assertEqual(validated["custom_selector_attributes"], ["data-qa", "data-cy"])
        self.assertEqual(validated["storage_backend"], "sqlite")
        self.assertTrue(validated["storage_path"].endswith("session.db"))

    def test_save_and_load_config(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.json"
            config = default_config()
            config["server_port"] = 8123
            config["custom_selector_attributes"] = ["data-qa"]
            saved = save_config(config, path=path)
            loaded = load_config(path=path)
            self.assertEqual(saved, loaded)
            self.assertEqual(loaded["server_port"], 8123)
            self.assertEqual(loaded["custom_selector_attributes"], ["data-qa"])

    def test_invalid_file_falls_back_to_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.json"
            path.write_text(json.dumps({"storage_backend": "redis"}), encoding="utf-8")
            with mock.patch.dict(os.environ, {"CYRECORDER_HOME": tmpdir}):
                loaded = load_config(path=path)
                self.assertEqual(loaded, default_config())
                self.assertEqual(loaded["storage_path"], str(Path(tmpdir) / "session.json"))


if __name__ == "__main__":
    unittest.main()
