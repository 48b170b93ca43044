"""Persistent recorder configuration helpers."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

CONFIG_SCHEMA_VERSION = "config.v1"
ALLOWED_BACKENDS = {"json", "sqlite"}
DEFAULT_CUSTOM_SELECTOR_ATTRIBUTES = ["data-cy", "data-test", "data-testid"]
DEFAULT_SELECTOR_ATTRIBUTES = ["name", "type", "placeholder", "aria-label", "role", "title", "alt", "for"]
DEFAULT_FORBIDDEN_URL_PREFIXES = [
    "about:",
    "chrome://",
    "chrome-extension://",
    "devtools://",
    "edge://",
    "moz-extension://",
    "view-source:",
    "https://chrome.google.com/webstore",
    "https://addons.mozilla.org",
]
MAX_PERSIST_RETRIES = 10


def recorder_home() -> Path:
    override = str(os.getenv("CYRECORDER_HOME", "")).strip()
    if override:
        return Path(override)
    return Path.home() / ".cyrecorder"


def config_path() -> Path:
    return recorder_home() / "config.json"


def default_config() -> dict[str, Any]:
    return {
        "schema_version": CONFIG_SCHEMA_VERSION,
        "custom_selector_attributes": list(DEFAULT_CUSTOM_SELECTOR_ATTRIBUTES),
        "selector_attributes": list(DEFAULT_SELECTOR_ATTRIBUTES),
        "storage_backend": "json",
        "storage_path": str(recorder_home() / "session.json"),
        "server_host": "127.0.0.1",
        "server_port": 7331,
        "persist_retries": 3,
        "forbidden_url_prefixes": list(DEFAULT_FORBIDDEN_URL_PREFIXES),
    }


def _string_list(value: Any, field: str) -> list[str]:
    if not isinstance(value, list):
        raise ValueError(f"{field} must be list")
    items: list[str] = []
    for item in value:
        text = str(item).strip()
        if text and text not in items:
            items.append(text)
    return items


def validate_config(config: dict[str, Any]) -> dict[str, Any]:
    """Validate config schema and normalize attribute lists."""
    if not isinstance(config, dict):
        raise ValueError("config must be object")
    defaults = default_config()
    schema_version = config.get("schema_version", CONFIG_SCHEMA_VERSION)
    if schema_version != CONFIG_SCHEMA_VERSION:
        raise ValueError("unsupported config schema_version")
    backend = str(config.get("storage_backend", defaults["storage_backend"])).strip().lower()
    if backend not in ALLOWED_BACKENDS:
        raise ValueError(f"unsupported storage_backend: {backend}")
    storage_path = str(config.get("storage_path", "")).strip()
    if not storage_path:
        suffix = "db" if backend == "sqlite" else "json"
        storage_path = str(recorder_home() / f"session.{suffix}")
    try:
        port = int(config.get("server_port", defaults["server_port"]))
    except (TypeError, ValueError) as exc:
        raise ValueError("server_port must be integer") from exc
    if not 0 < port < 65536:
        raise ValueError("server_port out of range")
    try:
        retries = int(config.get("persist_retries", defaults["persist_retries"]))
    except (TypeError, ValueError) as exc:
        raise ValueError("persist_retries must be integer") from exc
    if not 1 <= retries <= MAX_PERSIST_RETRIES:
        raise ValueError(f"persist_retries must be between 1 and {MAX_PERSIST_RETRIES}")
    return {
        "schema_version": CONFIG_SCHEMA_VERSION,
        "custom_selector_attributes": _string_list(
            config.get("custom_selector_attributes", defaults["custom_selector_attributes"]),
            "custom_selector_attributes",
        ),
        "selector_attributes": _string_list(
            config.get("selector_attributes", defaults["selector_attributes"]),
            "selector_attributes",
        ),
        "storage_backend": backend,
        "storage_path": storage_path,
        "server_host": str(config.get("server_host", defaults["server_host"])).strip() or "127.0.0.1",
        "server_port": port,
        "persist_retries": retries,
        "forbidden_url_prefixes": _string_list(
            config.get("forbidden_url_prefixes", defaults["forbidden_url_prefixes"]),
            "forbidden_url_prefixes",
        ),
    }


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load config from disk or return defaults."""
    path = path or config_path()
    if not path.exists():
        return default_config()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return default_config()
    if not isinstance(raw, dict):
        return default_config()
    try:
        return validate_config(raw)
    except ValueError:
        return default_config()


def save_config(config: dict[str, Any], path: Path | None = None) -> dict[str, Any]:
    """Validate and persist config to disk."""
    path = path or config_path()
    validated = validate_config(config)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(validated, indent=2), encoding="utf-8")
    return validated
