"""Configuration file management for journey-ledger.

Reads and writes ~/.journey-ledger/config.json for settings that don't belong in
the DB (database location, default user, transaction retry budget).
"""
from __future__ import annotations

import json
from pathlib import Path

DEFAULT_CONFIG_PATH: Path = Path.home() / ".journey-ledger" / "config.json"
DEFAULT_MAX_ATTEMPTS = 5


def load_config(config_path: Path | None = None) -> dict:
    """Load config from JSON file. Returns {} if file missing or invalid."""
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def save_config(data: dict, config_path: Path | None = None) -> None:
    """Write config dict to JSON file. Creates parent dirs if needed."""
    path = config_path or DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def get_db_path(config_path: Path | None = None) -> Path | None:
    """Return the configured database path, or None to use the default."""
    raw = load_config(config_path).get("db_path")
    if raw:
        return Path(raw).expanduser()
    return None


def get_user_id(config_path: Path | None = None) -> str | None:
    """Return the default user id for CLI and MCP calls."""
    raw = load_config(config_path).get("user_id")
    return str(raw) if raw else None


def set_user_id(user_id: str, config_path: Path | None = None) -> None:
    """Persist the default user id."""
    config = load_config(config_path)
    config["user_id"] = user_id
    save_config(config, config_path)


def get_max_attempts(config_path: Path | None = None) -> int:
    """Return the optimistic transaction attempt budget (at least 1)."""
    raw = load_config(config_path).get("max_transaction_attempts", DEFAULT_MAX_ATTEMPTS)
    try:
        return max(1, int(raw))
    except (TypeError, ValueError):
        return DEFAULT_MAX_ATTEMPTS
