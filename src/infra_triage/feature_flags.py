"""Centralized feature-flag loader for triage behavior."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

_log = logging.getLogger(__name__)

DEFAULT_FEATURE_FLAGS: dict[str, Any] = {
    "ai_priority_enabled": False,
    "eredes_telemetry_enabled": True,
    "backfill_interval_minutes": 30,
}


def default_feature_flags_path() -> Path:
    return Path.cwd() / "config" / "feature_flags.json"


def _coerce_flag_value(key: str, value: Any) -> Any:
    default = DEFAULT_FEATURE_FLAGS.get(key)
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        raw = str(value).strip().lower()
        return raw in {"1", "true", "yes", "on"}
    if isinstance(default, int):
        try:
            return int(value)
        except (TypeError, ValueError):
            return default
    return value


def load_feature_flags(path: Path | None = None) -> dict[str, Any]:
    flags = dict(DEFAULT_FEATURE_FLAGS)
    candidate = path or default_feature_flags_path()
    if candidate.exists():
        try:
            payload = json.loads(candidate.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            _log.warning("Ignoring unreadable feature flag file %s: %s", candidate, exc)
            payload = None
        if isinstance(payload, dict):
            for key in DEFAULT_FEATURE_FLAGS:
                if key in payload:
                    flags[key] = _coerce_flag_value(key, payload[key])

    # Legacy env compatibility.
    legacy_map = {
        "FEATURE_AI_PRIORITY": "ai_priority_enabled",
        "FEATURE_EREDES_ENABLED": "eredes_telemetry_enabled",
    }
    for env_key, flag_key in legacy_map.items():
        raw = os.getenv(env_key, "").strip()
        if raw:
            flags[flag_key] = _coerce_flag_value(flag_key, raw)

    # Explicit env override: INFRA_FLAG_<FLAG_NAME_UPPER>
    for key in DEFAULT_FEATURE_FLAGS:
        env_key = f"INFRA_FLAG_{key.upper()}"
        raw = os.getenv(env_key, "").strip()
        if raw:
            flags[key] = _coerce_flag_value(key, raw)

    return flags

