"""Environment and runtime settings."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv


def load_environment() -> None:
    load_dotenv(override=False)


def get_openai_api_key() -> str:
    return os.getenv("OPENAI_API_KEY", "").strip()


def get_openai_model() -> str:
    return os.getenv("OPENAI_MODEL", "gpt-4.1-mini").strip()


def get_database_path() -> Path | None:
    raw = os.getenv("INFRA_TRIAGE_DB", "").strip()
    return Path(raw) if raw else None


def get_boundaries_path() -> Path | None:
    raw = os.getenv("INFRA_TRIAGE_BOUNDARIES", "").strip()
    return Path(raw) if raw else None
