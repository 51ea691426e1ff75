"""Runtime configuration schema and validation using pydantic."""

from __future__ import annotations

import json
import re
from importlib.resources import files
from pathlib import Path
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ALLOWED_REPORT_TYPES = [
    "electricity",
    "telecom_mobile",
    "telecom_fixed",
    "water",
    "roads",
]

TELECOM_REPORT_TYPES = {"telecom_mobile", "telecom_fixed"}

_REPORT_TYPE_ALIAS_MAP = {
    "electricity": "electricity",
    "electric": "electricity",
    "power": "electricity",
    "eletricidade": "electricity",
    "electricidade": "electricity",
    "luz": "electricity",
    "energia": "electricity",
    "telecom": "telecom_mobile",
    "telecom mobile": "telecom_mobile",
    "mobile": "telecom_mobile",
    "rede movel": "telecom_mobile",
    "telemovel": "telecom_mobile",
    "telecom fixed": "telecom_fixed",
    "fixed": "telecom_fixed",
    "rede fixa": "telecom_fixed",
    "internet": "telecom_fixed",
    "water": "water",
    "agua": "water",
    "água": "water",
    "roads": "roads",
    "road": "roads",
    "estrada": "roads",
    "estradas": "roads",
}

DESCRIPTION_MAX_CHARS = 500
STREET_MAX_CHARS = 200
OPERATOR_MAX_CHARS = 50


def canonicalize_report_type(value: str) -> str | None:
    cleaned = value.strip().lower()
    if not cleaned:
        return None
    if cleaned in ALLOWED_REPORT_TYPES:
        return cleaned
    key = re.sub(r"\s+", " ", re.sub(r"[_/\-]+", " ", cleaned)).strip()
    return _REPORT_TYPE_ALIAS_MAP.get(key)


class BoundingBox(BaseModel):
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    @model_validator(mode="after")
    def validate_order(self) -> "BoundingBox":
        if self.min_lat >= self.max_lat or self.min_lng >= self.max_lng:
            raise ValueError("Bounding box minimums must be below maximums.")
        return self

    def contains(self, lat: float, lng: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng


# Roughly the Leiria district.
LEIRIA_DISTRICT_BBOX = BoundingBox(min_lat=39.0, max_lat=40.2, min_lng=-9.5, max_lng=-8.0)


def default_boundaries_path() -> Path:
    return Path(str(files("infra_triage") / "data" / "leiria-freguesias.geojson"))


class RuntimeConfig(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    district_name: str = "Leiria"
    district_bbox: BoundingBox = Field(default_factory=lambda: LEIRIA_DISTRICT_BBOX.model_copy())
    boundaries_path: Path = Field(default_factory=default_boundaries_path)
    database_path: Path | None = None

    visibility_window_days: int = Field(default=7, ge=1, le=90)
    stale_after_hours: int = Field(default=48, ge=1)
    stale_confirmation_hours: int = Field(default=24, ge=1)

    hotspot_window_hours: int = Field(default=24, ge=1, le=168)
    hotspot_radius_m: float = Field(default=500.0, gt=0, le=10000)
    hotspot_min_reports: int = Field(default=3, ge=2)

    power_tag_window_days: int = Field(default=30, ge=1, le=365)
    priority_timeout_seconds: float = Field(default=5.0, gt=0, le=30)

    operators: Dict[str, List[str]] = Field(
        default_factory=lambda: {
            "telecom_mobile": ["MEO", "NOS", "Vodafone", "DIGI"],
            "telecom_fixed": ["MEO", "NOS", "Vodafone", "DIGI"],
        }
    )

    @field_validator("district_name")
    @classmethod
    def validate_district_name(cls, value: str) -> str:
        if not value:
            raise ValueError("District name is required.")
        return value

    @field_validator("operators")
    @classmethod
    def validate_operators(cls, value: Dict[str, List[str]]) -> Dict[str, List[str]]:
        invalid = [k for k in value if k not in TELECOM_REPORT_TYPES]
        if invalid:
            raise ValueError(f"Operators only apply to telecom types, got: {', '.join(sorted(invalid))}")
        return {k: [o.strip() for o in v if o.strip()] for k, v in value.items()}

    @model_validator(mode="after")
    def validate_stale_thresholds(self) -> "RuntimeConfig":
        if self.stale_after_hours > self.visibility_window_days * 24:
            raise ValueError("stale_after_hours must fall inside the visibility window.")
        return self


def load_runtime_config(path: Path | None = None) -> RuntimeConfig:
    if path is None or not path.exists():
        return RuntimeConfig()
    payload = json.loads(path.read_text(encoding="utf-8"))
    return RuntimeConfig.model_validate(payload)
