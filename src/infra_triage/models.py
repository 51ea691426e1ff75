"""Pydantic models for report submissions and derived views."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field

ReportType = Literal["electricity", "telecom_mobile", "telecom_fixed", "water", "roads"]
Priority = Literal["urgente", "importante", "normal"]
PowerSource = Literal["grid", "generator", "no_power", "unknown"]
PowerSourceTag = Literal["grid", "generator"]
ReportState = Literal["active", "stale", "resolved", "expired"]

PRIORITY_LEVELS: tuple[Priority, ...] = ("urgente", "importante", "normal")
PRIORITY_RANK = {p: i for i, p in enumerate(PRIORITY_LEVELS)}


class ReportSubmission(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    type: str
    lat: float | None = None
    lng: float | None = None
    operator: str | None = None
    description: str | None = None
    street: str | None = None
    image_url: str | None = None


class Report(BaseModel):
    id: int
    type: ReportType
    operator: str | None = None
    description: str | None = None
    street: str | None = None
    parish: str | None = None
    concelho: str | None = None
    lat: float
    lng: float
    resolved: bool = False
    upvotes: int = Field(default=1, ge=1)
    priority: Priority = "normal"
    created_at: datetime
    last_upvoted_at: datetime
    image_url: str | None = None
    power_source: PowerSourceTag | None = None
    resolved_at: datetime | None = None


class AreaMatch(BaseModel):
    parish: str
    concelho: str


class Hotspot(BaseModel):
    lat: float
    lng: float
    report_ids: List[int]
    count: int


class OutageTelemetry(BaseModel):
    municipality: str
    outage_count: int = Field(ge=0)
    extraction_datetime: str | None = None
    fetched_at: datetime | None = None


class ResolvedPowerTag(BaseModel):
    parish: str
    power_source: PowerSourceTag
    resolved_at: datetime


class BackfillResult(BaseModel):
    total: int
    updated: int
    skipped: int
