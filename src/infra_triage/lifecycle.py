"""Report lifecycle: creation, confirmation, resolution and derived views."""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Iterable, List

from .config import (
    DESCRIPTION_MAX_CHARS,
    OPERATOR_MAX_CHARS,
    STREET_MAX_CHARS,
    TELECOM_REPORT_TYPES,
    RuntimeConfig,
    canonicalize_report_type,
)
from .database import ReportRecord, ReportStore
from .errors import bad_request, not_found
from .geo import ParishResolver
from .models import (
    PRIORITY_RANK,
    BackfillResult,
    Report,
    ReportState,
    ReportSubmission,
)
from .priority import DeterministicPriorityClassifier, PriorityClassifier
from .time_utils import age_of, ensure_utc, utc_now

_log = logging.getLogger(__name__)

POWER_SOURCE_TAGS = {"grid", "generator"}


def _clip(value: str | None, limit: int) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    return cleaned[:limit]


def sort_active(reports: Iterable[Report]) -> List[Report]:
    """Priority tier first (urgente, importante, normal), newest first within a tier."""
    by_recency = sorted(reports, key=lambda r: r.created_at, reverse=True)
    return sorted(by_recency, key=lambda r: PRIORITY_RANK[r.priority])


def count_by_type(reports: Iterable[Report]) -> dict[str, int]:
    return dict(Counter(r.type for r in reports))


class ReportLifecycle:
    def __init__(
        self,
        store: ReportStore,
        resolver: ParishResolver | None,
        classifier: PriorityClassifier | None = None,
        config: RuntimeConfig | None = None,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.classifier = classifier or DeterministicPriorityClassifier()
        self.config = config or RuntimeConfig()

    @property
    def visibility_window(self) -> timedelta:
        return timedelta(days=self.config.visibility_window_days)

    def _canonical_operator(self, report_type: str, operator: str | None) -> str | None:
        if operator is None:
            return None
        for known in self.config.operators.get(report_type, []):
            if known.casefold() == operator.casefold():
                return known
        return operator

    # ── transitions ──────────────────────────────────────────────────

    def create(self, submission: ReportSubmission, now: datetime | None = None) -> Report:
        now = ensure_utc(now or utc_now())

        report_type = canonicalize_report_type(submission.type or "")
        if report_type is None:
            bad_request("invalid_type", f"Invalid report type: {submission.type!r}")
        if submission.lat is None or submission.lng is None:
            bad_request("missing_coordinates", "Required fields: type, lat, lng")
        if not self.config.district_bbox.contains(submission.lat, submission.lng):
            bad_request(
                "out_of_bounds",
                f"Coordinates ({submission.lat}, {submission.lng}) are outside the "
                f"{self.config.district_name} district",
            )

        operator = None
        if report_type in TELECOM_REPORT_TYPES:
            operator = self._canonical_operator(report_type, _clip(submission.operator, OPERATOR_MAX_CHARS))
        description = _clip(submission.description, DESCRIPTION_MAX_CHARS)
        street = _clip(submission.street, STREET_MAX_CHARS)

        parish = concelho = None
        if self.resolver is not None:
            try:
                match = self.resolver.resolve(submission.lat, submission.lng)
            except Exception as exc:
                _log.warning("Parish lookup failed for (%s, %s): %s", submission.lat, submission.lng, exc)
                match = None
            if match is not None:
                parish, concelho = match.parish, match.concelho

        priority = self.classifier.classify(description, report_type, street)

        report = self.store.insert(
            ReportRecord(
                type=report_type,
                operator=operator,
                description=description,
                street=street,
                parish=parish,
                concelho=concelho,
                lat=submission.lat,
                lng=submission.lng,
                resolved=False,
                upvotes=1,
                priority=priority,
                created_at=now,
                last_upvoted_at=now,
                image_url=_clip(submission.image_url, 2048),
            )
        )
        _log.info("Created report %d type=%s priority=%s parish=%s", report.id, report.type, priority, parish)
        return report

    def confirm(self, report_id: int, now: datetime | None = None) -> Report:
        now = ensure_utc(now or utc_now())
        if not self.store.increment_upvotes(report_id, now):
            existing = self.store.get(report_id)
            if existing is None:
                not_found("report_not_found", f"Report {report_id} not found")
            bad_request("report_resolved", f"Report {report_id} is already resolved")
        return self.store.get(report_id)

    def resolve(self, report_id: int, power_source: str | None = None, now: datetime | None = None) -> Report:
        now = ensure_utc(now or utc_now())
        existing = self.store.get(report_id)
        if existing is None:
            not_found("report_not_found", f"Report {report_id} not found")

        tag = power_source.strip().lower() if power_source else None
        if tag is not None:
            if tag not in POWER_SOURCE_TAGS:
                bad_request("invalid_power_source", f"power_source must be one of: {', '.join(sorted(POWER_SOURCE_TAGS))}")
            if existing.type != "electricity":
                bad_request("invalid_power_source", "power_source only applies to electricity reports")

        if not existing.resolved:
            self.store.mark_resolved(report_id, now, power_source=tag)
        return self.store.get(report_id)

    # ── views ────────────────────────────────────────────────────────

    def active_reports(
        self,
        now: datetime | None = None,
        *,
        parishes: Iterable[str] | None = None,
        report_type: str | None = None,
    ) -> List[Report]:
        now = ensure_utc(now or utc_now())
        reports = self.store.list_unresolved_since(
            now - self.visibility_window,
            parishes=parishes,
            report_type=report_type,
        )
        return sort_active(reports)

    def is_stale(self, report: Report, now: datetime | None = None) -> bool:
        now = ensure_utc(now or utc_now())
        if report.resolved or age_of(report.created_at, now) > self.visibility_window:
            return False
        old = age_of(report.created_at, now) > timedelta(hours=self.config.stale_after_hours)
        unconfirmed = age_of(report.last_upvoted_at, now) > timedelta(hours=self.config.stale_confirmation_hours)
        return old and unconfirmed

    def report_state(self, report: Report, now: datetime | None = None) -> ReportState:
        now = ensure_utc(now or utc_now())
        if report.resolved:
            return "resolved"
        if age_of(report.created_at, now) > self.visibility_window:
            return "expired"
        return "stale" if self.is_stale(report, now) else "active"

    def backfill_parishes(self) -> BackfillResult:
        if self.resolver is None:
            raise RuntimeError("Parish backfill needs boundary reference data")
        rows = self.store.list_missing_parish()
        updated = 0
        for row in rows:
            match = self.resolver.resolve(row.lat, row.lng)
            if match is None:
                _log.debug("No parish for report %d at (%s, %s)", row.id, row.lat, row.lng)
                continue
            self.store.set_area(row.id, match.parish, match.concelho)
            updated += 1
        result = BackfillResult(total=len(rows), updated=updated, skipped=len(rows) - updated)
        _log.info("Parish backfill: total=%d updated=%d skipped=%d", result.total, result.updated, result.skipped)
        return result
