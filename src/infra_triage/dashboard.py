"""Per-concelho / per-parish situation views."""

from __future__ import annotations

from datetime import datetime, timedelta

from .errors import bad_request, not_found
from .geo import ParishResolver, concelho_from_slug
from .hotspots import detect_hotspots
from .lifecycle import ReportLifecycle, count_by_type
from .power_source import explain_power_sources, load_telemetry_safely
from .time_utils import ensure_utc, utc_now

RECENT_REPORTS_LIMIT = 10


def resolve_area(resolver: ParishResolver, concelho: str, parish: str | None = None) -> tuple[str, list[str], list[str]]:
    """Return (canonical concelho, all its parishes, parishes to report on).

    ``concelho`` may be a display name in any case or accenting, or a URL
    slug such as ``porto-de-mos``.
    """
    canonical = resolver.canonical_concelho(concelho) or concelho_from_slug(concelho, resolver.concelhos())
    all_parishes = resolver.parishes_of(canonical) if canonical else []
    if canonical is None or not all_parishes:
        not_found("concelho_not_found", f"Concelho {concelho!r} not found in boundary data")
    if parish is None:
        return canonical, all_parishes, all_parishes
    if parish not in all_parishes:
        bad_request("parish_not_in_concelho", f"Parish {parish!r} does not belong to {canonical}")
    return canonical, all_parishes, [parish]


def build_area_dashboard(
    lifecycle: ReportLifecycle,
    resolver: ParishResolver,
    concelho: str,
    parish: str | None = None,
    now: datetime | None = None,
) -> dict:
    now = ensure_utc(now or utc_now())
    canonical, all_parishes, targets = resolve_area(resolver, concelho, parish)
    config = lifecycle.config

    reports = lifecycle.active_reports(now, parishes=targets)
    parishes_with_reports = sorted({r.parish for r in reports if r.parish})
    hotspots = detect_hotspots(
        reports,
        now,
        window=timedelta(hours=config.hotspot_window_hours),
        radius_m=config.hotspot_radius_m,
        min_reports=config.hotspot_min_reports,
    )

    return {
        "timestamp": now.isoformat(),
        "concelho": canonical,
        "parish": parish,
        "reports": {
            "total": len(reports),
            "by_type": count_by_type(reports),
            "parishes": parishes_with_reports,
        },
        "recent_reports": [
            {
                **r.model_dump(mode="json"),
                "state": lifecycle.report_state(r, now),
            }
            for r in reports[:RECENT_REPORTS_LIMIT]
        ],
        "hotspots": [h.model_dump(mode="json") for h in hotspots],
        "parishes": all_parishes,
    }


def build_power_source_view(
    lifecycle: ReportLifecycle,
    resolver: ParishResolver,
    concelho: str,
    now: datetime | None = None,
) -> dict:
    now = ensure_utc(now or utc_now())
    canonical, _, targets = resolve_area(resolver, concelho, None)
    config = lifecycle.config
    tag_window = timedelta(days=config.power_tag_window_days)

    telemetry = load_telemetry_safely(lambda: lifecycle.store.latest_outage(canonical))
    active = lifecycle.active_reports(now, parishes=targets, report_type="electricity")
    tags = lifecycle.store.resolved_power_tags(now - tag_window, targets)
    parishes = explain_power_sources(
        canonical, targets, telemetry, active, tags, now, tag_window=tag_window
    )
    return {
        "timestamp": now.isoformat(),
        "concelho": canonical,
        "telemetry": telemetry.model_dump(mode="json") if telemetry else None,
        "parishes": parishes,
    }
