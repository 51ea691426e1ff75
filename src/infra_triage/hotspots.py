"""Spatiotemporal hotspot detection over active reports."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, List

from .geo import haversine_m
from .models import Hotspot, Report
from .time_utils import ensure_utc, utc_now, within_window

HOTSPOT_WINDOW = timedelta(hours=24)
HOTSPOT_RADIUS_M = 500.0
HOTSPOT_MIN_REPORTS = 3


def detect_hotspots(
    reports: Iterable[Report],
    now: datetime | None = None,
    *,
    window: timedelta = HOTSPOT_WINDOW,
    radius_m: float = HOTSPOT_RADIUS_M,
    min_reports: int = HOTSPOT_MIN_REPORTS,
) -> List[Hotspot]:
    """Greedy single-pass clustering.

    Each unclaimed report, in input order, seeds a candidate cluster of every
    unclaimed recent report within ``radius_m`` of it (itself included). A
    candidate with at least ``min_reports`` members becomes a hotspot and
    claims its members; a smaller one claims nothing, so its reports can
    still join a later seed. Results depend on input order.
    """
    now = ensure_utc(now or utc_now())
    recent = [r for r in reports if within_window(r.created_at, now, window)]

    used: set[int] = set()
    hotspots: List[Hotspot] = []

    for seed in recent:
        if seed.id in used:
            continue

        cluster = [
            r
            for r in recent
            if r.id not in used and haversine_m(seed.lat, seed.lng, r.lat, r.lng) <= radius_m
        ]
        if len(cluster) < min_reports:
            continue

        ids = [r.id for r in cluster]
        used.update(ids)
        hotspots.append(
            Hotspot(
                lat=sum(r.lat for r in cluster) / len(cluster),
                lng=sum(r.lng for r in cluster) / len(cluster),
                report_ids=ids,
                count=len(ids),
            )
        )

    return hotspots
