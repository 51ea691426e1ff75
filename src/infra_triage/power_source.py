"""Per-parish electricity supply inference.

Signals, strongest first:

1. Authoritative outage telemetry reporting zero outages for the concelho
   means the whole concelho is back on the grid.
2. A live, unresolved electricity report in a parish means no power there.
3. The newest reporter tag on a recently resolved electricity report
   (generator or grid).
4. Nothing known.

The order lives in ``POWER_SOURCE_POLICY`` so it can be inspected and
tested on its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable

from .geo import normalize_area_name
from .models import OutageTelemetry, PowerSource, Report, ResolvedPowerTag
from .time_utils import ensure_utc, utc_now, within_window

_log = logging.getLogger(__name__)

POWER_TAG_WINDOW = timedelta(days=30)


@dataclass
class ParishSignals:
    parish: str
    telemetry: OutageTelemetry | None
    live_reports: list[Report] = field(default_factory=list)
    latest_tag: ResolvedPowerTag | None = None


@dataclass(frozen=True)
class PolicyRule:
    name: str
    applies: Callable[[ParishSignals], bool]
    outcome: PowerSource


POWER_SOURCE_POLICY: tuple[PolicyRule, ...] = (
    PolicyRule(
        "telemetry_restored",
        lambda s: s.telemetry is not None and s.telemetry.outage_count == 0,
        "grid",
    ),
    PolicyRule("live_outage_report", lambda s: bool(s.live_reports), "no_power"),
    PolicyRule(
        "generator_tag",
        lambda s: s.latest_tag is not None and s.latest_tag.power_source == "generator",
        "generator",
    ),
    PolicyRule(
        "grid_tag",
        lambda s: s.latest_tag is not None and s.latest_tag.power_source == "grid",
        "grid",
    ),
)

FALLBACK_RULE = "no_signal"


def apply_policy(signals: ParishSignals) -> tuple[PowerSource, str]:
    for rule in POWER_SOURCE_POLICY:
        if rule.applies(signals):
            return rule.outcome, rule.name
    return "unknown", FALLBACK_RULE


def load_telemetry_safely(fetch: Callable[[], OutageTelemetry | None]) -> OutageTelemetry | None:
    """Run a telemetry lookup; any failure counts as no telemetry."""
    try:
        return fetch()
    except Exception as exc:
        _log.warning("Outage telemetry unavailable, using crowd signal only: %s", exc)
        return None


def _telemetry_for(concelho: str, telemetry: OutageTelemetry | None) -> OutageTelemetry | None:
    if telemetry is None:
        return None
    if normalize_area_name(telemetry.municipality) != normalize_area_name(concelho):
        _log.warning(
            "Ignoring outage telemetry for %r while evaluating %r", telemetry.municipality, concelho
        )
        return None
    return telemetry


def collect_signals(
    concelho: str,
    parishes: Iterable[str],
    telemetry: OutageTelemetry | None,
    active_reports: Iterable[Report],
    resolved_tags: Iterable[ResolvedPowerTag],
    now: datetime | None = None,
    *,
    tag_window: timedelta = POWER_TAG_WINDOW,
) -> dict[str, ParishSignals]:
    now = ensure_utc(now or utc_now())
    usable = _telemetry_for(concelho, telemetry)
    signals = {p: ParishSignals(parish=p, telemetry=usable) for p in parishes}

    for report in active_reports:
        if report.type != "electricity" or report.resolved or report.parish not in signals:
            continue
        signals[report.parish].live_reports.append(report)

    for tag in resolved_tags:
        row = signals.get(tag.parish)
        if row is None or not within_window(tag.resolved_at, now, tag_window):
            continue
        if row.latest_tag is None or ensure_utc(tag.resolved_at) > ensure_utc(row.latest_tag.resolved_at):
            row.latest_tag = tag

    return signals


def explain_power_sources(
    concelho: str,
    parishes: Iterable[str],
    telemetry: OutageTelemetry | None,
    active_reports: Iterable[Report],
    resolved_tags: Iterable[ResolvedPowerTag],
    now: datetime | None = None,
    *,
    tag_window: timedelta = POWER_TAG_WINDOW,
) -> dict[str, dict[str, str]]:
    signals = collect_signals(
        concelho, parishes, telemetry, active_reports, resolved_tags, now, tag_window=tag_window
    )
    explained: dict[str, dict[str, str]] = {}
    for parish, row in signals.items():
        outcome, rule = apply_policy(row)
        explained[parish] = {"power_source": outcome, "rule": rule}
    return explained


def infer_power_sources(
    concelho: str,
    parishes: Iterable[str],
    telemetry: OutageTelemetry | None,
    active_reports: Iterable[Report],
    resolved_tags: Iterable[ResolvedPowerTag],
    now: datetime | None = None,
    *,
    tag_window: timedelta = POWER_TAG_WINDOW,
) -> dict[str, PowerSource]:
    explained = explain_power_sources(
        concelho, parishes, telemetry, active_reports, resolved_tags, now, tag_window=tag_window
    )
    return {parish: row["power_source"] for parish, row in explained.items()}
