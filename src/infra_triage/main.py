"""CLI entrypoint for report submission, triage views and maintenance jobs."""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, List

from pydantic import ValidationError

from .config import RuntimeConfig, canonicalize_report_type, load_runtime_config
from .database import ReportStore
from .dashboard import build_area_dashboard, build_power_source_view, resolve_area
from .errors import ReportNotFoundError, ReportValidationError, bad_request
from .feature_flags import load_feature_flags
from .geo import BoundaryReference, ParishResolver
from .hotspots import detect_hotspots
from .lifecycle import ReportLifecycle, count_by_type
from .models import OutageTelemetry, ReportSubmission
from .priority import build_priority_classifier
from .recovery import build_recovery_summary
from .scheduler import BackfillSchedule, run_backfill_schedule
from .settings import get_boundaries_path, get_database_path, load_environment
from .time_utils import parse_timestamp, utc_now

_log = logging.getLogger(__name__)


@dataclass
class TriageContext:
    config: RuntimeConfig
    flags: dict[str, Any]
    store: ReportStore
    resolver: ParishResolver | None
    lifecycle: ReportLifecycle


def build_context(args: argparse.Namespace) -> TriageContext:
    load_environment()
    config = load_runtime_config(Path(args.config) if args.config else None)
    flags = load_feature_flags(Path(args.feature_flags) if args.feature_flags else None)

    db_path = Path(args.db) if args.db else (get_database_path() or config.database_path)
    store = ReportStore.open(db_path)

    boundaries_path = Path(args.boundaries) if args.boundaries else (get_boundaries_path() or config.boundaries_path)
    resolver: ParishResolver | None = None
    if boundaries_path.exists():
        resolver = ParishResolver(BoundaryReference.load(boundaries_path))
    else:
        _log.warning("Boundary reference %s missing; parish resolution disabled", boundaries_path)

    classifier = build_priority_classifier(flags, timeout=config.priority_timeout_seconds)
    lifecycle = ReportLifecycle(store, resolver, classifier, config)
    return TriageContext(config=config, flags=flags, store=store, resolver=resolver, lifecycle=lifecycle)


def _now(args: argparse.Namespace) -> datetime:
    parsed = parse_timestamp(getattr(args, "now", None))
    return parsed or utc_now()


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _require_resolver(ctx: TriageContext) -> ParishResolver:
    if ctx.resolver is None:
        raise RuntimeError("Boundary reference data is required for this command")
    return ctx.resolver


def cmd_submit(args: argparse.Namespace) -> int:
    ctx = build_context(args)
    submission = ReportSubmission(
        type=args.type,
        lat=args.lat,
        lng=args.lng,
        operator=args.operator,
        description=args.description,
        street=args.street,
        image_url=args.image_url,
    )
    report = ctx.lifecycle.create(submission, now=_now(args))
    _print(report.model_dump(mode="json"))
    return 0


def cmd_confirm(args: argparse.Namespace) -> int:
    ctx = build_context(args)
    report = ctx.lifecycle.confirm(args.id, now=_now(args))
    _print({"id": report.id, "upvotes": report.upvotes, "last_upvoted_at": report.last_upvoted_at.isoformat()})
    return 0


def cmd_resolve(args: argparse.Namespace) -> int:
    ctx = build_context(args)
    report = ctx.lifecycle.resolve(args.id, power_source=args.power_source, now=_now(args))
    _print({"id": report.id, "resolved": report.resolved, "power_source": report.power_source})
    return 0


def cmd_list_active(args: argparse.Namespace) -> int:
    ctx = build_context(args)
    now = _now(args)
    parishes = None
    if args.concelho:
        _, _, parishes = resolve_area(_require_resolver(ctx), args.concelho, args.parish)
    elif args.parish:
        parishes = [args.parish]
    report_type = None
    if args.type:
        report_type = canonicalize_report_type(args.type)
        if report_type is None:
            bad_request("invalid_type", f"Invalid report type: {args.type!r}")
    reports = ctx.lifecycle.active_reports(now, parishes=parishes, report_type=report_type)
    config = ctx.config
    hotspots = detect_hotspots(
        reports,
        now,
        window=timedelta(hours=config.hotspot_window_hours),
        radius_m=config.hotspot_radius_m,
        min_reports=config.hotspot_min_reports,
    )
    _print(
        {
            "total": len(reports),
            "by_type": count_by_type(reports),
            "reports": [
                {**r.model_dump(mode="json"), "state": ctx.lifecycle.report_state(r, now)}
                for r in reports
            ],
            "hotspots": [h.model_dump(mode="json") for h in hotspots],
        }
    )
    return 0


def cmd_hotspots(args: argparse.Namespace) -> int:
    ctx = build_context(args)
    now = _now(args)
    config = ctx.config
    hotspots = detect_hotspots(
        ctx.lifecycle.active_reports(now),
        now,
        window=timedelta(hours=config.hotspot_window_hours),
        radius_m=config.hotspot_radius_m,
        min_reports=config.hotspot_min_reports,
    )
    _print([h.model_dump(mode="json") for h in hotspots])
    return 0


def cmd_area(args: argparse.Namespace) -> int:
    ctx = build_context(args)
    _print(build_area_dashboard(ctx.lifecycle, _require_resolver(ctx), args.concelho, args.parish, now=_now(args)))
    return 0


def cmd_power_sources(args: argparse.Namespace) -> int:
    ctx = build_context(args)
    _print(build_power_source_view(ctx.lifecycle, _require_resolver(ctx), args.concelho, now=_now(args)))
    return 0


def cmd_backfill_parishes(args: argparse.Namespace) -> int:
    ctx = build_context(args)
    _print(ctx.lifecycle.backfill_parishes().model_dump())
    return 0


def cmd_record_outages(args: argparse.Namespace) -> int:
    ctx = build_context(args)
    if not ctx.flags.get("eredes_telemetry_enabled", True):
        print("Outage telemetry is disabled via feature flags")
        return 0
    municipality = args.municipality
    if ctx.resolver is not None:
        municipality = ctx.resolver.canonical_concelho(args.municipality) or args.municipality
    snapshot = OutageTelemetry(
        municipality=municipality,
        outage_count=args.count,
        extraction_datetime=args.extraction_datetime,
    )
    stored = ctx.store.record_outages([snapshot], now=_now(args))
    _print({"recorded": stored, "municipality": municipality, "outage_count": args.count})
    return 0


def cmd_recovery_score(args: argparse.Namespace) -> int:
    levels = [level.strip() for level in (args.warning_levels or "").split(",") if level.strip()]
    _print(
        build_recovery_summary(
            total_outages=args.outages,
            active_occurrences=args.occurrences,
            warning_levels=levels,
            scheduled_work_count=args.scheduled_work,
        )
    )
    return 0


def cmd_start_backfill_scheduler(args: argparse.Namespace) -> int:
    ctx = build_context(args)
    _require_resolver(ctx)
    interval = args.interval or int(ctx.flags.get("backfill_interval_minutes", 30))
    results = run_backfill_schedule(
        ctx.lifecycle.backfill_parishes,
        BackfillSchedule(interval_minutes=interval, max_runs=args.max_runs),
    )
    _print([r.model_dump() for r in results])
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Crowd-sourced infrastructure report triage")
    parser.add_argument("--config", help="Path to runtime config JSON")
    parser.add_argument("--feature-flags", help="Path to feature flags JSON")
    parser.add_argument("--db", help="SQLite database path")
    parser.add_argument("--boundaries", help="Parish boundary GeoJSON path")
    parser.add_argument("--log-level", default="WARNING")
    subparsers = parser.add_subparsers(dest="command", required=True)

    submit_parser = subparsers.add_parser("submit", help="Submit a new infrastructure report")
    submit_parser.add_argument("--type", required=True, help="electricity, telecom_mobile, telecom_fixed, water, roads")
    submit_parser.add_argument("--lat", type=float, required=True)
    submit_parser.add_argument("--lng", type=float, required=True)
    submit_parser.add_argument("--operator", help="Telecom operator (telecom types only)")
    submit_parser.add_argument("--description")
    submit_parser.add_argument("--street")
    submit_parser.add_argument("--image-url")
    submit_parser.add_argument("--now", help="ISO timestamp to use as the current time")
    submit_parser.set_defaults(func=cmd_submit)

    confirm_parser = subparsers.add_parser("confirm", help="Confirm (upvote) an active report")
    confirm_parser.add_argument("id", type=int)
    confirm_parser.add_argument("--now")
    confirm_parser.set_defaults(func=cmd_confirm)

    resolve_parser = subparsers.add_parser("resolve", help="Mark a report as resolved")
    resolve_parser.add_argument("id", type=int)
    resolve_parser.add_argument("--power-source", choices=["grid", "generator"])
    resolve_parser.add_argument("--now")
    resolve_parser.set_defaults(func=cmd_resolve)

    active_parser = subparsers.add_parser("list-active", help="List active reports with hotspots")
    active_parser.add_argument("--concelho")
    active_parser.add_argument("--parish")
    active_parser.add_argument("--type")
    active_parser.add_argument("--now")
    active_parser.set_defaults(func=cmd_list_active)

    hotspot_parser = subparsers.add_parser("hotspots", help="Compute hotspots over active reports")
    hotspot_parser.add_argument("--now")
    hotspot_parser.set_defaults(func=cmd_hotspots)

    area_parser = subparsers.add_parser("area", help="Per-concelho or per-parish dashboard")
    area_parser.add_argument("--concelho", required=True)
    area_parser.add_argument("--parish")
    area_parser.add_argument("--now")
    area_parser.set_defaults(func=cmd_area)

    power_parser = subparsers.add_parser("power-sources", help="Infer per-parish electricity supply")
    power_parser.add_argument("--concelho", required=True)
    power_parser.add_argument("--now")
    power_parser.set_defaults(func=cmd_power_sources)

    backfill_parser = subparsers.add_parser("backfill-parishes", help="Resolve parishes for reports missing one")
    backfill_parser.set_defaults(func=cmd_backfill_parishes)

    outages_parser = subparsers.add_parser("record-outages", help="Record an outage telemetry snapshot")
    outages_parser.add_argument("--municipality", required=True)
    outages_parser.add_argument("--count", type=int, required=True)
    outages_parser.add_argument("--extraction-datetime")
    outages_parser.add_argument("--now")
    outages_parser.set_defaults(func=cmd_record_outages)

    recovery_parser = subparsers.add_parser("recovery-score", help="Compute the district recovery score")
    recovery_parser.add_argument("--outages", type=int, default=0)
    recovery_parser.add_argument("--occurrences", type=int, default=0)
    recovery_parser.add_argument("--warning-levels", help="Comma-separated levels, e.g. yellow,orange")
    recovery_parser.add_argument("--scheduled-work", type=int, default=0)
    recovery_parser.set_defaults(func=cmd_recovery_score)

    scheduler_parser = subparsers.add_parser("start-backfill-scheduler", help="Run the parish backfill on an interval")
    scheduler_parser.add_argument("--interval", type=int, help="Minutes between runs")
    scheduler_parser.add_argument("--max-runs", type=int)
    scheduler_parser.set_defaults(func=cmd_start_backfill_scheduler)

    return parser


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.WARNING))
    try:
        return args.func(args)
    except (ReportValidationError, ReportNotFoundError) as exc:
        print(f"Request rejected [{exc.code}]: {exc.message}")
        return 1
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'input'}: {err['msg']}" for err in exc.errors()
        )
        print(f"Request rejected [invalid_input]: {details}")
        return 1
    except json.JSONDecodeError as exc:
        print(f"Error: unreadable JSON input: {exc}")
        return 2
    except RuntimeError as exc:
        print(f"Error: {exc}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
