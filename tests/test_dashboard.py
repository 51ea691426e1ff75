from datetime import timedelta

import pytest

from conftest import BATALHA, LEIRIA_CENTRO, MARRAZES, NOW

from infra_triage.dashboard import (
    RECENT_REPORTS_LIMIT,
    build_area_dashboard,
    build_power_source_view,
    resolve_area,
)
from infra_triage.errors import ReportNotFoundError, ReportValidationError
from infra_triage.geo import BoundaryReference, ParishResolver
from infra_triage.models import OutageTelemetry, ReportSubmission


def _submit(lifecycle, lat, lng, report_type="electricity", now=NOW, **fields):
    submission = ReportSubmission(type=report_type, lat=lat, lng=lng, **fields)
    return lifecycle.create(submission, now=now)


def test_concelho_dashboard(lifecycle, resolver) -> None:
    for lat in (39.740, 39.741, 39.742):
        _submit(lifecycle, lat, -8.81, now=NOW - timedelta(minutes=30))
    _submit(lifecycle, 39.785, -8.80, report_type="water")
    _submit(lifecycle, 39.65, -8.82, report_type="roads")

    view = build_area_dashboard(lifecycle, resolver, "leiria", now=NOW)

    assert view["concelho"] == "Leiria"
    assert view["parish"] is None
    assert view["timestamp"] == NOW.isoformat()
    assert view["reports"]["total"] == 4
    assert view["reports"]["by_type"] == {"electricity": 3, "water": 1}
    assert view["reports"]["parishes"] == sorted([LEIRIA_CENTRO, MARRAZES])
    assert view["parishes"] == [LEIRIA_CENTRO, MARRAZES]
    assert len(view["hotspots"]) == 1
    assert view["hotspots"][0]["count"] == 3
    assert {r["state"] for r in view["recent_reports"]} == {"active"}


def test_parish_dashboard(lifecycle, resolver) -> None:
    _submit(lifecycle, 39.740, -8.81)
    water = _submit(lifecycle, 39.785, -8.80, report_type="water")

    view = build_area_dashboard(lifecycle, resolver, "Leiria", MARRAZES, now=NOW)

    assert view["parish"] == MARRAZES
    assert view["reports"]["total"] == 1
    assert [r["id"] for r in view["recent_reports"]] == [water.id]


def test_recent_reports_are_capped(lifecycle, resolver) -> None:
    for i in range(RECENT_REPORTS_LIMIT + 2):
        _submit(lifecycle, 39.73 + i * 0.003, -8.80, report_type="water", now=NOW - timedelta(hours=i))

    view = build_area_dashboard(lifecycle, resolver, "Leiria", now=NOW)

    assert view["reports"]["total"] == RECENT_REPORTS_LIMIT + 2
    assert len(view["recent_reports"]) == RECENT_REPORTS_LIMIT


def test_stale_reports_are_flagged(lifecycle, resolver) -> None:
    _submit(lifecycle, 39.740, -8.81, now=NOW - timedelta(hours=60))
    view = build_area_dashboard(lifecycle, resolver, "Leiria", now=NOW)
    assert view["recent_reports"][0]["state"] == "stale"


def test_unknown_concelho(lifecycle, resolver) -> None:
    with pytest.raises(ReportNotFoundError) as exc:
        build_area_dashboard(lifecycle, resolver, "Lisboa", now=NOW)
    assert exc.value.code == "concelho_not_found"


def test_parish_outside_concelho(lifecycle, resolver) -> None:
    with pytest.raises(ReportValidationError) as exc:
        build_area_dashboard(lifecycle, resolver, "Leiria", BATALHA, now=NOW)
    assert exc.value.code == "parish_not_in_concelho"


def test_power_source_view_crowd_signals(lifecycle, resolver) -> None:
    _submit(lifecycle, 39.740, -8.81)
    tagged = _submit(lifecycle, 39.785, -8.80, now=NOW - timedelta(days=2))
    lifecycle.resolve(tagged.id, power_source="generator", now=NOW - timedelta(days=1))

    view = build_power_source_view(lifecycle, resolver, "Leiria", now=NOW)

    assert view["telemetry"] is None
    assert view["parishes"][LEIRIA_CENTRO]["power_source"] == "no_power"
    assert view["parishes"][MARRAZES] == {"power_source": "generator", "rule": "generator_tag"}


def test_power_source_view_uses_latest_telemetry(lifecycle, resolver) -> None:
    _submit(lifecycle, 39.740, -8.81)
    store = lifecycle.store
    store.record_outages([OutageTelemetry(municipality="Leiria", outage_count=5)], now=NOW - timedelta(hours=2))
    store.record_outages([OutageTelemetry(municipality="Leiria", outage_count=0)], now=NOW - timedelta(minutes=10))

    view = build_power_source_view(lifecycle, resolver, "Leiria", now=NOW)

    assert view["telemetry"]["outage_count"] == 0
    assert {row["power_source"] for row in view["parishes"].values()} == {"grid"}

    batalha = build_power_source_view(lifecycle, resolver, "Batalha", now=NOW)
    assert batalha["telemetry"] is None
    assert batalha["parishes"] == {BATALHA: {"power_source": "unknown", "rule": "no_signal"}}


def test_power_source_view_survives_store_failure(lifecycle, resolver, monkeypatch) -> None:
    def broken(municipality):
        raise OSError("disk unavailable")

    monkeypatch.setattr(lifecycle.store, "latest_outage", broken)
    _submit(lifecycle, 39.740, -8.81)

    view = build_power_source_view(lifecycle, resolver, "Leiria", now=NOW)

    assert view["telemetry"] is None
    assert view["parishes"][LEIRIA_CENTRO]["power_source"] == "no_power"


def test_power_source_view_matches_feed_spelling(lifecycle, resolver) -> None:
    _submit(lifecycle, 39.740, -8.81)
    lifecycle.store.record_outages([OutageTelemetry(municipality="LEIRIA", outage_count=0)], now=NOW)

    view = build_power_source_view(lifecycle, resolver, "Leiria", now=NOW)

    assert view["telemetry"]["municipality"] == "LEIRIA"
    assert view["parishes"][LEIRIA_CENTRO] == {"power_source": "grid", "rule": "telemetry_restored"}


def test_area_accepts_slug() -> None:
    reference = BoundaryReference.from_geojson(
        {
            "type": "FeatureCollection",
            "features": [
                {
                    "type": "Feature",
                    "properties": {"Freguesia": "Juncal", "Concelho": "Porto de Mós"},
                    "geometry": {
                        "type": "Polygon",
                        "coordinates": [[[-8.90, 39.55], [-8.85, 39.55], [-8.85, 39.60], [-8.90, 39.60], [-8.90, 39.55]]],
                    },
                }
            ],
        }
    )
    resolver = ParishResolver(reference)

    assert resolve_area(resolver, "porto-de-mos") == ("Porto de Mós", ["Juncal"], ["Juncal"])
    assert resolve_area(resolver, "PORTO DE MOS")[0] == "Porto de Mós"
    with pytest.raises(ReportNotFoundError):
        resolve_area(resolver, "porto")
