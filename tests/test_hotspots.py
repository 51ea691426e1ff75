from datetime import timedelta

import pytest

from conftest import NOW

from infra_triage.hotspots import detect_hotspots
from infra_triage.models import Report


def _report(report_id: int, lat: float, lng: float = -8.81, age: timedelta = timedelta(hours=1)) -> Report:
    created = NOW - age
    return Report(
        id=report_id,
        type="electricity",
        lat=lat,
        lng=lng,
        created_at=created,
        last_upvoted_at=created,
    )


def test_three_close_reports_form_a_hotspot() -> None:
    reports = [_report(1, 39.740), _report(2, 39.741), _report(3, 39.742)]
    hotspots = detect_hotspots(reports, NOW)
    assert len(hotspots) == 1
    spot = hotspots[0]
    assert spot.count == 3
    assert spot.report_ids == [1, 2, 3]
    assert spot.lat == pytest.approx(39.741)
    assert spot.lng == pytest.approx(-8.81)


def test_two_reports_are_not_enough() -> None:
    assert detect_hotspots([_report(1, 39.740), _report(2, 39.741)], NOW) == []


def test_old_reports_are_ignored() -> None:
    reports = [_report(1, 39.740), _report(2, 39.741), _report(3, 39.742, age=timedelta(hours=25))]
    assert detect_hotspots(reports, NOW) == []


def test_distant_reports_do_not_cluster() -> None:
    reports = [_report(1, 39.740), _report(2, 39.750), _report(3, 39.760)]
    assert detect_hotspots(reports, NOW) == []


def test_each_report_joins_one_hotspot() -> None:
    near = [_report(i, 39.740 + i * 0.0001) for i in range(1, 7)]
    far = [_report(i, 39.800 + i * 0.0001) for i in range(7, 10)]
    hotspots = detect_hotspots(near + far, NOW)
    assert [h.count for h in hotspots] == [6, 3]
    seen = [rid for h in hotspots for rid in h.report_ids]
    assert len(seen) == len(set(seen))
    assert all(h.count >= 3 for h in hotspots)


def test_clustering_follows_input_order() -> None:
    # Points about 300 m apart along a meridian; only neighbours are within 500 m.
    line = [_report(i, 39.740 + i * 0.0027) for i in range(4)]

    forward = detect_hotspots(line, NOW)
    backward = detect_hotspots(list(reversed(line)), NOW)

    assert [h.report_ids for h in forward] == [[0, 1, 2]]
    assert [h.report_ids for h in backward] == [[3, 2, 1]]


def test_custom_thresholds() -> None:
    reports = [_report(1, 39.740), _report(2, 39.741)]
    hotspots = detect_hotspots(reports, NOW, radius_m=200, min_reports=2)
    assert len(hotspots) == 1
    assert detect_hotspots(reports, NOW, window=timedelta(minutes=30), min_reports=2) == []
