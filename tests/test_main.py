import json
from pathlib import Path

import pytest

from conftest import LEIRIA_CENTRO, MARRAZES, NOW

from infra_triage.main import build_parser, main

NOW_ISO = NOW.isoformat()


@pytest.fixture
def cli(tmp_path: Path, boundaries_file: Path, capsys):
    base = [
        "--db",
        str(tmp_path / "cli.db"),
        "--boundaries",
        str(boundaries_file),
        "--feature-flags",
        str(tmp_path / "no-flags.json"),
    ]

    def run(*args: str):
        code = main(base + list(args))
        out = capsys.readouterr().out
        return code, out

    return run


def _submit(cli, lat: str, lng: str, *extra: str) -> dict:
    code, out = cli("submit", "--type", "electricity", "--lat", lat, "--lng", lng, "--now", NOW_ISO, *extra)
    assert code == 0
    return json.loads(out)


def test_submit_prints_report(cli) -> None:
    report = _submit(cli, "39.74", "-8.81", "--description", "poste caído com corrente")
    assert report["priority"] == "urgente"
    assert report["parish"] == LEIRIA_CENTRO
    assert report["upvotes"] == 1
    assert report["resolved"] is False


def test_submit_out_of_bounds_is_rejected(cli) -> None:
    code, out = cli("submit", "--type", "water", "--lat", "38.72", "--lng", "-9.14")
    assert code == 1
    assert "out_of_bounds" in out


def test_hotspots_command(cli) -> None:
    ids = [_submit(cli, lat, "-8.81")["id"] for lat in ("39.7400", "39.7410", "39.7425")]
    code, out = cli("hotspots", "--now", NOW_ISO)
    assert code == 0
    hotspots = json.loads(out)
    assert len(hotspots) == 1
    assert sorted(hotspots[0]["report_ids"]) == sorted(ids)


def test_confirm_and_resolve(cli) -> None:
    report = _submit(cli, "39.74", "-8.81")
    code, out = cli("confirm", str(report["id"]), "--now", NOW_ISO)
    assert code == 0
    assert json.loads(out)["upvotes"] == 2

    code, out = cli("resolve", str(report["id"]), "--power-source", "generator", "--now", NOW_ISO)
    assert code == 0
    assert json.loads(out) == {"id": report["id"], "resolved": True, "power_source": "generator"}

    code, out = cli("confirm", str(report["id"]))
    assert code == 1
    assert "report_resolved" in out


def test_confirm_unknown_report(cli) -> None:
    code, out = cli("confirm", "404")
    assert code == 1
    assert out.startswith("Request rejected [report_not_found]")


def test_list_active_filters_by_concelho(cli) -> None:
    _submit(cli, "39.74", "-8.81")
    code, out = cli(
        "submit", "--type", "water", "--lat", "39.65", "--lng", "-8.82", "--now", NOW_ISO
    )
    assert code == 0

    code, out = cli("list-active", "--concelho", "Leiria", "--now", NOW_ISO)
    payload = json.loads(out)
    assert payload["total"] == 1
    assert payload["by_type"] == {"electricity": 1}
    assert payload["reports"][0]["state"] == "active"


def test_area_and_power_sources(cli) -> None:
    _submit(cli, "39.74", "-8.81")
    code, out = cli("area", "--concelho", "Leiria", "--parish", MARRAZES, "--now", NOW_ISO)
    assert code == 0
    assert json.loads(out)["reports"]["total"] == 0

    code, out = cli("power-sources", "--concelho", "Leiria", "--now", NOW_ISO)
    assert json.loads(out)["parishes"][LEIRIA_CENTRO]["power_source"] == "no_power"

    code, out = cli("record-outages", "--municipality", "leiria", "--count", "0", "--now", NOW_ISO)
    assert code == 0
    assert json.loads(out)["municipality"] == "Leiria"

    code, out = cli("power-sources", "--concelho", "Leiria", "--now", NOW_ISO)
    assert json.loads(out)["parishes"][LEIRIA_CENTRO]["power_source"] == "grid"


def test_area_unknown_concelho(cli) -> None:
    code, out = cli("area", "--concelho", "Lisboa")
    assert code == 1
    assert "concelho_not_found" in out


def test_backfill_without_boundaries(tmp_path: Path, capsys) -> None:
    code = main(
        [
            "--db",
            str(tmp_path / "cli.db"),
            "--boundaries",
            str(tmp_path / "missing.geojson"),
            "--feature-flags",
            str(tmp_path / "no-flags.json"),
            "backfill-parishes",
        ]
    )
    assert code == 2
    assert "boundary reference" in capsys.readouterr().out


def test_backfill_command(cli) -> None:
    _submit(cli, "39.74", "-8.81")
    code, out = cli("backfill-parishes")
    assert code == 0
    assert json.loads(out) == {"total": 0, "updated": 0, "skipped": 0}


def test_recovery_score_command(cli) -> None:
    code, out = cli("recovery-score", "--outages", "3", "--occurrences", "4", "--warning-levels", "yellow, orange", "--scheduled-work", "2")
    assert code == 0
    assert json.loads(out)["score"] == 59


def test_scheduler_single_run(cli) -> None:
    code, out = cli("start-backfill-scheduler", "--max-runs", "1")
    assert code == 0
    assert json.loads(out) == [{"total": 0, "updated": 0, "skipped": 0}]


def test_parser_requires_command() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_negative_outage_count_is_rejected(cli) -> None:
    code, out = cli("record-outages", "--municipality", "Leiria", "--count", "-1")
    assert code == 1
    assert out.startswith("Request rejected [invalid_input]: outage_count:")


def test_invalid_runtime_config_is_rejected(cli, tmp_path: Path) -> None:
    config_path = tmp_path / "runtime.json"
    config_path.write_text(json.dumps({"hotspot_radius_m": -5}), encoding="utf-8")
    code, out = cli("--config", str(config_path), "hotspots")
    assert code == 1
    assert out.startswith("Request rejected [invalid_input]: hotspot_radius_m:")


def test_list_active_unknown_concelho(cli) -> None:
    code, out = cli("list-active", "--concelho", "Lisboa", "--now", NOW_ISO)
    assert code == 1
    assert "concelho_not_found" in out


def test_list_active_type_alias_and_slug(cli) -> None:
    _submit(cli, "39.74", "-8.81")
    code, out = cli("list-active", "--concelho", "leiria", "--type", "luz", "--now", NOW_ISO)
    assert code == 0
    assert json.loads(out)["by_type"] == {"electricity": 1}

    code, out = cli("list-active", "--type", "gas")
    assert code == 1
    assert "invalid_type" in out


def test_area_by_slug(cli) -> None:
    _submit(cli, "39.74", "-8.81")
    code, out = cli("power-sources", "--concelho", "leiria", "--now", NOW_ISO)
    assert code == 0
    assert json.loads(out)["concelho"] == "Leiria"
