from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from infra_triage.database import ReportStore
from infra_triage.geo import BoundaryReference, ParishResolver
from infra_triage.lifecycle import ReportLifecycle

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

LEIRIA_CENTRO = "União das freguesias de Leiria, Pousos, Barreira e Cortes"
MARRAZES = "União das freguesias de Marrazes e Barosa"
BATALHA = "Batalha"


def _box(parish: str, concelho: str, min_lat: float, max_lat: float, min_lng: float, max_lng: float) -> dict:
    return {
        "type": "Feature",
        "properties": {"Freguesia": parish, "Concelho": concelho},
        "geometry": {
            "type": "Polygon",
            "coordinates": [
                [
                    [min_lng, min_lat],
                    [max_lng, min_lat],
                    [max_lng, max_lat],
                    [min_lng, max_lat],
                    [min_lng, min_lat],
                ]
            ],
        },
    }


BOUNDARIES = {
    "type": "FeatureCollection",
    "features": [
        _box(LEIRIA_CENTRO, "Leiria", 39.72, 39.77, -8.84, -8.78),
        _box(MARRAZES, "Leiria", 39.77, 39.80, -8.84, -8.78),
        _box(BATALHA, "Batalha", 39.63, 39.68, -8.86, -8.78),
    ],
}


@pytest.fixture
def boundaries_file(tmp_path: Path) -> Path:
    path = tmp_path / "freguesias.geojson"
    path.write_text(json.dumps(BOUNDARIES), encoding="utf-8")
    return path


@pytest.fixture
def resolver() -> ParishResolver:
    return ParishResolver(BoundaryReference.from_geojson(BOUNDARIES))


@pytest.fixture
def store(tmp_path: Path) -> ReportStore:
    return ReportStore.open(tmp_path / "reports.db")


@pytest.fixture
def lifecycle(store: ReportStore, resolver: ParishResolver) -> ReportLifecycle:
    return ReportLifecycle(store, resolver)
