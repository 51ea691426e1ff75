"""Parish/concelho resolution against static boundary reference data.

Boundary GeoJSON format::

    {
      "type": "FeatureCollection",
      "features": [
        {
          "type": "Feature",
          "properties": {"Freguesia": "Pousos", "Concelho": "Leiria"},
          "geometry": {"type": "Polygon", "coordinates": [...]}
        },
        ...
      ]
    }

The reference is loaded once at process start and handed to
``ParishResolver``; nothing here holds module-level state.
"""

from __future__ import annotations

import json
import logging
import math
import re
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from shapely.geometry import Point, shape
from shapely.prepared import PreparedGeometry, prep

from .models import AreaMatch

_log = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000.0


def haversine_m(a_lat: float, a_lng: float, b_lat: float, b_lng: float) -> float:
    lat1, lon1 = math.radians(a_lat), math.radians(a_lng)
    lat2, lon2 = math.radians(b_lat), math.radians(b_lng)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    x = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(x))


def _strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def normalize_area_name(value: str) -> str:
    return " ".join(_strip_accents(value).casefold().split())


def slugify(text: str) -> str:
    cleaned = _strip_accents(text).lower()
    cleaned = re.sub(r"\s+", "-", cleaned)
    return re.sub(r"[^a-z0-9-]", "", cleaned)


def concelho_from_slug(slug: str, names: Iterable[str]) -> str | None:
    wanted = slug.strip().lower()
    for name in names:
        if slugify(name) == wanted:
            return name
    return None


@dataclass(frozen=True)
class ParishBoundary:
    parish: str
    concelho: str
    geometry: PreparedGeometry


class BoundaryReference:
    """Read-only, ordered collection of parish polygons."""

    def __init__(self, boundaries: Iterable[ParishBoundary]) -> None:
        self._boundaries: tuple[ParishBoundary, ...] = tuple(boundaries)

    def __iter__(self):
        return iter(self._boundaries)

    def __len__(self) -> int:
        return len(self._boundaries)

    @classmethod
    def from_geojson(cls, payload: dict[str, Any]) -> "BoundaryReference":
        boundaries: list[ParishBoundary] = []
        for index, feature in enumerate(payload.get("features", []) or []):
            props = feature.get("properties") or {}
            parish = str(props.get("Freguesia") or "").strip()
            concelho = str(props.get("Concelho") or "").strip()
            geometry = feature.get("geometry")
            if not parish or not concelho or not geometry:
                _log.warning("Skipping boundary feature %d: missing name or geometry", index)
                continue
            if geometry.get("type") not in {"Polygon", "MultiPolygon"}:
                _log.warning("Skipping boundary feature %d: unsupported geometry %s", index, geometry.get("type"))
                continue
            boundaries.append(
                ParishBoundary(parish=parish, concelho=concelho, geometry=prep(shape(geometry)))
            )
        return cls(boundaries)

    @classmethod
    def load(cls, path: str | Path) -> "BoundaryReference":
        boundary_path = Path(path)
        if not boundary_path.exists():
            raise FileNotFoundError(f"Boundary reference not found: {boundary_path}")
        payload = json.loads(boundary_path.read_text(encoding="utf-8"))
        reference = cls.from_geojson(payload)
        _log.info("Loaded %d parish boundaries from %s", len(reference), boundary_path)
        return reference


class ParishResolver:
    def __init__(self, reference: BoundaryReference) -> None:
        self._reference = reference

    def resolve(self, lat: float, lng: float) -> AreaMatch | None:
        """Return the first parish whose polygon contains the point.

        Points on a polygon edge count as inside. Overlaps in the reference
        data are not arbitrated beyond file order.
        """
        point = Point(lng, lat)
        for boundary in self._reference:
            if boundary.geometry.covers(point):
                return AreaMatch(parish=boundary.parish, concelho=boundary.concelho)
        return None

    def parishes_of(self, concelho: str) -> list[str]:
        wanted = normalize_area_name(concelho)
        parishes: list[str] = []
        for boundary in self._reference:
            if normalize_area_name(boundary.concelho) != wanted:
                continue
            if boundary.parish not in parishes:
                parishes.append(boundary.parish)
        return parishes

    def concelhos(self) -> list[str]:
        names: list[str] = []
        for boundary in self._reference:
            if boundary.concelho not in names:
                names.append(boundary.concelho)
        return names

    def canonical_concelho(self, concelho: str) -> str | None:
        wanted = normalize_area_name(concelho)
        for name in self.concelhos():
            if normalize_area_name(name) == wanted:
                return name
        return None
