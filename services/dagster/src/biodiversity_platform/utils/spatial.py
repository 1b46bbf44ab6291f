from __future__ import annotations

import re
from dataclasses import dataclass

from shapely.errors import ShapelyError
from shapely.geometry import GeometryCollection, shape

UTM_PATTERN = re.compile(r"^\s*(\d{1,2})([NS])?\s+(\d+(?:\.\d+)?)\s+(\d+(?:\.\d+)?)\s*$", re.IGNORECASE)
LAT_LONG_PATTERN = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s+(-?\d+(?:\.\d+)?)\s*$")


@dataclass(frozen=True)
class UTM:
    easting: float
    northing: float
    zone_number: int
    zone_letter: str
    zone_srid: int


@dataclass(frozen=True)
class LatLong:
    lat: float
    long: float


def parse_utm_string(value: str | None) -> UTM | None:
    match = UTM_PATTERN.match(value or "")
    if not match:
        return None
    zone_number = int(match.group(1))
    if not 1 <= zone_number <= 60:
        return None
    zone_letter = (match.group(2) or "N").upper()
    base_srid = 32600 if zone_letter == "N" else 32700
    return UTM(
        easting=float(match.group(3)),
        northing=float(match.group(4)),
        zone_number=zone_number,
        zone_letter=zone_letter,
        zone_srid=base_srid + zone_number,
    )


def parse_lat_long_string(value: str | None) -> LatLong | None:
    match = LAT_LONG_PATTERN.match(value or "")
    if not match:
        return None
    lat, long = float(match.group(1)), float(match.group(2))
    if not (-90 <= lat <= 90 and -180 <= long <= 180):
        return None
    return LatLong(lat=lat, long=long)


def _shape(geometry: dict):
    try:
        return shape(geometry)
    except (ShapelyError, AttributeError, KeyError, TypeError, IndexError) as exc:
        raise ValueError(f"Invalid GeoJSON geometry: {exc}") from exc


def geometry_to_wkt(geometry: dict) -> str:
    """Raises ValueError for GeoJSON that shapely cannot build a geometry from."""
    return _shape(geometry).wkt


def boundary_to_wkt(boundary: dict) -> str:
    if boundary.get("type") == "Feature":
        geometry = boundary.get("geometry")
        if not geometry:
            raise ValueError("Boundary feature has no geometry")
        return geometry_to_wkt(geometry)
    return geometry_to_wkt(boundary)


def generate_geometry_collection_wkt(feature_collection: dict) -> str | None:
    geometries = [
        _shape(feature["geometry"])
        for feature in feature_collection.get("features") or []
        if feature.get("geometry")
    ]
    if not geometries:
        return None
    if len(geometries) == 1:
        return geometries[0].wkt
    return GeometryCollection(geometries).wkt
