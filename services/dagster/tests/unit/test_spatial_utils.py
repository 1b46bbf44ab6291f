from __future__ import annotations

import pytest

from biodiversity_platform.utils.spatial import (
    boundary_to_wkt,
    generate_geometry_collection_wkt,
    parse_lat_long_string,
    parse_utm_string,
)

SQUARE = {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]]}


def test_parse_utm_string_maps_hemisphere_to_srid():
    north = parse_utm_string("9N 573674 6114170")
    south = parse_utm_string("10s 500000.5 4649776")
    no_letter = parse_utm_string("9 573674 6114170")

    assert (north.zone_number, north.zone_srid, north.easting, north.northing) == (9, 32609, 573674.0, 6114170.0)
    assert (south.zone_letter, south.zone_srid, south.easting) == ("S", 32710, 500000.5)
    assert no_letter.zone_srid == 32609


@pytest.mark.parametrize("value", [None, "", "61N 1 2", "0 1 2", "49.1 -122.6", "9N 573674"])
def test_parse_utm_string_rejects_other_formats(value):
    assert parse_utm_string(value) is None


def test_parse_lat_long_string():
    parsed = parse_lat_long_string(" 49.1 -122.6 ")

    assert (parsed.lat, parsed.long) == (49.1, -122.6)
    assert parse_lat_long_string("91 10") is None
    assert parse_lat_long_string("10 181") is None
    assert parse_lat_long_string("9N 573674 6114170") is None


def test_boundary_to_wkt_accepts_feature_or_geometry():
    assert boundary_to_wkt({"type": "Feature", "geometry": SQUARE, "properties": {}}).startswith("POLYGON")
    assert boundary_to_wkt(SQUARE).startswith("POLYGON")

    with pytest.raises(ValueError, match="no geometry"):
        boundary_to_wkt({"type": "Feature", "geometry": None})
    with pytest.raises(ValueError, match="Invalid GeoJSON"):
        boundary_to_wkt({"type": "Polygon"})


def test_geometry_collection_wkt_skips_features_without_geometry():
    point = {"type": "Feature", "geometry": {"type": "Point", "coordinates": [-122.6, 49.1]}}
    empty = {"type": "Feature", "geometry": None}

    assert generate_geometry_collection_wkt({"features": [empty]}) is None
    assert generate_geometry_collection_wkt({"features": [point, empty]}).startswith("POINT")
    assert generate_geometry_collection_wkt(
        {"features": [point, {"type": "Feature", "geometry": SQUARE}]}
    ).startswith("GEOMETRYCOLLECTION")
