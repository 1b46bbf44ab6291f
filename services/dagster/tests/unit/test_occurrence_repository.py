from __future__ import annotations

from types import SimpleNamespace
from unittest import mock

import pytest
from sqlalchemy import text

from biodiversity_platform.errors import ApiExecuteSQLError
from biodiversity_platform.repositories.occurrence import (
    LAT_LONG_GEOGRAPHY,
    UTM_GEOGRAPHY,
    OccurrenceRepository,
    ScrapedOccurrence,
    geography_sql,
)


def test_geography_sql_prefers_utm_then_lat_long():
    utm_sql, utm_params = geography_sql("9N 573674 6114170")
    lat_long_sql, lat_long_params = geography_sql("49.1 -122.6")

    assert utm_sql == UTM_GEOGRAPHY
    assert utm_params == {"easting": 573674.0, "northing": 6114170.0, "zone_srid": 32609}
    assert lat_long_sql == LAT_LONG_GEOGRAPHY
    assert lat_long_params == {"lat": 49.1, "long": -122.6}
    assert geography_sql("somewhere near the lake") == ("NULL", {})
    assert geography_sql(None) == ("NULL", {})


def test_insert_scraped_occurrence_without_coordinates(connection):
    occurrence_id = OccurrenceRepository(connection).insert_scraped_occurrence(
        7,
        ScrapedOccurrence(
            associated_taxa="M-ALAM",
            life_stage="adult",
            sex="male",
            individual_count="2",
            vernacular_name="Moose",
            event_date="2022-01-02",
        ),
    )

    row = connection.execute(
        text("SELECT * FROM occurrence WHERE occurrence_id = :id"), {"id": occurrence_id}
    ).mappings().one()
    assert row["submission_id"] == 7
    assert row["taxonid"] == "M-ALAM"
    assert row["lifestage"] == "adult"
    assert row["vernacularname"] == "Moose"
    assert row["eventdate"] == "2022-01-02"
    assert row["geography"] is None


def test_get_occurrence_decodes_geometry():
    conn = mock.Mock()
    row = SimpleNamespace(
        _mapping={
            "occurrence_id": 3,
            "submission_id": 7,
            "geometry": '{"type": "Point", "coordinates": [-122.6, 49.1]}',
        }
    )
    conn.execute.return_value.fetchall.return_value = [row]

    record = OccurrenceRepository(conn).get_occurrence(3)

    assert record["geometry"] == {"type": "Point", "coordinates": [-122.6, 49.1]}
    assert conn.execute.call_args.args[1] == {"occurrence_id": 3}


def test_get_occurrence_requires_one_row():
    conn = mock.Mock()
    conn.execute.return_value.fetchall.return_value = []

    with pytest.raises(ApiExecuteSQLError, match="Failed to get occurrence record"):
        OccurrenceRepository(conn).get_occurrence(3)
