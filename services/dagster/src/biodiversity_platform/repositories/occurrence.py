from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import text

from biodiversity_platform.repositories.base import BaseRepository, json_value
from biodiversity_platform.utils.spatial import parse_lat_long_string, parse_utm_string

UTM_GEOGRAPHY = """
    public.ST_Transform(
        public.ST_SetSRID(public.ST_MakePoint(:easting, :northing), :zone_srid),
        4326
    )
"""
LAT_LONG_GEOGRAPHY = """
    public.ST_Transform(
        public.ST_SetSRID(public.ST_MakePoint(:long, :lat), 4326),
        4326
    )
"""


@dataclass(frozen=True)
class ScrapedOccurrence:
    associated_taxa: str | None = None
    life_stage: str | None = None
    sex: str | None = None
    verbatim_coordinates: str | None = None
    individual_count: str | None = None
    vernacular_name: str | None = None
    organism_quantity: str | None = None
    organism_quantity_type: str | None = None
    event_date: str | None = None


def geography_sql(verbatim_coordinates: str | None) -> tuple[str, dict]:
    """UTM is tried before lat/long; anything else stores a NULL geography."""
    utm = parse_utm_string(verbatim_coordinates)
    if utm:
        return UTM_GEOGRAPHY, {
            "easting": utm.easting,
            "northing": utm.northing,
            "zone_srid": utm.zone_srid,
        }
    lat_long = parse_lat_long_string(verbatim_coordinates)
    if lat_long:
        return LAT_LONG_GEOGRAPHY, {"lat": lat_long.lat, "long": lat_long.long}
    return "NULL", {}


class OccurrenceRepository(BaseRepository):
    def insert_scraped_occurrence(self, submission_id: int, occurrence: ScrapedOccurrence) -> int:
        geography, geography_params = geography_sql(occurrence.verbatim_coordinates)
        rows = self.connection.execute(
            text(
                f"""
                INSERT INTO occurrence (
                    submission_id,
                    taxonid,
                    lifestage,
                    sex,
                    vernacularname,
                    eventdate,
                    individualcount,
                    organismquantity,
                    organismquantitytype,
                    geography
                ) VALUES (
                    :submission_id,
                    :taxonid,
                    :lifestage,
                    :sex,
                    :vernacularname,
                    :eventdate,
                    :individualcount,
                    :organismquantity,
                    :organismquantitytype,
                    {geography}
                )
                RETURNING occurrence_id
                """
            ),
            {
                "submission_id": submission_id,
                "taxonid": occurrence.associated_taxa,
                "lifestage": occurrence.life_stage,
                "sex": occurrence.sex,
                "vernacularname": occurrence.vernacular_name,
                "eventdate": occurrence.event_date,
                "individualcount": occurrence.individual_count,
                "organismquantity": occurrence.organism_quantity,
                "organismquantitytype": occurrence.organism_quantity_type,
                **geography_params,
            },
        ).fetchall()
        return self._one(rows, "Failed to insert occurrence record", "insert_scraped_occurrence").occurrence_id

    def get_occurrence(self, occurrence_id: int) -> dict:
        rows = self.connection.execute(
            text(
                """
                SELECT
                    o.occurrence_id,
                    o.submission_id,
                    o.taxonid,
                    o.lifestage,
                    o.sex,
                    o.vernacularname,
                    o.eventdate,
                    o.individualcount,
                    o.organismquantity,
                    o.organismquantitytype,
                    public.ST_AsGeoJSON(o.geography) AS geometry
                FROM occurrence o
                JOIN submission s ON s.submission_id = o.submission_id
                WHERE o.occurrence_id = :occurrence_id
                  AND s.record_end_date IS NULL
                """
            ),
            {"occurrence_id": occurrence_id},
        ).fetchall()
        record = dict(self._one(rows, "Failed to get occurrence record", "get_occurrence")._mapping)
        record["geometry"] = json_value(record["geometry"])
        return record
