"""seed eml study boundary and dwc occurrence spatial transforms

Revision ID: 0003_seed_spatial_transforms
Revises: 0002_seed_lookup_types
Create Date: 2026-10-01 00:20:00.000000
"""

from datetime import datetime, timezone
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0003_seed_spatial_transforms"
down_revision: Union[str, None] = "0002_seed_lookup_types"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Transforms run with a single :submission_id bind and return result_data rows,
# each one a GeoJSON FeatureCollection.

EML_STUDY_BOUNDARIES = r"""
WITH submissions AS (
    SELECT eml_json_source FROM submission WHERE submission_id = :submission_id
),
coverages AS (
    SELECT row_number() OVER () AS cov_n, d.coverage
    FROM (
        SELECT DISTINCT c.coverage
        FROM submissions s, jsonb_path_query(s.eml_json_source, '$.**.geographicCoverage[*]') c(coverage)
    ) d
),
rings AS (
    SELECT c.cov_n, r.ring_n, r.ring
    FROM coverages c,
        jsonb_path_query(c.coverage, '$.datasetGPolygon[*].datasetGPolygonOuterGRing') WITH ORDINALITY r(ring, ring_n)
),
points AS (
    SELECT
        r.cov_n,
        r.ring_n,
        p.point_n,
        jsonb_build_array((p.point->>'gRingLongitude')::float, (p.point->>'gRingLatitude')::float) AS point
    FROM rings r, jsonb_path_query(r.ring, '$.gRingPoint[*]') WITH ORDINALITY p(point, point_n)
),
polygons AS (
    SELECT cov_n, ring_n, jsonb_agg(point ORDER BY point_n) AS ring
    FROM points
    GROUP BY cov_n, ring_n
),
closed_polygons AS (
    SELECT
        cov_n,
        ring_n,
        CASE WHEN ring->0 = ring->-1 THEN ring ELSE ring || jsonb_build_array(ring->0) END AS ring
    FROM polygons
),
boxes AS (
    SELECT
        c.cov_n,
        (b.box->>'westBoundingCoordinate')::float AS w,
        (b.box->>'eastBoundingCoordinate')::float AS e,
        (b.box->>'northBoundingCoordinate')::float AS n,
        (b.box->>'southBoundingCoordinate')::float AS s
    FROM coverages c, jsonb_path_query(c.coverage, '$.boundingCoordinates') b(box)
    WHERE NOT EXISTS (SELECT 1 FROM polygons p WHERE p.cov_n = c.cov_n)
),
box_polygons AS (
    SELECT
        cov_n,
        1::bigint AS ring_n,
        jsonb_build_array(
            jsonb_build_array(w, s),
            jsonb_build_array(e, s),
            jsonb_build_array(e, n),
            jsonb_build_array(w, n),
            jsonb_build_array(w, s)
        ) AS ring
    FROM boxes
),
features AS (
    SELECT jsonb_build_object(
        'type', 'Feature',
        'geometry', jsonb_build_object('type', 'Polygon', 'coordinates', jsonb_build_array(r.ring)),
        'properties', jsonb_build_object('type', 'Boundary', 'description', c.coverage->'geographicDescription')
    ) AS feature
    FROM (
        SELECT * FROM closed_polygons
        UNION ALL
        SELECT * FROM box_polygons
    ) r
    JOIN coverages c ON c.cov_n = r.cov_n
)
SELECT jsonb_build_object(
    'type', 'FeatureCollection',
    'features', coalesce(jsonb_agg(feature), '[]'::jsonb)
) AS result_data
FROM features
"""

DWC_OCCURRENCES = r"""
WITH submission_source AS (
    SELECT uuid, darwin_core_source FROM submission WHERE submission_id = :submission_id
),
occurrences AS (
    SELECT s.uuid, o.occ
    FROM submission_source s,
        jsonb_array_elements(coalesce(s.darwin_core_source->'occurrence', '[]'::jsonb)) o(occ)
),
events AS (
    SELECT
        e.evn,
        regexp_match(
            e.evn->>'verbatimCoordinates',
            '^\s*(\d{1,2})([NnSs]?)\s+(\d+(\.\d+)?)\s+(\d+(\.\d+)?)\s*$'
        ) AS utm
    FROM submission_source s,
        jsonb_array_elements(coalesce(s.darwin_core_source->'event', '[]'::jsonb)) e(evn)
),
event_points AS (
    SELECT
        evn,
        CASE
            WHEN utm IS NOT NULL AND utm[1]::integer BETWEEN 1 AND 60 THEN public.ST_Transform(
                public.ST_SetSRID(
                    public.ST_MakePoint(utm[3]::float, utm[5]::float),
                    CASE WHEN upper(utm[2]) = 'S' THEN 32700 ELSE 32600 END + utm[1]::integer
                ),
                4326
            )
            WHEN evn->>'decimalLatitude' ~ '^\s*-?\d+(\.\d+)?\s*$'
                AND evn->>'decimalLongitude' ~ '^\s*-?\d+(\.\d+)?\s*$' THEN public.ST_SetSRID(
                public.ST_MakePoint((evn->>'decimalLongitude')::float, (evn->>'decimalLatitude')::float),
                4326
            )
        END AS pt
    FROM events
),
taxa AS (
    SELECT t.taxn
    FROM submission_source s,
        jsonb_array_elements(coalesce(s.darwin_core_source->'taxon', '[]'::jsonb)) t(taxn)
),
normal AS (
    SELECT o.uuid, o.occ, e.evn, e.pt, t.taxn
    FROM occurrences o
    LEFT JOIN event_points e
        ON coalesce(e.evn->'eventID', e.evn->'id') = coalesce(o.occ->'eventID', o.occ->'id')
    LEFT JOIN taxa t ON t.taxn->'occurrenceID' = o.occ->'occurrenceID'
)
SELECT jsonb_build_object(
    'type', 'FeatureCollection',
    'features', jsonb_build_array(jsonb_build_object(
        'type', 'Feature',
        'geometry', CASE
            WHEN n.pt IS NULL THEN NULL
            ELSE jsonb_build_object(
                'type', 'Point',
                'coordinates', jsonb_build_array(public.ST_X(n.pt), public.ST_Y(n.pt))
            )
        END,
        'properties', jsonb_build_object(
            'type', 'Occurrence',
            'dwc', jsonb_build_object(
                'type', 'PhysicalObject',
                'basisOfRecord', 'Occurrence',
                'datasetID', n.uuid,
                'occurrenceID', n.occ->'occurrenceID',
                'sex', n.occ->'sex',
                'lifeStage', n.occ->'lifeStage',
                'associatedTaxa', n.occ->'associatedTaxa',
                'individualCount', n.occ->'individualCount',
                'eventDate', n.evn->'eventDate',
                'verbatimSRS', n.evn->'verbatimSRS',
                'verbatimCoordinates', n.evn->'verbatimCoordinates',
                'vernacularName', n.taxn->'vernacularName'
            )
        )
    ))
) AS result_data
FROM normal n
"""


def upgrade() -> None:
    spatial_transform = sa.table(
        "spatial_transform",
        sa.column("name", sa.Text()),
        sa.column("description", sa.Text()),
        sa.column("transform", sa.Text()),
        sa.column("record_effective_date", sa.DateTime(timezone=True)),
    )
    now = datetime.now(timezone.utc)
    op.bulk_insert(
        spatial_transform,
        [
            {
                "name": "EML Study Boundaries",
                "description": "Extracts study boundaries and properties from EML JSON source.",
                "transform": EML_STUDY_BOUNDARIES.strip(),
                "record_effective_date": now,
            },
            {
                "name": "DwC Occurrences",
                "description": "Extracts occurrences and properties from DwC JSON source.",
                "transform": DWC_OCCURRENCES.strip(),
                "record_effective_date": now,
            },
        ],
    )


def downgrade() -> None:
    op.execute("DELETE FROM spatial_transform WHERE name IN ('EML Study Boundaries', 'DwC Occurrences')")
