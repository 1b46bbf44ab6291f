from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import text

from biodiversity_platform.errors import ApiExecuteSQLError
from biodiversity_platform.repositories.base import (
    EXPECTED_ONE_ROW,
    BaseRepository,
    json_value,
    to_json_text,
)
from biodiversity_platform.utils.spatial import boundary_to_wkt, generate_geometry_collection_wkt

logger = logging.getLogger(__name__)

GEOGRAPHY_FROM_WKT = (
    "public.geography(public.ST_Force2D(public.ST_SetSRID(public.ST_GeomFromText({param}), 4326)))"
)


@dataclass(frozen=True)
class SpatialSearchCriteria:
    boundary: dict
    type: list[str] = field(default_factory=list)
    dataset_id: list[str] = field(default_factory=list)


def _spatial_filters(criteria: SpatialSearchCriteria) -> tuple[list[str], dict]:
    clauses = [
        "s.record_end_date IS NULL",
        "public.ST_Intersects(ssc.geography, "
        + GEOGRAPHY_FROM_WKT.format(param=":boundary_wkt")
        + ")",
    ]
    params: dict = {"boundary_wkt": boundary_to_wkt(criteria.boundary)}

    if criteria.type:
        type_clauses = []
        for index, spatial_type in enumerate(criteria.type):
            type_clauses.append(
                "jsonb_path_exists(ssc.spatial_component, "
                "'$.features[*] ? (@.properties.type == $type)', "
                f"jsonb_build_object('type', :type_{index}))"
            )
            params[f"type_{index}"] = spatial_type
        clauses.append("(" + " OR ".join(type_clauses) + ")")

    if criteria.dataset_id:
        names = []
        for index, dataset_id in enumerate(criteria.dataset_id):
            names.append(f":dataset_id_{index}")
            params[f"dataset_id_{index}"] = dataset_id
        clauses.append(f"s.uuid IN ({', '.join(names)})")

    return clauses, params


def _secured_components_sql(where: str) -> str:
    """Pick the unsecured component only for users holding every security exception tagged on it."""
    return f"""
        WITH user_security_exceptions AS (
            SELECT coalesce(array_agg(suse.security_transform_id), '{{}}') AS exceptions
            FROM system_user_security_exception suse
            WHERE suse.system_user_id = :system_user_id
        ),
        filtered_components AS (
            SELECT
                ssc.submission_spatial_component_id,
                ssc.spatial_component,
                ssc.secured_spatial_component,
                array_remove(array_agg(sts.security_transform_id), NULL) AS security_transforms
            FROM submission_spatial_component ssc
            JOIN submission s ON s.submission_id = ssc.submission_id
            LEFT JOIN security_transform_submission sts
                ON sts.submission_spatial_component_id = ssc.submission_spatial_component_id
            WHERE {where}
            GROUP BY ssc.submission_spatial_component_id
        ),
        combined_spatial_components AS (
            SELECT
                fc.submission_spatial_component_id,
                CASE
                    WHEN ue.exceptions @> fc.security_transforms THEN fc.spatial_component
                    ELSE coalesce(fc.secured_spatial_component, fc.spatial_component)
                END AS spatial_data
            FROM filtered_components fc
            CROSS JOIN user_security_exceptions ue
        )
    """


def build_spatial_search_query(
    criteria: SpatialSearchCriteria, secure: bool, system_user_id: int | None = None
) -> tuple[str, dict]:
    clauses, params = _spatial_filters(criteria)
    where = "\n              AND ".join(clauses)
    if not secure:
        sql = f"""
            SELECT ssc.submission_spatial_component_id, ssc.spatial_component AS spatial_data
            FROM submission_spatial_component ssc
            JOIN submission s ON s.submission_id = ssc.submission_id
            WHERE {where}
            ORDER BY ssc.submission_spatial_component_id
        """
        return sql, params

    params["system_user_id"] = system_user_id
    sql = (
        _secured_components_sql(where)
        + """
        SELECT submission_spatial_component_id, spatial_data
        FROM combined_spatial_components
        ORDER BY submission_spatial_component_id
    """
    )
    return sql, params


def build_spatial_count_query(
    dataset_id: str, secure: bool, system_user_id: int | None = None
) -> tuple[str, dict]:
    where = "s.uuid = :dataset_id AND s.record_end_date IS NULL"
    params: dict = {"dataset_id": dataset_id}
    count_select = """
        SELECT
            features_array #>> '{{properties, type}}' AS spatial_type,
            count(*)::integer AS count
        FROM {source},
            jsonb_array_elements({column} -> 'features') features_array
        GROUP BY spatial_type
    """
    if not secure:
        sql = count_select.format(
            source=(
                "submission_spatial_component ssc "
                f"JOIN submission s ON s.submission_id = ssc.submission_id AND {where}"
            ),
            column="ssc.spatial_component",
        )
        return sql, params

    params["system_user_id"] = system_user_id
    sql = _secured_components_sql(where) + count_select.format(
        source="combined_spatial_components csc", column="csc.spatial_data"
    )
    return sql, params


class SpatialRepository(BaseRepository):
    def insert_spatial_transform(self, name: str, description: str | None, transform: str) -> int:
        rows = self.connection.execute(
            text(
                """
                INSERT INTO spatial_transform (name, description, record_effective_date, transform)
                VALUES (:name, :description, CURRENT_TIMESTAMP, :transform)
                RETURNING spatial_transform_id
                """
            ),
            {"name": name, "description": description, "transform": transform},
        ).fetchall()
        if len(rows) != 1:
            raise ApiExecuteSQLError(
                "Failed to insert spatial transform details",
                ["SpatialRepository->insert_spatial_transform", EXPECTED_ONE_ROW],
            )
        return rows[0].spatial_transform_id

    def get_spatial_transform_records(self) -> list[dict]:
        rows = self.connection.execute(
            text(
                """
                SELECT spatial_transform_id, name, description, transform
                FROM spatial_transform
                WHERE record_end_date IS NULL
                ORDER BY spatial_transform_id
                """
            )
        ).fetchall()
        return [dict(row._mapping) for row in rows]

    def get_security_transform_records(self) -> list[dict]:
        rows = self.connection.execute(
            text(
                """
                SELECT security_transform_id, name, description, transform
                FROM security_transform
                WHERE record_end_date IS NULL
                ORDER BY security_transform_id
                """
            )
        ).fetchall()
        return [dict(row._mapping) for row in rows]

    def insert_spatial_transform_submission_record(
        self, spatial_transform_id: int, submission_spatial_component_id: int
    ) -> int:
        rows = self.connection.execute(
            text(
                """
                INSERT INTO spatial_transform_submission (spatial_transform_id, submission_spatial_component_id)
                VALUES (:spatial_transform_id, :submission_spatial_component_id)
                RETURNING spatial_transform_submission_id
                """
            ),
            {
                "spatial_transform_id": spatial_transform_id,
                "submission_spatial_component_id": submission_spatial_component_id,
            },
        ).fetchall()
        if len(rows) != 1:
            raise ApiExecuteSQLError(
                "Failed to insert spatial transform submission id and submission spatial component id",
                ["SpatialRepository->insert_spatial_transform_submission_record", EXPECTED_ONE_ROW],
            )
        return rows[0].spatial_transform_submission_id

    def insert_security_transform_submission_record(
        self, security_transform_id: int, submission_spatial_component_id: int
    ) -> int:
        rows = self.connection.execute(
            text(
                """
                INSERT INTO security_transform_submission (security_transform_id, submission_spatial_component_id)
                VALUES (:security_transform_id, :submission_spatial_component_id)
                RETURNING security_transform_submission_id
                """
            ),
            {
                "security_transform_id": security_transform_id,
                "submission_spatial_component_id": submission_spatial_component_id,
            },
        ).fetchall()
        if len(rows) != 1:
            raise ApiExecuteSQLError(
                "Failed to insert security transform submission id and submission spatial component id",
                ["SpatialRepository->insert_security_transform_submission_record", EXPECTED_ONE_ROW],
            )
        return rows[0].security_transform_submission_id

    def run_spatial_transform_on_submission_id(self, submission_id: int, transform: str) -> list[dict]:
        """Run a stored spatial transform; every returned row is one feature collection."""
        rows = self.connection.execute(text(transform), {"submission_id": submission_id}).fetchall()
        if not rows:
            raise ApiExecuteSQLError(
                "Failed to run spatial transform on submission id",
                ["SpatialRepository->run_spatial_transform_on_submission_id", "expected at least one row"],
            )
        return [json_value(row.result_data) for row in rows]

    def run_security_transform_on_submission_id(self, submission_id: int, transform: str) -> list[dict]:
        # zero rows is a transform that secures nothing for this submission
        rows = self.connection.execute(text(transform), {"submission_id": submission_id}).fetchall()
        return [
            {
                "submission_spatial_component_id": row.submission_spatial_component_id,
                "secured_spatial_component": json_value(row.secured_spatial_component),
            }
            for row in rows
        ]

    def insert_submission_spatial_component(self, submission_id: int, feature_collection: dict) -> int:
        geometry_wkt = generate_geometry_collection_wkt(feature_collection)
        geography = GEOGRAPHY_FROM_WKT.format(param=":geometry_wkt") if geometry_wkt else "NULL"
        params = {
            "submission_id": submission_id,
            "spatial_component": to_json_text(feature_collection),
        }
        if geometry_wkt:
            params["geometry_wkt"] = geometry_wkt

        rows = self.connection.execute(
            text(
                f"""
                INSERT INTO submission_spatial_component (submission_id, spatial_component, geography)
                VALUES (:submission_id, :spatial_component, {geography})
                RETURNING submission_spatial_component_id
                """
            ),
            params,
        ).fetchall()
        if len(rows) != 1:
            raise ApiExecuteSQLError(
                "Failed to insert submission spatial component details",
                ["SpatialRepository->insert_submission_spatial_component", EXPECTED_ONE_ROW],
            )
        return rows[0].submission_spatial_component_id

    def update_submission_spatial_component_with_security(
        self, submission_spatial_component_id: int, secured_spatial_component
    ) -> int:
        rows = self.connection.execute(
            text(
                """
                UPDATE submission_spatial_component
                SET secured_spatial_component = :secured_spatial_component
                WHERE submission_spatial_component_id = :submission_spatial_component_id
                RETURNING submission_spatial_component_id
                """
            ),
            {
                "submission_spatial_component_id": submission_spatial_component_id,
                "secured_spatial_component": to_json_text(secured_spatial_component),
            },
        ).fetchall()
        if len(rows) != 1:
            raise ApiExecuteSQLError(
                "Failed to update submission spatial component details",
                ["SpatialRepository->update_submission_spatial_component_with_security", EXPECTED_ONE_ROW],
            )
        return rows[0].submission_spatial_component_id

    def find_spatial_components_by_criteria(self, criteria: SpatialSearchCriteria) -> list[dict]:
        sql, params = build_spatial_search_query(
            criteria, secure=True, system_user_id=self.connection.system_user_id
        )
        return self._spatial_rows(sql, params)

    def find_spatial_components_by_criteria_as_admin(self, criteria: SpatialSearchCriteria) -> list[dict]:
        sql, params = build_spatial_search_query(criteria, secure=False)
        return self._spatial_rows(sql, params)

    def _spatial_rows(self, sql: str, params: dict) -> list[dict]:
        rows = self.connection.execute(text(sql), params).fetchall()
        return [
            {
                "submission_spatial_component_id": row.submission_spatial_component_id,
                "spatial_data": json_value(row.spatial_data),
            }
            for row in rows
        ]

    def delete_spatial_components_by_submission_id(self, submission_id: int) -> list[int]:
        rows = self.connection.execute(
            text(
                """
                DELETE FROM submission_spatial_component
                WHERE submission_id = :submission_id
                RETURNING submission_id
                """
            ),
            {"submission_id": submission_id},
        ).fetchall()
        return [row.submission_id for row in rows]

    def delete_spatial_components_spatial_transform_refs_by_submission_id(self, submission_id: int) -> list[int]:
        return self._delete_transform_refs("spatial_transform_submission", submission_id)

    def delete_spatial_components_security_transform_refs_by_submission_id(self, submission_id: int) -> list[int]:
        return self._delete_transform_refs("security_transform_submission", submission_id)

    def _delete_transform_refs(self, table: str, submission_id: int) -> list[int]:
        rows = self.connection.execute(
            text(
                f"""
                DELETE FROM {table}
                WHERE submission_spatial_component_id IN (
                    SELECT submission_spatial_component_id
                    FROM submission_spatial_component
                    WHERE submission_id = :submission_id
                )
                RETURNING (
                    SELECT ssc.submission_id
                    FROM submission_spatial_component ssc
                    WHERE ssc.submission_spatial_component_id = {table}.submission_spatial_component_id
                ) AS submission_id
                """
            ),
            {"submission_id": submission_id},
        ).fetchall()
        logger.info("Deleted %s %s rows for submission %s", len(rows), table, submission_id)
        return [row.submission_id for row in rows]
