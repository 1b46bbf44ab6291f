from __future__ import annotations

import json
from dataclasses import dataclass

from sqlalchemy import text

from biodiversity_platform.constants import SubmissionMessageType, SubmissionStatusType
from biodiversity_platform.dwc.eml import decode_eml
from biodiversity_platform.errors import ApiExecuteSQLError
from biodiversity_platform.repositories.base import BaseRepository, json_value, to_json_text
from biodiversity_platform.repositories.spatial import GEOGRAPHY_FROM_WKT, build_spatial_count_query
from biodiversity_platform.utils.spatial import boundary_to_wkt, generate_geometry_collection_wkt

KEYWORD_COLUMNS = ("taxonid", "lifestage", "sex", "vernacularname", "individualcount")

SUBMISSION_COLUMNS = """
    submission_id,
    source_transform_id,
    uuid,
    record_effective_date,
    record_end_date,
    input_key,
    input_file_name,
    eml_source,
    eml_json_source,
    darwin_core_source,
    create_date
"""


@dataclass(frozen=True)
class InsertSubmissionRecord:
    source_transform_id: int
    uuid: str
    input_file_name: str | None = None
    input_key: str | None = None
    eml_source: str | None = None
    darwin_core_source: str | None = None


@dataclass(frozen=True)
class SubmissionSearchCriteria:
    keyword: str | None = None
    spatial: object = None


def _spatial_wkt(spatial) -> str:
    if isinstance(spatial, (str, bytes)):
        spatial = json.loads(spatial)
    if isinstance(spatial, list):
        spatial = {"type": "FeatureCollection", "features": spatial}
    if spatial.get("type") == "FeatureCollection":
        wkt = generate_geometry_collection_wkt(spatial)
        if wkt is None:
            raise ValueError("Spatial criteria has no geometry")
        return wkt
    return boundary_to_wkt(spatial)


def build_submission_search_query(criteria: SubmissionSearchCriteria) -> tuple[str, dict]:
    """Only live submissions match; keyword and spatial filters are optional and combine with AND."""
    clauses: list[str] = ["s.record_end_date IS NULL"]
    params: dict = {}

    if criteria.keyword:
        params["keyword"] = f"%{criteria.keyword}%"
        clauses.append(
            "(" + " OR ".join(f"o.{column} ILIKE :keyword" for column in KEYWORD_COLUMNS) + ")"
        )

    if criteria.spatial:
        params["spatial_wkt"] = _spatial_wkt(criteria.spatial)
        clauses.append(
            "public.ST_Intersects(o.geography, " + GEOGRAPHY_FROM_WKT.format(param=":spatial_wkt") + ")"
        )

    where = "WHERE " + "\n              AND ".join(clauses)

    sql = f"""
            SELECT s.submission_id
            FROM submission s
            LEFT JOIN occurrence o ON o.submission_id = s.submission_id
            {where}
            GROUP BY s.submission_id
            ORDER BY s.submission_id
        """
    return sql, params


def _submission_row(row) -> dict:
    record = dict(row._mapping)
    if "eml_json_source" in record:
        record["eml_json_source"] = json_value(record["eml_json_source"])
    return record


class SubmissionRepository(BaseRepository):
    def find_submission_by_criteria(self, criteria: SubmissionSearchCriteria) -> list[int]:
        sql, params = build_submission_search_query(criteria)
        rows = self.connection.execute(text(sql), params).fetchall()
        return [row.submission_id for row in rows]

    def insert_submission_record(self, data: InsertSubmissionRecord) -> int:
        rows = self.connection.execute(
            text(
                """
                INSERT INTO submission (
                    source_transform_id,
                    uuid,
                    record_effective_date,
                    input_key,
                    input_file_name,
                    eml_source,
                    darwin_core_source
                ) VALUES (
                    :source_transform_id,
                    :uuid,
                    CURRENT_TIMESTAMP,
                    :input_key,
                    :input_file_name,
                    :eml_source,
                    :darwin_core_source
                )
                RETURNING submission_id
                """
            ),
            {
                "source_transform_id": data.source_transform_id,
                "uuid": data.uuid,
                "input_key": data.input_key,
                "input_file_name": data.input_file_name,
                "eml_source": data.eml_source,
                "darwin_core_source": data.darwin_core_source,
            },
        ).fetchall()
        return self._one(rows, "Failed to insert submission record", "insert_submission_record").submission_id

    def _update_column(self, submission_id: int, column: str, value, message: str, method: str) -> int:
        rows = self.connection.execute(
            text(
                f"""
                UPDATE submission
                SET {column} = :value
                WHERE submission_id = :submission_id
                RETURNING submission_id
                """
            ),
            {"submission_id": submission_id, "value": value},
        ).fetchall()
        return self._one(rows, message, method).submission_id

    def update_submission_record_input_key(self, submission_id: int, input_key: str) -> int:
        return self._update_column(
            submission_id,
            "input_key",
            input_key,
            "Failed to update submission record key",
            "update_submission_record_input_key",
        )

    def update_submission_record_eml_source(self, submission_id: int, eml_source: bytes | str) -> int:
        if isinstance(eml_source, bytes):
            eml_source = decode_eml(eml_source)
        return self._update_column(
            submission_id,
            "eml_source",
            eml_source,
            "Failed to update submission record source",
            "update_submission_record_eml_source",
        )

    def update_submission_record_eml_json_source(self, submission_id: int, eml_json_source) -> int:
        return self._update_column(
            submission_id,
            "eml_json_source",
            to_json_text(eml_json_source),
            "Failed to update submission record eml json",
            "update_submission_record_eml_json_source",
        )

    def update_submission_record_dwc_source(self, submission_id: int, normalized_data: str) -> int:
        return self._update_column(
            submission_id,
            "darwin_core_source",
            normalized_data,
            "Failed to update submission record darwin core source",
            "update_submission_record_dwc_source",
        )

    def get_submission_record_by_submission_id(self, submission_id: int) -> dict:
        rows = self.connection.execute(
            text(f"SELECT {SUBMISSION_COLUMNS} FROM submission WHERE submission_id = :submission_id"),
            {"submission_id": submission_id},
        ).fetchall()
        row = self._one(rows, "Failed to get submission record", "get_submission_record_by_submission_id")
        return _submission_row(row)

    def get_submission_id_by_uuid(self, uuid: str) -> int | None:
        row = self.connection.execute(
            text(
                """
                SELECT submission_id
                FROM submission
                WHERE uuid = :uuid
                  AND record_end_date IS NULL
                """
            ),
            {"uuid": uuid},
        ).fetchone()
        return row.submission_id if row else None

    def get_submission_record_eml_json_by_dataset_id(self, dataset_id: str) -> list:
        rows = self.connection.execute(
            text(
                """
                SELECT eml_json_source
                FROM submission
                WHERE uuid = :dataset_id
                  AND record_end_date IS NULL
                """
            ),
            {"dataset_id": dataset_id},
        ).fetchall()
        return [json_value(row.eml_json_source) for row in rows]

    def get_spatial_component_count_by_dataset_id_as_admin(self, dataset_id: str) -> list[dict]:
        sql, params = build_spatial_count_query(dataset_id, secure=False)
        return self._spatial_counts(sql, params)

    def get_spatial_component_count_by_dataset_id(self, dataset_id: str) -> list[dict]:
        sql, params = build_spatial_count_query(
            dataset_id, secure=True, system_user_id=self.connection.system_user_id
        )
        return self._spatial_counts(sql, params)

    def _spatial_counts(self, sql: str, params: dict) -> list[dict]:
        rows = self.connection.execute(text(sql), params).fetchall()
        return [{"spatial_type": row.spatial_type, "count": int(row.count)} for row in rows]

    def set_submission_end_date_by_id(self, submission_id: int) -> int:
        rows = self.connection.execute(
            text(
                """
                UPDATE submission
                SET record_end_date = CURRENT_TIMESTAMP
                WHERE submission_id = :submission_id
                  AND record_end_date IS NULL
                RETURNING submission_id
                """
            ),
            {"submission_id": submission_id},
        ).fetchall()
        if len(rows) == 1:
            return rows[0].submission_id

        ended = self.connection.execute(
            text(
                """
                SELECT submission_id
                FROM submission
                WHERE submission_id = :submission_id
                  AND record_end_date IS NOT NULL
                """
            ),
            {"submission_id": submission_id},
        ).fetchone()
        if ended:
            return ended.submission_id
        raise ApiExecuteSQLError(
            "Failed to update end date in submission record",
            ["SubmissionRepository->set_submission_end_date_by_id", "no submission with that id"],
        )

    def get_source_transform_record_by_system_user_id(
        self, system_user_id: int | None, version: str | None = None
    ) -> dict:
        sql = """
            SELECT *
            FROM source_transform
            WHERE system_user_id = :system_user_id
              AND record_end_date IS NULL
        """
        params: dict = {"system_user_id": system_user_id}
        if version:
            sql += " AND version = :version"
            params["version"] = version

        rows = self.connection.execute(text(sql), params).fetchall()
        row = self._one(
            rows,
            "Failed to get submission source transform record",
            "get_source_transform_record_by_system_user_id",
        )
        return dict(row._mapping)

    def get_source_transform_record_by_source_transform_id(self, source_transform_id: int) -> dict:
        rows = self.connection.execute(
            text("SELECT * FROM source_transform WHERE source_transform_id = :source_transform_id"),
            {"source_transform_id": source_transform_id},
        ).fetchall()
        row = self._one(
            rows,
            "Failed to get submission source transform record",
            "get_source_transform_record_by_source_transform_id",
        )
        return dict(row._mapping)

    def get_source_transform_record_by_submission_id(self, submission_id: int) -> dict:
        rows = self.connection.execute(
            text(
                """
                SELECT st.*
                FROM source_transform st
                JOIN submission s ON st.source_transform_id = s.source_transform_id
                WHERE s.submission_id = :submission_id
                """
            ),
            {"submission_id": submission_id},
        ).fetchall()
        row = self._one(
            rows,
            "Failed to get submission source transform record",
            "get_source_transform_record_by_submission_id",
        )
        return dict(row._mapping)

    def get_submission_metadata_json(self, submission_id: int, transform: str):
        rows = self.connection.execute(text(transform), {"submission_id": submission_id}).fetchall()
        row = self._one(rows, "Failed to transform submission eml to json", "get_submission_metadata_json")
        return json_value(row.result_data)

    def insert_submission_status(self, submission_id: int, status_type: SubmissionStatusType) -> dict:
        rows = self.connection.execute(
            text(
                """
                INSERT INTO submission_status (submission_id, submission_status_type_id, event_timestamp)
                VALUES (
                    :submission_id,
                    (SELECT submission_status_type_id FROM submission_status_type WHERE name = :status_name),
                    CURRENT_TIMESTAMP
                )
                RETURNING submission_status_id, submission_status_type_id
                """
            ),
            {"submission_id": submission_id, "status_name": SubmissionStatusType(status_type).value},
        ).fetchall()
        row = self._one(rows, "Failed to insert submission status record", "insert_submission_status")
        return dict(row._mapping)

    def insert_submission_message(
        self, submission_status_id: int, message_type: SubmissionMessageType, message: str
    ) -> dict:
        rows = self.connection.execute(
            text(
                """
                INSERT INTO submission_message (
                    submission_status_id, submission_message_type_id, event_timestamp, message
                ) VALUES (
                    :submission_status_id,
                    (SELECT submission_message_type_id FROM submission_message_type WHERE name = :message_type),
                    CURRENT_TIMESTAMP,
                    :message
                )
                RETURNING submission_message_id, submission_message_type_id
                """
            ),
            {
                "submission_status_id": submission_status_id,
                "message_type": SubmissionMessageType(message_type).value,
                "message": message,
            },
        ).fetchall()
        row = self._one(rows, "Failed to insert submission message record", "insert_submission_message")
        return dict(row._mapping)

    def insert_submission_status_and_message(
        self,
        submission_id: int,
        status_type: SubmissionStatusType,
        message_type: SubmissionMessageType,
        message: str,
    ) -> dict:
        status = self.insert_submission_status(submission_id, status_type)
        inserted = self.insert_submission_message(status["submission_status_id"], message_type, message)
        return {
            "submission_status_id": status["submission_status_id"],
            "submission_message_id": inserted["submission_message_id"],
        }

    def list_submission_records(self) -> list[dict]:
        rows = self.connection.execute(
            text(
                f"""
                SELECT
                    {SUBMISSION_COLUMNS},
                    (
                        SELECT sst.name
                        FROM submission_status ss
                        JOIN submission_status_type sst
                            ON ss.submission_status_type_id = sst.submission_status_type_id
                        WHERE ss.submission_id = submission.submission_id
                        ORDER BY ss.submission_status_id DESC
                        LIMIT 1
                    ) AS submission_status
                FROM submission
                ORDER BY submission_id
                """
            )
        ).fetchall()
        return [_submission_row(row) for row in rows]
