from __future__ import annotations

import json

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from biodiversity_platform.constants import SubmissionMessageType, SubmissionStatusType
from biodiversity_platform.errors import ApiExecuteSQLError
from biodiversity_platform.repositories.submission import (
    InsertSubmissionRecord,
    SubmissionRepository,
    SubmissionSearchCriteria,
    build_submission_search_query,
)
from conftest import INTAKE_USER_ID, SQLITE_METADATA_TRANSFORM


def _insert(repository: SubmissionRepository, uuid: str = "abc-123") -> int:
    return repository.insert_submission_record(
        InsertSubmissionRecord(source_transform_id=1, uuid=uuid, input_file_name="moose.zip")
    )


def test_insert_and_get_submission_record(connection):
    repository = SubmissionRepository(connection)
    submission_id = _insert(repository)

    record = repository.get_submission_record_by_submission_id(submission_id)

    assert record["uuid"] == "abc-123"
    assert record["input_file_name"] == "moose.zip"
    assert record["record_end_date"] is None
    assert record["input_key"] is None
    assert repository.get_submission_id_by_uuid("abc-123") == submission_id
    assert repository.get_submission_id_by_uuid("missing") is None


def test_get_submission_record_fails_unless_exactly_one_row(connection):
    with pytest.raises(ApiExecuteSQLError) as excinfo:
        SubmissionRepository(connection).get_submission_record_by_submission_id(999)

    assert excinfo.value.message == "Failed to get submission record"
    assert excinfo.value.errors == [
        "SubmissionRepository->get_submission_record_by_submission_id",
        "expected exactly one row",
    ]


def test_column_updates_return_submission_id(connection):
    repository = SubmissionRepository(connection)
    submission_id = _insert(repository)

    assert repository.update_submission_record_input_key(submission_id, "raw/submissions/1/moose.zip") == submission_id
    assert repository.update_submission_record_eml_source(submission_id, b"<eml/>") == submission_id
    assert repository.update_submission_record_eml_json_source(submission_id, {"eml": ""}) == submission_id
    assert repository.update_submission_record_dwc_source(submission_id, '{"occurrence": []}') == submission_id

    record = repository.get_submission_record_by_submission_id(submission_id)
    assert record["input_key"] == "raw/submissions/1/moose.zip"
    assert record["eml_source"] == "<eml/>"
    assert record["eml_json_source"] == {"eml": ""}
    assert json.loads(record["darwin_core_source"]) == {"occurrence": []}


def test_update_of_missing_submission_raises(connection):
    with pytest.raises(ApiExecuteSQLError, match="Failed to update submission record key"):
        SubmissionRepository(connection).update_submission_record_input_key(404, "key")


def test_set_end_date_is_idempotent_and_frees_the_uuid(connection):
    repository = SubmissionRepository(connection)
    first = _insert(repository)

    assert repository.set_submission_end_date_by_id(first) == first
    assert repository.set_submission_end_date_by_id(first) == first
    assert repository.get_submission_id_by_uuid("abc-123") is None

    second = _insert(repository)
    assert repository.get_submission_id_by_uuid("abc-123") == second

    with pytest.raises(ApiExecuteSQLError, match="Failed to update end date in submission record"):
        repository.set_submission_end_date_by_id(404)


def test_only_one_live_submission_per_uuid(connection):
    repository = SubmissionRepository(connection)
    _insert(repository)

    with pytest.raises(IntegrityError):
        _insert(repository)


def test_eml_json_by_dataset_id_reads_live_rows_only(connection):
    repository = SubmissionRepository(connection)
    old = _insert(repository)
    repository.update_submission_record_eml_json_source(old, {"title": "old"})
    repository.set_submission_end_date_by_id(old)
    new = _insert(repository)
    repository.update_submission_record_eml_json_source(new, {"title": "new"})

    assert repository.get_submission_record_eml_json_by_dataset_id("abc-123") == [{"title": "new"}]
    assert repository.get_submission_record_eml_json_by_dataset_id("missing") == []


def test_source_transform_lookups(connection):
    repository = SubmissionRepository(connection)
    submission_id = _insert(repository)

    by_user = repository.get_source_transform_record_by_system_user_id(INTAKE_USER_ID)
    assert by_user["source_transform_id"] == 1
    assert repository.get_source_transform_record_by_system_user_id(INTAKE_USER_ID, "1.0") == by_user
    assert repository.get_source_transform_record_by_source_transform_id(1)["version"] == "1.0"
    assert repository.get_source_transform_record_by_submission_id(submission_id)["metadata_index"] == "eml"

    with pytest.raises(ApiExecuteSQLError, match="Failed to get submission source transform record"):
        repository.get_source_transform_record_by_system_user_id(INTAKE_USER_ID, "2.0")


def test_submission_metadata_json_runs_stored_transform(connection):
    repository = SubmissionRepository(connection)
    submission_id = _insert(repository)
    repository.update_submission_record_eml_json_source(submission_id, {"title": "Moose"})

    assert repository.get_submission_metadata_json(submission_id, SQLITE_METADATA_TRANSFORM) == {
        "eml": {"title": "Moose"}
    }
    with pytest.raises(ApiExecuteSQLError, match="Failed to transform submission eml to json"):
        repository.get_submission_metadata_json(404, SQLITE_METADATA_TRANSFORM)


def test_status_history_is_append_only(connection):
    repository = SubmissionRepository(connection)
    submission_id = _insert(repository)

    repository.insert_submission_status(submission_id, SubmissionStatusType.UPLOADED)
    repository.insert_submission_status(submission_id, SubmissionStatusType.UPLOADED)
    ids = repository.insert_submission_status_and_message(
        submission_id,
        SubmissionStatusType.FAILED_VALIDATION,
        SubmissionMessageType.ERROR,
        "Validation failed",
    )

    rows = connection.execute(
        text(
            """
            SELECT sst.name AS status, sm.message
            FROM submission_status ss
            JOIN submission_status_type sst ON sst.submission_status_type_id = ss.submission_status_type_id
            LEFT JOIN submission_message sm ON sm.submission_status_id = ss.submission_status_id
            WHERE ss.submission_id = :submission_id
            ORDER BY ss.submission_status_id
            """
        ),
        {"submission_id": submission_id},
    ).fetchall()
    assert [(row.status, row.message) for row in rows] == [
        ("Uploaded", None),
        ("Uploaded", None),
        ("Failed Validation", "Validation failed"),
    ]
    assert set(ids) == {"submission_status_id", "submission_message_id"}

    listed = repository.list_submission_records()
    assert [(record["submission_id"], record["submission_status"]) for record in listed] == [
        (submission_id, "Failed Validation")
    ]


def test_search_query_without_criteria_lists_live_submissions(connection):
    repository = SubmissionRepository(connection)
    first = _insert(repository, "abc-123")
    second = _insert(repository, "def-456")
    repository.set_submission_end_date_by_id(first)
    third = _insert(repository, "abc-123")

    assert repository.find_submission_by_criteria(SubmissionSearchCriteria()) == [second, third]


def test_search_query_builder_combines_keyword_and_spatial_filters():
    square = {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]]}

    sql, params = build_submission_search_query(SubmissionSearchCriteria(keyword="moose", spatial=square))

    assert params["keyword"] == "%moose%"
    assert params["spatial_wkt"].startswith("POLYGON")
    for column in ("taxonid", "lifestage", "sex", "vernacularname", "individualcount"):
        assert f"o.{column} ILIKE :keyword" in sql
    assert "public.ST_Intersects(o.geography" in sql
    assert "s.record_end_date IS NULL" in sql
    assert sql.count("AND") == 2


def test_search_query_builder_accepts_feature_collections():
    collection = json.dumps(
        {
            "type": "FeatureCollection",
            "features": [{"type": "Feature", "geometry": {"type": "Point", "coordinates": [1, 2]}}],
        }
    )

    sql, params = build_submission_search_query(SubmissionSearchCriteria(spatial=collection))

    assert "keyword" not in params
    assert params["spatial_wkt"].startswith("POINT")
    assert "ILIKE" not in sql
