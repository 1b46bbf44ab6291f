from __future__ import annotations

from types import SimpleNamespace
from unittest import mock

import pytest
from sqlalchemy import text

from biodiversity_platform.errors import ApiExecuteSQLError
from biodiversity_platform.repositories.spatial import (
    SpatialRepository,
    SpatialSearchCriteria,
    build_spatial_count_query,
    build_spatial_search_query,
)
from biodiversity_platform.repositories.submission import InsertSubmissionRecord, SubmissionRepository
from conftest import SQLITE_BOUNDARY_TRANSFORM, SQLITE_SECURITY_TRANSFORM

BOUNDARY = {
    "type": "Feature",
    "geometry": {"type": "Polygon", "coordinates": [[[0, 0], [10, 0], [10, 10], [0, 10], [0, 0]]]},
    "properties": {},
}
EMPTY_COLLECTION = {"type": "FeatureCollection", "features": []}


def _submission(connection, uuid="abc-123") -> int:
    return SubmissionRepository(connection).insert_submission_record(
        InsertSubmissionRecord(source_transform_id=1, uuid=uuid)
    )


def test_spatial_and_security_transforms_are_listed_while_live(connection):
    repository = SpatialRepository(connection)
    new_id = repository.insert_spatial_transform("Extra", None, "SELECT 1 AS result_data")
    connection.execute(
        text("UPDATE spatial_transform SET record_end_date = CURRENT_TIMESTAMP WHERE spatial_transform_id = :id"),
        {"id": new_id},
    )

    assert [row["name"] for row in repository.get_spatial_transform_records()] == ["Study Boundaries"]
    assert [row["name"] for row in repository.get_security_transform_records()] == ["Redact Everything"]


def test_run_spatial_transform_returns_feature_collections(connection):
    repository = SpatialRepository(connection)
    submission_id = _submission(connection)

    collections = repository.run_spatial_transform_on_submission_id(submission_id, SQLITE_BOUNDARY_TRANSFORM)

    assert collections == [
        {
            "type": "FeatureCollection",
            "features": [{"type": "Feature", "geometry": None, "properties": {"type": "Boundary"}}],
        }
    ]


def test_run_spatial_transform_with_no_rows_is_an_error(connection):
    with pytest.raises(ApiExecuteSQLError, match="Failed to run spatial transform on submission id"):
        SpatialRepository(connection).run_spatial_transform_on_submission_id(404, SQLITE_BOUNDARY_TRANSFORM)


def test_component_lifecycle_and_cascade_deletes(connection):
    repository = SpatialRepository(connection)
    submission_id = _submission(connection)
    other_id = _submission(connection, "def-456")

    component_id = repository.insert_submission_spatial_component(submission_id, EMPTY_COLLECTION)
    other_component = repository.insert_submission_spatial_component(other_id, EMPTY_COLLECTION)
    repository.insert_spatial_transform_submission_record(1, component_id)
    repository.insert_spatial_transform_submission_record(1, other_component)

    secured = repository.run_security_transform_on_submission_id(submission_id, SQLITE_SECURITY_TRANSFORM)
    assert secured == [{"submission_spatial_component_id": component_id, "secured_spatial_component": EMPTY_COLLECTION}]
    assert repository.update_submission_spatial_component_with_security(component_id, EMPTY_COLLECTION) == component_id
    repository.insert_security_transform_submission_record(1, component_id)

    geography = connection.execute(
        text("SELECT geography FROM submission_spatial_component WHERE submission_spatial_component_id = :id"),
        {"id": component_id},
    ).scalar_one()
    assert geography is None

    assert repository.delete_spatial_components_spatial_transform_refs_by_submission_id(submission_id) == [
        submission_id
    ]
    assert repository.delete_spatial_components_security_transform_refs_by_submission_id(submission_id) == [
        submission_id
    ]
    assert repository.delete_spatial_components_by_submission_id(submission_id) == [submission_id]
    assert repository.delete_spatial_components_by_submission_id(submission_id) == []

    remaining = connection.execute(
        text("SELECT count(*) FROM spatial_transform_submission")
    ).scalar_one()
    assert remaining == 1


def test_security_transform_matching_nothing_is_not_an_error(connection):
    assert SpatialRepository(connection).run_security_transform_on_submission_id(404, SQLITE_SECURITY_TRANSFORM) == []


def test_updating_missing_component_raises(connection):
    with pytest.raises(ApiExecuteSQLError, match="Failed to update submission spatial component details"):
        SpatialRepository(connection).update_submission_spatial_component_with_security(404, EMPTY_COLLECTION)


def test_admin_search_query_filters_by_type_and_dataset():
    criteria = SpatialSearchCriteria(boundary=BOUNDARY, type=["Occurrence", "Boundary"], dataset_id=["abc-123"])

    sql, params = build_spatial_search_query(criteria, secure=False)

    assert "s.record_end_date IS NULL" in sql
    assert "ssc.spatial_component AS spatial_data" in sql
    assert "user_security_exceptions" not in sql
    assert sql.count("jsonb_path_exists") == 2
    assert "s.uuid IN (:dataset_id_0)" in sql
    assert params["type_0"] == "Occurrence"
    assert params["type_1"] == "Boundary"
    assert params["dataset_id_0"] == "abc-123"
    assert params["boundary_wkt"].startswith("POLYGON")
    assert "system_user_id" not in params


def test_secure_search_query_falls_back_to_unsecured_components():
    sql, params = build_spatial_search_query(SpatialSearchCriteria(boundary=BOUNDARY), secure=True, system_user_id=5)

    assert params["system_user_id"] == 5
    assert "LEFT JOIN security_transform_submission" in sql
    assert "coalesce(fc.secured_spatial_component, fc.spatial_component)" in sql
    assert "ue.exceptions @> fc.security_transforms" in sql
    assert "jsonb_path_exists" not in sql
    assert "type_0" not in params


def test_count_queries_group_by_feature_type():
    admin_sql, admin_params = build_spatial_count_query("abc-123", secure=False)
    secure_sql, secure_params = build_spatial_count_query("abc-123", secure=True, system_user_id=5)

    assert "'{properties, type}'" in admin_sql
    assert "jsonb_array_elements(ssc.spatial_component -> 'features')" in admin_sql
    assert admin_params == {"dataset_id": "abc-123"}
    assert "jsonb_array_elements(csc.spatial_data -> 'features')" in secure_sql
    assert secure_params == {"dataset_id": "abc-123", "system_user_id": 5}


def test_find_by_criteria_uses_the_callers_identity():
    conn = mock.Mock()
    conn.system_user_id = 42
    conn.execute.return_value.fetchall.return_value = [
        SimpleNamespace(submission_spatial_component_id=1, spatial_data='{"type": "FeatureCollection"}')
    ]
    repository = SpatialRepository(conn)

    rows = repository.find_spatial_components_by_criteria(SpatialSearchCriteria(boundary=BOUNDARY))

    assert rows == [{"submission_spatial_component_id": 1, "spatial_data": {"type": "FeatureCollection"}}]
    params = conn.execute.call_args.args[1]
    assert params["system_user_id"] == 42

    repository.find_spatial_components_by_criteria_as_admin(SpatialSearchCriteria(boundary=BOUNDARY))
    assert "system_user_id" not in conn.execute.call_args.args[1]
