from __future__ import annotations

from biodiversity_platform.repositories.spatial import SpatialRepository, SpatialSearchCriteria
from biodiversity_platform.repositories.submission import SubmissionRepository, SubmissionSearchCriteria
from biodiversity_platform.repositories.user import UserRepository
from biodiversity_platform.utils.db import DBConnection

OBSERVATION_TYPE = "Occurrence"


def search_spatial_components(connection: DBConnection, criteria: SpatialSearchCriteria) -> list[dict]:
    """Spatial data of every live component intersecting the boundary, redacted unless the caller is an admin."""
    repository = SpatialRepository(connection)
    if UserRepository(connection).is_system_user_admin():
        rows = repository.find_spatial_components_by_criteria_as_admin(criteria)
    else:
        rows = repository.find_spatial_components_by_criteria(criteria)
    return [row["spatial_data"] for row in rows]


def find_submission_record_with_spatial_count(connection: DBConnection, dataset_id: str) -> dict | None:
    repository = SubmissionRepository(connection)
    eml_json = repository.get_submission_record_eml_json_by_dataset_id(dataset_id)
    if len(eml_json) != 1 or not eml_json[0]:
        return None

    if UserRepository(connection).is_system_user_admin():
        counts = repository.get_spatial_component_count_by_dataset_id_as_admin(dataset_id)
    else:
        counts = repository.get_spatial_component_count_by_dataset_id(dataset_id)

    observation_count = next(
        (item["count"] for item in counts if item["spatial_type"] == OBSERVATION_TYPE),
        0,
    )
    return {"id": dataset_id, "source": eml_json[0], "observation_count": observation_count}


def find_submission_records_with_spatial_count(
    connection: DBConnection, dataset_ids: list[str]
) -> list[dict | None]:
    return [find_submission_record_with_spatial_count(connection, dataset_id) for dataset_id in dataset_ids]


def find_submission_ids_by_criteria(connection: DBConnection, keyword: str | None = None, spatial=None) -> list[int]:
    return SubmissionRepository(connection).find_submission_by_criteria(
        SubmissionSearchCriteria(keyword=keyword, spatial=spatial)
    )
