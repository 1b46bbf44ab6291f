from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass

from botocore.exceptions import ClientError

from biodiversity_platform.constants import EML_INDEX, SubmissionMessageType, SubmissionStatusType
from biodiversity_platform.dwc.archive import DWCArchive, ParseError, parse_dwc_archive
from biodiversity_platform.dwc.eml import eml_to_json
from biodiversity_platform.dwc.validation import ValidationReport, validate_dwc_archive
from biodiversity_platform.errors import ApiGeneralError
from biodiversity_platform.repositories.base import json_value
from biodiversity_platform.repositories.occurrence import OccurrenceRepository, ScrapedOccurrence
from biodiversity_platform.repositories.spatial import SpatialRepository
from biodiversity_platform.repositories.submission import InsertSubmissionRecord, SubmissionRepository
from biodiversity_platform.utils.db import DBConnection
from biodiversity_platform.utils.object_store import BaseObjectStore, generate_s3_file_key
from biodiversity_platform.utils.search_index import SearchIndex

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntakeFile:
    file_name: str
    content: bytes


@dataclass(frozen=True)
class PipelineStep:
    name: str
    success_status: SubmissionStatusType
    failure_status: SubmissionStatusType
    operation: Callable[[int], object]


STEP_NAMES = (
    "upload_record",
    "validate",
    "ingest_eml",
    "convert_eml_to_json",
    "transform_and_upload_metadata",
    "normalize",
    "run_spatial_transforms",
    "run_security_transforms",
)


class DarwinCoreService:
    """Drives a Darwin Core Archive through ingestion, recording an audit status after every step.

    The service never opens or commits a transaction; every call runs inside
    the connection it was built with.
    """

    def __init__(
        self,
        connection: DBConnection,
        object_store: BaseObjectStore,
        search_index: SearchIndex,
    ):
        self.connection = connection
        self.object_store = object_store
        self.search_index = search_index
        self.submission_repository = SubmissionRepository(connection)
        self.spatial_repository = SpatialRepository(connection)
        self.occurrence_repository = OccurrenceRepository(connection)
        self.audited_failure = False

    def intake(self, file: IntakeFile, data_package_id: str) -> int:
        """Replace the live submission for a dataset, if any, then ingest the new archive."""
        self.connection.lock_dataset(data_package_id)

        submission_id = self.submission_repository.get_submission_id_by_uuid(data_package_id)
        if submission_id is not None:
            logger.info("Replacing submission %s for dataset %s", submission_id, data_package_id)
            self.spatial_repository.delete_spatial_components_spatial_transform_refs_by_submission_id(
                submission_id
            )
            self.spatial_repository.delete_spatial_components_security_transform_refs_by_submission_id(
                submission_id
            )
            self.spatial_repository.delete_spatial_components_by_submission_id(submission_id)
            self.submission_repository.set_submission_end_date_by_id(submission_id)

        return self.create(file, data_package_id)

    def create(self, file: IntakeFile, data_package_id: str) -> int:
        submission_id = self.create_step1_ingest_dwc(file, data_package_id)
        if not submission_id:
            raise ApiGeneralError("The Darwin Core submission could not be processed")

        for step in self.pipeline_steps(file):
            self.run_step(step, submission_id)

        logger.info("Submission %s for dataset %s completed all steps", submission_id, data_package_id)
        return submission_id

    def redrive_step(self, submission_id: int, step_name: str, file: IntakeFile | None = None):
        steps = {step.name: step for step in self.pipeline_steps(file)}
        if step_name not in steps:
            raise ApiGeneralError(f"Unknown pipeline step: {step_name}", list(STEP_NAMES))
        return self.run_step(steps[step_name], submission_id)

    def pipeline_steps(self, file: IntakeFile | None) -> list[PipelineStep]:
        return [
            PipelineStep(
                "upload_record",
                SubmissionStatusType.INGESTED,
                SubmissionStatusType.FAILED_UPLOAD,
                lambda submission_id: self.upload_record_to_s3(submission_id, file),
            ),
            PipelineStep(
                "validate",
                SubmissionStatusType.VALIDATED,
                SubmissionStatusType.FAILED_VALIDATION,
                self.validate_submission,
            ),
            PipelineStep(
                "ingest_eml",
                SubmissionStatusType.EML_INGESTED,
                SubmissionStatusType.FAILED_EML_INGESTION,
                self.ingest_new_dwca_eml,
            ),
            PipelineStep(
                "convert_eml_to_json",
                SubmissionStatusType.EML_TO_JSON,
                SubmissionStatusType.FAILED_EML_TO_JSON,
                self.convert_submission_eml_to_json,
            ),
            PipelineStep(
                "transform_and_upload_metadata",
                SubmissionStatusType.METADATA_TO_ES,
                SubmissionStatusType.FAILED_METADATA_TO_ES,
                self.transform_and_upload_metadata,
            ),
            PipelineStep(
                "normalize",
                SubmissionStatusType.NORMALIZED,
                SubmissionStatusType.FAILED_NORMALIZATION,
                self.normalize_submission_dwca,
            ),
            PipelineStep(
                "run_spatial_transforms",
                SubmissionStatusType.SPATIAL_TRANSFORM_UNSECURE,
                SubmissionStatusType.FAILED_SPATIAL_TRANSFORM_UNSECURE,
                self.run_spatial_transforms,
            ),
            PipelineStep(
                "run_security_transforms",
                SubmissionStatusType.SPATIAL_TRANSFORM_SECURE,
                SubmissionStatusType.FAILED_SPATIAL_TRANSFORM_SECURE,
                self.run_security_transforms,
            ),
        ]

    def run_step(self, step: PipelineStep, submission_id: int):
        logger.info("Submission %s: running step %s", submission_id, step.name)
        try:
            with self.connection.savepoint():
                result = step.operation(submission_id)
        except Exception as exc:
            logger.error("Submission %s: step %s failed: %s", submission_id, step.name, exc)
            self.submission_repository.insert_submission_status_and_message(
                submission_id,
                step.failure_status,
                SubmissionMessageType.ERROR,
                str(exc),
            )
            self.audited_failure = True
            raise

        self.submission_repository.insert_submission_status(submission_id, step.success_status)
        logger.info("Submission %s: step %s recorded %s", submission_id, step.name, step.success_status.value)
        return result

    def prep_dwc_archive(self, file: IntakeFile) -> DWCArchive:
        try:
            return parse_dwc_archive(file.content if file else None, file.file_name if file else "")
        except ParseError as exc:
            raise ApiGeneralError("Failed to parse submission", [str(exc)]) from exc

    def ingest_new_dwca_data_package(self, file: IntakeFile, data_package_id: str) -> dict:
        with self.prep_dwc_archive(file) as archive:
            input_file_name = archive.file_name
        source_transform = self.submission_repository.get_source_transform_record_by_system_user_id(
            self.connection.system_user_id
        )
        submission_id = self.submission_repository.insert_submission_record(
            InsertSubmissionRecord(
                source_transform_id=source_transform["source_transform_id"],
                uuid=data_package_id,
                input_file_name=input_file_name,
            )
        )
        return {"data_package_id": data_package_id, "submission_id": submission_id}

    def create_step1_ingest_dwc(self, file: IntakeFile, data_package_id: str) -> int:
        response = self.ingest_new_dwca_data_package(file, data_package_id)
        submission_id = response["submission_id"]

        if response["data_package_id"] != data_package_id:
            self.submission_repository.insert_submission_status_and_message(
                submission_id,
                SubmissionStatusType.FAILED_INGESTION,
                SubmissionMessageType.ERROR,
                "Ingestion failed",
            )
            self.audited_failure = True
            raise ApiGeneralError("Ingestion failed")

        self.submission_repository.insert_submission_status(submission_id, SubmissionStatusType.UPLOADED)
        return submission_id

    def upload_record_to_s3(self, submission_id: int, file: IntakeFile | None) -> dict:
        if file is None:
            raise ApiGeneralError("The source file is not available")

        key = generate_s3_file_key(submission_id, file.file_name)
        self.object_store.put_bytes(key, file.content, {"filename": file.file_name})
        self.submission_repository.update_submission_record_input_key(submission_id, key)
        return {"s3_key": key}

    def get_submission_record_and_convert_to_dwc_archive(self, submission_id: int) -> DWCArchive:
        record = self.submission_repository.get_submission_record_by_submission_id(submission_id)
        if not record.get("input_key"):
            raise ApiGeneralError(
                "Failed to retrieve input file name",
                ["SubmissionRepository->get_submission_record_by_submission_id", "input key was null"],
            )

        try:
            content = self.object_store.get_bytes(record["input_key"])
        except (ClientError, FileNotFoundError) as exc:
            raise ApiGeneralError("Failed to get file from S3", [str(exc)]) from exc

        file_name = record.get("input_file_name") or record["input_key"].rsplit("/", 1)[-1]
        return self.prep_dwc_archive(IntakeFile(file_name=file_name, content=content))

    def validate_submission(self, submission_id: int) -> ValidationReport:
        source_transform = self.submission_repository.get_source_transform_record_by_submission_id(submission_id)
        with self.get_submission_record_and_convert_to_dwc_archive(submission_id) as archive:
            report = validate_dwc_archive(archive, source_transform.get("validation_schema"))
        if not report.valid:
            raise ApiGeneralError("Validation failed", report.messages())
        return report

    def _archive_eml(self, submission_id: int) -> bytes:
        with self.get_submission_record_and_convert_to_dwc_archive(submission_id) as archive:
            if not archive.eml:
                raise ApiGeneralError("The EML document is not available", [archive.file_name])
            return archive.eml

    def ingest_new_dwca_eml(self, submission_id: int) -> int:
        return self.submission_repository.update_submission_record_eml_source(
            submission_id, self._archive_eml(submission_id)
        )

    def convert_submission_eml_to_json(self, submission_id: int) -> dict:
        eml_json = eml_to_json(self._archive_eml(submission_id))
        self.submission_repository.update_submission_record_eml_json_source(submission_id, eml_json)
        return eml_json

    def transform_and_upload_metadata(self, submission_id: int, data_package_id: str | None = None):
        record = self.submission_repository.get_submission_record_by_submission_id(submission_id)
        if not record.get("source_transform_id"):
            raise ApiGeneralError("The source_transform_id is not available")

        source_transform = self.submission_repository.get_source_transform_record_by_source_transform_id(
            record["source_transform_id"]
        )
        if not source_transform.get("metadata_transform"):
            raise ApiGeneralError("The source metadata transform is not available")

        metadata_json = self.submission_repository.get_submission_metadata_json(
            submission_id, source_transform["metadata_transform"]
        )
        if not metadata_json:
            raise ApiGeneralError("The source metadata json is not available")

        return self.upload_to_search_index(data_package_id or record["uuid"], metadata_json)

    def upload_to_search_index(self, data_package_id: str, document) -> str:
        return self.search_index.index(EML_INDEX, data_package_id, document)

    def delete_eml_from_search_index(self, data_package_id: str) -> int:
        return self.search_index.delete(EML_INDEX, data_package_id)

    def normalize_dwca(self, archive: DWCArchive) -> str:
        normalized = {
            name: worksheet.get_row_objects() for name, worksheet in archive.worksheets.items()
        }
        return json.dumps(normalized)

    def normalize_submission_dwca(self, submission_id: int, archive: DWCArchive | None = None) -> int:
        if archive is None:
            with self.get_submission_record_and_convert_to_dwc_archive(submission_id) as parsed:
                normalized = self.normalize_dwca(parsed)
        else:
            normalized = self.normalize_dwca(archive)
        return self.submission_repository.update_submission_record_dwc_source(submission_id, normalized)

    def run_spatial_transforms(self, submission_id: int) -> list[int]:
        component_ids = []
        for transform in self.spatial_repository.get_spatial_transform_records():
            feature_collections = self.spatial_repository.run_spatial_transform_on_submission_id(
                submission_id, transform["transform"]
            )
            for feature_collection in feature_collections:
                component_id = self.spatial_repository.insert_submission_spatial_component(
                    submission_id, feature_collection
                )
                self.spatial_repository.insert_spatial_transform_submission_record(
                    transform["spatial_transform_id"], component_id
                )
                component_ids.append(component_id)
            logger.info(
                "Spatial transform %s produced %s components for submission %s",
                transform["name"],
                len(feature_collections),
                submission_id,
            )
        return component_ids

    def run_security_transforms(self, submission_id: int) -> list[int]:
        secured_ids = []
        for transform in self.spatial_repository.get_security_transform_records():
            secured = self.spatial_repository.run_security_transform_on_submission_id(
                submission_id, transform["transform"]
            )
            for row in secured:
                component_id = row["submission_spatial_component_id"]
                self.spatial_repository.update_submission_spatial_component_with_security(
                    component_id, row["secured_spatial_component"]
                )
                self.spatial_repository.insert_security_transform_submission_record(
                    transform["security_transform_id"], component_id
                )
                secured_ids.append(component_id)
        return secured_ids

    def scrape_occurrences(self, submission_id: int) -> list[int]:
        record = self.submission_repository.get_submission_record_by_submission_id(submission_id)
        darwin_core = json_value(record.get("darwin_core_source"))
        if not darwin_core:
            raise ApiGeneralError("The normalized Darwin Core source is not available")

        events = {}
        for event in darwin_core.get("event") or []:
            event_id = event.get("eventID") or event.get("id")
            if event_id:
                events[event_id] = event
        taxa = {
            taxon.get("occurrenceID"): taxon
            for taxon in darwin_core.get("taxon") or []
            if taxon.get("occurrenceID")
        }

        occurrence_ids = []
        for occurrence in darwin_core.get("occurrence") or []:
            event = events.get(occurrence.get("eventID") or occurrence.get("id")) or {}
            taxon = taxa.get(occurrence.get("occurrenceID")) or {}
            scraped = ScrapedOccurrence(
                associated_taxa=occurrence.get("associatedTaxa") or None,
                life_stage=occurrence.get("lifeStage") or None,
                sex=occurrence.get("sex") or None,
                verbatim_coordinates=event.get("verbatimCoordinates") or occurrence.get("verbatimCoordinates"),
                individual_count=occurrence.get("individualCount") or None,
                vernacular_name=taxon.get("vernacularName") or None,
                organism_quantity=occurrence.get("organismQuantity") or None,
                organism_quantity_type=occurrence.get("organismQuantityType") or None,
                event_date=event.get("eventDate") or occurrence.get("eventDate") or None,
            )
            occurrence_ids.append(self.occurrence_repository.insert_scraped_occurrence(submission_id, scraped))

        logger.info("Scraped %s occurrences for submission %s", len(occurrence_ids), submission_id)
        return occurrence_ids
