import os
import posixpath

from dagster import Field, OpExecutionContext, Out, graph, op

from biodiversity_platform.services.dwc import DarwinCoreService, IntakeFile
from biodiversity_platform.utils.db import DBConnection


def _system_user_id(context: OpExecutionContext) -> int | None:
    configured = context.op_config.get("system_user_id")
    if configured is not None:
        return configured
    from_env = os.getenv("INTAKE_SYSTEM_USER_ID")
    return int(from_env) if from_env else None


def run_with_service(context: OpExecutionContext, system_user_id: int | None, fn):
    """Run ``fn(service)`` in one transaction.

    A step failure that was recorded in the audit trail is committed so the
    submission stays parked in its failed status; anything else rolls back.
    """
    engine = context.resources.metadata_db
    with engine.connect() as conn:
        service = DarwinCoreService(
            DBConnection(conn=conn, system_user_id=system_user_id),
            context.resources.object_store,
            context.resources.search_index,
        )
        try:
            result = fn(service)
        except Exception:
            if service.audited_failure:
                conn.commit()
                context.log.error("Pipeline step failed; failure status committed")
            else:
                conn.rollback()
            raise
        conn.commit()
    return result


@op(
    required_resource_keys={"metadata_db", "object_store", "search_index"},
    config_schema={
        "dataset_uuid": Field(str),
        "object_key": Field(str),
        "system_user_id": Field(int, is_required=False),
        "delete_inbox_object": Field(bool, default_value=True, is_required=False),
    },
    out=Out(int),
)
def intake_dwc_submission_op(context: OpExecutionContext) -> int:
    cfg = context.op_config
    object_store = context.resources.object_store
    file = IntakeFile(
        file_name=posixpath.basename(cfg["object_key"]),
        content=object_store.get_bytes(cfg["object_key"]),
    )

    submission_id = run_with_service(
        context,
        _system_user_id(context),
        lambda service: service.intake(file, cfg["dataset_uuid"]),
    )
    context.log.info("Ingested %s for dataset %s as submission %s", cfg["object_key"], cfg["dataset_uuid"], submission_id)

    if cfg.get("delete_inbox_object", True):
        object_store.delete_object(cfg["object_key"])
    return submission_id


@graph
def intake_dwc_submission_graph():
    intake_dwc_submission_op()


intake_dwc_submission_job = intake_dwc_submission_graph.to_job(name="intake_dwc_submission_job")


@op(
    required_resource_keys={"metadata_db", "object_store", "search_index"},
    config_schema={
        "submission_id": Field(int),
        "step": Field(str),
        "object_key": Field(str, is_required=False),
        "system_user_id": Field(int, is_required=False),
    },
)
def redrive_submission_step_op(context: OpExecutionContext) -> None:
    cfg = context.op_config
    file = None
    if cfg.get("object_key"):
        file = IntakeFile(
            file_name=posixpath.basename(cfg["object_key"]),
            content=context.resources.object_store.get_bytes(cfg["object_key"]),
        )

    run_with_service(
        context,
        _system_user_id(context),
        lambda service: service.redrive_step(cfg["submission_id"], cfg["step"], file),
    )
    context.log.info("Re-ran step %s for submission %s", cfg["step"], cfg["submission_id"])


@graph
def redrive_submission_step_graph():
    redrive_submission_step_op()


redrive_submission_step_job = redrive_submission_step_graph.to_job(name="redrive_submission_step_job")


@op(
    required_resource_keys={"metadata_db", "object_store", "search_index"},
    config_schema={
        "submission_id": Field(int),
        "system_user_id": Field(int, is_required=False),
    },
    out=Out(int),
)
def scrape_occurrences_op(context: OpExecutionContext) -> int:
    submission_id = context.op_config["submission_id"]
    occurrence_ids = run_with_service(
        context,
        _system_user_id(context),
        lambda service: service.scrape_occurrences(submission_id),
    )
    context.log.info("Scraped %s occurrences for submission %s", len(occurrence_ids), submission_id)
    return len(occurrence_ids)


@graph
def scrape_occurrences_graph():
    scrape_occurrences_op()


scrape_occurrences_job = scrape_occurrences_graph.to_job(name="scrape_occurrences_job")
