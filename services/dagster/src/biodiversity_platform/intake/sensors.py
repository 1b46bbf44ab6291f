from dagster import RunRequest, SensorEvaluationContext, SkipReason, sensor

from biodiversity_platform.constants import INBOX_ROOT
from biodiversity_platform.intake.jobs import intake_dwc_submission_job


def parse_inbox_key(key: str) -> tuple[str, str] | None:
    """Split ``inbox/<dataset_uuid>/<file>.zip`` into its dataset UUID and file name."""
    parts = key.split("/")
    if len(parts) != 3 or parts[0] != INBOX_ROOT:
        return None
    dataset_uuid, file_name = parts[1], parts[2]
    if not dataset_uuid or not file_name.lower().endswith(".zip"):
        return None
    return dataset_uuid, file_name


@sensor(
    minimum_interval_seconds=30,
    required_resource_keys={"object_store"},
    job=intake_dwc_submission_job,
)
def dwc_inbox_sensor(context: SensorEvaluationContext):
    candidates = []
    for obj in context.resources.object_store.list_objects(f"{INBOX_ROOT}/"):
        parsed = parse_inbox_key(obj.key)
        if parsed is not None:
            candidates.append((obj, parsed[0]))

    if not candidates:
        return SkipReason("No Darwin Core archives waiting in the inbox")

    context.log.info("DwC inbox sensor found %s archive(s)", len(candidates))
    return [
        RunRequest(
            run_key=f"{obj.key}:{obj.etag or obj.size_bytes}",
            run_config={
                "ops": {
                    "intake_dwc_submission_op": {
                        "config": {"dataset_uuid": dataset_uuid, "object_key": obj.key}
                    }
                }
            },
            tags={"dataset_uuid": dataset_uuid},
        )
        for obj, dataset_uuid in candidates
    ]
