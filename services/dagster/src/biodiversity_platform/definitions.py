from dagster import Definitions

from biodiversity_platform.intake import (
    dwc_inbox_sensor,
    intake_dwc_submission_job,
    redrive_submission_step_job,
    scrape_occurrences_job,
)
from biodiversity_platform.resources import (
    metadata_db_resource,
    object_store_resource,
    search_index_resource,
)

defs = Definitions(
    jobs=[
        intake_dwc_submission_job,
        redrive_submission_step_job,
        scrape_occurrences_job,
    ],
    sensors=[dwc_inbox_sensor],
    resources={
        "metadata_db": metadata_db_resource,
        "object_store": object_store_resource,
        "search_index": search_index_resource,
    },
)
