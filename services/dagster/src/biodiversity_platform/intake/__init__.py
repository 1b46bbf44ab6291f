from biodiversity_platform.intake.jobs import (
    intake_dwc_submission_job,
    redrive_submission_step_job,
    scrape_occurrences_job,
)
from biodiversity_platform.intake.sensors import dwc_inbox_sensor

__all__ = [
    "dwc_inbox_sensor",
    "intake_dwc_submission_job",
    "redrive_submission_step_job",
    "scrape_occurrences_job",
]
