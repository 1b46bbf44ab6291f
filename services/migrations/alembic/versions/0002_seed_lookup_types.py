"""seed status types, message types, roles and the intake source transform

Revision ID: 0002_seed_lookup_types
Revises: 0001_dwc_submission_schema
Create Date: 2026-10-01 00:10:00.000000
"""

import json
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0002_seed_lookup_types"
down_revision: Union[str, None] = "0001_dwc_submission_schema"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

STATUS_TYPES = [
    "Published",
    "Rejected",
    "System Error",
    "Out Dated Record",
    "Ingested",
    "Uploaded",
    "Validated",
    "Secured",
    "EML Ingested",
    "EML To JSON",
    "Metadata To ES",
    "Normalized",
    "Spatial Transform Unsecure",
    "Spatial Transform Secure",
    "Failed Ingestion",
    "Failed Upload",
    "Failed Validation",
    "Failed Security",
    "Failed EML Ingestion",
    "Failed EML To JSON",
    "Failed Metadata To ES",
    "Failed Normalization",
    "Failed Spatial Transform Unsecure",
    "Failed Spatial Transform Secure",
]

MESSAGE_TYPES = ["Notice", "Error", "Warning", "Debug"]

ROLES = ["System Administrator", "Data Administrator"]

INTAKE_USER = "dwc-intake"
INTAKE_VERSION = "1.0"

METADATA_TRANSFORM = """
SELECT jsonb_build_object(
    'datasetName', jsonb_path_query_first(s.eml_json_source, '$.**.dataset.title'),
    'publishDate', jsonb_path_query_first(s.eml_json_source, '$.**.dataset.pubDate'),
    'keywords', jsonb_path_query_array(s.eml_json_source, '$.**.keywordSet.keyword'),
    'eml', s.eml_json_source
) AS result_data
FROM submission s
WHERE s.submission_id = :submission_id
"""

VALIDATION_SCHEMA = {
    "required_worksheets": ["occurrence"],
    "worksheets": {
        "occurrence": {
            "required_columns": ["occurrenceID"],
            "rules": [
                {"rule_id": "occurrence_id_present", "kind": "NOT_NULL", "column": "occurrenceID"},
                {"rule_id": "occurrence_id_unique", "kind": "UNIQUE", "column": "occurrenceID"},
                {
                    "rule_id": "sex_vocabulary",
                    "kind": "ALLOWED_VALUES",
                    "column": "sex",
                    "values": ["male", "female", "hermaphrodite", "unknown"],
                },
            ],
        },
        "event": {
            "rules": [
                {"rule_id": "event_date_iso", "kind": "REGEX", "column": "eventDate", "pattern": r"\d{4}(-\d{2}(-\d{2})?)?.*"},
            ],
        },
    },
}


def upgrade() -> None:
    status_type = sa.table("submission_status_type", sa.column("name", sa.Text()))
    message_type = sa.table("submission_message_type", sa.column("name", sa.Text()))
    system_role = sa.table("system_role", sa.column("name", sa.Text()))

    op.bulk_insert(status_type, [{"name": name} for name in STATUS_TYPES])
    op.bulk_insert(message_type, [{"name": name} for name in MESSAGE_TYPES])
    op.bulk_insert(system_role, [{"name": name} for name in ROLES])

    bind = op.get_bind()
    system_user_id = bind.execute(
        sa.text(
            """
            INSERT INTO system_user (user_identifier, record_effective_date)
            VALUES (:user_identifier, CURRENT_TIMESTAMP)
            RETURNING system_user_id
            """
        ),
        {"user_identifier": INTAKE_USER},
    ).scalar_one()

    bind.execute(
        sa.text(
            """
            INSERT INTO source_transform (
                system_user_id, version, metadata_transform, metadata_index, validation_schema, record_effective_date
            ) VALUES (
                :system_user_id, :version, :metadata_transform, :metadata_index, :validation_schema, CURRENT_TIMESTAMP
            )
            """
        ),
        {
            "system_user_id": system_user_id,
            "version": INTAKE_VERSION,
            "metadata_transform": METADATA_TRANSFORM.strip(),
            "metadata_index": "eml",
            "validation_schema": json.dumps(VALIDATION_SCHEMA),
        },
    )


def downgrade() -> None:
    op.execute(
        "DELETE FROM source_transform WHERE system_user_id IN "
        f"(SELECT system_user_id FROM system_user WHERE user_identifier = '{INTAKE_USER}')"
    )
    op.execute(f"DELETE FROM system_user WHERE user_identifier = '{INTAKE_USER}'")
    op.execute("DELETE FROM system_role")
    op.execute("DELETE FROM submission_message_type")
    op.execute("DELETE FROM submission_status_type")
