"""create darwin core submission schema

Revision ID: 0001_dwc_submission_schema
Revises:
Create Date: 2026-10-01 00:00:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

from app.models import Geography, JSONDocument

# revision identifiers, used by Alembic.
revision: str = "0001_dwc_submission_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _validity_columns() -> list[sa.Column]:
    return [
        sa.Column("record_effective_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("record_end_date", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    is_postgres = op.get_bind().dialect.name == "postgresql"
    if is_postgres:
        op.execute("CREATE EXTENSION IF NOT EXISTS postgis")

    op.create_table(
        "system_user",
        sa.Column("system_user_id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("user_identifier", sa.Text(), nullable=False, unique=True),
        *_validity_columns(),
    )
    op.create_table(
        "system_role",
        sa.Column("system_role_id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False, unique=True),
    )
    op.create_table(
        "system_user_role",
        sa.Column("system_user_role_id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("system_user_id", sa.Integer(), sa.ForeignKey("system_user.system_user_id"), nullable=False),
        sa.Column("system_role_id", sa.Integer(), sa.ForeignKey("system_role.system_role_id"), nullable=False),
        sa.UniqueConstraint("system_user_id", "system_role_id", name="uq_system_user_role"),
    )

    op.create_table(
        "submission_status_type",
        sa.Column("submission_status_type_id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False, unique=True),
    )
    op.create_table(
        "submission_message_type",
        sa.Column("submission_message_type_id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False, unique=True),
    )

    op.create_table(
        "source_transform",
        sa.Column("source_transform_id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("system_user_id", sa.Integer(), sa.ForeignKey("system_user.system_user_id"), nullable=False),
        sa.Column("version", sa.Text(), nullable=False),
        sa.Column("metadata_transform", sa.Text(), nullable=True),
        sa.Column("metadata_index", sa.Text(), nullable=True),
        sa.Column("validation_schema", JSONDocument, nullable=True),
        *_validity_columns(),
    )
    op.create_index(
        "ux_source_transform_live_user_version",
        "source_transform",
        ["system_user_id", "version"],
        unique=True,
        postgresql_where=sa.text("record_end_date IS NULL"),
        sqlite_where=sa.text("record_end_date IS NULL"),
    )

    op.create_table(
        "submission",
        sa.Column("submission_id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column(
            "source_transform_id",
            sa.Integer(),
            sa.ForeignKey("source_transform.source_transform_id"),
            nullable=False,
        ),
        sa.Column("uuid", sa.Text(), nullable=False),
        *_validity_columns(),
        sa.Column("input_key", sa.Text(), nullable=True),
        sa.Column("input_file_name", sa.Text(), nullable=True),
        sa.Column("eml_source", sa.Text(), nullable=True),
        sa.Column("eml_json_source", JSONDocument, nullable=True),
        sa.Column("darwin_core_source", JSONDocument, nullable=True),
        sa.Column("create_date", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ux_submission_live_uuid",
        "submission",
        ["uuid"],
        unique=True,
        postgresql_where=sa.text("record_end_date IS NULL"),
        sqlite_where=sa.text("record_end_date IS NULL"),
    )

    op.create_table(
        "submission_status",
        sa.Column("submission_status_id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("submission_id", sa.Integer(), sa.ForeignKey("submission.submission_id"), nullable=False),
        sa.Column(
            "submission_status_type_id",
            sa.Integer(),
            sa.ForeignKey("submission_status_type.submission_status_type_id"),
            nullable=False,
        ),
        sa.Column("event_timestamp", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_submission_status_submission", "submission_status", ["submission_id"])

    op.create_table(
        "submission_message",
        sa.Column("submission_message_id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column(
            "submission_status_id",
            sa.Integer(),
            sa.ForeignKey("submission_status.submission_status_id"),
            nullable=False,
        ),
        sa.Column(
            "submission_message_type_id",
            sa.Integer(),
            sa.ForeignKey("submission_message_type.submission_message_type_id"),
            nullable=False,
        ),
        sa.Column("event_timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
    )

    for table in ("spatial_transform", "security_transform"):
        op.create_table(
            table,
            sa.Column(f"{table}_id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
            sa.Column("name", sa.Text(), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("transform", sa.Text(), nullable=False),
            *_validity_columns(),
        )

    op.create_table(
        "submission_spatial_component",
        sa.Column(
            "submission_spatial_component_id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False
        ),
        sa.Column("submission_id", sa.Integer(), sa.ForeignKey("submission.submission_id"), nullable=False),
        sa.Column("spatial_component", JSONDocument, nullable=False),
        sa.Column("secured_spatial_component", JSONDocument, nullable=True),
        sa.Column("geography", Geography, nullable=True),
    )
    op.create_index(
        "ix_submission_spatial_component_submission", "submission_spatial_component", ["submission_id"]
    )

    for table, transform_table in (
        ("spatial_transform_submission", "spatial_transform"),
        ("security_transform_submission", "security_transform"),
    ):
        op.create_table(
            table,
            sa.Column(f"{table}_id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
            sa.Column(
                f"{transform_table}_id",
                sa.Integer(),
                sa.ForeignKey(f"{transform_table}.{transform_table}_id"),
                nullable=False,
            ),
            sa.Column(
                "submission_spatial_component_id",
                sa.Integer(),
                sa.ForeignKey("submission_spatial_component.submission_spatial_component_id"),
                nullable=False,
            ),
        )

    op.create_table(
        "system_user_security_exception",
        sa.Column(
            "system_user_security_exception_id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False
        ),
        sa.Column("system_user_id", sa.Integer(), sa.ForeignKey("system_user.system_user_id"), nullable=False),
        sa.Column(
            "security_transform_id",
            sa.Integer(),
            sa.ForeignKey("security_transform.security_transform_id"),
            nullable=False,
        ),
    )

    op.create_table(
        "occurrence",
        sa.Column("occurrence_id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("submission_id", sa.Integer(), sa.ForeignKey("submission.submission_id"), nullable=False),
        sa.Column("taxonid", sa.Text(), nullable=True),
        sa.Column("lifestage", sa.Text(), nullable=True),
        sa.Column("sex", sa.Text(), nullable=True),
        sa.Column("vernacularname", sa.Text(), nullable=True),
        sa.Column("eventdate", sa.Text(), nullable=True),
        sa.Column("individualcount", sa.Text(), nullable=True),
        sa.Column("organismquantity", sa.Text(), nullable=True),
        sa.Column("organismquantitytype", sa.Text(), nullable=True),
        sa.Column("geography", Geography, nullable=True),
    )
    op.create_index("ix_occurrence_submission", "occurrence", ["submission_id"])

    if is_postgres:
        op.execute(
            "CREATE INDEX ix_submission_spatial_component_geography "
            "ON submission_spatial_component USING GIST (geography)"
        )
        op.execute("CREATE INDEX ix_occurrence_geography ON occurrence USING GIST (geography)")


def downgrade() -> None:
    op.drop_table("occurrence")
    op.drop_table("system_user_security_exception")
    op.drop_table("security_transform_submission")
    op.drop_table("spatial_transform_submission")
    op.drop_table("submission_spatial_component")
    op.drop_table("security_transform")
    op.drop_table("spatial_transform")
    op.drop_table("submission_message")
    op.drop_table("submission_status")
    op.drop_index("ux_submission_live_uuid", table_name="submission")
    op.drop_table("submission")
    op.drop_index("ux_source_transform_live_user_version", table_name="source_transform")
    op.drop_table("source_transform")
    op.drop_table("submission_message_type")
    op.drop_table("submission_status_type")
    op.drop_table("system_user_role")
    op.drop_table("system_role")
    op.drop_table("system_user")
