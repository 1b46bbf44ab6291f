from __future__ import annotations

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import UserDefinedType


class PostgisGeography(UserDefinedType):
    cache_ok = True

    def get_col_spec(self, **kw):
        return "geography(Geometry, 4326)"


# SQLite test databases keep geography as WKT text.
Geography = Text().with_variant(PostgisGeography(), "postgresql")
JSONDocument = JSON().with_variant(postgresql.JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class SystemUser(Base):
    __tablename__ = "system_user"

    system_user_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_identifier: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    record_effective_date: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    record_end_date: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class SystemRole(Base):
    __tablename__ = "system_role"

    system_role_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)


class SystemUserRole(Base):
    __tablename__ = "system_user_role"
    __table_args__ = (UniqueConstraint("system_user_id", "system_role_id", name="uq_system_user_role"),)

    system_user_role_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    system_user_id: Mapped[int] = mapped_column(Integer, ForeignKey("system_user.system_user_id"), nullable=False)
    system_role_id: Mapped[int] = mapped_column(Integer, ForeignKey("system_role.system_role_id"), nullable=False)


class SubmissionStatusType(Base):
    __tablename__ = "submission_status_type"

    submission_status_type_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)


class SubmissionMessageType(Base):
    __tablename__ = "submission_message_type"

    submission_message_type_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)


class SourceTransform(Base):
    __tablename__ = "source_transform"

    source_transform_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    system_user_id: Mapped[int] = mapped_column(Integer, ForeignKey("system_user.system_user_id"), nullable=False)
    version: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_transform: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_index: Mapped[str | None] = mapped_column(Text, nullable=True)
    validation_schema = mapped_column(JSONDocument, nullable=True)
    record_effective_date: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    record_end_date: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Submission(Base):
    __tablename__ = "submission"

    submission_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_transform_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("source_transform.source_transform_id"), nullable=False
    )
    uuid: Mapped[str] = mapped_column(Text, nullable=False)
    record_effective_date: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    record_end_date: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    input_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    input_file_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    eml_source: Mapped[str | None] = mapped_column(Text, nullable=True)
    eml_json_source = mapped_column(JSONDocument, nullable=True)
    darwin_core_source = mapped_column(JSONDocument, nullable=True)
    create_date: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)


class SubmissionStatus(Base):
    __tablename__ = "submission_status"

    submission_status_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[int] = mapped_column(Integer, ForeignKey("submission.submission_id"), nullable=False)
    submission_status_type_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("submission_status_type.submission_status_type_id"), nullable=False
    )
    event_timestamp: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)


class SubmissionMessage(Base):
    __tablename__ = "submission_message"

    submission_message_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_status_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("submission_status.submission_status_id"), nullable=False
    )
    submission_message_type_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("submission_message_type.submission_message_type_id"), nullable=False
    )
    event_timestamp: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)


class SpatialTransform(Base):
    __tablename__ = "spatial_transform"

    spatial_transform_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    transform: Mapped[str] = mapped_column(Text, nullable=False)
    record_effective_date: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    record_end_date: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class SecurityTransform(Base):
    __tablename__ = "security_transform"

    security_transform_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    transform: Mapped[str] = mapped_column(Text, nullable=False)
    record_effective_date: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    record_end_date: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class SubmissionSpatialComponent(Base):
    __tablename__ = "submission_spatial_component"

    submission_spatial_component_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[int] = mapped_column(Integer, ForeignKey("submission.submission_id"), nullable=False)
    spatial_component = mapped_column(JSONDocument, nullable=False)
    secured_spatial_component = mapped_column(JSONDocument, nullable=True)
    geography = mapped_column(Geography, nullable=True)


class SpatialTransformSubmission(Base):
    __tablename__ = "spatial_transform_submission"

    spatial_transform_submission_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    spatial_transform_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("spatial_transform.spatial_transform_id"), nullable=False
    )
    submission_spatial_component_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("submission_spatial_component.submission_spatial_component_id"), nullable=False
    )


class SecurityTransformSubmission(Base):
    __tablename__ = "security_transform_submission"

    security_transform_submission_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    security_transform_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("security_transform.security_transform_id"), nullable=False
    )
    submission_spatial_component_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("submission_spatial_component.submission_spatial_component_id"), nullable=False
    )


class SystemUserSecurityException(Base):
    __tablename__ = "system_user_security_exception"

    system_user_security_exception_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    system_user_id: Mapped[int] = mapped_column(Integer, ForeignKey("system_user.system_user_id"), nullable=False)
    security_transform_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("security_transform.security_transform_id"), nullable=False
    )


class Occurrence(Base):
    __tablename__ = "occurrence"

    occurrence_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[int] = mapped_column(Integer, ForeignKey("submission.submission_id"), nullable=False)
    taxonid: Mapped[str | None] = mapped_column(Text, nullable=True)
    lifestage: Mapped[str | None] = mapped_column(Text, nullable=True)
    sex: Mapped[str | None] = mapped_column(Text, nullable=True)
    vernacularname: Mapped[str | None] = mapped_column(Text, nullable=True)
    eventdate: Mapped[str | None] = mapped_column(Text, nullable=True)
    individualcount: Mapped[str | None] = mapped_column(Text, nullable=True)
    organismquantity: Mapped[str | None] = mapped_column(Text, nullable=True)
    organismquantitytype: Mapped[str | None] = mapped_column(Text, nullable=True)
    geography = mapped_column(Geography, nullable=True)
