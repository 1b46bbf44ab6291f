from __future__ import annotations

import io
import json
import zipfile

import mongomock
import pytest
from sqlalchemy import create_engine, text

from biodiversity_platform.constants import ADMIN_ROLES, SubmissionMessageType, SubmissionStatusType
from biodiversity_platform.utils.db import DBConnection
from biodiversity_platform.utils.object_store import LocalObjectStore
from biodiversity_platform.utils.search_index import MongoSearchIndex

INTAKE_USER_ID = 1
ADMIN_USER_ID = 2

SQLITE_METADATA_TRANSFORM = """
SELECT json_object('eml', json(s.eml_json_source)) AS result_data
FROM submission s
WHERE s.submission_id = :submission_id
"""

SQLITE_BOUNDARY_TRANSFORM = """
SELECT json_object(
    'type', 'FeatureCollection',
    'features', json_array(json_object('type', 'Feature', 'geometry', json('null'), 'properties', json_object('type', 'Boundary')))
) AS result_data
FROM submission
WHERE submission_id = :submission_id
"""

SQLITE_SECURITY_TRANSFORM = """
SELECT
    ssc.submission_spatial_component_id,
    json_object('type', 'FeatureCollection', 'features', json_array()) AS secured_spatial_component
FROM submission_spatial_component ssc
WHERE ssc.submission_id = :submission_id
"""

VALIDATION_SCHEMA = {
    "required_worksheets": ["occurrence"],
    "worksheets": {
        "occurrence": {
            "required_columns": ["occurrenceID"],
            "rules": [{"rule_id": "occurrence_id_unique", "kind": "UNIQUE", "column": "occurrenceID"}],
        }
    },
}

EML = b"""<?xml version="1.0" encoding="UTF-8"?>
<eml:eml packageId="abc-123" system="http://gbif.org" xmlns:eml="eml://ecoinformatics.org/eml-2.1.1">
  <dataset>
    <title>Moose survey 2022</title>
    <keywordSet>
      <keyword>moose</keyword>
      <keyword>aerial</keyword>
    </keywordSet>
  </dataset>
</eml:eml>
"""

EVENT_TSV = "eventID\teventDate\tverbatimCoordinates\ne1\t2022-01-02\t\ne2\t2022-01-03\t\n"
OCCURRENCE_TSV = (
    "id\teventID\toccurrenceID\tsex\tlifeStage\tindividualCount\tassociatedTaxa\n"
    "e1\te1\to1\tmale\tadult\t2\tM-ALAM\n"
    "e2\te2\to2\tfemale\tcalf\t1\tM-ALAM\n"
)
TAXON_TSV = "occurrenceID\tvernacularName\no1\tMoose\no2\tMoose\n"


def build_archive(members: dict[str, bytes | str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in members.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def default_archive_members() -> dict[str, bytes | str]:
    return {
        "eml.xml": EML,
        "event.txt": EVENT_TSV,
        "occurrence.txt": OCCURRENCE_TSV,
        "taxon.txt": TAXON_TSV,
    }


def create_schema(conn) -> None:
    conn.exec_driver_sql(
        """
        CREATE TABLE system_user (
            system_user_id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_identifier TEXT NOT NULL UNIQUE,
            record_effective_date TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            record_end_date TEXT
        )
        """
    )
    conn.exec_driver_sql(
        "CREATE TABLE system_role (system_role_id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL UNIQUE)"
    )
    conn.exec_driver_sql(
        """
        CREATE TABLE system_user_role (
            system_user_role_id INTEGER PRIMARY KEY AUTOINCREMENT,
            system_user_id INTEGER NOT NULL,
            system_role_id INTEGER NOT NULL
        )
        """
    )
    conn.exec_driver_sql(
        """
        CREATE TABLE submission_status_type (
            submission_status_type_id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE
        )
        """
    )
    conn.exec_driver_sql(
        """
        CREATE TABLE submission_message_type (
            submission_message_type_id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE
        )
        """
    )
    conn.exec_driver_sql(
        """
        CREATE TABLE source_transform (
            source_transform_id INTEGER PRIMARY KEY AUTOINCREMENT,
            system_user_id INTEGER NOT NULL,
            version TEXT NOT NULL,
            metadata_transform TEXT,
            metadata_index TEXT,
            validation_schema TEXT,
            record_effective_date TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            record_end_date TEXT
        )
        """
    )
    conn.exec_driver_sql(
        """
        CREATE TABLE submission (
            submission_id INTEGER PRIMARY KEY AUTOINCREMENT,
            source_transform_id INTEGER,
            uuid TEXT NOT NULL,
            record_effective_date TEXT NOT NULL,
            record_end_date TEXT,
            input_key TEXT,
            input_file_name TEXT,
            eml_source TEXT,
            eml_json_source TEXT,
            darwin_core_source TEXT,
            create_date TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    conn.exec_driver_sql(
        "CREATE UNIQUE INDEX ux_submission_live_uuid ON submission(uuid) WHERE record_end_date IS NULL"
    )
    conn.exec_driver_sql(
        """
        CREATE TABLE submission_status (
            submission_status_id INTEGER PRIMARY KEY AUTOINCREMENT,
            submission_id INTEGER NOT NULL,
            submission_status_type_id INTEGER NOT NULL,
            event_timestamp TEXT NOT NULL
        )
        """
    )
    conn.exec_driver_sql(
        """
        CREATE TABLE submission_message (
            submission_message_id INTEGER PRIMARY KEY AUTOINCREMENT,
            submission_status_id INTEGER NOT NULL,
            submission_message_type_id INTEGER NOT NULL,
            event_timestamp TEXT NOT NULL,
            message TEXT NOT NULL
        )
        """
    )
    for table in ("spatial_transform", "security_transform"):
        conn.exec_driver_sql(
            f"""
            CREATE TABLE {table} (
                {table}_id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                description TEXT,
                transform TEXT NOT NULL,
                record_effective_date TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                record_end_date TEXT
            )
            """
        )
    conn.exec_driver_sql(
        """
        CREATE TABLE submission_spatial_component (
            submission_spatial_component_id INTEGER PRIMARY KEY AUTOINCREMENT,
            submission_id INTEGER NOT NULL,
            spatial_component TEXT NOT NULL,
            secured_spatial_component TEXT,
            geography TEXT
        )
        """
    )
    for table, transform_table in (
        ("spatial_transform_submission", "spatial_transform"),
        ("security_transform_submission", "security_transform"),
    ):
        conn.exec_driver_sql(
            f"""
            CREATE TABLE {table} (
                {table}_id INTEGER PRIMARY KEY AUTOINCREMENT,
                {transform_table}_id INTEGER NOT NULL,
                submission_spatial_component_id INTEGER NOT NULL
            )
            """
        )
    conn.exec_driver_sql(
        """
        CREATE TABLE system_user_security_exception (
            system_user_security_exception_id INTEGER PRIMARY KEY AUTOINCREMENT,
            system_user_id INTEGER NOT NULL,
            security_transform_id INTEGER NOT NULL
        )
        """
    )
    conn.exec_driver_sql(
        """
        CREATE TABLE occurrence (
            occurrence_id INTEGER PRIMARY KEY AUTOINCREMENT,
            submission_id INTEGER NOT NULL,
            taxonid TEXT,
            lifestage TEXT,
            sex TEXT,
            vernacularname TEXT,
            eventdate TEXT,
            individualcount TEXT,
            organismquantity TEXT,
            organismquantitytype TEXT,
            geography TEXT
        )
        """
    )


def seed_lookups(conn) -> None:
    for status in SubmissionStatusType:
        conn.execute(text("INSERT INTO submission_status_type (name) VALUES (:name)"), {"name": status.value})
    for message_type in SubmissionMessageType:
        conn.execute(
            text("INSERT INTO submission_message_type (name) VALUES (:name)"), {"name": message_type.value}
        )
    for role in ADMIN_ROLES:
        conn.execute(text("INSERT INTO system_role (name) VALUES (:name)"), {"name": role})

    conn.execute(
        text("INSERT INTO system_user (system_user_id, user_identifier) VALUES (:id, 'dwc-intake')"),
        {"id": INTAKE_USER_ID},
    )
    conn.execute(
        text("INSERT INTO system_user (system_user_id, user_identifier) VALUES (:id, 'admin')"),
        {"id": ADMIN_USER_ID},
    )
    conn.execute(
        text(
            """
            INSERT INTO system_user_role (system_user_id, system_role_id)
            SELECT :id, system_role_id FROM system_role WHERE name = 'System Administrator'
            """
        ),
        {"id": ADMIN_USER_ID},
    )
    conn.execute(
        text(
            """
            INSERT INTO source_transform (system_user_id, version, metadata_transform, metadata_index, validation_schema)
            VALUES (:system_user_id, '1.0', :metadata_transform, 'eml', :validation_schema)
            """
        ),
        {
            "system_user_id": INTAKE_USER_ID,
            "metadata_transform": SQLITE_METADATA_TRANSFORM,
            "validation_schema": json.dumps(VALIDATION_SCHEMA),
        },
    )
    conn.execute(
        text(
            "INSERT INTO spatial_transform (name, description, transform) "
            "VALUES ('Study Boundaries', 'boundary stub', :transform)"
        ),
        {"transform": SQLITE_BOUNDARY_TRANSFORM},
    )
    conn.execute(
        text(
            "INSERT INTO security_transform (name, description, transform) "
            "VALUES ('Redact Everything', 'drops every feature', :transform)"
        ),
        {"transform": SQLITE_SECURITY_TRANSFORM},
    )


@pytest.fixture()
def engine(tmp_path):
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'metadata.db'}", future=True)
    with engine.begin() as conn:
        create_schema(conn)
        seed_lookups(conn)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def connection(engine):
    with engine.connect() as conn:
        yield DBConnection(conn=conn, system_user_id=INTAKE_USER_ID)
        conn.rollback()


@pytest.fixture()
def object_store(tmp_path):
    return LocalObjectStore(str(tmp_path / "objects"), "biodiversity-raw")


@pytest.fixture()
def search_index():
    return MongoSearchIndex(mongomock.MongoClient(), "biodiversity-test")


@pytest.fixture()
def archive_bytes():
    return build_archive(default_archive_members())
