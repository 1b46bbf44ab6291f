from __future__ import annotations

from enum import Enum

INBOX_ROOT = "inbox"
RAW_ROOT = "raw"
EML_INDEX = "eml"

ADMIN_ROLES = ("System Administrator", "Data Administrator")


class SubmissionStatusType(str, Enum):
    PUBLISHED = "Published"
    REJECTED = "Rejected"
    SYSTEM_ERROR = "System Error"
    OUT_DATED_RECORD = "Out Dated Record"
    INGESTED = "Ingested"
    UPLOADED = "Uploaded"
    VALIDATED = "Validated"
    SECURED = "Secured"
    EML_INGESTED = "EML Ingested"
    EML_TO_JSON = "EML To JSON"
    METADATA_TO_ES = "Metadata To ES"
    NORMALIZED = "Normalized"
    SPATIAL_TRANSFORM_UNSECURE = "Spatial Transform Unsecure"
    SPATIAL_TRANSFORM_SECURE = "Spatial Transform Secure"
    FAILED_INGESTION = "Failed Ingestion"
    FAILED_UPLOAD = "Failed Upload"
    FAILED_VALIDATION = "Failed Validation"
    FAILED_SECURITY = "Failed Security"
    FAILED_EML_INGESTION = "Failed EML Ingestion"
    FAILED_EML_TO_JSON = "Failed EML To JSON"
    FAILED_METADATA_TO_ES = "Failed Metadata To ES"
    FAILED_NORMALIZATION = "Failed Normalization"
    FAILED_SPATIAL_TRANSFORM_UNSECURE = "Failed Spatial Transform Unsecure"
    FAILED_SPATIAL_TRANSFORM_SECURE = "Failed Spatial Transform Secure"


class SubmissionMessageType(str, Enum):
    NOTICE = "Notice"
    ERROR = "Error"
    WARNING = "Warning"
    DEBUG = "Debug"
