from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import boto3
from botocore.exceptions import ClientError

from biodiversity_platform.constants import RAW_ROOT


@dataclass(frozen=True)
class ObjectMeta:
    key: str
    size_bytes: int
    last_modified: datetime | None
    etag: str | None = None


@dataclass(frozen=True)
class StoredObject:
    key: str
    body: bytes
    metadata: dict[str, str] = field(default_factory=dict)


def generate_s3_file_key(submission_id: int, file_name: str) -> str:
    prefix = os.getenv("S3_KEY_PREFIX", RAW_ROOT).strip("/")
    return f"{prefix}/submissions/{submission_id}/{file_name}"


class BaseObjectStore:
    def list_objects(self, prefix: str) -> list[ObjectMeta]:
        raise NotImplementedError

    def stat_object(self, key: str) -> ObjectMeta | None:
        raise NotImplementedError

    def put_bytes(
        self,
        key: str,
        data: bytes,
        metadata: dict[str, str] | None = None,
        content_type: str = "application/octet-stream",
    ) -> str:
        raise NotImplementedError

    def get_object(self, key: str) -> StoredObject:
        raise NotImplementedError

    def get_bytes(self, key: str) -> bytes:
        return self.get_object(key).body

    def delete_object(self, key: str) -> None:
        raise NotImplementedError


class S3ObjectStore(BaseObjectStore):
    def __init__(self, client, bucket: str):
        self.client = client
        self.bucket = bucket

    def list_objects(self, prefix: str) -> list[ObjectMeta]:
        paginator = self.client.get_paginator("list_objects_v2")
        results: list[ObjectMeta] = []
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                results.append(
                    ObjectMeta(
                        key=obj["Key"],
                        size_bytes=int(obj["Size"]),
                        last_modified=obj.get("LastModified"),
                        etag=(obj.get("ETag") or "").strip('"') or None,
                    )
                )
        return sorted(results, key=lambda item: item.key)

    def stat_object(self, key: str) -> ObjectMeta | None:
        try:
            response = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError:
            return None
        return ObjectMeta(
            key=key,
            size_bytes=int(response["ContentLength"]),
            last_modified=response.get("LastModified"),
            etag=(response.get("ETag") or "").strip('"') or None,
        )

    def put_bytes(
        self,
        key: str,
        data: bytes,
        metadata: dict[str, str] | None = None,
        content_type: str = "application/octet-stream",
    ) -> str:
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
            Metadata=metadata or {},
        )
        return key

    def get_object(self, key: str) -> StoredObject:
        response = self.client.get_object(Bucket=self.bucket, Key=key)
        return StoredObject(
            key=key,
            body=response["Body"].read(),
            metadata=dict(response.get("Metadata") or {}),
        )

    def delete_object(self, key: str) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=key)


class LocalObjectStore(BaseObjectStore):
    """Directory-backed store; object metadata lives in a `<key>.meta.json` sidecar."""

    def __init__(self, base_dir: str, bucket: str):
        self.root = Path(base_dir) / bucket

    def _path(self, key: str) -> Path:
        return self.root / key

    def _meta_path(self, key: str) -> Path:
        return self.root / f"{key}.meta.json"

    def list_objects(self, prefix: str) -> list[ObjectMeta]:
        if not self.root.exists():
            return []
        results = []
        for path in self.root.rglob("*"):
            if not path.is_file() or path.name.endswith(".meta.json"):
                continue
            key = path.relative_to(self.root).as_posix()
            if key.startswith(prefix):
                results.append(self.stat_object(key))
        return sorted(results, key=lambda item: item.key)

    def stat_object(self, key: str) -> ObjectMeta | None:
        path = self._path(key)
        if not path.is_file():
            return None
        stat = path.stat()
        return ObjectMeta(
            key=key,
            size_bytes=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            etag=f"{int(stat.st_mtime)}-{stat.st_size}",
        )

    def put_bytes(
        self,
        key: str,
        data: bytes,
        metadata: dict[str, str] | None = None,
        content_type: str = "application/octet-stream",
    ) -> str:
        del content_type
        target = self._path(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        self._meta_path(key).write_text(json.dumps(metadata or {}))
        return key

    def get_object(self, key: str) -> StoredObject:
        path = self._path(key)
        if not path.is_file():
            raise FileNotFoundError(key)
        meta_path = self._meta_path(key)
        metadata = json.loads(meta_path.read_text()) if meta_path.is_file() else {}
        return StoredObject(key=key, body=path.read_bytes(), metadata=metadata)

    def delete_object(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
        self._meta_path(key).unlink(missing_ok=True)


def _s3_client():
    endpoint_url = os.getenv("S3_ENDPOINT_URL") or os.getenv("MINIO_ENDPOINT")
    if endpoint_url and not endpoint_url.startswith(("http://", "https://")):
        secure = os.getenv("MINIO_SECURE", "false").lower() == "true"
        endpoint_url = f"{'https' if secure else 'http'}://{endpoint_url}"
    return boto3.client(
        "s3",
        endpoint_url=endpoint_url,
        aws_access_key_id=os.getenv("S3_ACCESS_KEY_ID") or os.getenv("MINIO_ACCESS_KEY"),
        aws_secret_access_key=os.getenv("S3_SECRET_ACCESS_KEY") or os.getenv("MINIO_SECRET_KEY"),
        region_name=os.getenv("S3_REGION", "us-east-1"),
    )


def create_object_store() -> BaseObjectStore:
    bucket = os.getenv("S3_BUCKET", "biodiversity-raw")
    if os.getenv("OBJECT_STORE_MODE", "s3").lower() == "local":
        return LocalObjectStore(os.getenv("LOCAL_OBJECT_STORE_DIR", ".local_object_store"), bucket)

    client = _s3_client()
    try:
        client.head_bucket(Bucket=bucket)
    except ClientError:
        client.create_bucket(Bucket=bucket)
    return S3ObjectStore(client, bucket)
