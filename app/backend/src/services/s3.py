"""S3 access for report artifacts, with a filesystem stand-in for local runs."""

from __future__ import annotations

import math
import re
from functools import lru_cache
from io import BytesIO
from pathlib import Path

import boto3
import structlog
from botocore.client import BaseClient
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.backend.src.core.config import get_settings

LOGGER = structlog.get_logger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@lru_cache(maxsize=32)
def _client(timeout_seconds: float | None = None) -> BaseClient:
    """Build a shared S3 client; boto3 clients are thread-safe.

    With ``timeout_seconds`` every connect and read is bounded by it and the
    call is not retried, so one request cannot outlive the caller's budget.
    """

    settings = get_settings()
    retries = {"max_attempts": 3, "mode": "standard"}
    timeouts: dict[str, object] = {}
    if timeout_seconds is not None:
        retries = {"max_attempts": 1, "mode": "standard"}
        timeouts = {"connect_timeout": timeout_seconds, "read_timeout": timeout_seconds}
    client_kwargs: dict[str, object] = {
        "region_name": settings.aws_region,
        # Endpoint overrides (LocalStack, MinIO) only resolve path-style URLs.
        "config": Config(
            signature_version="s3v4",
            s3={"addressing_style": "path" if settings.s3_endpoint_url else "virtual"},
            retries=retries,
            **timeouts,
        ),
    }
    if settings.s3_endpoint_url:
        client_kwargs["endpoint_url"] = settings.s3_endpoint_url
    if settings.aws_access_key_id and settings.aws_secret_access_key:
        client_kwargs["aws_access_key_id"] = settings.aws_access_key_id
        client_kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
    return boto3.client("s3", **client_kwargs)


def _bucket_timeout(timeout: float | None) -> float | None:
    # Tenth-of-a-second buckets keep the client cache small.
    if timeout is None:
        return None
    return max(math.ceil(timeout * 10) / 10, 0.1)


def _local_path(key: str) -> Path:
    return Path(get_settings().local_storage_path) / key


def sanitize_object_key(key: str) -> str:
    """Collapse repeated slashes and drop the leading one; keys are otherwise kept verbatim."""

    return re.sub(r"/+", "/", key.strip()).lstrip("/")


def upload_bytes(
    data: bytes,
    *,
    key: str,
    content_type: str | None = None,
    timeout: float | None = None,
) -> str:
    """Store ``data`` under ``key`` and return the normalised key.

    ``timeout`` bounds each S3 connect and read, in seconds.
    """

    settings = get_settings()
    object_key = sanitize_object_key(key)

    if settings.storage_is_local:
        destination = _local_path(object_key)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(data)
        LOGGER.info("report_artifact_stored_locally", key=object_key, path=str(destination))
        return object_key

    try:
        client = _client(_bucket_timeout(timeout))
        client.upload_fileobj(
            Fileobj=BytesIO(data),
            Bucket=settings.aws_s3_bucket,
            Key=object_key,
            ExtraArgs={"ContentType": content_type or DEFAULT_CONTENT_TYPE},
        )
    except (BotoCoreError, ClientError) as exc:
        LOGGER.error(
            "report_artifact_upload_failed",
            bucket=settings.aws_s3_bucket,
            key=object_key,
            error=str(exc),
        )
        raise

    LOGGER.info(
        "report_artifact_uploaded",
        bucket=settings.aws_s3_bucket,
        key=object_key,
        size=len(data),
    )
    return object_key


def generate_presigned_url(
    key: str,
    *,
    expires_in: int = 3600,
    download_name: str | None = None,
) -> str:
    """Return a GET URL for ``key``; ``download_name`` sets the saved filename."""

    settings = get_settings()
    object_key = sanitize_object_key(key)

    if settings.storage_is_local:
        return _local_path(object_key).resolve().as_uri()

    params: dict[str, str] = {"Bucket": settings.aws_s3_bucket, "Key": object_key}
    if download_name:
        safe_name = re.sub(r"[^A-Za-z0-9._-]+", "_", download_name)
        params["ResponseContentDisposition"] = f'attachment; filename="{safe_name}"'

    return _client().generate_presigned_url("get_object", Params=params, ExpiresIn=expires_in)


def get_s3_client() -> BaseClient:
    return _client()


__all__ = [
    "generate_presigned_url",
    "get_s3_client",
    "sanitize_object_key",
    "upload_bytes",
]
