"""Blob storage backends for finished report artifacts."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Protocol

from app.backend.src.services import s3


class BlobStore(Protocol):
    """Minimal protocol for artifact storage backends."""

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str | None = None,
        timeout: float | None = None,
    ) -> str:
        """Persist bytes and return the object key, giving up after ``timeout`` seconds."""

    def presign_download(self, key: str, ttl_seconds: int) -> tuple[str, datetime]:
        """Return a time-limited download URL and its expiry."""


class S3BlobStore:
    """Blob store backed by the configured S3 bucket (or local mode)."""

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str | None = None,
        timeout: float | None = None,
    ) -> str:
        return s3.upload_bytes(data, key=key, content_type=content_type, timeout=timeout)

    def presign_download(self, key: str, ttl_seconds: int) -> tuple[str, datetime]:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
        url = s3.generate_presigned_url(
            key,
            expires_in=ttl_seconds,
            download_name=key.rsplit("/", 1)[-1],
        )
        return url, expires_at


class InMemoryBlobStore:
    """Thread-safe in-memory storage used by tests and local experiments."""

    def __init__(self) -> None:
        self._store: dict[str, bytes] = {}
        self._content_types: dict[str, str | None] = {}
        self._lock = threading.Lock()
        self.put_calls = 0

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str | None = None,
        timeout: float | None = None,
    ) -> str:
        with self._lock:
            self._store[key] = data
            self._content_types[key] = content_type
            self.put_calls += 1
        return key

    def get(self, key: str) -> bytes:
        with self._lock:
            return self._store[key]

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._store)

    def presign_download(self, key: str, ttl_seconds: int) -> tuple[str, datetime]:
        with self._lock:
            if key not in self._store:
                raise KeyError(key)
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
        return f"memory://{key}?expires={int(expires_at.timestamp())}", expires_at


__all__ = ["BlobStore", "InMemoryBlobStore", "S3BlobStore"]
