import os
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import Mock

sys.path.append(str(Path(__file__).resolve().parents[4]))

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_reports.db")

import pytest

from app.backend.src.core.storage import S3BlobStore
from app.backend.src.services import s3


def _settings(**overrides: object) -> SimpleNamespace:
    values: dict[str, object] = {
        "aws_region": "us-east-1",
        "aws_s3_bucket": "report-exports",
        "aws_access_key_id": "test",
        "aws_secret_access_key": "secret",
        "s3_endpoint_url": None,
        "local_storage_path": "/tmp/report-exports",
    }
    values.update(overrides)
    values["storage_is_local"] = str(values["aws_s3_bucket"]).lower() == "local"
    return SimpleNamespace(**values)


@pytest.fixture(autouse=True)
def reset_client_cache():  # type: ignore[no-untyped-def]
    s3._client.cache_clear()
    yield
    s3._client.cache_clear()


def test_generate_presigned_url_uses_sigv4(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_boto3_client(service_name: str, **kwargs: object) -> Mock:
        captured.update(kwargs)
        mock_client = Mock()
        mock_client.generate_presigned_url.return_value = "https://example.com/presigned"
        return mock_client

    monkeypatch.setattr(s3, "get_settings", lambda: _settings())
    monkeypatch.setattr(s3.boto3, "client", fake_boto3_client)

    url = s3.generate_presigned_url("/users/u1/r1.csv.gz", expires_in=40)

    assert url == "https://example.com/presigned"
    assert getattr(captured["config"], "signature_version", None) == "s3v4"
    assert "endpoint_url" not in captured


def test_endpoint_override_switches_to_path_style(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_boto3_client(service_name: str, **kwargs: object) -> Mock:
        captured.update(kwargs)
        return Mock()

    monkeypatch.setattr(
        s3, "get_settings", lambda: _settings(s3_endpoint_url="http://localhost:4566")
    )
    monkeypatch.setattr(s3.boto3, "client", fake_boto3_client)

    s3.get_s3_client()

    assert captured["endpoint_url"] == "http://localhost:4566"
    assert captured["config"].s3 == {"addressing_style": "path"}


def test_blob_store_uploads_under_exact_key(monkeypatch: pytest.MonkeyPatch) -> None:
    client = Mock()
    monkeypatch.setattr(s3, "get_settings", lambda: _settings())
    monkeypatch.setattr(s3.boto3, "client", lambda *args, **kwargs: client)

    key = S3BlobStore().put("users/u1/r1.csv.gz", b"payload", content_type="application/gzip")

    assert key == "users/u1/r1.csv.gz"
    kwargs = client.upload_fileobj.call_args.kwargs
    assert kwargs["Bucket"] == "report-exports"
    assert kwargs["Key"] == "users/u1/r1.csv.gz"
    assert kwargs["ExtraArgs"] == {"ContentType": "application/gzip"}


def test_blob_store_presign_sets_download_name(monkeypatch: pytest.MonkeyPatch) -> None:
    client = Mock()
    client.generate_presigned_url.return_value = "https://example.com/signed"
    monkeypatch.setattr(s3, "get_settings", lambda: _settings())
    monkeypatch.setattr(s3.boto3, "client", lambda *args, **kwargs: client)

    url, expires_at = S3BlobStore().presign_download("users/u1/r1.csv.gz", 40)

    assert url == "https://example.com/signed"
    assert expires_at.tzinfo is not None
    call = client.generate_presigned_url.call_args
    assert call.kwargs["ExpiresIn"] == 40
    assert call.kwargs["Params"]["ResponseContentDisposition"] == 'attachment; filename="r1.csv.gz"'


def test_local_mode_writes_to_disk(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(
        s3, "get_settings", lambda: _settings(aws_s3_bucket="local", local_storage_path=str(tmp_path))
    )

    key = s3.upload_bytes(b"abc", key="users/u1/r1.csv.gz")
    url = s3.generate_presigned_url(key)

    assert (tmp_path / "users/u1/r1.csv.gz").read_bytes() == b"abc"
    assert url.startswith("file://")


def test_sanitize_object_key_strips_leading_slash() -> None:
    assert s3.sanitize_object_key("//users//u1/r1.csv.gz") == "users/u1/r1.csv.gz"
    assert s3.sanitize_object_key("") == ""


def test_upload_with_timeout_bounds_client_and_skips_retries(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    configs: list[object] = []

    def fake_boto3_client(service_name: str, **kwargs: object) -> Mock:
        configs.append(kwargs["config"])
        return Mock()

    monkeypatch.setattr(s3, "get_settings", lambda: _settings())
    monkeypatch.setattr(s3.boto3, "client", fake_boto3_client)

    S3BlobStore().put("users/u1/r1.csv.gz", b"payload", timeout=0.42)
    s3.upload_bytes(b"payload", key="users/u1/r2.csv.gz")

    bounded, default = configs
    assert bounded.connect_timeout == pytest.approx(0.5)
    assert bounded.read_timeout == pytest.approx(0.5)
    assert bounded.retries["max_attempts"] == 1
    assert default.read_timeout == 60
    assert default.retries["max_attempts"] == 3
