"""Application configuration utilities."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings derived from environment variables."""

    database_url: str = Field(
        default="sqlite:///./reports.db", alias="DATABASE_URL"
    )
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    aws_region: str = Field(default="us-east-1", alias="AWS_REGION")
    aws_s3_bucket: str = Field(default="local", alias="AWS_S3_BUCKET")
    aws_access_key_id: str | None = Field(
        default=None, alias="AWS_ACCESS_KEY_ID"
    )
    aws_secret_access_key: str | None = Field(
        default=None, alias="AWS_SECRET_ACCESS_KEY"
    )
    s3_endpoint_url: str | None = Field(default=None, alias="S3_ENDPOINT_URL")
    sqs_endpoint_url: str | None = Field(default=None, alias="SQS_ENDPOINT_URL")
    local_storage_path: str = Field(
        default="/tmp/report-exports", alias="LOCAL_STORAGE_PATH"
    )

    reports_sqs_queue: str = Field(default="reports", alias="REPORTS_SQS_QUEUE")
    reports_sqs_wait_seconds: int = Field(
        default=10, ge=0, le=20, alias="REPORTS_SQS_WAIT_SECONDS"
    )

    compendium_base_url: str = Field(
        default="https://botw-compendium.herokuapp.com/api/v3/compendium",
        alias="COMPENDIUM_BASE_URL",
    )
    compendium_timeout_seconds: float = Field(
        default=10.0, gt=0, alias="COMPENDIUM_TIMEOUT_SECONDS"
    )

    report_worker_concurrency: int = Field(
        default=2, ge=1, alias="REPORT_WORKER_CONCURRENCY"
    )
    report_job_timeout_seconds: float = Field(
        default=10.0, gt=0, alias="REPORT_JOB_TIMEOUT_SECONDS"
    )
    report_download_url_ttl_seconds: int = Field(
        default=900, gt=0, alias="REPORT_DOWNLOAD_URL_TTL_SECONDS"
    )
    report_retry_failed: bool = Field(default=True, alias="REPORT_RETRY_FAILED")

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    @property
    def storage_is_local(self) -> bool:
        """Return ``True`` when artifacts are written to the local filesystem."""

        return self.aws_s3_bucket.lower() == "local"


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


__all__ = ["Settings", "get_settings"]
