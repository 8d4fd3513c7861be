"""SQS-backed job queue."""

from __future__ import annotations

from functools import cached_property

import boto3
from botocore.client import BaseClient
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
import structlog

from app.backend.src.core.config import Settings, get_settings
from app.backend.src.core.job_queue import QueueMessage

LOGGER = structlog.get_logger(__name__)

# SQS rejects ReceiveMessage batches outside this range.
_SQS_MAX_BATCH = 10


def build_sqs_client(settings: Settings | None = None) -> BaseClient:
    """Return an SQS client honouring endpoint overrides (e.g. LocalStack)."""

    settings = settings or get_settings()
    client_kwargs: dict[str, object] = {
        "config": Config(retries={"max_attempts": 3, "mode": "standard"}),
        "region_name": settings.aws_region,
    }
    if settings.sqs_endpoint_url:
        client_kwargs["endpoint_url"] = settings.sqs_endpoint_url
    if settings.aws_access_key_id and settings.aws_secret_access_key:
        client_kwargs["aws_access_key_id"] = settings.aws_access_key_id
        client_kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
    return boto3.client("sqs", **client_kwargs)


class SqsJobQueue:
    """Job queue backed by an SQS queue looked up by name."""

    def __init__(self, client: BaseClient, queue_name: str) -> None:
        self._client = client
        self.queue_name = queue_name

    @cached_property
    def queue_url(self) -> str:
        try:
            response = self._client.get_queue_url(QueueName=self.queue_name)
        except (BotoCoreError, ClientError) as exc:
            LOGGER.error("sqs_queue_lookup_failed", queue=self.queue_name, error=str(exc))
            raise
        url = response["QueueUrl"]
        LOGGER.info("sqs_queue_resolved", queue=self.queue_name, queue_url=url)
        return url

    def receive(self, max_messages: int, wait_seconds: int = 0) -> list[QueueMessage]:
        response = self._client.receive_message(
            QueueUrl=self.queue_url,
            MaxNumberOfMessages=min(max(max_messages, 1), _SQS_MAX_BATCH),
            WaitTimeSeconds=wait_seconds,
        )
        return [
            QueueMessage(
                message_id=raw["MessageId"],
                receipt_handle=raw["ReceiptHandle"],
                body=raw.get("Body"),
            )
            for raw in response.get("Messages", [])
        ]

    def delete(self, message: QueueMessage) -> None:
        self._client.delete_message(
            QueueUrl=self.queue_url,
            ReceiptHandle=message.receipt_handle,
        )

    def send(self, body: str) -> str:
        response = self._client.send_message(QueueUrl=self.queue_url, MessageBody=body)
        message_id = response["MessageId"]
        LOGGER.info("sqs_message_sent", queue=self.queue_name, message_id=message_id)
        return message_id


def get_job_queue(settings: Settings | None = None) -> SqsJobQueue:
    """Return the report job queue configured for this environment."""

    settings = settings or get_settings()
    return SqsJobQueue(build_sqs_client(settings), settings.reports_sqs_queue)


__all__ = ["SqsJobQueue", "build_sqs_client", "get_job_queue"]
