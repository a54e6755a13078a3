import logging
import time
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import boto3
from botocore.exceptions import ClientError
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from .models import QueuedMessage
from .storage import aws_client_kwargs

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueMessage:
    message_id: str
    receipt_handle: Optional[str]
    body: Optional[str]


def sqs_client():
    return boto3.client("sqs", **aws_client_kwargs())


def resolve_queue_url(client=None) -> str:
    if settings.SQS_QUEUE_URL:
        return settings.SQS_QUEUE_URL
    if settings.AWS_ENDPOINT_URL:
        # LocalStack's default account; avoids a GetQueueUrl round trip
        return f"{settings.AWS_ENDPOINT_URL.rstrip('/')}/000000000000/{settings.SQS_QUEUE_NAME}"
    client = client or sqs_client()
    return client.get_queue_url(QueueName=settings.SQS_QUEUE_NAME)["QueueUrl"]


class SqsMessageQueue:
    def __init__(self, queue_url: str, client=None, wait_seconds: int = 20):
        self.queue_url = queue_url
        self.client = client or sqs_client()
        self.wait_seconds = wait_seconds

    def poll_messages(self) -> list[QueueMessage]:
        # One message per receive: a worker instance handles jobs strictly one at a time.
        result = self.client.receive_message(
            QueueUrl=self.queue_url,
            MaxNumberOfMessages=1,
            WaitTimeSeconds=self.wait_seconds,
            MessageAttributeNames=["All"],
        )
        return [
            QueueMessage(
                message_id=m.get("MessageId", ""),
                receipt_handle=m.get("ReceiptHandle"),
                body=m.get("Body"),
            )
            for m in result.get("Messages") or []
        ]

    def delete_message(self, receipt_handle: str) -> None:
        try:
            self.client.delete_message(QueueUrl=self.queue_url, ReceiptHandle=receipt_handle)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ReceiptHandleIsInvalid":
                logger.debug("message already gone: %s", receipt_handle)
                return
            raise

    def send_message(self, body: str) -> str:
        return self.client.send_message(QueueUrl=self.queue_url, MessageBody=body)["MessageId"]


class DatabaseMessageQueue:
    """Queue table in the Django database.

    Claims use select_for_update(skip_locked=True) so several workers can share
    the table. A received message stays hidden for visibility_timeout seconds;
    if it is not deleted in that window it becomes receivable again.
    """

    def __init__(self, visibility_timeout: float = 300, wait_seconds: float = 0, poll_step: float = 1.0):
        self.visibility_timeout = visibility_timeout
        self.wait_seconds = wait_seconds
        self.poll_step = poll_step

    def _claim(self) -> Optional[QueueMessage]:
        now = timezone.now()
        with transaction.atomic():
            row = (
                QueuedMessage.objects.select_for_update(skip_locked=True)
                .filter(visible_at__lte=now)
                .order_by("created_at")
                .first()
            )
            if not row:
                return None
            row.receipt_handle = uuid.uuid4().hex
            row.visible_at = now + timedelta(seconds=self.visibility_timeout)
            row.receive_count += 1
            row.save(update_fields=["receipt_handle", "visible_at", "receive_count"])
        return QueueMessage(message_id=str(row.id), receipt_handle=row.receipt_handle, body=row.body)

    def poll_messages(self) -> list[QueueMessage]:
        deadline = time.monotonic() + self.wait_seconds
        while True:
            msg = self._claim()
            if msg:
                return [msg]
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return []
            time.sleep(min(self.poll_step, remaining))

    def delete_message(self, receipt_handle: str) -> None:
        if not receipt_handle:
            return
        QueuedMessage.objects.filter(receipt_handle=receipt_handle).delete()

    def send_message(self, body: str) -> str:
        row = QueuedMessage.objects.create(body=body, visible_at=timezone.now())
        return str(row.id)
