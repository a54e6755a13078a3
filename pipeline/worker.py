"""Queue worker: turns job messages into stored, downloadable artifacts.

One message is handled at a time. Each goes through the same checkpoints
(processing 0 → 25 → 75 → 90 → completed 100). Any error ends the job as
failed, except a duplicate delivery of a job another delivery has already
claimed: that copy is dropped and the job record is left alone. The queue
message is deleted whatever the outcome, so a failed job is never retried by
this worker.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from .errors import (
    InvalidStatusTransition,
    JobAlreadyClaimed,
    MessageParseError,
    NotFoundError,
    PipelineError,
)
from .processors import ProcessorRegistry, default_registry
from .queues import QueueMessage
from .types import (
    CompressionMetrics,
    JobMessage,
    JobStatus,
    Operation,
    output_key,
    recover_job_id,
)

logger = logging.getLogger(__name__)


class WorkerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


@dataclass
class MessageOutcome:
    receipt_handle: Optional[str]
    job_id: Optional[str] = None
    status: Optional[JobStatus] = None
    output_key: Optional[str] = None
    download_url: Optional[str] = None
    metrics: Optional[CompressionMetrics] = None
    error: Optional[Exception] = None
    deleted: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.status == JobStatus.COMPLETED


class QueueWorker:
    def __init__(self, queue, storage, job_store, registry: ProcessorRegistry, poll_interval: float = 5.0):
        self.queue = queue
        self.storage = storage
        self.job_store = job_store
        self.registry = registry
        self.poll_interval = poll_interval
        self.state = WorkerState.IDLE
        self._stop = threading.Event()

    # lifecycle

    def run(self) -> None:
        """Poll until stop() is called. The stop request is seen between poll cycles."""
        if self.state in (WorkerState.RUNNING, WorkerState.STOPPING):
            logger.warning("Worker is already running")
            return
        if self.state == WorkerState.STOPPED:
            self._stop.clear()

        self.state = WorkerState.RUNNING
        logger.info("Worker started (poll_interval=%ss, processors=%s)", self.poll_interval, list(self.registry))
        try:
            while not self._stop.is_set():
                self.run_once()
                if self._stop.wait(self.poll_interval):
                    break
        finally:
            self.state = WorkerState.STOPPED
            logger.info("Worker stopped")

    def stop(self) -> None:
        if self.state == WorkerState.RUNNING:
            self.state = WorkerState.STOPPING
            logger.info("Stopping worker after the current poll cycle")
        self._stop.set()

    def run_once(self) -> list[MessageOutcome]:
        try:
            messages = self.queue.poll_messages()
        except Exception:
            logger.exception("Error polling queue")
            return []
        return [self.handle_message(m) for m in messages]

    # per message

    def handle_message(self, message: QueueMessage) -> MessageOutcome:
        outcome = MessageOutcome(receipt_handle=message.receipt_handle)
        if not message.receipt_handle:
            logger.warning("Skipping message %s without receipt handle", message.message_id)
            outcome.error = MessageParseError("Message has no receipt handle")
            return outcome

        try:
            job = JobMessage.from_json(message.body)
            outcome.job_id = job.job_id
            logger.info("Processing job: %s (%s %s q=%s)", job.job_id, job.operation.value, job.target_format, job.quality)
            self.process_job(job, outcome)
            logger.info("Job completed: %s -> %s", job.job_id, outcome.output_key)
        except JobAlreadyClaimed as e:
            outcome.error = e
            outcome.status = None
            logger.warning("Dropping duplicate delivery of job %s: %s", outcome.job_id, e)
        except Exception as e:
            outcome.error = e
            outcome.status = None
            logger.error(
                "Job %s failed: %s: %s",
                outcome.job_id or "?",
                type(e).__name__,
                e,
                exc_info=not isinstance(e, PipelineError),
            )
            self._mark_failed(message.body, e, outcome)
        finally:
            self._delete(message.receipt_handle, outcome)
        return outcome

    def process_job(self, job: JobMessage, outcome: MessageOutcome) -> None:
        processor = self.registry.select(job)

        try:
            self.job_store.update_status(job.job_id, JobStatus.PROCESSING, 0)
        except InvalidStatusTransition as e:
            raise JobAlreadyClaimed(str(e)) from e

        record = self.job_store.get_record(job.job_id)
        if not record.blob_key:
            raise NotFoundError(f"Job record missing blob key: {job.job_id}")

        original = self.storage.get_file(record.blob_key)
        self.job_store.update_status(job.job_id, JobStatus.PROCESSING, 25)

        result = processor.process(original, job)
        self.job_store.update_status(job.job_id, JobStatus.PROCESSING, 75)

        metrics = None
        if job.operation == Operation.COMPRESS:
            metrics = CompressionMetrics.compute(len(original), len(result.data))
            logger.info(
                "Compression for job %s: %d KB -> %d KB (%s%% saved)",
                job.job_id,
                round(metrics.original_file_size / 1024),
                round(metrics.processed_file_size / 1024),
                metrics.compression_savings,
            )

        key = output_key(job, result.file_extension)
        self.storage.put_file(key, result.data, result.content_type)
        url = self.storage.generate_download_url(key)

        self.job_store.update_status(job.job_id, JobStatus.PROCESSING, 90, url, metrics)
        self.job_store.update_status(job.job_id, JobStatus.COMPLETED, 100, url, metrics)

        outcome.status = JobStatus.COMPLETED
        outcome.output_key = key
        outcome.download_url = url
        outcome.metrics = metrics

    def _mark_failed(self, body, error: Exception, outcome: MessageOutcome) -> None:
        job_id = outcome.job_id or recover_job_id(body)
        if not job_id:
            logger.error("Could not parse message to update status")
            return
        outcome.job_id = job_id
        try:
            self.job_store.update_status(
                job_id, JobStatus.FAILED, 0, error_message=f"{type(error).__name__}: {error}"
            )
            outcome.status = JobStatus.FAILED
        except Exception as e:
            logger.warning("Could not mark job %s failed: %s", job_id, e)

    def _delete(self, receipt_handle: str, outcome: MessageOutcome) -> None:
        try:
            self.queue.delete_message(receipt_handle)
            outcome.deleted = True
        except Exception:
            logger.exception("Could not delete message for job %s", outcome.job_id or "?")


def build_queue():
    backend = settings.QUEUE_BACKEND
    if backend == "sqs":
        from .queues import SqsMessageQueue, resolve_queue_url, sqs_client

        client = sqs_client()
        return SqsMessageQueue(resolve_queue_url(client), client=client, wait_seconds=settings.SQS_WAIT_SECONDS)
    if backend == "database":
        from .queues import DatabaseMessageQueue

        return DatabaseMessageQueue(
            visibility_timeout=settings.DB_QUEUE_VISIBILITY_TIMEOUT,
            wait_seconds=settings.DB_QUEUE_WAIT_SECONDS,
        )
    raise ImproperlyConfigured(f"Unknown QUEUE_BACKEND: {backend}")


def build_storage():
    backend = settings.STORAGE_BACKEND
    if backend == "s3":
        from .storage import S3BlobStorage

        return S3BlobStorage.from_settings()
    if backend == "filesystem":
        from .disk_storage import FileSystemBlobStorage

        return FileSystemBlobStorage()
    raise ImproperlyConfigured(f"Unknown STORAGE_BACKEND: {backend}")


def build_job_store():
    backend = settings.JOB_STORE_BACKEND
    if backend == "django":
        from .job_store import DjangoJobStore

        return DjangoJobStore()
    if backend == "dynamodb":
        from .job_store import DynamoJobStore

        return DynamoJobStore(settings.DDB_TABLE_NAME)
    raise ImproperlyConfigured(f"Unknown JOB_STORE_BACKEND: {backend}")


def build_worker(registry: Optional[ProcessorRegistry] = None) -> QueueWorker:
    return QueueWorker(
        queue=build_queue(),
        storage=build_storage(),
        job_store=build_job_store(),
        registry=registry or default_registry(),
        poll_interval=settings.WORKER_POLL_SECONDS,
    )
