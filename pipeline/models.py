import uuid
from django.db import models

from .types import JobStatus


class Job(models.Model):
    STATUS_PENDING = JobStatus.PENDING.value
    STATUS_PROCESSING = JobStatus.PROCESSING.value
    STATUS_COMPLETED = JobStatus.COMPLETED.value
    STATUS_FAILED = JobStatus.FAILED.value

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_PROCESSING, "Processing"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_FAILED, "Failed"),
    ]

    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED)

    # Job ids are minted by the upload step, not by us.
    job_id = models.CharField(max_length=128, primary_key=True)

    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    progress = models.PositiveIntegerField(default=0)  # 0..100

    blob_key = models.CharField(max_length=512, blank=True, default="")
    file_name = models.CharField(max_length=255, blank=True, default="")
    file_size = models.BigIntegerField(default=0)

    download_url = models.CharField(max_length=1024, blank=True, default="")
    original_file_size = models.BigIntegerField(null=True, blank=True)
    processed_file_size = models.BigIntegerField(null=True, blank=True)
    compression_savings = models.FloatField(null=True, blank=True)  # percent, 0..100

    error_message = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"{self.job_id} {self.status} {self.progress}%"


class QueuedMessage(models.Model):
    """Row-per-message queue used when QUEUE_BACKEND=database."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    body = models.TextField()

    # Rotated on every receive, like an SQS receipt handle.
    receipt_handle = models.CharField(max_length=64, blank=True, default="", db_index=True)
    visible_at = models.DateTimeField(db_index=True)
    receive_count = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    def __str__(self):
        return f"{self.id} received={self.receive_count}"
