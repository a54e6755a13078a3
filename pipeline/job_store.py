"""Job record persistence.

Both stores enforce the same transition rules at write time:
terminal records (completed/failed) are never updated again, a job is
never moved back to pending, and progress never decreases while a job is
processing. A rejected write raises InvalidStatusTransition.
"""

import logging
from decimal import Decimal
from typing import Optional

import boto3
from botocore.exceptions import ClientError
from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from .errors import InvalidStatusTransition, NotFoundError
from .models import Job
from .storage import aws_client_kwargs
from .types import CompressionMetrics, JobRecord, JobStatus

logger = logging.getLogger(__name__)


def _check_requested(job_id: str, status: JobStatus, progress: Optional[int]) -> None:
    if status == JobStatus.PENDING:
        raise InvalidStatusTransition(f"Cannot move job {job_id} back to pending")
    if progress is not None and not 0 <= progress <= 100:
        raise ValueError(f"progress out of range: {progress}")


class DjangoJobStore:
    def get_record(self, job_id: str) -> JobRecord:
        j = Job.objects.filter(job_id=job_id).first()
        if not j:
            raise NotFoundError(f"Job record not found: {job_id}")
        return JobRecord(
            job_id=j.job_id,
            status=JobStatus(j.status),
            blob_key=j.blob_key,
            file_name=j.file_name,
            file_size=j.file_size,
            progress=j.progress,
            download_url=j.download_url or None,
            original_file_size=j.original_file_size,
            processed_file_size=j.processed_file_size,
            compression_savings=j.compression_savings,
            error_message=j.error_message,
            created_at=j.created_at,
            updated_at=j.updated_at,
            completed_at=j.completed_at,
        )

    def update_status(
        self,
        job_id: str,
        status: JobStatus,
        progress: Optional[int] = None,
        download_url: Optional[str] = None,
        metrics: Optional[CompressionMetrics] = None,
        error_message: Optional[str] = None,
    ) -> None:
        status = JobStatus(status)
        _check_requested(job_id, status, progress)

        now = timezone.now()
        fields = {"status": status.value, "updated_at": now}
        if progress is not None:
            fields["progress"] = progress
        if download_url:
            fields["download_url"] = download_url
        if metrics:
            fields["original_file_size"] = metrics.original_file_size
            fields["processed_file_size"] = metrics.processed_file_size
            fields["compression_savings"] = metrics.compression_savings
        if error_message is not None:
            fields["error_message"] = error_message
        if status == JobStatus.COMPLETED:
            fields["completed_at"] = now

        # Guarded single UPDATE so concurrent workers cannot regress a job.
        qs = Job.objects.filter(job_id=job_id).exclude(status__in=Job.TERMINAL_STATUSES)
        if status == JobStatus.PROCESSING and progress is not None:
            qs = qs.exclude(status=Job.STATUS_PROCESSING, progress__gt=progress)

        with transaction.atomic():
            updated = qs.update(**fields)

        if updated:
            return
        current = Job.objects.filter(job_id=job_id).values_list("status", "progress").first()
        if current is None:
            raise NotFoundError(f"Job record not found: {job_id}")
        raise InvalidStatusTransition(
            f"Rejected {current[0]}({current[1]}) -> {status.value}({progress}) for job {job_id}"
        )


def _to_int(value) -> Optional[int]:
    return int(value) if value is not None else None


def _to_float(value) -> Optional[float]:
    return float(value) if value is not None else None


def _to_datetime(value):
    return parse_datetime(value) if isinstance(value, str) else None


class DynamoJobStore:
    """Job records in a DynamoDB table keyed by jobId.

    The upload step writes the source key as s3Key; blobKey is accepted too.
    """

    def __init__(self, table_name: str, table=None):
        self.table_name = table_name
        self.table = table or boto3.resource("dynamodb", **aws_client_kwargs()).Table(table_name)

    def get_record(self, job_id: str) -> JobRecord:
        item = self.table.get_item(Key={"jobId": job_id}).get("Item")
        if not item:
            raise NotFoundError(f"Job record not found: {job_id}")
        return JobRecord(
            job_id=item["jobId"],
            status=JobStatus(item.get("status", JobStatus.PENDING.value)),
            blob_key=item.get("blobKey") or item.get("s3Key") or "",
            file_name=item.get("fileName", ""),
            file_size=_to_int(item.get("fileSize")) or 0,
            progress=_to_int(item.get("progress")) or 0,
            download_url=item.get("downloadUrl"),
            original_file_size=_to_int(item.get("originalFileSize")),
            processed_file_size=_to_int(item.get("processedFileSize")),
            compression_savings=_to_float(item.get("compressionSavings")),
            error_message=item.get("errorMessage", ""),
            created_at=_to_datetime(item.get("createdAt")),
            updated_at=_to_datetime(item.get("updatedAt")),
            completed_at=_to_datetime(item.get("completedAt")),
        )

    def update_status(
        self,
        job_id: str,
        status: JobStatus,
        progress: Optional[int] = None,
        download_url: Optional[str] = None,
        metrics: Optional[CompressionMetrics] = None,
        error_message: Optional[str] = None,
    ) -> None:
        status = JobStatus(status)
        _check_requested(job_id, status, progress)

        now = timezone.now().isoformat()
        names = {"#jobId": "jobId", "#status": "status", "#updatedAt": "updatedAt"}
        values = {
            ":status": status.value,
            ":updatedAt": now,
            ":completed": JobStatus.COMPLETED.value,
            ":failed": JobStatus.FAILED.value,
        }
        sets = ["#status = :status", "#updatedAt = :updatedAt"]

        def put(attr, value):
            names[f"#{attr}"] = attr
            values[f":{attr}"] = value
            sets.append(f"#{attr} = :{attr}")

        if progress is not None:
            put("progress", progress)
        if download_url:
            put("downloadUrl", download_url)
        if metrics:
            put("originalFileSize", metrics.original_file_size)
            put("processedFileSize", metrics.processed_file_size)
            # boto3 rejects float; Decimal(str()) keeps the 2-place rounding
            put("compressionSavings", Decimal(str(metrics.compression_savings)))
        if error_message is not None:
            put("errorMessage", error_message)
        if status == JobStatus.COMPLETED:
            put("completedAt", now)

        condition = "attribute_exists(#jobId) AND NOT (#status IN (:completed, :failed))"
        if status == JobStatus.PROCESSING and progress is not None:
            values[":processing"] = JobStatus.PROCESSING.value
            condition += (
                " AND (#status <> :processing OR attribute_not_exists(#progress) OR #progress <= :progress)"
            )

        try:
            self.table.update_item(
                Key={"jobId": job_id},
                UpdateExpression="SET " + ", ".join(sets),
                ConditionExpression=condition,
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") != "ConditionalCheckFailedException":
                raise
            current = self.get_record(job_id)
            raise InvalidStatusTransition(
                f"Rejected {current.status.value}({current.progress}) -> {status.value}({progress}) for job {job_id}"
            ) from e
