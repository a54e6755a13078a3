"""Job message, job record and result types shared by the worker and its backends."""

import json
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from .errors import MessageParseError

DEFAULT_QUALITY = 80


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class Operation(str, Enum):
    CONVERT = "convert"
    COMPRESS = "compress"


def round_half_up(value: float, digits: int = 0) -> float:
    # round() is banker's rounding; bitrates and percentages round .5 up.
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


@dataclass(frozen=True)
class JobMessage:
    job_id: str
    operation: Operation
    target_format: Optional[str] = None
    quality: int = DEFAULT_QUALITY
    options: dict = field(default_factory=dict)
    timestamp: Optional[str] = None
    retry_count: int = 0

    @classmethod
    def from_json(cls, body) -> "JobMessage":
        try:
            data = json.loads(body)
        except (TypeError, ValueError) as e:
            raise MessageParseError(f"Invalid message body: {e}") from e
        if not isinstance(data, dict):
            raise MessageParseError("Message body must be a JSON object")

        job_id = data.get("jobId")
        if not job_id or not isinstance(job_id, str):
            raise MessageParseError("Message is missing jobId")

        try:
            operation = Operation(data.get("operation"))
        except ValueError:
            raise MessageParseError(f"Invalid operation: {data.get('operation')!r}") from None

        target_format = data.get("targetFormat") or None
        if target_format is not None:
            target_format = str(target_format).strip().lower() or None
        if operation == Operation.CONVERT and not target_format:
            raise MessageParseError(f"targetFormat is required for convert jobs: {job_id}")

        quality = data.get("quality")
        if quality is None:
            quality = DEFAULT_QUALITY
        elif (
            isinstance(quality, bool)
            or not isinstance(quality, (int, float))
            or (isinstance(quality, float) and not quality.is_integer())
            or not 0 <= quality <= 100
        ):
            raise MessageParseError(f"Invalid quality: {quality!r}")

        options = data.get("options") or {}
        if not isinstance(options, dict):
            raise MessageParseError("options must be an object")

        try:
            retry_count = int(data.get("retryCount") or 0)
        except (TypeError, ValueError):
            raise MessageParseError(f"Invalid retryCount: {data.get('retryCount')!r}") from None

        return cls(
            job_id=job_id,
            operation=operation,
            target_format=target_format,
            quality=int(quality),
            options=options,
            timestamp=data.get("timestamp"),
            retry_count=retry_count,
        )

    def to_json(self) -> str:
        body = {
            "jobId": self.job_id,
            "operation": self.operation.value,
            "quality": self.quality,
            "options": self.options,
            "timestamp": self.timestamp,
            "retryCount": self.retry_count,
        }
        if self.target_format:
            body["targetFormat"] = self.target_format
        return json.dumps(body)


def recover_job_id(body) -> Optional[str]:
    """Best-effort jobId lookup for payloads that failed full parsing."""
    try:
        data = json.loads(body)
    except (TypeError, ValueError):
        return None
    if isinstance(data, dict) and isinstance(data.get("jobId"), str) and data["jobId"]:
        return data["jobId"]
    return None


@dataclass
class JobRecord:
    job_id: str
    status: JobStatus
    blob_key: str = ""
    file_name: str = ""
    file_size: int = 0
    progress: int = 0
    download_url: Optional[str] = None
    original_file_size: Optional[int] = None
    processed_file_size: Optional[int] = None
    compression_savings: Optional[float] = None
    error_message: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


@dataclass(frozen=True)
class ProcessingResult:
    data: bytes
    content_type: str
    file_extension: str


@dataclass(frozen=True)
class CompressionMetrics:
    original_file_size: int
    processed_file_size: int
    compression_savings: float

    @classmethod
    def compute(cls, original_size: int, processed_size: int) -> "CompressionMetrics":
        if original_size > 0:
            pct = (original_size - processed_size) / original_size * 100
        else:
            pct = 0.0
        return cls(
            original_file_size=original_size,
            processed_file_size=processed_size,
            compression_savings=max(0.0, round_half_up(pct, 2)),
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "originalFileSize": self.original_file_size,
            "processedFileSize": self.processed_file_size,
            "compressionSavings": self.compression_savings,
        }


def output_key(message: JobMessage, file_extension: str) -> str:
    if message.operation == Operation.COMPRESS:
        return f"processed/{message.job_id}_compressed.{file_extension}"
    return f"processed/{message.job_id}.{file_extension}"
