import logging

import boto3
from botocore.exceptions import ClientError
from django.conf import settings

from .errors import NotFoundError

logger = logging.getLogger(__name__)

_MISSING_CODES = ("NoSuchKey", "404", "NotFound")


def aws_client_kwargs() -> dict:
    kwargs = {"region_name": settings.AWS_REGION}
    if settings.AWS_ENDPOINT_URL:
        kwargs["endpoint_url"] = settings.AWS_ENDPOINT_URL
    if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
        kwargs["aws_access_key_id"] = settings.AWS_ACCESS_KEY_ID
        kwargs["aws_secret_access_key"] = settings.AWS_SECRET_ACCESS_KEY
    return kwargs


def s3_client():
    kwargs = aws_client_kwargs()
    if settings.AWS_ENDPOINT_URL:
        # LocalStack needs path-style addressing
        from botocore.config import Config

        kwargs["config"] = Config(s3={"addressing_style": "path"})
    return boto3.client("s3", **kwargs)


def bucket_name() -> str:
    return settings.S3_BUCKET_NAME or ""


class S3BlobStorage:
    """Blob storage on S3 or an S3-compatible endpoint."""

    def __init__(self, bucket: str, client=None, endpoint_url: str | None = None, region: str = "us-east-1"):
        if not bucket:
            raise ValueError("S3 bucket name is required")
        self.bucket = bucket
        self.client = client or s3_client()
        self.endpoint_url = (endpoint_url or "").rstrip("/")
        self.region = region

    def get_file(self, key: str) -> bytes:
        logger.debug("s3 get bucket=%s key=%s", self.bucket, key)
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                raise NotFoundError(f"File not found: {key}") from e
            raise
        body = obj.get("Body")
        if body is None:
            raise NotFoundError(f"File not found: {key}")
        return body.read()

    def put_file(self, key: str, data: bytes, content_type: str) -> None:
        logger.debug("s3 put bucket=%s key=%s bytes=%d", self.bucket, key, len(data))
        self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)

    def generate_download_url(self, key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    @classmethod
    def from_settings(cls):
        return cls(
            bucket_name(),
            endpoint_url=settings.AWS_ENDPOINT_URL,
            region=settings.AWS_REGION,
        )
