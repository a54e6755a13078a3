"""
Tests for the S3 and filesystem blob stores
"""

import io
import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError
from django.test import SimpleTestCase, override_settings

from pipeline.disk_storage import FileSystemBlobStorage
from pipeline.errors import NotFoundError
from pipeline.storage import S3BlobStorage, aws_client_kwargs


def client_error(code, operation="GetObject"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class S3BlobStorageTest(SimpleTestCase):
    def setUp(self):
        self.client = MagicMock()
        self.storage = S3BlobStorage("bucket", client=self.client)

    def test_get_file(self):
        self.client.get_object.return_value = {"Body": io.BytesIO(b"payload")}
        self.assertEqual(self.storage.get_file("uploads/a.png"), b"payload")
        self.client.get_object.assert_called_once_with(Bucket="bucket", Key="uploads/a.png")

    def test_missing_key(self):
        for code in ("NoSuchKey", "404"):
            with self.subTest(code=code):
                self.client.get_object.side_effect = client_error(code)
                with self.assertRaises(NotFoundError) as ctx:
                    self.storage.get_file("uploads/missing.png")
                self.assertEqual(str(ctx.exception), "File not found: uploads/missing.png")

    def test_missing_body(self):
        self.client.get_object.return_value = {}
        with self.assertRaises(NotFoundError):
            self.storage.get_file("uploads/a.png")

    def test_other_errors_propagate(self):
        self.client.get_object.side_effect = client_error("AccessDenied")
        with self.assertRaises(ClientError):
            self.storage.get_file("uploads/a.png")

    def test_put_file_sets_content_type(self):
        self.storage.put_file("processed/j.webp", b"data", "image/webp")
        self.client.put_object.assert_called_once_with(
            Bucket="bucket", Key="processed/j.webp", Body=b"data", ContentType="image/webp"
        )

    def test_download_url_on_aws(self):
        storage = S3BlobStorage("bucket", client=self.client, region="eu-west-1")
        self.assertEqual(
            storage.generate_download_url("processed/j.webp"),
            "https://bucket.s3.eu-west-1.amazonaws.com/processed/j.webp",
        )

    def test_download_url_with_endpoint(self):
        storage = S3BlobStorage("bucket", client=self.client, endpoint_url="http://localhost:4566/")
        self.assertEqual(
            storage.generate_download_url("processed/j.webp"),
            "http://localhost:4566/bucket/processed/j.webp",
        )

    def test_bucket_required(self):
        with self.assertRaises(ValueError):
            S3BlobStorage("", client=self.client)


class AwsClientKwargsTest(SimpleTestCase):
    @override_settings(AWS_REGION="us-east-2", AWS_ENDPOINT_URL=None, AWS_ACCESS_KEY_ID=None, AWS_SECRET_ACCESS_KEY=None)
    def test_defaults_to_ambient_credentials(self):
        self.assertEqual(aws_client_kwargs(), {"region_name": "us-east-2"})

    @override_settings(
        AWS_REGION="us-east-1",
        AWS_ENDPOINT_URL="http://localstack:4566",
        AWS_ACCESS_KEY_ID="test",
        AWS_SECRET_ACCESS_KEY="test",
    )
    def test_localstack(self):
        self.assertEqual(
            aws_client_kwargs(),
            {
                "region_name": "us-east-1",
                "endpoint_url": "http://localstack:4566",
                "aws_access_key_id": "test",
                "aws_secret_access_key": "test",
            },
        )


class FileSystemBlobStorageTest(SimpleTestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.storage = FileSystemBlobStorage(root=self.root, base_url="https://files.example.com/media")

    def tearDown(self):
        self._tmp.cleanup()

    def test_put_then_get(self):
        self.storage.put_file("processed/j.png", b"png-bytes", "image/png")
        self.assertEqual(self.storage.get_file("processed/j.png"), b"png-bytes")
        self.assertEqual([p.name for p in (self.root / "processed").iterdir()], ["j.png"])

    def test_missing_file(self):
        with self.assertRaises(NotFoundError):
            self.storage.get_file("uploads/nothing.png")

    def test_rejects_keys_outside_root(self):
        with self.assertRaises(ValueError):
            self.storage.put_file("../escape.txt", b"x", "text/plain")

    def test_failed_write_leaves_no_partial_file(self):
        def disk_full(path, data):
            with open(path, "wb") as f:
                f.write(data[:3])
            raise OSError(28, "No space left on device")

        with patch.object(Path, "write_bytes", autospec=True, side_effect=disk_full):
            with self.assertRaises(OSError):
                self.storage.put_file("processed/j.png", b"png-bytes", "image/png")

        self.assertEqual(list((self.root / "processed").iterdir()), [])

    def test_failed_rename_leaves_no_partial_file(self):
        with patch.object(Path, "replace", autospec=True, side_effect=PermissionError("read-only")):
            with self.assertRaises(PermissionError):
                self.storage.put_file("processed/j.png", b"png-bytes", "image/png")

        self.assertEqual(list((self.root / "processed").iterdir()), [])

    def test_download_url(self):
        self.assertEqual(
            self.storage.generate_download_url("processed/j.png"),
            "https://files.example.com/media/processed/j.png",
        )

    @override_settings(PUBLIC_BASE_URL="http://localhost:8000/", MEDIA_URL="/media/")
    def test_default_base_url(self):
        storage = FileSystemBlobStorage(root=self.root)
        self.assertEqual(storage.generate_download_url("processed/j.png"), "http://localhost:8000/media/processed/j.png")
