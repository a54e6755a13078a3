"""
Tests for pipeline/queues.py
"""

from datetime import timedelta
from unittest.mock import MagicMock

from botocore.exceptions import ClientError
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone

from pipeline.models import QueuedMessage
from pipeline.queues import DatabaseMessageQueue, QueueMessage, SqsMessageQueue, resolve_queue_url

QUEUE_URL = "https://sqs.us-east-1.amazonaws.com/123456789012/jobs"


class SqsMessageQueueTest(SimpleTestCase):
    def setUp(self):
        self.client = MagicMock()
        self.queue = SqsMessageQueue(QUEUE_URL, client=self.client, wait_seconds=20)

    def test_poll_long_polls_for_one_message(self):
        self.client.receive_message.return_value = {
            "Messages": [{"MessageId": "m1", "ReceiptHandle": "r1", "Body": '{"jobId": "j"}'}]
        }
        messages = self.queue.poll_messages()

        self.assertEqual(messages, [QueueMessage(message_id="m1", receipt_handle="r1", body='{"jobId": "j"}')])
        self.client.receive_message.assert_called_once_with(
            QueueUrl=QUEUE_URL,
            MaxNumberOfMessages=1,
            WaitTimeSeconds=20,
            MessageAttributeNames=["All"],
        )

    def test_poll_empty(self):
        self.client.receive_message.return_value = {}
        self.assertEqual(self.queue.poll_messages(), [])

    def test_message_without_receipt(self):
        self.client.receive_message.return_value = {"Messages": [{"MessageId": "m1", "Body": "{}"}]}
        self.assertIsNone(self.queue.poll_messages()[0].receipt_handle)

    def test_delete(self):
        self.queue.delete_message("r1")
        self.client.delete_message.assert_called_once_with(QueueUrl=QUEUE_URL, ReceiptHandle="r1")

    def test_delete_already_gone(self):
        self.client.delete_message.side_effect = ClientError(
            {"Error": {"Code": "ReceiptHandleIsInvalid", "Message": "gone"}}, "DeleteMessage"
        )
        self.queue.delete_message("r1")

    def test_delete_other_errors_propagate(self):
        self.client.delete_message.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "no"}}, "DeleteMessage"
        )
        with self.assertRaises(ClientError):
            self.queue.delete_message("r1")

    def test_send(self):
        self.client.send_message.return_value = {"MessageId": "m9"}
        self.assertEqual(self.queue.send_message("{}"), "m9")


class ResolveQueueUrlTest(SimpleTestCase):
    @override_settings(SQS_QUEUE_URL=QUEUE_URL)
    def test_explicit_url(self):
        self.assertEqual(resolve_queue_url(MagicMock()), QUEUE_URL)

    @override_settings(SQS_QUEUE_URL=None, AWS_ENDPOINT_URL="http://localhost:4566/", SQS_QUEUE_NAME="jobs")
    def test_localstack_url(self):
        self.assertEqual(resolve_queue_url(MagicMock()), "http://localhost:4566/000000000000/jobs")

    @override_settings(SQS_QUEUE_URL=None, AWS_ENDPOINT_URL=None, SQS_QUEUE_NAME="jobs")
    def test_looks_up_url(self):
        client = MagicMock()
        client.get_queue_url.return_value = {"QueueUrl": QUEUE_URL}
        self.assertEqual(resolve_queue_url(client), QUEUE_URL)
        client.get_queue_url.assert_called_once_with(QueueName="jobs")


class DatabaseMessageQueueTest(TestCase):
    def setUp(self):
        self.queue = DatabaseMessageQueue(visibility_timeout=300, wait_seconds=0)

    def test_send_and_receive(self):
        message_id = self.queue.send_message('{"jobId": "j1"}')
        messages = self.queue.poll_messages()

        self.assertEqual(len(messages), 1)
        self.assertEqual(messages[0].message_id, message_id)
        self.assertEqual(messages[0].body, '{"jobId": "j1"}')
        self.assertTrue(messages[0].receipt_handle)

    def test_empty(self):
        self.assertEqual(self.queue.poll_messages(), [])

    def test_oldest_first(self):
        self.queue.send_message("first")
        second_id = self.queue.send_message("second")
        QueuedMessage.objects.filter(id=second_id).update(created_at=timezone.now() + timedelta(seconds=1))
        self.assertEqual(self.queue.poll_messages()[0].body, "first")
        self.assertEqual(self.queue.poll_messages()[0].body, "second")

    def test_received_message_is_hidden(self):
        self.queue.send_message("body")
        self.assertEqual(len(self.queue.poll_messages()), 1)
        self.assertEqual(self.queue.poll_messages(), [])

    def test_redelivered_after_visibility_timeout(self):
        self.queue.send_message("body")
        first = self.queue.poll_messages()[0]
        QueuedMessage.objects.update(visible_at=timezone.now() - timedelta(seconds=1))

        second = self.queue.poll_messages()[0]
        self.assertEqual(second.message_id, first.message_id)
        self.assertNotEqual(second.receipt_handle, first.receipt_handle)
        self.assertEqual(QueuedMessage.objects.get().receive_count, 2)

        # the first receipt is stale now
        self.queue.delete_message(first.receipt_handle)
        self.assertEqual(QueuedMessage.objects.count(), 1)

    def test_delete_is_idempotent(self):
        self.queue.send_message("body")
        received = self.queue.poll_messages()[0]
        self.queue.delete_message(received.receipt_handle)
        self.queue.delete_message(received.receipt_handle)
        self.assertEqual(QueuedMessage.objects.count(), 0)

    def test_empty_receipt_deletes_nothing(self):
        self.queue.send_message("never received")
        self.queue.delete_message("")
        self.assertEqual(QueuedMessage.objects.count(), 1)
