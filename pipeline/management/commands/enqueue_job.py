import json

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from pipeline.errors import MessageParseError
from pipeline.models import Job
from pipeline.types import JobMessage, Operation
from pipeline.worker import build_queue


class Command(BaseCommand):
    help = "Create a job record for an uploaded blob and enqueue its message (local tooling)."

    def add_arguments(self, parser):
        parser.add_argument("job_id")
        parser.add_argument("blob_key", help="Key of the uploaded source file")
        parser.add_argument("--operation", choices=[o.value for o in Operation], default=Operation.CONVERT.value)
        parser.add_argument("--target-format", default=None)
        parser.add_argument("--quality", type=int, default=None)

    def handle(self, *args, **opts):
        body = {
            "jobId": opts["job_id"],
            "operation": opts["operation"],
            "targetFormat": opts["target_format"],
            "quality": opts["quality"],
            "timestamp": timezone.now().isoformat(),
            "retryCount": 0,
        }
        try:
            message = JobMessage.from_json(json.dumps(body))
        except MessageParseError as e:
            raise CommandError(str(e)) from e

        Job.objects.update_or_create(
            job_id=message.job_id,
            defaults={"status": Job.STATUS_PENDING, "progress": 0, "blob_key": opts["blob_key"]},
        )
        message_id = build_queue().send_message(message.to_json())
        self.stdout.write(self.style.SUCCESS(f"Enqueued job {message.job_id} (message {message_id})"))
