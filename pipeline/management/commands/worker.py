import shutil
import signal

from django.conf import settings
from django.core.management.base import BaseCommand

from pipeline.processors.ebook import ebook_convert_bin
from pipeline.processors.ffmpeg import ffmpeg_bin
from pipeline.worker import build_worker


class Command(BaseCommand):
    help = "Run the file processing worker (polls the job queue)."

    def add_arguments(self, parser):
        parser.add_argument("--once", action="store_true", help="Run a single poll cycle and exit")

    def handle(self, *args, **opts):
        if shutil.which(ffmpeg_bin()) is None:
            self.stderr.write(self.style.ERROR(f"ffmpeg not found (FFMPEG_BIN={ffmpeg_bin()})"))
            self.stderr.write("Video and audio conversions will fail until ffmpeg is installed.")
        if shutil.which(ebook_convert_bin()) is None:
            self.stderr.write(self.style.WARNING(f"ebook-convert not found (EBOOK_CONVERT_BIN={ebook_convert_bin()})"))
            self.stderr.write("eBook conversions will use the basic fallback.")

        worker = build_worker()

        if opts["once"]:
            outcomes = worker.run_once()
            ok = sum(1 for o in outcomes if o.ok)
            self.stdout.write(self.style.SUCCESS(f"Handled {len(outcomes)} message(s), {ok} completed"))
            return

        def _stop(signum, frame):
            self.stdout.write(f"Received signal {signum}, stopping after the current job")
            worker.stop()

        signal.signal(signal.SIGINT, _stop)
        signal.signal(signal.SIGTERM, _stop)

        self.stdout.write(
            self.style.SUCCESS(
                f"Worker started (queue={settings.QUEUE_BACKEND}, storage={settings.STORAGE_BACKEND}, "
                f"jobs={settings.JOB_STORE_BACKEND})"
            )
        )
        worker.run()
        self.stdout.write(self.style.SUCCESS("Worker stopped"))
