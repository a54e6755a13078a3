import logging
import os
import subprocess
import tempfile

from django.conf import settings

from ..errors import ProcessingError

logger = logging.getLogger(__name__)


def ffmpeg_bin() -> str:
    return getattr(settings, "FFMPEG_BIN", "") or "ffmpeg"


def _tail(output: str, lines: int = 5) -> str:
    return " | ".join((output or "").strip().splitlines()[-lines:])


class FFmpegBackend:
    """Runs one ffmpeg transcode through a scratch directory.

    The directory is removed on every exit path, including failures.
    """

    def __init__(self, binary: str | None = None):
        self.binary = binary

    def transcode(self, data: bytes, output_ext: str, args: list[str]) -> bytes:
        binary = self.binary or ffmpeg_bin()
        with tempfile.TemporaryDirectory(prefix="cloudtools-ffmpeg-") as td:
            in_path = os.path.join(td, "input.tmp")
            out_path = os.path.join(td, f"output.{output_ext}")
            with open(in_path, "wb") as f:
                f.write(data)

            cmd = [binary, "-y", "-hide_banner", "-nostats", "-i", in_path] + args + [out_path]
            logger.debug("running %s", " ".join(cmd))
            try:
                p = subprocess.run(
                    cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, encoding="utf-8", errors="replace"
                )
            except OSError as e:
                raise ProcessingError(f"ffmpeg not runnable (FFMPEG_BIN={binary}): {e}") from e

            if p.returncode != 0:
                raise ProcessingError(f"ffmpeg_failed rc={p.returncode}: {_tail(p.stdout)}")
            if not os.path.exists(out_path):
                raise ProcessingError("ffmpeg produced no output")
            with open(out_path, "rb") as f:
                return f.read()
