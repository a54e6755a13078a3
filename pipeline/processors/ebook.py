import logging
import os
import re
import shutil
import subprocess
import tempfile

from django.conf import settings

from ..errors import ProcessingError
from ..types import JobMessage, Operation, ProcessingResult
from .base import FileProcessor

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "epub": "application/epub+zip",
    "mobi": "application/x-mobipocket-ebook",
    "azw3": "application/vnd.amazon.ebook",
    "pdf": "application/pdf",
    "txt": "text/plain",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "rtf": "application/rtf",
}

CONVERT_TIMEOUT_SECONDS = 300

_TAG_RE = re.compile(r"<[^>]*>")
_ENTITIES = (("&nbsp;", " "), ("&amp;", "&"), ("&lt;", "<"), ("&gt;", ">"))


class ConverterUnavailable(ProcessingError):
    pass


def ebook_convert_bin() -> str:
    return getattr(settings, "EBOOK_CONVERT_BIN", "") or "ebook-convert"


def ebook_options(fmt: str, quality: int) -> list[str]:
    fmt = fmt.lower()
    options = []
    if fmt == "epub":
        options.append("--epub-version=3")
        if quality > 70:
            options += ["--preserve-cover-aspect-ratio", "--epub-flatten"]
    elif fmt in ("mobi", "azw3"):
        if quality < 50:
            options.append("--mobi-file-type=old")
        options.append("--mobi-toc-at-start")
    elif fmt == "pdf":
        options.append("--pdf-engine=reportlab")
        if quality > 60:
            options += ["--pdf-serif-family=Times", "--pdf-sans-family=Helvetica"]
    return options


def sniff_extension(data: bytes) -> str:
    """Guess the source eBook format from magic bytes."""
    if data.startswith(b"%PDF"):
        return "pdf"
    if data.startswith(b"{\\rtf"):
        return "rtf"
    if data.startswith(b"PK\x03\x04"):
        # EPUB stores an uncompressed "mimetype" entry first
        return "epub" if b"application/epub+zip" in data[:100] else "docx"
    if data[60:68] in (b"BOOKMOBI", b"TEXtREAd"):
        return "mobi"
    if data.lstrip()[:1] == b"<":
        return "html"
    return "txt"


def strip_markup(data: bytes) -> bytes:
    text = _TAG_RE.sub("", data.decode("utf-8", errors="replace"))
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    return text.encode("utf-8")


class CalibreBackend:
    def __init__(self, binary: str | None = None, timeout: float = CONVERT_TIMEOUT_SECONDS):
        self.binary = binary
        self.timeout = timeout

    def available(self) -> bool:
        return shutil.which(self.binary or ebook_convert_bin()) is not None

    def convert(self, data: bytes, fmt: str, options: list[str]) -> bytes:
        binary = self.binary or ebook_convert_bin()
        with tempfile.TemporaryDirectory(prefix="cloudtools-ebook-") as td:
            # ebook-convert picks its input plugin from the extension
            in_path = os.path.join(td, f"input.{sniff_extension(data)}")
            out_path = os.path.join(td, f"output.{fmt}")
            with open(in_path, "wb") as f:
                f.write(data)

            cmd = [binary, in_path, out_path] + options
            try:
                p = subprocess.run(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    encoding="utf-8",
                    errors="replace",
                    timeout=self.timeout,
                )
            except FileNotFoundError as e:
                raise ConverterUnavailable(f"ebook-convert not found ({binary})") from e
            except subprocess.TimeoutExpired as e:
                raise ProcessingError(f"Calibre conversion timed out after {self.timeout}s") from e

            if p.returncode != 0:
                tail = " | ".join((p.stdout or "").strip().splitlines()[-5:])
                raise ProcessingError(f"Calibre conversion failed rc={p.returncode}: {tail}")
            if not os.path.exists(out_path):
                raise ProcessingError("Calibre produced no output")
            with open(out_path, "rb") as f:
                return f.read()


class EbookConverter(FileProcessor):
    supported_operations = ("convert",)
    supported_formats = tuple(CONTENT_TYPES)

    def __init__(self, backend=None):
        self.backend = backend or CalibreBackend()

    def process(self, data: bytes, message: JobMessage) -> ProcessingResult:
        if message.operation != Operation.CONVERT:
            raise ProcessingError(f"Unsupported operation for eBook: {message.operation.value}")
        if not message.target_format:
            raise ProcessingError("Target format is required for eBook conversion")

        fmt = message.target_format.lower()
        content_type = CONTENT_TYPES.get(fmt, "application/octet-stream")
        try:
            if not self.backend.available():
                raise ConverterUnavailable("ebook-convert is not installed")
            converted = self.backend.convert(data, fmt, ebook_options(fmt, message.quality))
        except ConverterUnavailable as e:
            logger.warning("job %s: %s, using basic %s fallback", message.job_id, e, fmt)
            return self.fallback(data, fmt)
        return ProcessingResult(data=converted, content_type=content_type, file_extension=fmt)

    @staticmethod
    def fallback(data: bytes, fmt: str) -> ProcessingResult:
        if fmt == "txt":
            return ProcessingResult(data=strip_markup(data), content_type=CONTENT_TYPES["txt"], file_extension="txt")
        # Not a conversion: original bytes under the target's content type.
        return ProcessingResult(
            data=data,
            content_type=CONTENT_TYPES.get(fmt, "application/octet-stream"),
            file_extension=fmt,
        )
