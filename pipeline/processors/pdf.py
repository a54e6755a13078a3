import io
from dataclasses import dataclass
from typing import Optional

import pikepdf

from ..errors import ProcessingError
from ..types import JobMessage, Operation, ProcessingResult
from .base import FileProcessor

PRODUCER = "Cloud Tools Compressor"

_STRIPPED_KEYS = ("/Title", "/Author", "/Subject", "/Keywords", "/Creator")


@dataclass(frozen=True)
class PdfCompressPlan:
    strip_metadata: bool
    use_object_streams: bool


class PikePdfBackend:
    def compress(self, data: bytes, plan: PdfCompressPlan) -> bytes:
        try:
            with pikepdf.open(io.BytesIO(data)) as pdf:
                if plan.strip_metadata:
                    for key in _STRIPPED_KEYS:
                        pdf.docinfo[key] = ""
                    pdf.docinfo["/Producer"] = PRODUCER
                mode = pikepdf.ObjectStreamMode.generate if plan.use_object_streams else pikepdf.ObjectStreamMode.preserve
                out = io.BytesIO()
                pdf.save(out, object_stream_mode=mode, compress_streams=True)
                return out.getvalue()
        except pikepdf.PdfError as e:
            raise ProcessingError(f"PDF compression failed: {e}") from e


class PdfCompressor(FileProcessor):
    """Structural PDF compression. Embedded images are not re-encoded."""

    supported_operations = ("compress",)

    def __init__(self, backend=None):
        self.backend = backend or PikePdfBackend()

    def can_process(self, operation: str, fmt: Optional[str] = None) -> bool:
        return operation in self.supported_operations

    @staticmethod
    def plan(quality: int) -> PdfCompressPlan:
        return PdfCompressPlan(strip_metadata=quality < 90, use_object_streams=quality > 50)

    def process(self, data: bytes, message: JobMessage) -> ProcessingResult:
        if message.operation != Operation.COMPRESS:
            raise ProcessingError(f"Unsupported operation for PDF: {message.operation.value}")
        compressed = self.backend.compress(data, self.plan(message.quality))
        return ProcessingResult(data=compressed, content_type="application/pdf", file_extension="pdf")
