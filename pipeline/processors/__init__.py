from .audio import AudioConverter
from .base import FileProcessor
from .ebook import EbookConverter
from .image import ImageProcessor
from .pdf import PdfCompressor
from .registry import ProcessorRegistry
from .video import VideoConverter

__all__ = [
    "AudioConverter",
    "EbookConverter",
    "FileProcessor",
    "ImageProcessor",
    "PdfCompressor",
    "ProcessorRegistry",
    "VideoConverter",
    "default_registry",
]


def default_registry() -> ProcessorRegistry:
    """Fresh registry in dispatch order.

    Order matters: a compress message without targetFormat goes to the image
    processor; PDF compression requests must name "pdf".
    """
    return ProcessorRegistry(
        [
            ImageProcessor(),
            PdfCompressor(),
            VideoConverter(),
            AudioConverter(),
            EbookConverter(),
        ]
    )
