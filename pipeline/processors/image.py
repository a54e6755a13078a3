import io
from dataclasses import dataclass, field
from typing import Optional

from PIL import Image, UnidentifiedImageError

from ..errors import ProcessingError
from ..types import JobMessage, Operation, ProcessingResult, round_half_up
from .base import FileProcessor


@dataclass(frozen=True)
class ImageEncodePlan:
    format: str  # Pillow format name
    content_type: str
    extension: str
    save_args: dict = field(default_factory=dict)
    resize_to: Optional[tuple[int, int]] = None
    palette_colors: Optional[int] = None
    dither: bool = True


class PillowImageBackend:
    def probe(self, data: bytes) -> tuple[str, tuple[int, int]]:
        """Return (lower-case format name, (width, height))."""
        try:
            with Image.open(io.BytesIO(data)) as img:
                return (img.format or "").lower(), img.size
        except (UnidentifiedImageError, OSError) as e:
            raise ProcessingError(f"Unreadable image: {e}") from e

    def encode(self, data: bytes, plan: ImageEncodePlan) -> bytes:
        try:
            with Image.open(io.BytesIO(data)) as src:
                src.load()
                img = src
                if plan.resize_to and plan.resize_to != img.size:
                    img = img.resize(plan.resize_to, Image.Resampling.LANCZOS)
                if plan.palette_colors:
                    img = _quantize(img, plan.palette_colors, plan.dither)
                img = _fit_mode(img, plan.format)
                out = io.BytesIO()
                img.save(out, format=plan.format, **plan.save_args)
                return out.getvalue()
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise ProcessingError(f"Image encoding failed ({plan.format}): {e}") from e


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ("RGBA", "LA", "PA") or "transparency" in img.info


def _quantize(img: Image.Image, colors: int, dither: bool) -> Image.Image:
    dither_mode = Image.Dither.FLOYDSTEINBERG if dither else Image.Dither.NONE
    if _has_alpha(img):
        return img.convert("RGBA").quantize(colors=colors, method=Image.Quantize.FASTOCTREE, dither=dither_mode)
    return img.convert("RGB").quantize(colors=colors, dither=dither_mode)


def _fit_mode(img: Image.Image, fmt: str) -> Image.Image:
    if fmt == "JPEG" and img.mode not in ("RGB", "L", "CMYK"):
        return img.convert("RGB")
    if fmt == "WEBP" and img.mode not in ("RGB", "RGBA"):
        return img.convert("RGBA" if _has_alpha(img) else "RGB")
    if fmt == "PNG" and img.mode == "CMYK":
        return img.convert("RGB")
    if fmt == "BMP" and img.mode not in ("1", "L", "P", "RGB"):
        return img.convert("RGB")
    return img


_CONVERT_TARGETS = {
    "jpg": ("JPEG", "image/jpeg", {"quality": 90}),
    "jpeg": ("JPEG", "image/jpeg", {"quality": 90}),
    "png": ("PNG", "image/png", {}),
    "webp": ("WEBP", "image/webp", {"quality": 90}),
    "gif": ("GIF", "image/gif", {}),
    "tiff": ("TIFF", "image/tiff", {}),
    "tif": ("TIFF", "image/tiff", {}),
    "bmp": ("BMP", "image/bmp", {}),
}


def scaled_size(size: tuple[int, int], quality: int) -> Optional[tuple[int, int]]:
    """Target dimensions for lossy compression, or None to keep the original."""
    if quality >= 70:
        return None
    width, height = size
    if not width or not height:
        return None
    factor = 0.9 if quality >= 50 else 0.8
    new_size = (max(1, int(round_half_up(width * factor))), max(1, int(round_half_up(height * factor))))
    if new_size[0] > width or new_size[1] > height:
        return None
    return new_size


def convert_plan(target_format: str) -> ImageEncodePlan:
    fmt = target_format.lower()
    if fmt not in _CONVERT_TARGETS:
        raise ProcessingError(f"Unsupported target format: {target_format}")
    pil_format, content_type, save_args = _CONVERT_TARGETS[fmt]
    return ImageEncodePlan(pil_format, content_type, fmt, dict(save_args))


def compress_plan(source_format: str, size: tuple[int, int], quality: int) -> ImageEncodePlan:
    """Encoder settings picked from the detected source format."""
    resize_to = scaled_size(size, quality)

    if source_format in ("jpeg", "mpo"):
        return ImageEncodePlan(
            "JPEG", "image/jpeg", "jpg",
            {"quality": quality, "progressive": quality > 60, "optimize": True},
            resize_to=resize_to,
        )
    if source_format == "png":
        # optimize=True would force level 9, so it is left off
        return ImageEncodePlan(
            "PNG", "image/png", "png",
            {"compress_level": 6 if quality > 80 else 9},
            resize_to=resize_to,
            palette_colors=256 if quality < 50 else None,
        )
    if source_format == "webp":
        return ImageEncodePlan(
            "WEBP", "image/webp", "webp",
            {"quality": quality, "method": 4 if quality > 70 else 6, "lossless": False},
            resize_to=resize_to,
        )
    if source_format == "gif":
        if quality < 50:
            colors = 64
        elif quality < 80:
            colors = 128
        else:
            colors = 256
        return ImageEncodePlan(
            "GIF", "image/gif", "gif",
            {"optimize": True},
            resize_to=resize_to,
            palette_colors=colors,
            dither=quality > 60,
        )
    if source_format == "tiff":
        return ImageEncodePlan(
            "JPEG", "image/jpeg", "jpg",
            {"quality": quality, "progressive": True, "optimize": True},
            resize_to=resize_to,
        )
    if source_format == "bmp":
        return ImageEncodePlan(
            "PNG", "image/png", "png",
            {"compress_level": 9},
            resize_to=resize_to,
            palette_colors=256 if quality < 60 else None,
        )
    return ImageEncodePlan(
        "WEBP", "image/webp", "webp",
        {"quality": quality, "method": 6},
        resize_to=resize_to,
    )


class ImageProcessor(FileProcessor):
    supported_operations = ("convert", "compress")
    supported_formats = ("jpg", "jpeg", "png", "webp", "gif", "tiff", "tif", "bmp")

    def __init__(self, backend=None):
        self.backend = backend or PillowImageBackend()

    def plan(self, data: bytes, message: JobMessage) -> ImageEncodePlan:
        if message.operation == Operation.CONVERT:
            return convert_plan(message.target_format or "")
        source_format, size = self.backend.probe(data)
        return compress_plan(source_format, size, message.quality)

    def process(self, data: bytes, message: JobMessage) -> ProcessingResult:
        plan = self.plan(data, message)
        encoded = self.backend.encode(data, plan)
        return ProcessingResult(data=encoded, content_type=plan.content_type, file_extension=plan.extension)
