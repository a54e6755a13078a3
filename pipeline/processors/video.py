from ..errors import ProcessingError
from ..types import JobMessage, Operation, ProcessingResult, round_half_up
from .base import FileProcessor
from .ffmpeg import FFmpegBackend

CONTENT_TYPES = {
    "mp4": "video/mp4",
    "webm": "video/webm",
    "mov": "video/quicktime",
    "avi": "video/x-msvideo",
    "mkv": "video/x-matroska",
    "flv": "video/x-flv",
    "wmv": "video/x-ms-wmv",
}


def video_bitrate_kbps(quality: int) -> int:
    # Linear 1-8 Mbps
    return int(round_half_up(1000 + (quality / 100) * 7000))


def audio_bitrate(quality: int) -> str:
    return "128k" if quality > 50 else "96k"


def h264_crf(quality: int) -> int:
    return int(round_half_up(51 - (quality / 100) * 28))


def video_args(fmt: str, quality: int) -> list[str]:
    fmt = fmt.lower()
    rates = ["-b:v", f"{video_bitrate_kbps(quality)}k", "-b:a", audio_bitrate(quality)]

    if fmt == "mp4":
        return ["-c:v", "libx264", "-c:a", "aac"] + rates + ["-preset", "medium", "-crf", str(h264_crf(quality))]
    if fmt == "webm":
        return ["-c:v", "libvpx-vp9", "-c:a", "libopus"] + rates + ["-deadline", "good", "-cpu-used", "1"]
    if fmt == "mov":
        return ["-c:v", "libx264", "-c:a", "aac"] + rates + ["-preset", "medium"]
    if fmt == "avi":
        return ["-c:v", "libx264", "-c:a", "libmp3lame"] + rates
    # mkv/flv/wmv: container defaults
    return rates


class VideoConverter(FileProcessor):
    supported_operations = ("convert",)
    supported_formats = tuple(CONTENT_TYPES)

    def __init__(self, backend=None):
        self.backend = backend or FFmpegBackend()

    def process(self, data: bytes, message: JobMessage) -> ProcessingResult:
        if message.operation != Operation.CONVERT:
            raise ProcessingError(f"Unsupported operation for video: {message.operation.value}")
        if not message.target_format:
            raise ProcessingError("Target format is required for video conversion")

        fmt = message.target_format.lower()
        converted = self.backend.transcode(data, fmt, video_args(fmt, message.quality))
        return ProcessingResult(
            data=converted,
            content_type=CONTENT_TYPES.get(fmt, "video/mp4"),
            file_extension=fmt,
        )
