from ..errors import ProcessingError
from ..types import JobMessage, Operation, ProcessingResult, round_half_up
from .base import FileProcessor
from .ffmpeg import FFmpegBackend

CONTENT_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "flac": "audio/flac",
    "ogg": "audio/ogg",
    "aac": "audio/aac",
    "m4a": "audio/mp4",
    "wma": "audio/x-ms-wma",
}

# kbps at quality 100
BITRATE_CEILINGS = {
    "mp3": 320,
    "aac": 256,
    "ogg": 500,
    "flac": 1411,
    "wav": 1411,
    "m4a": 256,
    "wma": 320,
}


def audio_bitrate(fmt: str, quality: int) -> str:
    ceiling = BITRATE_CEILINGS.get(fmt.lower(), 320)
    return f"{int(round_half_up((quality / 100) * ceiling))}k"


def flac_compression_level(quality: int) -> int:
    return int(round_half_up((100 - quality) / 100 * 12))


def audio_args(fmt: str, quality: int) -> list[str]:
    fmt = fmt.lower()
    bitrate = audio_bitrate(fmt, quality)

    if fmt == "mp3":
        return ["-c:a", "libmp3lame", "-b:a", bitrate, "-q:a", str(int(round_half_up(9 - (quality / 100) * 9)))]
    if fmt == "wav":
        # lossless PCM: no bitrate
        return ["-c:a", "pcm_s16le", "-ar", "44100"]
    if fmt == "flac":
        return ["-c:a", "flac", "-compression_level", str(flac_compression_level(quality))]
    if fmt == "ogg":
        return ["-c:a", "libvorbis", "-b:a", bitrate, "-q:a", str(int(round_half_up((quality / 100) * 10)))]
    if fmt in ("aac", "m4a"):
        return ["-c:a", "aac", "-b:a", bitrate, "-profile:a", "aac_low"]
    if fmt == "wma":
        return ["-c:a", "wmav2", "-b:a", bitrate]
    return ["-b:a", bitrate]


class AudioConverter(FileProcessor):
    supported_operations = ("convert",)
    supported_formats = tuple(CONTENT_TYPES)

    def __init__(self, backend=None):
        self.backend = backend or FFmpegBackend()

    def process(self, data: bytes, message: JobMessage) -> ProcessingResult:
        if message.operation != Operation.CONVERT:
            raise ProcessingError(f"Unsupported operation for audio: {message.operation.value}")
        if not message.target_format:
            raise ProcessingError("Target format is required for audio conversion")

        fmt = message.target_format.lower()
        # strip video streams (cover art, source video) from audio outputs
        args = ["-vn"] + audio_args(fmt, message.quality)
        converted = self.backend.transcode(data, fmt, args)
        return ProcessingResult(
            data=converted,
            content_type=CONTENT_TYPES.get(fmt, "audio/mpeg"),
            file_extension=fmt,
        )
