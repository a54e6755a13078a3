"""
Tests for processor dispatch order
"""

from django.test import SimpleTestCase

from pipeline.errors import NoProcessorFound
from pipeline.processors import (
    AudioConverter,
    EbookConverter,
    FileProcessor,
    ImageProcessor,
    PdfCompressor,
    ProcessorRegistry,
    VideoConverter,
    default_registry,
)
from pipeline.types import JobMessage, Operation, ProcessingResult


def convert(fmt):
    return JobMessage(job_id="j", operation=Operation.CONVERT, target_format=fmt)


def compress(fmt=None):
    return JobMessage(job_id="j", operation=Operation.COMPRESS, target_format=fmt)


class EchoProcessor(FileProcessor):
    supported_operations = ("convert",)
    supported_formats = ("png", "xyz")

    def process(self, data, message):
        return ProcessingResult(data=data, content_type="application/octet-stream", file_extension="xyz")


class DefaultRegistryTest(SimpleTestCase):
    def setUp(self):
        self.registry = default_registry()

    def test_order(self):
        self.assertEqual(
            [type(p) for p in self.registry],
            [ImageProcessor, PdfCompressor, VideoConverter, AudioConverter, EbookConverter],
        )

    def test_routes_by_operation_and_format(self):
        cases = [
            (convert("png"), ImageProcessor),
            (convert("jpeg"), ImageProcessor),
            (compress(), ImageProcessor),
            (compress("jpg"), ImageProcessor),
            (compress("pdf"), PdfCompressor),
            (convert("webm"), VideoConverter),
            (convert("mkv"), VideoConverter),
            (convert("flac"), AudioConverter),
            (convert("m4a"), AudioConverter),
            (convert("epub"), EbookConverter),
            (convert("pdf"), EbookConverter),
        ]
        for message, expected in cases:
            with self.subTest(op=message.operation, fmt=message.target_format):
                self.assertIsInstance(self.registry.select(message), expected)

    def test_format_match_is_case_insensitive(self):
        self.assertIsInstance(self.registry.find("convert", "PNG"), ImageProcessor)

    def test_unknown_format(self):
        with self.assertRaises(NoProcessorFound) as ctx:
            self.registry.select(convert("xyz"))
        self.assertEqual(str(ctx.exception), "No processor found for operation: convert, format: xyz")

    def test_registries_are_independent(self):
        other = default_registry()
        other.register(EchoProcessor())
        self.assertEqual(len(self.registry), 5)
        self.assertEqual(len(other), 6)


class CustomRegistryTest(SimpleTestCase):
    def test_first_match_wins(self):
        echo = EchoProcessor()
        registry = ProcessorRegistry([echo, ImageProcessor()])
        self.assertIs(registry.select(convert("png")), echo)

    def test_registered_processor_is_used_last(self):
        registry = default_registry()
        echo = EchoProcessor()
        registry.register(echo)
        self.assertIs(registry.select(convert("xyz")), echo)
        self.assertIsInstance(registry.select(convert("png")), ImageProcessor)

    def test_empty_registry(self):
        self.assertIsNone(ProcessorRegistry().find("convert", "png"))
