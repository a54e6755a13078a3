from typing import Iterable, Optional

from ..errors import NoProcessorFound
from ..types import JobMessage
from .base import FileProcessor


class ProcessorRegistry:
    """Ordered processors; the first one that accepts a message wins."""

    def __init__(self, processors: Optional[Iterable[FileProcessor]] = None):
        self._processors: list[FileProcessor] = list(processors or [])

    def register(self, processor: FileProcessor) -> None:
        self._processors.append(processor)

    def find(self, operation: str, fmt: Optional[str] = None) -> Optional[FileProcessor]:
        for p in self._processors:
            if p.can_process(operation, fmt):
                return p
        return None

    def select(self, message: JobMessage) -> FileProcessor:
        p = self.find(message.operation.value, message.target_format)
        if p is None:
            raise NoProcessorFound(
                f"No processor found for operation: {message.operation.value}, format: {message.target_format}"
            )
        return p

    def __iter__(self):
        return iter(self._processors)

    def __len__(self):
        return len(self._processors)
