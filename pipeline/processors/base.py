from abc import ABC, abstractmethod
from typing import Optional

from ..types import JobMessage, ProcessingResult


class FileProcessor(ABC):
    """A transformation bound to a set of (operation, format) pairs.

    Subclasses list what they accept in supported_operations and
    supported_formats; a request without a format matches on operation alone.
    """

    supported_operations: tuple[str, ...] = ()
    supported_formats: tuple[str, ...] = ()

    def can_process(self, operation: str, fmt: Optional[str] = None) -> bool:
        if operation not in self.supported_operations:
            return False
        if fmt and fmt.lower() not in self.supported_formats:
            return False
        return True

    @abstractmethod
    def process(self, data: bytes, message: JobMessage) -> ProcessingResult:
        ...

    def __repr__(self):
        return self.__class__.__name__
