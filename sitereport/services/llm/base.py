from abc import ABC, abstractmethod
from typing import Optional

from sitereport.models.report import ExtractionResult


class ProviderError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class Transcriber(ABC):
    """Speech-to-text provider."""

    @abstractmethod
    async def transcribe(self, audio: bytes, mime_type: Optional[str] = None) -> str:
        """Return the transcript text."""
        pass


class Extractor(ABC):
    """Turns a freeform site report into structured work items."""

    @abstractmethod
    async def extract(self, text: str) -> ExtractionResult:
        pass
