from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Button:
    id: str
    title: str


@dataclass
class ResolvedMedia:
    content: bytes
    mime_type: Optional[str] = None


class MediaResolutionError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ReplySender(ABC):
    """Outbound channel used to prompt reporters.

    Every call reports success as a bool; implementations log failures
    instead of raising.
    """

    @abstractmethod
    async def send_text(self, to: str, body: str) -> bool:
        pass

    @abstractmethod
    async def send_buttons(self, to: str, body: str, buttons: list[Button]) -> bool:
        """Send 2-3 reply buttons."""
        pass

    async def request_location(self, to: str, body: str, fallback_body: Optional[str] = None) -> bool:
        """Ask for the reporter's location; channels without a native prompt send text."""
        return await self.send_text(to, fallback_body or body)


class MediaResolver(ABC):
    @abstractmethod
    async def resolve(self, media_ref: str) -> ResolvedMedia:
        """Download media bytes. Raises MediaResolutionError on failure."""
        pass
