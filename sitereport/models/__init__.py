from sitereport.models.report import ExtractionItem, ExtractionResult, ForwardPayload
from sitereport.models.session import DescriptionItem, Location, MediaItem, Session

__all__ = [
    "DescriptionItem",
    "ExtractionItem",
    "ExtractionResult",
    "ForwardPayload",
    "Location",
    "MediaItem",
    "Session",
]
