from sitereport.services.messaging.base import (
    Button,
    MediaResolutionError,
    MediaResolver,
    ReplySender,
    ResolvedMedia,
)
from sitereport.services.messaging.graph_client import GraphWhatsAppClient

__all__ = [
    "Button",
    "GraphWhatsAppClient",
    "MediaResolutionError",
    "MediaResolver",
    "ReplySender",
    "ResolvedMedia",
]
