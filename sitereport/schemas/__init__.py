from sitereport.schemas.events import EventType, InboundEvent, extract_events, normalize_message
from sitereport.schemas.whatsapp import WebhookAck, WhatsAppWebhookPayload

__all__ = [
    "EventType",
    "InboundEvent",
    "WebhookAck",
    "WhatsAppWebhookPayload",
    "extract_events",
    "normalize_message",
]
