"""Normalized inbound events.

Meta webhook messages come in a different shape per type; the workflow
engine only sees InboundEvent.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from sitereport.logging_config import get_logger
from sitereport.models.session import Location
from sitereport.schemas.whatsapp import WhatsAppWebhookPayload

logger = get_logger("events")


class EventType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    LOCATION = "location"
    INTERACTIVE = "interactive"
    OTHER = "other"


class InboundEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    reporter: str
    timestamp: datetime
    type: EventType
    text: Optional[str] = None
    media_id: Optional[str] = None
    mime_type: Optional[str] = None
    caption: Optional[str] = None
    location: Optional[Location] = None
    reply_id: Optional[str] = None
    reply_title: Optional[str] = None
    raw_type: Optional[str] = None


def _parse_timestamp(value: Any) -> datetime:
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return datetime.now(timezone.utc)


def normalize_message(message: dict[str, Any]) -> Optional[InboundEvent]:
    """Map one Meta message object to an InboundEvent, or None if it has no id."""
    message_id = message.get("id")
    if not message_id:
        logger.warning(
            "Inbound message without id dropped",
            extra={"context": {"type": message.get("type")}},
        )
        return None

    raw_type = message.get("type") or ""
    fields: dict[str, Any] = {
        "id": message_id,
        "reporter": str(message.get("from") or ""),
        "timestamp": _parse_timestamp(message.get("timestamp")),
        "raw_type": raw_type,
    }

    if raw_type == "text":
        fields["type"] = EventType.TEXT
        fields["text"] = (message.get("text") or {}).get("body") or ""
    elif raw_type in ("image", "video", "audio"):
        media = message.get(raw_type) or {}
        fields["type"] = EventType(raw_type)
        fields["media_id"] = media.get("id")
        fields["mime_type"] = media.get("mime_type")
        fields["caption"] = media.get("caption")
        if not fields["media_id"]:
            fields["type"] = EventType.OTHER
    elif raw_type == "location":
        fields["type"] = EventType.LOCATION
        fields["location"] = Location.model_validate(message.get("location") or {})
    elif raw_type == "interactive":
        interactive = message.get("interactive") or {}
        reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
        fields["type"] = EventType.INTERACTIVE
        fields["reply_id"] = reply.get("id")
        fields["reply_title"] = reply.get("title")
    elif raw_type == "button":
        # Template quick-reply buttons carry a payload instead of an id.
        button = message.get("button") or {}
        fields["type"] = EventType.INTERACTIVE
        fields["reply_id"] = button.get("payload")
        fields["reply_title"] = button.get("text")
    else:
        fields["type"] = EventType.OTHER

    return InboundEvent(**fields)


def extract_events(payload: WhatsAppWebhookPayload) -> list[InboundEvent]:
    events = []
    for entry in payload.entry:
        for change in entry.changes:
            for status in change.value.statuses:
                logger.debug(
                    "Delivery status ignored",
                    extra={"context": {"message_id": status.get("id"), "status": status.get("status")}},
                )
            for message in change.value.messages:
                event = normalize_message(message)
                if event is not None:
                    events.append(event)
    return events
