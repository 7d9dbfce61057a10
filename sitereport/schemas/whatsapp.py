from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class WhatsAppContactProfile(BaseModel):
    name: Optional[str] = None


class WhatsAppContact(BaseModel):
    model_config = ConfigDict(extra="allow")

    wa_id: Optional[str] = None
    profile: Optional[WhatsAppContactProfile] = None


class WhatsAppMetadata(BaseModel):
    display_phone_number: Optional[str] = None
    phone_number_id: Optional[str] = None


class WhatsAppChangeValue(BaseModel):
    """Body of one `changes[]` entry.

    Messages and statuses stay as plain dicts: Meta adds message types
    regularly and normalization decides what to keep.
    """

    model_config = ConfigDict(extra="allow")

    messaging_product: Optional[str] = None
    metadata: Optional[WhatsAppMetadata] = None
    contacts: list[WhatsAppContact] = Field(default_factory=list)
    messages: list[dict[str, Any]] = Field(default_factory=list)
    statuses: list[dict[str, Any]] = Field(default_factory=list)


class WhatsAppChange(BaseModel):
    field: Optional[str] = None
    value: WhatsAppChangeValue = Field(default_factory=WhatsAppChangeValue)


class WhatsAppEntry(BaseModel):
    id: Optional[str] = None
    changes: list[WhatsAppChange] = Field(default_factory=list)


class WhatsAppWebhookPayload(BaseModel):
    object: Optional[str] = None
    entry: list[WhatsAppEntry] = Field(default_factory=list)


class WebhookAck(BaseModel):
    success: bool
    message: str
    events: int = 0
