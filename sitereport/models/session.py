from datetime import datetime, timezone
from typing import Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, computed_field

from sitereport.services.state_machine import WorkflowState


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_workflow_id(reporter_key: str, now: datetime | None = None) -> str:
    now = now or utc_now()
    return f"wf_{int(now.timestamp() * 1000)}_{reporter_key[-4:]}_{uuid4().hex[:8]}"


class Location(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    name: Optional[str] = None
    address: Optional[str] = None


class MediaItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["image", "video"]
    media_ref: str
    caption: Optional[str] = None
    mime_type: Optional[str] = None


class DescriptionItem(BaseModel):
    """A text description, or an audio note whose content is the media reference."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["text", "audio"]
    content: str
    captured_at: datetime
    mime_type: Optional[str] = None


class Session(BaseModel):
    """Snapshot of one reporter's in-progress workflow.

    Instances are immutable. Transitions build a new snapshot with the
    `with_*` helpers and commit it through a single SessionStore.save call,
    which bumps `version`.
    """

    model_config = ConfigDict(frozen=True)

    reporter_key: str
    raw_identifier: str
    workflow_id: str
    state: WorkflowState = WorkflowState.IDLE
    location: Optional[Location] = None
    media_items: tuple[MediaItem, ...] = ()
    description_items: tuple[DescriptionItem, ...] = ()
    pending_media: tuple[MediaItem, ...] = ()
    created_at: datetime
    updated_at: datetime
    last_activity_at: datetime
    version: int = 0

    @computed_field
    @property
    def has_descriptions(self) -> bool:
        return len(self.description_items) > 0

    @property
    def reply_to(self) -> str:
        return self.raw_identifier or self.reporter_key

    @classmethod
    def new(cls, reporter_key: str, raw_identifier: str, now: datetime | None = None) -> "Session":
        now = now or utc_now()
        return cls(
            reporter_key=reporter_key,
            raw_identifier=raw_identifier or reporter_key,
            workflow_id=new_workflow_id(reporter_key, now),
            created_at=now,
            updated_at=now,
            last_activity_at=now,
        )

    def with_changes(self, **changes) -> "Session":
        changes.pop("has_descriptions", None)
        return self.model_copy(update=changes)

    def with_state(self, state: WorkflowState) -> "Session":
        return self.with_changes(state=state)

    def with_location(self, location: Location) -> "Session":
        return self.with_changes(location=location)

    def with_media(self, item: MediaItem) -> "Session":
        return self.with_changes(media_items=self.media_items + (item,))

    def with_description(self, item: DescriptionItem) -> "Session":
        return self.with_changes(description_items=self.description_items + (item,))

    def with_pending_media(self, item: MediaItem) -> "Session":
        return self.with_changes(pending_media=self.pending_media + (item,))

    def without_pending_media(self) -> "Session":
        return self.with_changes(pending_media=())

    def touched(self, now: datetime | None = None) -> "Session":
        now = now or utc_now()
        return self.with_changes(updated_at=now, last_activity_at=now, version=self.version + 1)

    def idle_seconds(self, now: datetime | None = None) -> float:
        now = now or utc_now()
        return (now - self.last_activity_at).total_seconds()
