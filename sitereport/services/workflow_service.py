"""Per-reporter workflow engine.

Drives each reporter through location -> media -> description and hands
completed sessions to the Finalizer. Events for one reporter are handled one
at a time under the session store's per-key lock. Each transition is committed
with a single `save` before any reply goes out; replies are best-effort.
"""

from enum import Enum
from typing import Optional

from sitereport.logging_config import bind_logger, get_logger
from sitereport.models.session import DescriptionItem, MediaItem, Session
from sitereport.schemas.events import EventType, InboundEvent
from sitereport.services import messages
from sitereport.services.errors import StaleSessionError, StorageUnavailableError
from sitereport.services.finalization_service import Finalizer
from sitereport.services.idempotency_service import IdempotencyFilter
from sitereport.services.messaging.base import Button, ReplySender
from sitereport.services.phone import normalize_reporter_key
from sitereport.services.session_store import SessionStore
from sitereport.services.state_machine import (
    EventKind,
    WorkflowState,
    after_location,
    is_expected,
    transition,
)

logger = get_logger("workflow")

BUTTON_EVENT_KINDS = {
    messages.BUTTON_COMPLETE.id: EventKind.COMPLETE,
    messages.BUTTON_SAVE_NEW.id: EventKind.SAVE_AND_NEW,
    messages.BUTTON_CONTINUE.id: EventKind.DISCARD_AND_CONTINUE,
}


class EventOutcome(str, Enum):
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    DROPPED = "dropped"
    FAILED = "failed"


def classify_event(event: InboundEvent) -> EventKind:
    if event.type == EventType.LOCATION:
        return EventKind.LOCATION
    if event.type in (EventType.IMAGE, EventType.VIDEO):
        return EventKind.MEDIA
    if event.type == EventType.TEXT:
        return EventKind.DESCRIPTION if (event.text or "").strip() else EventKind.OTHER
    if event.type == EventType.AUDIO:
        return EventKind.DESCRIPTION if event.media_id else EventKind.OTHER
    if event.type == EventType.INTERACTIVE:
        return BUTTON_EVENT_KINDS.get(event.reply_id or "", EventKind.OTHER)
    return EventKind.OTHER


def _media_item(event: InboundEvent) -> MediaItem:
    return MediaItem(
        kind=event.type.value,
        media_ref=event.media_id,
        caption=event.caption,
        mime_type=event.mime_type,
    )


def _description_item(event: InboundEvent) -> DescriptionItem:
    if event.type == EventType.AUDIO:
        return DescriptionItem(
            kind="audio",
            content=event.media_id,
            captured_at=event.timestamp,
            mime_type=event.mime_type,
        )
    return DescriptionItem(kind="text", content=event.text.strip(), captured_at=event.timestamp)


class WorkflowEngine:
    def __init__(
        self,
        sessions: SessionStore,
        idempotency: IdempotencyFilter,
        replies: ReplySender,
        finalizer: Finalizer,
        require_media: bool = True,
        media_starts_session: bool = True,
    ):
        self.sessions = sessions
        self.idempotency = idempotency
        self.replies = replies
        self.finalizer = finalizer
        self.require_media = require_media
        self.media_starts_session = media_starts_session

    async def handle_event(self, event: InboundEvent) -> EventOutcome:
        """Admit, then apply one inbound event to the reporter's workflow.

        StorageUnavailableError propagates after a best-effort notice to the
        reporter; every other failure is logged and answered with a generic
        failure reply.
        """
        if not event.id:
            return EventOutcome.DROPPED

        key = normalize_reporter_key(event.reporter)
        log = bind_logger(logger, reporter_key=key, event_id=event.id)
        try:
            if not await self.idempotency.admit(event.id):
                return EventOutcome.DUPLICATE
            async with self.sessions.lock(key):
                await self._dispatch(key, event, log)
            return EventOutcome.PROCESSED
        except StorageUnavailableError:
            log.error("Session store unavailable, event not processed", exc_info=True)
            await self._send_text(event.reporter, messages.TEMPORARILY_UNAVAILABLE)
            raise
        except StaleSessionError as e:
            log.error(
                "Concurrent session update rejected",
                context={"expected_version": e.expected_version, "actual_version": e.actual_version},
            )
            await self._send_text(event.reporter, messages.GENERIC_FAILURE)
            return EventOutcome.FAILED
        except Exception:
            log.error("Event handling failed", exc_info=True)
            await self._send_text(event.reporter, messages.GENERIC_FAILURE)
            return EventOutcome.FAILED

    async def _dispatch(self, key: str, event: InboundEvent, log) -> None:
        kind = classify_event(event)
        session = await self.sessions.get(key)
        if session is None:
            await self._on_no_session(key, event, kind, log)
            return

        log = bind_logger(logger, reporter_key=key, event_id=event.id, workflow_id=session.workflow_id)
        if not is_expected(session.state, kind):
            log.info(
                "Unexpected event, re-prompting",
                context={"state": session.state.value, "event_kind": kind.value, "event_type": event.type.value},
            )
            await self._reprompt(session)
            return

        if session.state in (WorkflowState.IDLE, WorkflowState.AWAITING_LOCATION):
            await self._on_awaiting_location(session, event, kind, log)
        elif session.state == WorkflowState.AWAITING_MEDIA:
            await self._on_awaiting_media(session, event, kind, log)
        else:
            await self._on_awaiting_description(session, event, kind, log)

    async def _commit(
        self,
        session: Session,
        trigger: str,
        log,
        state: Optional[WorkflowState] = None,
    ) -> Session:
        previous = session.state
        if state is not None and state != previous:
            session = session.with_state(transition(previous, state))
        saved = await self.sessions.save(session)
        if saved.state != previous:
            log.info(
                "State transition",
                context={"from": previous.value, "to": saved.state.value, "trigger": trigger},
            )
        return saved

    async def _on_no_session(self, key: str, event: InboundEvent, kind: EventKind, log) -> None:
        if kind == EventKind.LOCATION:
            session = await self.sessions.create(key, event.reporter)
            next_state = after_location(has_media=False, require_media=self.require_media)
            saved = await self._commit(session.with_location(event.location), "location_received", log, next_state)
            await self._send_location_received(saved)
            return

        if kind == EventKind.MEDIA and self.media_starts_session:
            session = await self.sessions.create(key, event.reporter)
            saved = await self._commit(
                session.with_media(_media_item(event)), "media_received", log, WorkflowState.AWAITING_LOCATION
            )
            await self._request_location(saved.reply_to)
            return

        log.info("No active workflow, asking for location", context={"event_type": event.type.value})
        await self._request_location(event.reporter)

    async def _on_awaiting_location(self, session: Session, event: InboundEvent, kind: EventKind, log) -> None:
        if kind == EventKind.LOCATION:
            next_state = after_location(has_media=bool(session.media_items), require_media=self.require_media)
            saved = await self._commit(session.with_location(event.location), "location_received", log, next_state)
            await self._send_location_received(saved)
        else:
            saved = await self._commit(session.with_media(_media_item(event)), "media_before_location", log)
            log.info("Media stored before location", context={"media_count": len(saved.media_items)})
            await self._send_text(saved.reply_to, messages.LOCATION_FIRST)

    async def _on_awaiting_media(self, session: Session, event: InboundEvent, kind: EventKind, log) -> None:
        if kind == EventKind.MEDIA:
            saved = await self._commit(
                session.with_media(_media_item(event)), "media_received", log, WorkflowState.AWAITING_DESCRIPTION
            )
            await self._send_text(saved.reply_to, messages.DESCRIPTION_REQUEST)
        else:
            saved = await self._commit(session.with_location(event.location), "location_updated", log)
            await self._send_text(saved.reply_to, messages.LOCATION_UPDATED_ASK_MEDIA)

    async def _on_awaiting_description(self, session: Session, event: InboundEvent, kind: EventKind, log) -> None:
        if kind == EventKind.DESCRIPTION:
            saved = await self._commit(session.with_description(_description_item(event)), "description_added", log)
            log.info(
                "Description added",
                context={"kind": event.type.value, "descriptions": len(saved.description_items)},
            )
            await self._send_buttons(saved.reply_to, messages.DONE_PROMPT, [messages.BUTTON_COMPLETE])

        elif kind == EventKind.LOCATION:
            saved = await self._commit(session.with_location(event.location), "location_updated", log)
            await self._send_text(saved.reply_to, messages.LOCATION_UPDATED_KEEP_DESCRIBING)

        elif kind == EventKind.MEDIA:
            await self._on_mid_flow_media(session, event, log)

        elif kind == EventKind.COMPLETE:
            if not session.has_descriptions:
                log.info("Completion before any description rejected")
                await self._send_text(session.reply_to, messages.NO_DESCRIPTION_YET)
                return
            if session.pending_media:
                log.info("Completion held until save/continue choice", context={"pending": len(session.pending_media)})
                await self._send_buttons(
                    session.reply_to,
                    messages.MID_FLOW_QUESTION,
                    [messages.BUTTON_SAVE_NEW, messages.BUTTON_CONTINUE],
                )
                return
            log.info("Completion triggered", context={"descriptions": len(session.description_items)})
            await self.finalizer.finalize(session)

        elif kind == EventKind.SAVE_AND_NEW:
            await self._save_and_start_new(session, log)

        elif kind == EventKind.DISCARD_AND_CONTINUE:
            if session.pending_media:
                log.info("Pending media discarded", context={"discarded": len(session.pending_media)})
                session = await self._commit(session.without_pending_media(), "discard_and_continue", log)
            await self._send_text(session.reply_to, messages.CONTINUE_DESCRIBING)

    async def _on_mid_flow_media(self, session: Session, event: InboundEvent, log) -> None:
        item = _media_item(event)
        if not session.has_descriptions:
            saved = await self._commit(session.with_media(item), "media_before_description", log)
            log.info("Media added before any description", context={"media_count": len(saved.media_items)})
            await self._send_text(saved.reply_to, messages.NO_DESCRIPTION_YET)
            return

        saved = await self._commit(session.with_pending_media(item), "mid_flow_media", log)
        log.info("Mid-flow media held for reporter choice", context={"pending": len(saved.pending_media)})
        await self._send_buttons(
            saved.reply_to,
            messages.MID_FLOW_QUESTION,
            [messages.BUTTON_SAVE_NEW, messages.BUTTON_CONTINUE],
        )

    async def _save_and_start_new(self, session: Session, log) -> None:
        if not session.pending_media:
            log.info("Save-and-new without pending media, re-prompting")
            await self._send_text(session.reply_to, messages.DESCRIPTION_REMINDER)
            return

        pending = session.pending_media
        log.info("Saving workflow and starting a new one", context={"pending": len(pending)})
        await self.finalizer.finalize(session.without_pending_media())

        fresh = await self.sessions.create(session.reporter_key, session.raw_identifier)
        fresh = await self._commit(
            fresh.with_changes(media_items=pending),
            "save_and_new",
            bind_logger(logger, reporter_key=session.reporter_key, workflow_id=fresh.workflow_id),
            WorkflowState.AWAITING_LOCATION,
        )
        await self._send_text(fresh.reply_to, messages.SAVED_START_NEW)
        await self._request_location(fresh.reply_to)

    async def _reprompt(self, session: Session) -> None:
        if session.state in (WorkflowState.IDLE, WorkflowState.AWAITING_LOCATION):
            await self._request_location(session.reply_to)
        elif session.state == WorkflowState.AWAITING_MEDIA:
            await self._send_text(session.reply_to, messages.MEDIA_REMINDER)
        else:
            await self._send_text(session.reply_to, messages.DESCRIPTION_REMINDER)

    async def _send_location_received(self, session: Session) -> None:
        if session.state == WorkflowState.AWAITING_MEDIA:
            await self._send_text(session.reply_to, messages.LOCATION_RECEIVED_ASK_MEDIA)
        else:
            await self._send_text(session.reply_to, messages.LOCATION_RECEIVED_ASK_DESCRIPTION)

    async def _send_text(self, to: str, body: str) -> bool:
        try:
            return await self.replies.send_text(to, body)
        except Exception as e:
            logger.error("Reply send failed", extra={"context": {"to": to, "error": str(e)}})
            return False

    async def _send_buttons(self, to: str, body: str, buttons: list[Button]) -> bool:
        try:
            return await self.replies.send_buttons(to, body, buttons)
        except Exception as e:
            logger.error("Button reply send failed", extra={"context": {"to": to, "error": str(e)}})
            return False

    async def _request_location(self, to: str) -> bool:
        try:
            return await self.replies.request_location(
                to, messages.LOCATION_REQUEST, fallback_body=messages.LOCATION_REQUEST_FALLBACK
            )
        except Exception as e:
            logger.error("Location request failed", extra={"context": {"to": to, "error": str(e)}})
            return False
