import asyncio
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from sitereport.models.session import Location
from sitereport.services import messages
from sitereport.services.cache_store import RedisCacheStore
from sitereport.services.errors import StaleSessionError, StorageUnavailableError
from sitereport.services.finalization_service import Finalizer
from sitereport.services.idempotency_service import IdempotencyFilter
from sitereport.services.session_store import InMemorySessionStore
from sitereport.services.state_machine import EventKind, WorkflowState
from sitereport.services.workflow_service import EventOutcome, WorkflowEngine, classify_event

from conftest import REPORTER, REPORTER_KEY, no_sleep

SITE = Location(latitude=41.0082, longitude=28.9784, name="Şantiye A")


def location(make_event, **kwargs):
    return make_event("location", location=SITE, **kwargs)


def image(make_event, media_id, **kwargs):
    return make_event("image", media_id=media_id, mime_type="image/jpeg", **kwargs)


def text(make_event, body, **kwargs):
    return make_event("text", text=body, **kwargs)


def button(make_event, reply_id, **kwargs):
    return make_event("interactive", reply_id=reply_id, **kwargs)


async def run(engine, *events):
    return [await engine.handle_event(event) for event in events]


class TestClassifyEvent:
    def test_media_types(self, make_event):
        assert classify_event(image(make_event, "m1")) == EventKind.MEDIA
        assert classify_event(make_event("video", media_id="v1")) == EventKind.MEDIA

    def test_descriptions(self, make_event):
        assert classify_event(text(make_event, "şap bitti")) == EventKind.DESCRIPTION
        assert classify_event(make_event("audio", media_id="a1")) == EventKind.DESCRIPTION

    def test_blank_text_is_not_a_description(self, make_event):
        assert classify_event(text(make_event, "   ")) == EventKind.OTHER

    def test_buttons(self, make_event):
        assert classify_event(button(make_event, "complete")) == EventKind.COMPLETE
        assert classify_event(button(make_event, "save_new")) == EventKind.SAVE_AND_NEW
        assert classify_event(button(make_event, "continue")) == EventKind.DISCARD_AND_CONTINUE
        assert classify_event(button(make_event, "unknown")) == EventKind.OTHER

    def test_other(self, make_event):
        assert classify_event(make_event("other")) == EventKind.OTHER


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_location_image_text_complete(self, engine, sessions, replies, forwarder, make_event):
        await engine.handle_event(location(make_event))
        session = await sessions.get(REPORTER_KEY)
        assert session.state == WorkflowState.AWAITING_MEDIA
        assert replies.last == ("text", REPORTER, messages.LOCATION_RECEIVED_ASK_MEDIA, None)

        await engine.handle_event(image(make_event, "m1"))
        session = await sessions.get(REPORTER_KEY)
        assert session.state == WorkflowState.AWAITING_DESCRIPTION
        assert [m.media_ref for m in session.media_items] == ["m1"]

        await engine.handle_event(text(make_event, "şap bitti"))
        session = await sessions.get(REPORTER_KEY)
        assert len(session.description_items) == 1
        assert session.has_descriptions is True
        assert replies.last == ("buttons", REPORTER, messages.DONE_PROMPT, ["complete"])

        outcome = await engine.handle_event(button(make_event, "complete"))

        assert outcome == EventOutcome.PROCESSED
        assert len(forwarder.payloads) == 1
        payload = forwarder.payloads[0]
        assert [m.media_ref for m in payload.media] == ["m1"]
        assert payload.concatenated_description == "şap bitti"
        assert payload.reporter_key == REPORTER_KEY
        assert payload.location.name == "Şantiye A"
        assert await sessions.get(REPORTER_KEY) is None

    @pytest.mark.asyncio
    async def test_multiple_descriptions_joined_in_order(self, engine, forwarder, make_event):
        await run(
            engine,
            location(make_event),
            image(make_event, "m1"),
            text(make_event, "A blok 3. kat"),
            text(make_event, "sıva bitti"),
            button(make_event, "complete"),
        )
        assert forwarder.payloads[0].concatenated_description == "A blok 3. kat | sıva bitti"

    @pytest.mark.asyncio
    async def test_audio_description_is_transcribed(self, engine, forwarder, transcriber, make_event):
        transcriber.transcripts["a1"] = "fayans döşendi"
        await run(
            engine,
            location(make_event),
            image(make_event, "m1"),
            make_event("audio", media_id="a1", mime_type="audio/ogg"),
            button(make_event, "complete"),
        )
        payload = forwarder.payloads[0]
        assert payload.concatenated_description == "fayans döşendi"
        assert payload.descriptions[0].kind == "audio"
        assert payload.descriptions[0].content == "a1"

    @pytest.mark.asyncio
    async def test_location_skips_media_when_not_required(self, sessions, idempotency, replies, finalizer, make_event):
        engine = WorkflowEngine(sessions, idempotency, replies, finalizer, require_media=False)
        await engine.handle_event(location(make_event))
        assert (await sessions.get(REPORTER_KEY)).state == WorkflowState.AWAITING_DESCRIPTION
        assert replies.last[2] == messages.LOCATION_RECEIVED_ASK_DESCRIPTION


class TestMediaFirst:
    @pytest.mark.asyncio
    async def test_media_starts_session_awaiting_location(self, engine, sessions, replies, make_event):
        await engine.handle_event(image(make_event, "m1"))

        session = await sessions.get(REPORTER_KEY)
        assert session.state == WorkflowState.AWAITING_LOCATION
        assert [m.media_ref for m in session.media_items] == ["m1"]
        assert replies.last[0] == "location_request"

    @pytest.mark.asyncio
    async def test_location_after_media_goes_to_description(self, engine, sessions, replies, make_event):
        await run(engine, image(make_event, "m1"), location(make_event))

        session = await sessions.get(REPORTER_KEY)
        assert session.state == WorkflowState.AWAITING_DESCRIPTION
        assert replies.last[2] == messages.LOCATION_RECEIVED_ASK_DESCRIPTION

    @pytest.mark.asyncio
    async def test_more_media_while_awaiting_location_is_kept(self, engine, sessions, replies, make_event):
        await run(engine, image(make_event, "m1"), image(make_event, "m2"))

        session = await sessions.get(REPORTER_KEY)
        assert session.state == WorkflowState.AWAITING_LOCATION
        assert [m.media_ref for m in session.media_items] == ["m1", "m2"]
        assert replies.last[2] == messages.LOCATION_FIRST

    @pytest.mark.asyncio
    async def test_media_without_session_when_policy_disabled(
        self, sessions, idempotency, replies, finalizer, make_event
    ):
        engine = WorkflowEngine(sessions, idempotency, replies, finalizer, media_starts_session=False)
        await engine.handle_event(image(make_event, "m1"))

        assert await sessions.get(REPORTER_KEY) is None
        assert replies.last[0] == "location_request"


class TestLocationUpdates:
    @pytest.mark.asyncio
    async def test_location_while_awaiting_media(self, engine, sessions, replies, make_event):
        await engine.handle_event(location(make_event))
        await engine.handle_event(make_event("location", location=Location(latitude=40.0, longitude=29.0)))

        session = await sessions.get(REPORTER_KEY)
        assert session.state == WorkflowState.AWAITING_MEDIA
        assert session.location.latitude == 40.0
        assert replies.last[2] == messages.LOCATION_UPDATED_ASK_MEDIA

    @pytest.mark.asyncio
    async def test_location_while_describing(self, engine, sessions, replies, make_event):
        await run(engine, location(make_event), image(make_event, "m1"), text(make_event, "şap bitti"))
        await engine.handle_event(make_event("location", location=Location(latitude=40.0, longitude=29.0)))

        session = await sessions.get(REPORTER_KEY)
        assert session.state == WorkflowState.AWAITING_DESCRIPTION
        assert session.location.latitude == 40.0
        assert len(session.description_items) == 1
        assert replies.last[2] == messages.LOCATION_UPDATED_KEEP_DESCRIBING


class TestMidFlowMedia:
    async def _describing(self, engine, make_event):
        await run(engine, location(make_event), image(make_event, "m1"), text(make_event, "şap bitti"))

    @pytest.mark.asyncio
    async def test_new_media_asks_for_choice_and_keeps_descriptions(self, engine, sessions, replies, make_event):
        await self._describing(engine, make_event)
        await engine.handle_event(image(make_event, "m2"))

        session = await sessions.get(REPORTER_KEY)
        assert session.state == WorkflowState.AWAITING_DESCRIPTION
        assert len(session.description_items) == 1
        assert [m.media_ref for m in session.media_items] == ["m1"]
        assert [m.media_ref for m in session.pending_media] == ["m2"]
        assert replies.last == ("buttons", REPORTER, messages.MID_FLOW_QUESTION, ["save_new", "continue"])

    @pytest.mark.asyncio
    async def test_save_and_new_finalizes_and_seeds_new_session(
        self, engine, sessions, replies, forwarder, make_event
    ):
        await self._describing(engine, make_event)
        old_workflow_id = (await sessions.get(REPORTER_KEY)).workflow_id
        await engine.handle_event(image(make_event, "m2"))

        await engine.handle_event(button(make_event, "save_new"))

        assert len(forwarder.payloads) == 1
        payload = forwarder.payloads[0]
        assert payload.workflow_id == old_workflow_id
        assert [m.media_ref for m in payload.media] == ["m1"]
        assert payload.concatenated_description == "şap bitti"

        session = await sessions.get(REPORTER_KEY)
        assert session.workflow_id != old_workflow_id
        assert session.state == WorkflowState.AWAITING_LOCATION
        assert [m.media_ref for m in session.media_items] == ["m2"]
        assert session.description_items == ()
        assert session.pending_media == ()
        assert messages.SAVED_START_NEW in replies.bodies
        assert replies.last[0] == "location_request"

    @pytest.mark.asyncio
    async def test_continue_drops_pending_media(self, engine, sessions, replies, forwarder, make_event):
        await self._describing(engine, make_event)
        await engine.handle_event(image(make_event, "m2"))

        await engine.handle_event(button(make_event, "continue"))

        session = await sessions.get(REPORTER_KEY)
        assert session.state == WorkflowState.AWAITING_DESCRIPTION
        assert session.pending_media == ()
        assert [m.media_ref for m in session.media_items] == ["m1"]
        assert len(session.description_items) == 1
        assert replies.last[2] == messages.CONTINUE_DESCRIBING
        assert forwarder.payloads == []

    @pytest.mark.asyncio
    async def test_successive_media_accumulate_while_pending(self, engine, sessions, make_event):
        await self._describing(engine, make_event)
        await run(engine, image(make_event, "m2"), make_event("video", media_id="v3"))

        session = await sessions.get(REPORTER_KEY)
        assert [m.media_ref for m in session.pending_media] == ["m2", "v3"]
        assert [m.kind for m in session.pending_media] == ["image", "video"]

    @pytest.mark.asyncio
    async def test_completion_waits_for_pending_media_choice(self, engine, sessions, replies, forwarder, make_event):
        await self._describing(engine, make_event)
        await run(engine, image(make_event, "m2"), button(make_event, "complete"))

        assert forwarder.payloads == []
        session = await sessions.get(REPORTER_KEY)
        assert session.state == WorkflowState.AWAITING_DESCRIPTION
        assert [m.media_ref for m in session.media_items] == ["m1"]
        assert [m.media_ref for m in session.pending_media] == ["m2"]
        assert replies.last == ("buttons", REPORTER, messages.MID_FLOW_QUESTION, ["save_new", "continue"])

    @pytest.mark.asyncio
    async def test_completion_after_continue_finalizes_without_pending_media(self, engine, forwarder, make_event):
        await self._describing(engine, make_event)
        await run(engine, image(make_event, "m2"), button(make_event, "continue"), button(make_event, "complete"))

        assert len(forwarder.payloads) == 1
        assert [m.media_ref for m in forwarder.payloads[0].media] == ["m1"]

    @pytest.mark.asyncio
    async def test_media_before_any_description_is_added(self, engine, sessions, replies, make_event):
        await run(engine, location(make_event), image(make_event, "m1"), image(make_event, "m2"))

        session = await sessions.get(REPORTER_KEY)
        assert session.state == WorkflowState.AWAITING_DESCRIPTION
        assert [m.media_ref for m in session.media_items] == ["m1", "m2"]
        assert session.pending_media == ()
        assert replies.last[2] == messages.NO_DESCRIPTION_YET

    @pytest.mark.asyncio
    async def test_save_new_without_pending_media_reprompts(self, engine, sessions, replies, forwarder, make_event):
        await self._describing(engine, make_event)
        await engine.handle_event(button(make_event, "save_new"))

        assert forwarder.payloads == []
        assert (await sessions.get(REPORTER_KEY)).state == WorkflowState.AWAITING_DESCRIPTION
        assert replies.last[2] == messages.DESCRIPTION_REMINDER


class TestRejectedEvents:
    @pytest.mark.asyncio
    async def test_complete_before_description_is_rejected(self, engine, sessions, replies, forwarder, make_event):
        await run(engine, location(make_event), image(make_event, "m1"), button(make_event, "complete"))

        assert forwarder.payloads == []
        assert (await sessions.get(REPORTER_KEY)).state == WorkflowState.AWAITING_DESCRIPTION
        assert replies.last[2] == messages.NO_DESCRIPTION_YET

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "state,event_type,fields,prompt_kind",
        [
            (WorkflowState.AWAITING_LOCATION, "text", {"text": "merhaba"}, "location_request"),
            (WorkflowState.AWAITING_LOCATION, "interactive", {"reply_id": "complete"}, "location_request"),
            (WorkflowState.AWAITING_MEDIA, "text", {"text": "merhaba"}, "text"),
            (WorkflowState.AWAITING_MEDIA, "audio", {"media_id": "a1"}, "text"),
            (WorkflowState.AWAITING_MEDIA, "interactive", {"reply_id": "save_new"}, "text"),
            (WorkflowState.AWAITING_DESCRIPTION, "other", {}, "text"),
            (WorkflowState.AWAITING_DESCRIPTION, "interactive", {"reply_id": "bogus"}, "text"),
        ],
    )
    async def test_unexpected_event_reprompts_without_transition(
        self, engine, sessions, replies, make_event, state, event_type, fields, prompt_kind
    ):
        created = await sessions.create(REPORTER_KEY, REPORTER)
        before = await sessions.save(created.with_state(state))

        outcome = await engine.handle_event(make_event(event_type, **fields))

        after = await sessions.get(REPORTER_KEY)
        assert outcome == EventOutcome.PROCESSED
        assert after.state == state
        assert after.version == before.version
        assert replies.last[0] == prompt_kind

    @pytest.mark.asyncio
    async def test_text_without_session_asks_for_location(self, engine, sessions, replies, make_event):
        await engine.handle_event(text(make_event, "merhaba"))

        assert await sessions.get(REPORTER_KEY) is None
        assert replies.last[0] == "location_request"


class TestAdmission:
    @pytest.mark.asyncio
    async def test_redelivered_event_runs_once(self, engine, sessions, replies, make_event):
        event = location(make_event, event_id="wamid.dup")

        outcomes = await run(engine, event, event, event)

        assert outcomes == [EventOutcome.PROCESSED, EventOutcome.DUPLICATE, EventOutcome.DUPLICATE]
        assert len(replies.sent) == 1
        assert (await sessions.get(REPORTER_KEY)).version == 2

    @pytest.mark.asyncio
    async def test_redelivered_completion_forwards_once(self, engine, forwarder, make_event):
        complete = button(make_event, "complete", event_id="wamid.done")
        await run(engine, location(make_event), image(make_event, "m1"), text(make_event, "şap bitti"), complete)
        await engine.handle_event(complete)

        assert len(forwarder.payloads) == 1

    @pytest.mark.asyncio
    async def test_reporter_formats_share_one_session(self, engine, sessions, make_event):
        await engine.handle_event(location(make_event, reporter="+905325630299"))
        await engine.handle_event(image(make_event, "m1", reporter="05325630299"))

        session = await sessions.get("5325630299")
        assert session.state == WorkflowState.AWAITING_DESCRIPTION
        assert session.raw_identifier == "+905325630299"

    @pytest.mark.asyncio
    async def test_concurrent_descriptions_are_all_kept(self, engine, sessions, make_event):
        await run(engine, location(make_event), image(make_event, "m1"))

        await asyncio.gather(*(engine.handle_event(text(make_event, f"not {i}")) for i in range(3)))

        session = await sessions.get(REPORTER_KEY)
        assert sorted(d.content for d in session.description_items) == ["not 0", "not 1", "not 2"]


class TestFailureHandling:
    @pytest.mark.asyncio
    async def test_storage_unavailable_notifies_and_propagates(self, sessions, replies, finalizer, make_event):
        client = AsyncMock()
        client.set.side_effect = RedisConnectionError("connection refused")
        engine = WorkflowEngine(sessions, IdempotencyFilter(RedisCacheStore(client)), replies, finalizer)

        with pytest.raises(StorageUnavailableError):
            await engine.handle_event(location(make_event))

        assert replies.last[2] == messages.TEMPORARILY_UNAVAILABLE
        assert await sessions.get(REPORTER_KEY) is None

    @pytest.mark.asyncio
    async def test_unexpected_error_gets_generic_reply(self, engine, sessions, replies, make_event, monkeypatch):
        monkeypatch.setattr(sessions, "get", AsyncMock(side_effect=RuntimeError("boom")))

        outcome = await engine.handle_event(location(make_event))

        assert outcome == EventOutcome.FAILED
        assert replies.last[2] == messages.GENERIC_FAILURE

    @pytest.mark.asyncio
    async def test_stale_session_gets_generic_reply(self, engine, sessions, replies, make_event, monkeypatch):
        await engine.handle_event(location(make_event))
        monkeypatch.setattr(sessions, "save", AsyncMock(side_effect=StaleSessionError(REPORTER_KEY, 2, 3)))

        outcome = await engine.handle_event(image(make_event, "m1"))

        assert outcome == EventOutcome.FAILED
        assert replies.last[2] == messages.GENERIC_FAILURE

    @pytest.mark.asyncio
    async def test_reply_failure_does_not_roll_back_state(self, engine, sessions, replies, make_event):
        replies.send_text = AsyncMock(side_effect=RuntimeError("channel down"))

        outcome = await engine.handle_event(location(make_event))

        assert outcome == EventOutcome.PROCESSED
        assert (await sessions.get(REPORTER_KEY)).state == WorkflowState.AWAITING_MEDIA

    @pytest.mark.asyncio
    async def test_event_without_id_is_dropped(self, engine, replies, make_event):
        event = location(make_event).model_copy(update={"id": ""})
        assert await engine.handle_event(event) == EventOutcome.DROPPED
        assert replies.sent == []


class UnlockedSessionStore(InMemorySessionStore):
    """Store whose lock no longer excludes anyone, as after a lock timeout."""

    @asynccontextmanager
    async def lock(self, key):
        yield


class TestExpiredLock:
    @pytest.mark.asyncio
    async def test_event_during_finalization_is_not_swallowed(
        self, idempotency, replies, media_resolver, transcriber, extractor, forwarder, make_event
    ):
        sessions = UnlockedSessionStore()
        finalizer = Finalizer(
            media_resolver, transcriber, extractor, replies, forwarder, sessions,
            message_interval_seconds=0, sleep_func=no_sleep,
        )
        engine = WorkflowEngine(sessions, idempotency, replies, finalizer)
        await run(engine, location(make_event), image(make_event, "m1"), text(make_event, "şap bitti"))

        late_outcomes = []
        extract = extractor.extract

        async def extract_with_late_event(body):
            late_outcomes.append(await engine.handle_event(text(make_event, "sıva da bitti")))
            return await extract(body)

        extractor.extract = extract_with_late_event
        await engine.handle_event(button(make_event, "complete"))

        assert late_outcomes == [EventOutcome.PROCESSED]
        assert [p.concatenated_description for p in forwarder.payloads] == ["şap bitti"]
        assert [kind for kind, _, body, _ in replies.sent if body == messages.DONE_PROMPT] == ["buttons"]
        assert replies.sent.count(("location_request", REPORTER, messages.LOCATION_REQUEST, None)) == 1
        assert await sessions.get(REPORTER_KEY) is None
