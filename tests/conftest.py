import asyncio
import fnmatch
from datetime import datetime, timezone
from itertools import count

import pytest
from redis.exceptions import WatchError

from sitereport.models.report import ExtractionItem, ExtractionResult
from sitereport.schemas.events import EventType, InboundEvent
from sitereport.services.cache_store import InMemoryCacheStore
from sitereport.services.finalization_service import Finalizer
from sitereport.services.forward_service import ReliableForwarder
from sitereport.services.idempotency_service import IdempotencyFilter
from sitereport.services.llm.base import Extractor, Transcriber
from sitereport.services.messaging.base import MediaResolver, ReplySender, ResolvedMedia
from sitereport.services.session_store import InMemorySessionStore
from sitereport.services.workflow_service import WorkflowEngine

REPORTER = "+905325630299"
REPORTER_KEY = "5325630299"


async def no_sleep(_seconds: float) -> None:
    return None


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeLock:
    def __init__(self, lock: asyncio.Lock):
        self._lock = lock
        self.reacquired = 0

    async def acquire(self) -> bool:
        await self._lock.acquire()
        return True

    async def release(self) -> None:
        self._lock.release()

    async def reacquire(self) -> bool:
        self.reacquired += 1
        return True


class FakePipeline:
    def __init__(self, redis: "FakeRedis"):
        self.redis = redis
        self.watched = []
        self.commands = []
        self.in_multi = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def watch(self, *keys):
        self.watched.extend(keys)

    async def get(self, key):
        return self.redis.data.get(key)

    def multi(self):
        self.in_multi = True

    def set(self, key, value, ex=None):
        self.commands.append(("set", key, value, ex))
        return self

    def delete(self, key):
        self.commands.append(("delete", key, None, None))
        return self

    async def execute(self):
        if self.redis.fail_next_execute:
            self.redis.fail_next_execute = False
            raise WatchError("watched key changed")
        for op, key, value, ex in self.commands:
            if op == "set":
                await self.redis.set(key, value, ex=ex)
            else:
                await self.redis.delete(key)
        return [True] * len(self.commands)


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the stores."""

    def __init__(self):
        self.data = {}
        self.ttls = {}
        self.locks = {}
        self.issued_locks = []
        self.fail_next_execute = False
        self.closed = False

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None, nx=False):
        if nx and key in self.data:
            return None
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def exists(self, *keys):
        return sum(1 for key in keys if key in self.data)

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    async def mget(self, keys):
        return [self.data.get(key) for key in keys]

    async def scan_iter(self, match=None):
        for key in list(self.data):
            if match is None or fnmatch.fnmatch(key, match):
                yield key

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    def lock(self, name, timeout=None, blocking_timeout=None):
        lock = FakeLock(self.locks.setdefault(name, asyncio.Lock()))
        self.issued_locks.append(lock)
        return lock

    async def ping(self):
        return True

    async def aclose(self):
        self.closed = True


class FakeReplySender(ReplySender):
    def __init__(self):
        self.sent = []

    async def send_text(self, to, body):
        self.sent.append(("text", to, body, None))
        return True

    async def send_buttons(self, to, body, buttons):
        self.sent.append(("buttons", to, body, [b.id for b in buttons]))
        return True

    async def request_location(self, to, body, fallback_body=None):
        self.sent.append(("location_request", to, body, None))
        return True

    @property
    def bodies(self):
        return [body for _, _, body, _ in self.sent]

    @property
    def last(self):
        return self.sent[-1] if self.sent else None


class FakeMediaResolver(MediaResolver):
    def __init__(self, failures=None):
        self.failures = failures or {}
        self.resolved = []

    async def resolve(self, media_ref):
        self.resolved.append(media_ref)
        if media_ref in self.failures:
            raise self.failures[media_ref]
        return ResolvedMedia(content=f"bytes-{media_ref}".encode(), mime_type="audio/ogg")


class FakeTranscriber(Transcriber):
    def __init__(self, transcripts=None):
        self.transcripts = transcripts or {}
        self.calls = []

    async def transcribe(self, audio, mime_type=None):
        self.calls.append((audio, mime_type))
        ref = audio.decode().removeprefix("bytes-")
        return self.transcripts.get(ref, f"transcript of {ref}")


class FakeExtractor(Extractor):
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def extract(self, text):
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        if self.result is not None:
            return self.result
        return ExtractionResult(
            items=[ExtractionItem(intent="durum_guncelleme", intent_confidence=0.9, aciklama=text)],
            summary=text,
        )


class RecordingForwarder(ReliableForwarder):
    def __init__(self):
        super().__init__(url=None)
        self.payloads = []

    async def forward(self, payload):
        self.payloads.append(payload)
        return True


@pytest.fixture
def sessions():
    return InMemorySessionStore()


@pytest.fixture
def idempotency():
    return IdempotencyFilter(InMemoryCacheStore())


@pytest.fixture
def replies():
    return FakeReplySender()


@pytest.fixture
def media_resolver():
    return FakeMediaResolver()


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def forwarder():
    return RecordingForwarder()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def finalizer(media_resolver, transcriber, extractor, replies, forwarder, sessions):
    return Finalizer(
        media_resolver=media_resolver,
        transcriber=transcriber,
        extractor=extractor,
        replies=replies,
        forwarder=forwarder,
        sessions=sessions,
        message_interval_seconds=0,
        sleep_func=no_sleep,
    )


@pytest.fixture
def engine(sessions, idempotency, replies, finalizer):
    return WorkflowEngine(
        sessions=sessions,
        idempotency=idempotency,
        replies=replies,
        finalizer=finalizer,
        require_media=True,
        media_starts_session=True,
    )


@pytest.fixture
def make_event():
    ids = count(1)

    def _make(event_type, event_id=None, reporter=REPORTER, **fields):
        return InboundEvent(
            id=event_id or f"wamid.{next(ids)}",
            reporter=reporter,
            timestamp=datetime(2025, 5, 1, 9, 0, tzinfo=timezone.utc),
            type=EventType(event_type),
            **fields,
        )

    return _make
