"""Explicit wiring of stores and collaborators from Settings.

Built once at process start. The session backend comes from
`settings.session_backend` only; a Redis deployment without a URL is a startup
error rather than a silent switch to process memory.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as redis_async

from sitereport.config import Settings
from sitereport.logging_config import get_logger
from sitereport.services.cache_store import CacheStore, InMemoryCacheStore, RedisCacheStore
from sitereport.services.errors import ConfigurationError
from sitereport.services.finalization_service import Finalizer
from sitereport.services.forward_service import ReliableForwarder
from sitereport.services.idempotency_service import IdempotencyFilter
from sitereport.services.llm.base import Extractor, Transcriber
from sitereport.services.llm.openai_provider import OpenAIProvider
from sitereport.services.messaging.base import MediaResolver, ReplySender
from sitereport.services.messaging.graph_client import GraphWhatsAppClient
from sitereport.services.session_store import InMemorySessionStore, RedisSessionStore, SessionStore
from sitereport.services.workflow_service import WorkflowEngine

logger = get_logger("container")


@dataclass
class Container:
    settings: Settings
    sessions: SessionStore
    idempotency: IdempotencyFilter
    replies: ReplySender
    finalizer: Finalizer
    forwarder: ReliableForwarder
    engine: WorkflowEngine

    async def close(self) -> None:
        await self.sessions.close()


def _build_stores(settings: Settings, redis_client=None) -> tuple[SessionStore, CacheStore]:
    if settings.session_backend == "redis":
        if redis_client is None:
            if not settings.redis_url:
                raise ConfigurationError("SESSION_BACKEND=redis requires REDIS_URL")
            redis_client = redis_async.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_connect_timeout=settings.redis_socket_timeout_seconds,
                socket_timeout=settings.redis_socket_timeout_seconds,
            )
        sessions = RedisSessionStore(
            redis_client,
            prefix=settings.redis_session_prefix,
            ttl_seconds=settings.session_ttl_seconds,
            lock_timeout_seconds=settings.session_lock_timeout_seconds,
        )
        seen = RedisCacheStore(redis_client, prefix=settings.redis_seen_prefix)
    else:
        sessions = InMemorySessionStore(
            limit=settings.session_memory_limit,
            ttl_seconds=settings.session_ttl_seconds,
        )
        seen = InMemoryCacheStore(limit=settings.idempotency_memory_limit)

    logger.info(
        "Session storage configured",
        extra={"context": {"backend": settings.session_backend, "ttl_seconds": settings.session_ttl_seconds}},
    )
    return sessions, seen


def build_container(
    settings: Settings,
    *,
    redis_client=None,
    replies: Optional[ReplySender] = None,
    media_resolver: Optional[MediaResolver] = None,
    transcriber: Optional[Transcriber] = None,
    extractor: Optional[Extractor] = None,
    forwarder: Optional[ReliableForwarder] = None,
    sleep_func=asyncio.sleep,
) -> Container:
    sessions, seen = _build_stores(settings, redis_client)

    if replies is None or media_resolver is None:
        if not settings.whatsapp_access_token or not settings.whatsapp_phone_number_id:
            logger.warning("WhatsApp credentials not configured, replies and media downloads will fail")
        graph = GraphWhatsAppClient(
            access_token=settings.whatsapp_access_token or "",
            phone_number_id=settings.whatsapp_phone_number_id or "",
            graph_version=settings.whatsapp_graph_version,
            enable_location_request=settings.whatsapp_enable_location_request,
            media_max_bytes=settings.media_max_bytes,
            timeout_seconds=settings.media_timeout_seconds,
        )
        replies = replies or graph
        media_resolver = media_resolver or graph

    if transcriber is None or extractor is None:
        if not settings.openai_api_key:
            logger.warning("OPENAI_API_KEY not configured, transcription and extraction will degrade")
        provider = OpenAIProvider(
            api_key=settings.openai_api_key or "",
            stt_model=settings.openai_stt_model,
            extraction_model=settings.openai_extraction_model,
            language=settings.openai_language or None,
            timeout_seconds=settings.openai_timeout_seconds,
        )
        transcriber = transcriber or provider
        extractor = extractor or provider

    if forwarder is None:
        forwarder = ReliableForwarder(
            url=settings.forward_url,
            auth_header=settings.forward_auth_header,
            max_attempts=settings.forward_max_attempts,
            initial_delay_seconds=settings.forward_initial_delay_seconds,
            max_delay_seconds=settings.forward_max_delay_seconds,
            timeout_seconds=settings.forward_timeout_seconds,
            sleep_func=sleep_func,
        )
        if not forwarder.enabled:
            logger.warning("FORWARD_URL not configured, completed reports will not be forwarded")

    finalizer = Finalizer(
        media_resolver=media_resolver,
        transcriber=transcriber,
        extractor=extractor,
        replies=replies,
        forwarder=forwarder,
        sessions=sessions,
        message_interval_seconds=settings.result_message_interval_seconds,
        sleep_func=sleep_func,
    )
    engine = WorkflowEngine(
        sessions=sessions,
        idempotency=IdempotencyFilter(seen, ttl_seconds=settings.idempotency_ttl_seconds),
        replies=replies,
        finalizer=finalizer,
        require_media=settings.require_media,
        media_starts_session=settings.media_starts_session,
    )
    return Container(
        settings=settings,
        sessions=sessions,
        idempotency=engine.idempotency,
        replies=replies,
        finalizer=finalizer,
        forwarder=forwarder,
        engine=engine,
    )
