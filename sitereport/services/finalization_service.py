"""Turns a completed session into a report and hands it downstream.

The session is taken out of the store before any slow step, so nothing can be
added to a report in flight. Every step before forwarding degrades instead of
failing, so each workflow that reaches completion is forwarded exactly once.
"""

import asyncio

from sitereport.logging_config import get_logger
from sitereport.models.report import ExtractionResult, ForwardPayload
from sitereport.models.session import DescriptionItem, Session, utc_now
from sitereport.services import messages
from sitereport.services.forward_service import ReliableForwarder
from sitereport.services.llm.base import Extractor, ProviderError, Transcriber
from sitereport.services.messaging.base import MediaResolutionError, MediaResolver, ReplySender
from sitereport.services.session_store import SessionStore

logger = get_logger("finalization")


class Finalizer:
    def __init__(
        self,
        media_resolver: MediaResolver,
        transcriber: Transcriber,
        extractor: Extractor,
        replies: ReplySender,
        forwarder: ReliableForwarder,
        sessions: SessionStore,
        message_interval_seconds: float = 0.5,
        sleep_func=asyncio.sleep,
    ):
        self.media_resolver = media_resolver
        self.transcriber = transcriber
        self.extractor = extractor
        self.replies = replies
        self.forwarder = forwarder
        self.sessions = sessions
        self.message_interval_seconds = message_interval_seconds
        self._sleep = sleep_func

    async def finalize(self, session: Session) -> ForwardPayload:
        context = {"reporter_key": session.reporter_key, "workflow_id": session.workflow_id}
        logger.info(
            "Finalization started",
            extra={"context": {**context, "descriptions": len(session.description_items)}},
        )
        if not await self.sessions.discard(session):
            logger.warning("Session already gone at finalization", extra={"context": context})

        resolved = [await self._resolve_description(session, item) for item in session.description_items]
        concatenated = messages.DESCRIPTION_SEPARATOR.join(resolved)

        extraction = await self._extract(session, concatenated)
        await self._send_results(session, concatenated, extraction)

        payload = ForwardPayload.from_session(session, concatenated, extraction, now=utc_now())
        await self.forwarder.forward(payload)
        logger.info(
            "Finalization complete",
            extra={
                "context": {
                    **context,
                    "items": len(extraction.items),
                    "duration_ms": payload.duration_ms,
                }
            },
        )
        return payload

    async def _resolve_description(self, session: Session, item: DescriptionItem) -> str:
        if item.kind == "text":
            return item.content

        try:
            media = await self.media_resolver.resolve(item.content)
            return await self.transcriber.transcribe(media.content, media.mime_type or item.mime_type)
        except (MediaResolutionError, ProviderError) as e:
            status_code = e.status_code
        except Exception:
            logger.error(
                "Unexpected transcription failure",
                extra={"context": {"workflow_id": session.workflow_id, "media_ref": item.content}},
                exc_info=True,
            )
            status_code = None

        logger.warning(
            "Audio description replaced with placeholder",
            extra={
                "context": {
                    "workflow_id": session.workflow_id,
                    "media_ref": item.content,
                    "status_code": status_code,
                }
            },
        )
        return messages.transcription_placeholder(status_code)

    async def _extract(self, session: Session, text: str) -> ExtractionResult:
        try:
            return await self.extractor.extract(text)
        except Exception as e:
            logger.error(
                "Extraction failed, using degraded result",
                extra={"context": {"workflow_id": session.workflow_id, "error": str(e)}},
            )
            return ExtractionResult.degraded(text, str(e))

    async def _send_results(self, session: Session, concatenated: str, extraction: ExtractionResult) -> None:
        to = session.reply_to
        try:
            if not extraction.items:
                await self.replies.send_text(to, messages.NO_EXTRACTIONS)
                return

            bodies = [messages.format_combined_description(concatenated)]
            if extraction.summary:
                bodies.append(messages.format_summary(extraction.summary))
            bodies.extend(
                messages.format_extraction_item(index, item) for index, item in enumerate(extraction.items, start=1)
            )
            for position, body in enumerate(bodies):
                if position > 0:
                    await self._sleep(self.message_interval_seconds)
                await self.replies.send_text(to, body)
            logger.info(
                "Result messages sent",
                extra={"context": {"workflow_id": session.workflow_id, "messages": len(bodies)}},
            )
        except Exception as e:
            logger.error(
                "Sending results failed",
                extra={"context": {"workflow_id": session.workflow_id, "error": str(e)}},
            )
            try:
                await self.replies.send_text(to, messages.RESULTS_FALLBACK)
            except Exception as fallback_error:
                logger.error(
                    "Fallback reply failed",
                    extra={"context": {"workflow_id": session.workflow_id, "error": str(fallback_error)}},
                )
