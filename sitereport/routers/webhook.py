from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from sitereport.logging_config import get_logger
from sitereport.schemas.events import InboundEvent, extract_events
from sitereport.schemas.whatsapp import WebhookAck, WhatsAppWebhookPayload
from sitereport.services.alert_service import alert_error
from sitereport.services.container import Container
from sitereport.services.errors import StorageUnavailableError

logger = get_logger("webhook")

router = APIRouter(prefix="/whatsapp")


def get_container(request: Request) -> Container:
    return request.app.state.container


async def process_event(container: Container, event: InboundEvent) -> None:
    """Background task: run one event through the workflow engine."""
    try:
        outcome = await container.engine.handle_event(event)
        logger.debug(
            "Event handled",
            extra={"context": {"event_id": event.id, "type": event.type.value, "outcome": outcome.value}},
        )
    except StorageUnavailableError as e:
        logger.error(
            "Event dropped, session store unavailable",
            extra={"context": {"event_id": event.id, "error": str(e)}},
        )
        await alert_error("Session store unavailable", {"event_id": event.id, "error": str(e)})


@router.get("/webhook")
async def verify_webhook(
    mode: str | None = Query(default=None, alias="hub.mode"),
    token: str | None = Query(default=None, alias="hub.verify_token"),
    challenge: str | None = Query(default=None, alias="hub.challenge"),
    container: Container = Depends(get_container),
):
    """Meta subscription handshake."""
    expected = container.settings.whatsapp_verify_token
    if mode == "subscribe" and expected and token == expected:
        logger.info("Webhook verified")
        return PlainTextResponse(challenge or "")
    logger.warning("Webhook verification failed", extra={"context": {"mode": mode}})
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Verification failed")


@router.post("/webhook", response_model=WebhookAck)
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    container: Container = Depends(get_container),
):
    """Acknowledge immediately; each message is processed in the background.

    Malformed bodies are acknowledged too, otherwise Meta keeps redelivering them.
    """
    try:
        body = await request.json()
        payload = WhatsAppWebhookPayload.model_validate(body)
    except (ValueError, ValidationError) as e:
        logger.warning("Invalid webhook body ignored", extra={"context": {"error": str(e)[:300]}})
        return WebhookAck(success=False, message="Invalid payload")

    events = extract_events(payload)
    for event in events:
        background_tasks.add_task(process_event, container, event)

    if events:
        logger.info(
            "Webhook accepted",
            extra={"context": {"events": len(events), "event_ids": [e.id for e in events]}},
        )
    return WebhookAck(success=True, message="Accepted", events=len(events))
