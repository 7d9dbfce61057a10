from typing import Any, Optional

import httpx

from sitereport.logging_config import get_logger
from sitereport.services.messaging.base import (
    Button,
    MediaResolutionError,
    MediaResolver,
    ReplySender,
    ResolvedMedia,
)

logger = get_logger("messaging.graph")

BUTTON_TITLE_MAX = 20


class GraphWhatsAppClient(ReplySender, MediaResolver):
    """WhatsApp Cloud API (Meta Graph) client for replies and media downloads."""

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        graph_version: str = "v21.0",
        enable_location_request: bool = False,
        media_max_bytes: int = 20 * 1024 * 1024,
        timeout_seconds: float = 20.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.base_url = f"https://graph.facebook.com/{graph_version}"
        self.enable_location_request = enable_location_request
        self.media_max_bytes = media_max_bytes
        self.timeout_seconds = timeout_seconds
        self._client = client

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    async def _post_message(self, payload: dict[str, Any]) -> bool:
        body = {"messaging_product": "whatsapp", **payload}
        url = f"{self.base_url}/{self.phone_number_id}/messages"
        try:
            if self._client is not None:
                response = await self._client.post(url, headers=self._headers(), json=body)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.post(url, headers=self._headers(), json=body)
        except httpx.HTTPError as e:
            logger.error(
                "WhatsApp send failed",
                extra={"context": {"to": payload.get("to"), "type": payload.get("type"), "error": str(e)}},
            )
            return False

        if response.status_code >= 400:
            logger.error(
                "WhatsApp send rejected",
                extra={
                    "context": {
                        "to": payload.get("to"),
                        "type": payload.get("type"),
                        "status": response.status_code,
                        "body": response.text[:500],
                    }
                },
            )
            return False

        message_id = None
        try:
            message_id = (response.json().get("messages") or [{}])[0].get("id")
        except ValueError:
            pass
        logger.info(
            "WhatsApp message sent",
            extra={"context": {"to": payload.get("to"), "type": payload.get("type"), "message_id": message_id}},
        )
        return True

    async def send_text(self, to: str, body: str) -> bool:
        return await self._post_message({"to": to, "type": "text", "text": {"body": body}})

    async def send_buttons(self, to: str, body: str, buttons: list[Button]) -> bool:
        return await self._post_message(
            {
                "to": to,
                "type": "interactive",
                "interactive": {
                    "type": "button",
                    "body": {"text": body},
                    "action": {
                        "buttons": [
                            {"type": "reply", "reply": {"id": b.id, "title": b.title[:BUTTON_TITLE_MAX]}}
                            for b in buttons[:3]
                        ]
                    },
                },
            }
        )

    async def request_location(self, to: str, body: str, fallback_body: Optional[str] = None) -> bool:
        if self.enable_location_request:
            sent = await self._post_message(
                {
                    "to": to,
                    "type": "interactive",
                    "interactive": {
                        "type": "location_request_message",
                        "body": {"text": body},
                        "action": {"name": "send_location"},
                    },
                }
            )
            if sent:
                return True
            logger.warning("Native location request failed, falling back to text", extra={"context": {"to": to}})
        return await self.send_text(to, fallback_body or body)

    async def resolve(self, media_ref: str) -> ResolvedMedia:
        try:
            if self._client is not None:
                return await self._resolve_with(self._client, media_ref)
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                return await self._resolve_with(client, media_ref)
        except httpx.HTTPStatusError as e:
            raise MediaResolutionError(
                f"media download failed: {e.response.status_code}", status_code=e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            raise MediaResolutionError(f"media download failed: {e}") from e

    async def _resolve_with(self, client: httpx.AsyncClient, media_ref: str) -> ResolvedMedia:
        meta_response = await client.get(f"{self.base_url}/{media_ref}", headers=self._headers())
        meta_response.raise_for_status()
        meta = meta_response.json()
        url = meta.get("url")
        if not url:
            raise MediaResolutionError(f"no download url for media {media_ref}")

        response = await client.get(url, headers=self._headers())
        response.raise_for_status()
        content = response.content
        if len(content) > self.media_max_bytes:
            raise MediaResolutionError(f"media too large: {len(content)} > {self.media_max_bytes}")

        mime_type = meta.get("mime_type") or response.headers.get("content-type")
        return ResolvedMedia(content=content, mime_type=mime_type)
