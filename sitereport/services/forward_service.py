"""Hands finished reports to the downstream system with bounded retries.

There is no dead-letter store: after the last failed attempt the full payload
is written to the error log and an operator alert is raised, then the report
is dropped.
"""

import asyncio
from typing import Any, Optional

import httpx

from sitereport.logging_config import get_logger
from sitereport.models.report import ForwardPayload
from sitereport.services import alert_service

logger = get_logger("forwarder")


class ReliableForwarder:
    def __init__(
        self,
        url: Optional[str],
        auth_header: Optional[str] = None,
        max_attempts: int = 5,
        initial_delay_seconds: float = 0.5,
        max_delay_seconds: float = 8.0,
        timeout_seconds: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
        sleep_func=asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.url = url
        self.auth_header = auth_header
        self.max_attempts = max_attempts
        self.initial_delay_seconds = initial_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._sleep = sleep_func

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def delay_for(self, attempt: int) -> float:
        """Pause after failed attempt number `attempt` (1-based)."""
        delay = self.initial_delay_seconds * (2 ** (attempt - 1))
        return min(delay, self.max_delay_seconds)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.auth_header:
            headers["Authorization"] = self.auth_header
        return headers

    async def _send_once(self, body: dict[str, Any]) -> None:
        if self._client is not None:
            response = await self._client.post(
                self.url, json=body, headers=self._headers(), timeout=self.timeout_seconds
            )
        else:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(self.url, json=body, headers=self._headers())
        response.raise_for_status()

    async def forward(self, payload: ForwardPayload) -> bool:
        """Deliver the payload. Never raises; returns False if it was not delivered."""
        context = {"workflow_id": payload.workflow_id, "reporter_key": payload.reporter_key}
        if not self.enabled:
            logger.info("Forward skipped, no downstream URL configured", extra={"context": context})
            return False

        body = payload.to_json_dict()
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                await self._send_once(body)
                logger.info("Forward succeeded", extra={"context": {**context, "attempt": attempt}})
                return True
            except httpx.HTTPError as e:
                last_error = str(e)
                logger.warning(
                    "Forward attempt failed",
                    extra={"context": {**context, "attempt": attempt, "error": last_error}},
                )
            if attempt < self.max_attempts:
                await self._sleep(self.delay_for(attempt))

        logger.error(
            "Forward exhausted retries, payload dropped",
            extra={
                "context": {
                    **context,
                    "attempts": self.max_attempts,
                    "error": last_error,
                    "payload": body,
                }
            },
        )
        await alert_service.alert_critical(
            "Report could not be forwarded",
            {**context, "attempts": self.max_attempts, "error": last_error},
        )
        return False
