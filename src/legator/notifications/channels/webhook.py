"""
Generic webhook channel — POST the event as JSON to any URL.

Supports HMAC signature verification and configurable headers.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging

import httpx

from legator.core.resources import AgentEvent
from legator.notifications.channel import NotificationChannel

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Legator-Signature"


class WebhookChannel(NotificationChannel):
    """Generic webhook notification channel."""

    name: str = "webhook"

    def __init__(
        self,
        url: str,
        *,
        secret: str = "",
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.url = url
        self.secret = secret
        self.headers = headers or {}
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        self._client = httpx.AsyncClient(timeout=self.timeout)

    async def disconnect(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send(self, event: AgentEvent) -> None:
        client = self._client or httpx.AsyncClient(timeout=self.timeout)
        try:
            spec = event.spec
            payload = {
                "name": event.name,
                "namespace": event.namespace,
                "agent": spec.source_agent,
                "run": spec.source_run,
                "eventType": spec.event_type,
                "severity": spec.severity.value,
                "summary": spec.summary,
                "detail": spec.detail,
                "labels": spec.labels,
                "timestamp": (
                    event.metadata.creation_timestamp.isoformat()
                    if event.metadata.creation_timestamp
                    else ""
                ),
            }
            body = json.dumps(payload)

            send_headers: dict[str, str] = {
                "Content-Type": "application/json",
                **self.headers,
            }

            if self.secret:
                signature = hmac.new(
                    self.secret.encode(),
                    body.encode(),
                    hashlib.sha256,
                ).hexdigest()
                send_headers[SIGNATURE_HEADER] = f"sha256={signature}"

            resp = await client.post(self.url, content=body, headers=send_headers)
            resp.raise_for_status()
        except httpx.HTTPError:
            logger.exception("Webhook delivery failed to %s", self.url)
        finally:
            if not self._client:
                await client.aclose()
