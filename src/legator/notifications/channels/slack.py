"""
Slack channel — webhook-based outbound notifications.

Sends formatted Block Kit messages to a Slack incoming webhook URL.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from legator.core.resources import AgentEvent, EventSeverity
from legator.notifications.channel import NotificationChannel

logger = logging.getLogger(__name__)

_SEVERITY_EMOJI = {
    EventSeverity.INFO: ":information_source:",
    EventSeverity.WARNING: ":warning:",
    EventSeverity.CRITICAL: ":rotating_light:",
}


class SlackChannel(NotificationChannel):
    """Slack incoming webhook notification channel."""

    name: str = "slack"

    def __init__(self, webhook_url: str, channel: str = "") -> None:
        self.webhook_url = webhook_url
        self.channel = channel  # optional override of the webhook's channel
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        self._client = httpx.AsyncClient(timeout=10.0)

    async def disconnect(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send(self, event: AgentEvent) -> None:
        payload: dict[str, Any] = {"blocks": self._build_blocks(event)}
        if self.channel:
            payload["channel"] = self.channel

        client = self._client or httpx.AsyncClient(timeout=10.0)
        try:
            resp = await client.post(self.webhook_url, json=payload)
            resp.raise_for_status()
        except httpx.HTTPError:
            logger.exception("Failed to send Slack notification")
        finally:
            if not self._client:
                await client.aclose()

    def _build_blocks(self, event: AgentEvent) -> list[dict[str, Any]]:
        spec = event.spec
        emoji = _SEVERITY_EMOJI.get(spec.severity, ":information_source:")

        blocks: list[dict[str, Any]] = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"[{spec.severity.value.upper()}] {spec.source_agent}: {spec.event_type}",
                },
            },
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"{emoji} {spec.summary}",
                },
            },
        ]

        fields = [{"type": "mrkdwn", "text": f"*Event:* `{event.name}`"}]
        if spec.source_run:
            fields.append({"type": "mrkdwn", "text": f"*Run:* `{spec.source_run}`"})
        if spec.target_agent:
            fields.append({"type": "mrkdwn", "text": f"*Target:* {spec.target_agent}"})
        blocks.append({"type": "section", "fields": fields})

        if spec.detail:
            blocks.append({
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": spec.detail}],
            })

        blocks.append({"type": "divider"})

        return blocks
