# /carinsight/services/lead_service.py

import httpx
import logging
from typing import List, Optional, Protocol

from carinsight.config.settings import Settings
from carinsight.models.conversation import HandoffSignal
from carinsight.utils.errors import ExternalServiceError

# Delivery of handoff signals to the sales team. The conversation engine
# calls deliver() once per session, when the handoff flag is first set.

logger = logging.getLogger(__name__)


class LeadSink(Protocol):
    async def deliver(self, signal: HandoffSignal) -> None:
        ...


class WebhookLeadSink:
    def __init__(self, webhook_url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.webhook_url = webhook_url
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def deliver(self, signal: HandoffSignal) -> None:
        payload = {
            "event": "handoff_requested",
            "conversation_id": signal.conversation_id,
            "channel_id": signal.channel_id,
            "triggering_message": signal.triggering_message,
            "profile": signal.profile_snapshot.model_dump(mode="json", exclude_none=True),
            "created_at": signal.created_at.isoformat(),
        }
        try:
            response = await self.client.post(self.webhook_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ExternalServiceError("lead-webhook", str(e)) from e
        logger.info(f"Handoff for conversation {signal.conversation_id} delivered to sales webhook")

    async def cleanup(self):
        await self.client.aclose()


class InMemoryLeadSink:
    """Collects signals in memory. Used when no webhook is configured, and in tests."""

    def __init__(self):
        self.signals: List[HandoffSignal] = []

    async def deliver(self, signal: HandoffSignal) -> None:
        self.signals.append(signal)
        logger.info(f"Handoff for conversation {signal.conversation_id} recorded (no webhook configured)")


def build_lead_sink(settings: Settings) -> LeadSink:
    if settings.lead_webhook_url:
        return WebhookLeadSink(settings.lead_webhook_url, settings.lead_webhook_timeout_seconds)
    return InMemoryLeadSink()
