"""
Newsroom Workflow Engine - Notification Service.
Best-effort "event occurred" signals for the real-time collaborator,
delivered by HTTP webhook after a mutation has committed.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Optional

import httpx

from app.core.config import get_settings
from app.core.correlation import get_correlation_id
from app.core.logging import get_logger

logger = get_logger("notification_service")
settings = get_settings()


@dataclass
class WorkflowEvent:
    type: str
    target_type: str
    target_id: int | str
    actor_id: Optional[int]
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_payload(self) -> dict:
        payload = asdict(self)
        payload["target_id"] = str(self.target_id)
        return payload


class NotificationService:
    """Fire-and-forget delivery. Failures are logged, never raised."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self._transport = transport

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if settings.events_webhook_token:
            headers["Authorization"] = f"Bearer {settings.events_webhook_token}"
        correlation_id = get_correlation_id()
        if correlation_id:
            headers["X-Correlation-ID"] = correlation_id
        return headers

    async def publish(self, event: WorkflowEvent) -> bool:
        webhook = settings.events_webhook_url
        if not webhook:
            logger.debug("notification_webhook_not_configured", event_type=event.type)
            return False

        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=settings.notification_timeout_seconds,
            ) as client:
                resp = await client.post(webhook, json=event.to_payload(), headers=self._headers())
            if resp.status_code < 300:
                logger.info(
                    "notification_sent",
                    event_type=event.type,
                    target_type=event.target_type,
                    target_id=event.target_id,
                )
                return True
            logger.warning(
                "notification_delivery_failed",
                event_type=event.type,
                status=resp.status_code,
                body=resp.text[:300],
            )
            return False
        except Exception as e:
            logger.warning("notification_delivery_failed", event_type=event.type, error=str(e))
            return False

    async def publish_event(
        self,
        *,
        type: str,
        target_type: str,
        target_id: int | str,
        actor_id: Optional[int],
        timestamp: Optional[datetime] = None,
    ) -> bool:
        event = WorkflowEvent(type=type, target_type=target_type, target_id=target_id, actor_id=actor_id)
        if timestamp is not None:
            event.timestamp = timestamp.isoformat()
        return await self.publish(event)


notification_service = NotificationService()
