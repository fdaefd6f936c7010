"""Outbound notifications for committed draft events.

Delivery is best-effort: a failed notification is logged and never affects
the committed state.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import httpx
import structlog

if TYPE_CHECKING:
    from draft.logic.events import DraftEvent

logger = structlog.get_logger()

_WEBHOOK_TIMEOUT_SECONDS = 5.0


class Notifier(ABC):
    @abstractmethod
    async def notify(self, event: DraftEvent) -> None: ...

    async def aclose(self) -> None:  # noqa: B027
        """Release any held resources."""


class LoggingNotifier(Notifier):
    """Default notifier when no webhook is configured: records events in the log."""

    async def notify(self, event: DraftEvent) -> None:
        logger.info("draft event", event_type=event.type, session_id=event.session_id)


class WebhookNotifier(Notifier):
    """POST every event as JSON to a configured URL."""

    def __init__(self, url: str, client: httpx.AsyncClient | None = None) -> None:
        self._url = url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=_WEBHOOK_TIMEOUT_SECONDS)

    async def notify(self, event: DraftEvent) -> None:
        try:
            response = await self._client.post(self._url, json=event.model_dump(mode="json"))
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(
                "webhook notification failed",
                event_type=event.type,
                session_id=event.session_id,
                error=str(e),
            )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
