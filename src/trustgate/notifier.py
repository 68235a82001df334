"""
Fire-and-forget notification senders.

Delivery is best effort: a failed notification is logged and never fails the
score change that triggered it.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable

import httpx

from .constants import DEFAULT_NOTIFY_TIMEOUT
from .models import utcnow

logger = logging.getLogger(__name__)

# Notification kinds
ACCOUNTABILITY_IMPACT = "accountability_impact"
DECAY_WARNING = "trust_decay_warning"
REACTIVATION_BONUS = "reactivation_bonus"


@runtime_checkable
class Notifier(Protocol):
    """Delivery channel for user notifications."""

    async def notify(self, user_id: str, kind: str, payload: Dict[str, Any]) -> None:
        """Deliver one notification; may raise, callers go through send_safely."""
        ...

    async def aclose(self) -> None:
        """Release channel resources."""
        ...


class LoggingNotifier:
    """Writes notifications to the log. Default when no channel is configured."""

    async def notify(self, user_id: str, kind: str, payload: Dict[str, Any]) -> None:
        logger.info(f"Notify {user_id} [{kind}]: {payload.get('message', '')}")

    async def aclose(self) -> None:
        return None


class RecordingNotifier:
    """Keeps notifications in memory."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, str, Dict[str, Any]]] = []

    async def notify(self, user_id: str, kind: str, payload: Dict[str, Any]) -> None:
        self.sent.append((user_id, kind, payload))

    async def aclose(self) -> None:
        return None

    def of_kind(self, kind: str) -> List[Tuple[str, str, Dict[str, Any]]]:
        return [n for n in self.sent if n[1] == kind]


class WebhookNotifier:
    """POSTs each notification as JSON to a delivery service."""

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_NOTIFY_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def notify(self, user_id: str, kind: str, payload: Dict[str, Any]) -> None:
        response = await self._client.post(
            self.url,
            json={
                "user_id": user_id,
                "kind": kind,
                "payload": payload,
                "sent_at": utcnow().isoformat(),
            },
            headers={"Content-Type": "application/json"},
        )
        response.raise_for_status()

    async def aclose(self) -> None:
        await self._client.aclose()


async def send_safely(
    notifier: Optional[Notifier], user_id: str, kind: str, payload: Dict[str, Any]
) -> bool:
    """Deliver one notification, swallowing and logging any failure."""
    if notifier is None:
        return False
    try:
        await notifier.notify(user_id, kind, payload)
        return True
    except httpx.HTTPStatusError as e:
        logger.warning(f"Notification {kind} to {user_id} rejected: {e.response.status_code}")
    except Exception as e:
        logger.warning(f"Notification {kind} to {user_id} failed: {e}")
    return False
