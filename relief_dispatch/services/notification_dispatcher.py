# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Notification dispatch — inter-service communication.

Events are delivered to a single user, to every user of a role, or to
everyone. Delivery is fire-and-forget: failures are logged and counted but
never raised to the operation that triggered them.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

import httpx

from relief_dispatch.core.config import settings
from relief_dispatch.core.logging import get_logger
from relief_dispatch.metrics.prometheus import NOTIFICATIONS_FAILED, NOTIFICATIONS_SENT

logger = get_logger(__name__)

NEW_INCIDENT_NEARBY = "new-incident-nearby"
ASSIGNMENT_REQUEST = "assignment-request"
ASSIGNMENT_ACCEPTED = "assignment-accepted"
ASSIGNMENT_REJECTED = "assignment-rejected"
ASSIGNMENT_STARTED = "assignment-started"
ASSIGNMENT_COMPLETED = "assignment-completed"
ASSIGNMENT_CANCELLED = "assignment-cancelled"
INCIDENT_ESCALATED = "incident-escalated"
INCIDENT_STATUS_CHANGED = "incident-status-changed"
SKILL_VERIFIED = "skill-verified"


class NotificationDispatcher(ABC):
    """Delivery contract consumed by every service that emits events."""

    @abstractmethod
    def notify_user(self, user_id: str, event: str, payload: dict[str, Any]) -> None:
        ...

    @abstractmethod
    def notify_role(self, role: str, event: str, payload: dict[str, Any]) -> None:
        ...

    @abstractmethod
    def notify_all(self, event: str, payload: dict[str, Any]) -> None:
        ...


class HttpNotificationDispatcher(NotificationDispatcher):
    """Posts events to the notification-service over HTTP."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None) -> None:
        self._base_url = (base_url or settings.NOTIFICATION_SERVICE_URL).rstrip("/")
        self._timeout = timeout or settings.NOTIFICATION_TIMEOUT

    def notify_user(self, user_id: str, event: str, payload: dict[str, Any]) -> None:
        self._post({"type": "user", "id": user_id}, event, payload)

    def notify_role(self, role: str, event: str, payload: dict[str, Any]) -> None:
        self._post({"type": "role", "id": role}, event, payload)

    def notify_all(self, event: str, payload: dict[str, Any]) -> None:
        self._post({"type": "all"}, event, payload)

    def _post(self, target: dict[str, str], event: str, payload: dict[str, Any]) -> None:
        """Send one event. Transport and HTTP errors propagate to the caller."""
        with httpx.Client(timeout=self._timeout) as client:
            resp = client.post(
                f"{self._base_url}/api/v1/events",
                json={"target": target, "event": event, "payload": payload},
            )
            resp.raise_for_status()
        logger.info(
            "Notification sent: target=%s, event=%s, status=%d",
            target.get("id", target["type"]), event, resp.status_code,
        )


class BestEffortDispatcher(NotificationDispatcher):
    """
    Wraps any dispatcher so a failing delivery can never roll back or fail
    the state transition that triggered it.
    """

    def __init__(self, inner: NotificationDispatcher) -> None:
        self._inner = inner

    @property
    def inner(self) -> NotificationDispatcher:
        return self._inner

    def notify_user(self, user_id: str, event: str, payload: dict[str, Any]) -> None:
        self._deliver("user", event, self._inner.notify_user, user_id, event, payload)

    def notify_role(self, role: str, event: str, payload: dict[str, Any]) -> None:
        self._deliver("role", event, self._inner.notify_role, role, event, payload)

    def notify_all(self, event: str, payload: dict[str, Any]) -> None:
        self._deliver("all", event, self._inner.notify_all, event, payload)

    @staticmethod
    def _deliver(scope: str, event: str, send, *args) -> None:
        try:
            send(*args)
            NOTIFICATIONS_SENT.labels(scope=scope, event=event).inc()
        except Exception as exc:
            NOTIFICATIONS_FAILED.labels(scope=scope, event=event).inc()
            logger.warning("Notification dropped: scope=%s, event=%s, error=%s", scope, event, exc,
                           extra={"event": event})


def best_effort(dispatcher: NotificationDispatcher) -> BestEffortDispatcher:
    if isinstance(dispatcher, BestEffortDispatcher):
        return dispatcher
    return BestEffortDispatcher(dispatcher)


def event_payload(message: str, **body: Any) -> dict[str, Any]:
    """Standard event envelope: human message, entity summary, timestamp."""
    return {
        "message": message,
        **body,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
