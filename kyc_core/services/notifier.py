"""
Post-commit side effects of a KYC transition.

The transition engine receives a StatusNotifier at construction time and
calls it only after its transaction committed:

- emit_status_change: real-time push to the subject's connected clients
  (fire-and-forget; the socket transport lives outside this package)
- create_notification: persisted inbox entry

Neither may fail the transition. SafeNotifier enforces that for any
implementation by logging and swallowing its errors.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import structlog
from pymongo.collection import Collection

from kyc_core.db.mongodb import get_collection

log = structlog.get_logger(__name__)

STATUS_UPDATE_EVENT = "kyc:status:update"

Emitter = Callable[[str, str, Dict[str, Any]], None]


class StatusNotifier:
    """Capability interface handed to the transition engine."""

    def emit_status_change(self, subject_id: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError

    def create_notification(self, subject_id: str, type: str, title: str, message: str, actor_id: str) -> None:
        raise NotImplementedError


class NullNotifier(StatusNotifier):
    """Drops everything (batch jobs, tests that don't care)."""

    def emit_status_change(self, subject_id: str, payload: Dict[str, Any]) -> None:
        pass

    def create_notification(self, subject_id: str, type: str, title: str, message: str, actor_id: str) -> None:
        pass


def log_emitter(subject_id: str, event: str, payload: Dict[str, Any]) -> None:
    """Default emitter when no real-time gateway is wired in."""
    log.info("kyc_status_emitted", subject_id=subject_id, socket_event=event, status=payload.get("status"))


class InboxNotifier(StatusNotifier):
    """
    Persists inbox notifications in MongoDB and forwards real-time payloads
    to an injected emitter (e.g. the socket gateway's emit-to-user).
    """

    def __init__(self, collection: Optional[Collection] = None, emitter: Optional[Emitter] = None):
        self.collection = collection if collection is not None else get_collection("notifications")
        self.emitter = emitter or log_emitter

    def emit_status_change(self, subject_id: str, payload: Dict[str, Any]) -> None:
        self.emitter(subject_id, STATUS_UPDATE_EVENT, {
            **payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    def create_notification(self, subject_id: str, type: str, title: str, message: str, actor_id: str) -> None:
        self.collection.insert_one({
            "subject_id": subject_id,
            "type": type,
            "title": title,
            "message": message,
            "created_by": actor_id,
            "is_read": False,
            "created_at": datetime.now(timezone.utc),
        })


class SafeNotifier(StatusNotifier):
    """Wraps a notifier so its failures are logged and never propagate."""

    def __init__(self, inner: StatusNotifier):
        self.inner = inner

    def emit_status_change(self, subject_id: str, payload: Dict[str, Any]) -> None:
        try:
            self.inner.emit_status_change(subject_id, payload)
        except Exception:
            log.exception("kyc_side_effect_failed", side_effect="emit_status_change", subject_id=subject_id)

    def create_notification(self, subject_id: str, type: str, title: str, message: str, actor_id: str) -> None:
        try:
            self.inner.create_notification(subject_id, type, title, message, actor_id)
        except Exception:
            log.exception("kyc_side_effect_failed", side_effect="create_notification", subject_id=subject_id)
