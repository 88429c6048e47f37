"""
Shared FastAPI dependencies.

Route handlers never build stores or engines themselves; they ask for them
here, so tests can swap the Mongo store for the in-memory one with
app.dependency_overrides[get_store].
"""

from functools import lru_cache

from fastapi import Depends

from kyc_core.db.mongo_store import MongoVerificationStore
from kyc_core.db.unit_of_work import VerificationStore
from kyc_core.services.audit_log import AuditLog
from kyc_core.services.notifier import InboxNotifier, StatusNotifier
from kyc_core.services.transition_engine import TransitionEngine


@lru_cache()
def _mongo_store() -> MongoVerificationStore:
    return MongoVerificationStore()


@lru_cache()
def _inbox_notifier() -> InboxNotifier:
    return InboxNotifier()


def get_store() -> VerificationStore:
    return _mongo_store()


def get_notifier() -> StatusNotifier:
    return _inbox_notifier()


def get_engine(
    store: VerificationStore = Depends(get_store),
    notifier: StatusNotifier = Depends(get_notifier),
) -> TransitionEngine:
    return TransitionEngine(store, notifier=notifier)


def get_audit_log(store: VerificationStore = Depends(get_store)) -> AuditLog:
    return AuditLog(store)
