"""
Pytest configuration and shared fixtures for the KYC service tests.

Testing Standards:
- Everything runs against InMemoryVerificationStore (no MongoDB needed)
- Time comes from FakeClock so timestamps are deterministic
- Side effects are captured by RecordingNotifier
"""

import pytest

from kyc_core.core.config import Settings
from kyc_core.db.memory_store import InMemoryVerificationStore
from kyc_core.models.kyc import SubjectAccount, SubjectType
from kyc_core.services.audit_log import AuditLog
from kyc_core.services.transition_engine import TransitionEngine
from tests.helpers import EMPLOYER_ID, STUDENT_ID, FakeClock, RecordingNotifier


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def settings() -> Settings:
    return Settings(transaction_max_retries=3, reconcile_concurrency=4)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryVerificationStore:
    store = InMemoryVerificationStore()
    store.create_account(SubjectAccount(subject_id=STUDENT_ID, subject_type=SubjectType.student))
    store.create_account(SubjectAccount(subject_id=EMPLOYER_ID, subject_type=SubjectType.individual_employer))
    return store


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def engine(store, notifier, settings, clock) -> TransitionEngine:
    return TransitionEngine(store, notifier=notifier, settings=settings, clock=clock)


@pytest.fixture
def audit_log(store) -> AuditLog:
    return AuditLog(store)
