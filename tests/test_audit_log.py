"""Tests for audit trail queries."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from kyc_core.core.errors import ValidationError
from kyc_core.models.kyc import AuditAction, AuditEntry, KycStatus
from tests.helpers import ADMIN_ID, EMPLOYER_ID, STUDENT_ID, individual_profile, student_profile


@pytest.fixture
def history(engine):
    engine.submit(STUDENT_ID, student_profile())
    engine.reject(STUDENT_ID, ADMIN_ID, "Blurry ID card")
    engine.submit(STUDENT_ID, student_profile())
    engine.approve(STUDENT_ID, "admin-2")
    engine.submit(EMPLOYER_ID, individual_profile())
    engine.approve(EMPLOYER_ID, ADMIN_ID)


class TestAuditLog:

    def test_subject_history_newest_first(self, audit_log, history) -> None:
        entries = audit_log.for_subject(STUDENT_ID)
        assert [e.action for e in entries] == [
            AuditAction.approved,
            AuditAction.resubmitted,
            AuditAction.rejected,
            AuditAction.submitted,
        ]
        timestamps = [e.timestamp for e in entries]
        assert timestamps == sorted(timestamps, reverse=True)

    def test_by_actor(self, audit_log, history) -> None:
        entries = audit_log.by_actor(ADMIN_ID)
        assert [(e.subject_id, e.action) for e in entries] == [
            (EMPLOYER_ID, AuditAction.approved),
            (STUDENT_ID, AuditAction.rejected),
        ]

    def test_by_action(self, audit_log, history) -> None:
        entries = audit_log.by_action("approved")
        assert [e.subject_id for e in entries] == [EMPLOYER_ID, STUDENT_ID]

    def test_filters_combine(self, audit_log, history) -> None:
        entries = audit_log.query(subject_id=STUDENT_ID, action=AuditAction.rejected)
        assert len(entries) == 1
        assert entries[0].reason == "Blurry ID card"

    def test_limit(self, audit_log, history) -> None:
        assert len(audit_log.query(limit=2)) == 2

    def test_rejects_bad_queries(self, audit_log) -> None:
        with pytest.raises(ValidationError):
            audit_log.query(limit=0)
        with pytest.raises(ValidationError):
            audit_log.by_action("deleted")


class TestAuditEntry:

    def test_is_immutable(self, audit_log, history) -> None:
        entry = audit_log.for_subject(STUDENT_ID)[0]
        with pytest.raises(PydanticValidationError):
            entry.reason = "edited"

    def test_rejection_requires_reason(self, clock) -> None:
        with pytest.raises(PydanticValidationError):
            AuditEntry(
                subject_id=STUDENT_ID,
                actor_id=ADMIN_ID,
                action=AuditAction.rejected,
                prev_status=KycStatus.pending,
                new_status=KycStatus.rejected,
                timestamp=clock(),
            )

    def test_transition_entries_require_statuses(self, clock) -> None:
        with pytest.raises(PydanticValidationError):
            AuditEntry(subject_id=STUDENT_ID, actor_id=ADMIN_ID, action=AuditAction.approved, timestamp=clock())
