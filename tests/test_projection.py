"""Tests for the Status Projection and the Consistency Validator."""

from datetime import datetime, timezone

from kyc_core.models.kyc import (
    KycStatus,
    RecordStatus,
    SubjectAccount,
    SubjectType,
    Suspension,
    VerificationRecord,
)
from kyc_core.services.consistency import diagnose, validate
from kyc_core.services.projection import expected_flags, expected_kyc_status, project, status_message
from tests.helpers import STUDENT_ID, student_profile

T0 = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)
T1 = datetime(2026, 1, 2, 9, 0, tzinfo=timezone.utc)


def make_record(status: RecordStatus = RecordStatus.pending, **fields) -> VerificationRecord:
    data = {
        "subject_id": STUDENT_ID,
        "subject_type": SubjectType.student,
        "profile": student_profile(),
        "status": status,
        "submitted_at": T0,
        "created_at": T0,
        "updated_at": T0,
    }
    if status == RecordStatus.approved:
        data.update(approved_at=T1, reviewed_at=T1, reviewed_by="admin-1")
    if status == RecordStatus.rejected:
        data.update(rejected_at=T1, reviewed_at=T1, reviewed_by="admin-1", rejection_reason="Blurry ID")
    data.update(fields)
    return VerificationRecord(**data)


def make_account(**fields) -> SubjectAccount:
    return SubjectAccount(subject_id=STUDENT_ID, subject_type=SubjectType.student, **fields)


class TestProject:

    def test_absent_record_is_not_submitted(self) -> None:
        canonical = project(None)
        assert canonical.status == KycStatus.not_submitted
        assert canonical.is_verified is False
        assert canonical.can_resubmit is True
        assert canonical.submitted_at is None

    def test_pending(self) -> None:
        canonical = project(make_record())
        assert canonical.status == KycStatus.pending
        assert canonical.is_verified is False
        assert canonical.submitted_at == T0
        assert canonical.can_resubmit is False

    def test_approved(self) -> None:
        canonical = project(make_record(RecordStatus.approved))
        assert canonical.status == KycStatus.approved
        assert canonical.is_verified is True
        assert canonical.verified_at == T1
        assert canonical.rejected_at is None

    def test_rejected_carries_reason_and_can_resubmit(self) -> None:
        canonical = project(make_record(RecordStatus.rejected))
        assert canonical.status == KycStatus.rejected
        assert canonical.is_verified is False
        assert canonical.rejection_reason == "Blurry ID"
        assert canonical.can_resubmit is True

    def test_is_verified_iff_approved(self) -> None:
        for status in RecordStatus:
            canonical = project(make_record(status))
            assert canonical.is_verified == (canonical.status == KycStatus.approved)


class TestExpectedFlags:

    def test_not_submitted_has_no_timestamps(self) -> None:
        flags = expected_flags(None)
        assert flags.kyc_status == KycStatus.not_submitted
        assert flags.kyc_pending_at is None
        assert flags.kyc_verified_at is None
        assert flags.kyc_rejected_at is None

    def test_exactly_one_timestamp_matches_status(self) -> None:
        pending = expected_flags(make_record())
        assert (pending.kyc_pending_at, pending.kyc_verified_at, pending.kyc_rejected_at) == (T0, None, None)

        approved = expected_flags(make_record(RecordStatus.approved))
        assert (approved.kyc_pending_at, approved.kyc_verified_at, approved.kyc_rejected_at) == (None, T1, None)
        assert approved.is_verified is True

        rejected = expected_flags(make_record(RecordStatus.rejected))
        assert (rejected.kyc_pending_at, rejected.kyc_verified_at, rejected.kyc_rejected_at) == (None, None, T1)

    def test_suspension_overrides_approved(self) -> None:
        record = make_record(
            RecordStatus.approved,
            suspension=Suspension(suspended_at=T1, suspended_by="admin-1", reason="Fraud report"),
        )
        assert project(record).status == KycStatus.approved
        assert expected_kyc_status(record) == KycStatus.suspended

        flags = expected_flags(record)
        assert flags.kyc_status == KycStatus.suspended
        assert flags.is_verified is False
        assert flags.kyc_verified_at is None


class TestStatusMessage:

    def test_rejected_message_includes_reason(self) -> None:
        message = status_message(KycStatus.rejected, "Blurry ID")
        assert message.endswith("Reason: Blurry ID")

    def test_every_status_has_a_message(self) -> None:
        for status in KycStatus:
            assert status_message(status)


class TestConsistency:

    def test_fresh_account_without_record_is_consistent(self) -> None:
        assert validate(make_account(), None) is True

    def test_matching_flags_are_consistent(self) -> None:
        account = make_account(kyc_status=KycStatus.approved, is_verified=True, kyc_verified_at=T1)
        report = diagnose(account, make_record(RecordStatus.approved))
        assert report.consistent is True
        assert report.mismatches == []

    def test_stale_status_is_reported(self) -> None:
        account = make_account(kyc_status=KycStatus.pending, is_verified=False, kyc_pending_at=T0)
        report = diagnose(account, make_record(RecordStatus.approved))
        assert report.consistent is False
        fields = {m.field: m for m in report.mismatches}
        assert fields["kyc_status"].expected == "approved"
        assert fields["kyc_status"].actual == "pending"
        assert fields["is_verified"].expected is True

    def test_verified_flag_without_approval_is_reported(self) -> None:
        account = make_account(kyc_status=KycStatus.rejected, is_verified=True)
        report = diagnose(account, make_record(RecordStatus.rejected))
        assert [m.field for m in report.mismatches] == ["is_verified"]

    def test_flags_without_record_are_reported(self) -> None:
        account = make_account(kyc_status=KycStatus.approved, is_verified=True)
        assert validate(account, None) is False
