"""
Status Projection

Computes the canonical KYC status from a subject's VerificationRecord.
This is the SINGLE SOURCE OF TRUTH for what the account flags must say:
the transition engine uses it to write the flags, the consistency validator
uses it to check them. Pure functions, no I/O.
"""

from typing import Optional

from kyc_core.models.kyc import (
    AccountFlags,
    CanonicalStatus,
    KycStatus,
    RecordStatus,
    VerificationRecord,
)


def project(record: Optional[VerificationRecord]) -> CanonicalStatus:
    """
    Canonical status of a record (or of its absence).

    Never returns `suspended`: suspension is an account-level override
    layered on top of the record status (see expected_kyc_status).
    """
    if record is None:
        return CanonicalStatus(
            status=KycStatus.not_submitted,
            is_verified=False,
            can_resubmit=True,
        )

    return CanonicalStatus(
        status=KycStatus(record.status.value),
        is_verified=record.status == RecordStatus.approved,
        submitted_at=record.submitted_at,
        verified_at=record.approved_at,
        rejected_at=record.rejected_at,
        rejection_reason=record.rejection_reason,
        can_resubmit=record.status == RecordStatus.rejected,
    )


def expected_kyc_status(record: Optional[VerificationRecord]) -> KycStatus:
    """Five-value status the account must carry for this record."""
    if record is not None and record.suspension is not None:
        return KycStatus.suspended
    return project(record).status


def expected_flags(record: Optional[VerificationRecord]) -> AccountFlags:
    """
    Complete flag set for an account whose active record is `record`.
    Exactly one KYC timestamp is set, matching the status; none for
    not_submitted and suspended.
    """
    status = expected_kyc_status(record)
    if status == KycStatus.suspended:
        return AccountFlags(kyc_status=status, is_verified=False)

    canonical = project(record)
    return AccountFlags(
        kyc_status=status,
        is_verified=canonical.is_verified,
        kyc_pending_at=record.submitted_at if status == KycStatus.pending else None,
        kyc_verified_at=record.approved_at if status == KycStatus.approved else None,
        kyc_rejected_at=record.rejected_at if status == KycStatus.rejected else None,
    )


STATUS_MESSAGES = {
    KycStatus.not_submitted: "Please complete your KYC details.",
    KycStatus.pending: "Your KYC is under verification. Please wait.",
    KycStatus.approved: "Your profile is verified. You can now explore and apply for jobs.",
    KycStatus.rejected: "Your KYC was rejected. Please re-submit with proper details.",
    KycStatus.suspended: "Your account verification has been suspended. Please contact support.",
}


def status_message(status: KycStatus, rejection_reason: Optional[str] = None) -> str:
    """User-facing text for a status (real-time payloads, inbox notifications, API)."""
    message = STATUS_MESSAGES[status]
    if status == KycStatus.rejected and rejection_reason:
        message = f"{message} Reason: {rejection_reason}"
    return message
