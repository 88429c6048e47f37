"""
Consistency Validator

Compares an account's stored KYC flags with what the Status Projection says
they should be. Pure comparison: mismatches are logged, never raised, so a
batch scan can keep going.
"""

from typing import List, Optional

import structlog

from kyc_core.models.kyc import (
    ConsistencyReport,
    FieldMismatch,
    KycStatus,
    SubjectAccount,
    VerificationRecord,
)
from kyc_core.services.projection import expected_flags

log = structlog.get_logger(__name__)


def diagnose(account: SubjectAccount, record: Optional[VerificationRecord]) -> ConsistencyReport:
    """Report every flag that disagrees with the record's projection."""
    expected = expected_flags(record)
    mismatches: List[FieldMismatch] = []

    if account.kyc_status != expected.kyc_status:
        mismatches.append(FieldMismatch(
            field="kyc_status", expected=expected.kyc_status.value, actual=account.kyc_status.value
        ))
    if account.is_verified != expected.is_verified:
        mismatches.append(FieldMismatch(
            field="is_verified", expected=expected.is_verified, actual=account.is_verified
        ))

    report = ConsistencyReport(
        subject_id=account.subject_id,
        consistent=not mismatches,
        mismatches=mismatches,
    )
    if mismatches:
        log.warning(
            "kyc_consistency_mismatch",
            subject_id=account.subject_id,
            record_status=record.status.value if record else KycStatus.not_submitted.value,
            mismatches=[m.model_dump() for m in mismatches],
        )
    return report


def validate(account: SubjectAccount, record: Optional[VerificationRecord]) -> bool:
    """True when the account flags agree with the record."""
    return diagnose(account, record).consistent
