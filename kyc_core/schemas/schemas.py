"""
Pydantic Schemas - Request/Response Validation

All KYC API request and response schemas in one file for simplicity.
Domain models (records, audit entries) are returned as-is where they are
already the right shape.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from kyc_core.models.kyc import (
    AuditEntry,
    CanonicalStatus,
    ConsistencyReport,
    KycStatus,
    Profile,
    SubjectType,
    VerificationRecord,
)


# ============================================================
# SUBJECT SCHEMAS
# ============================================================

class KycSubmitRequest(BaseModel):
    profile: Profile


class EmployerTypeChangeRequest(BaseModel):
    employer_type: SubjectType


class KycStatusResponse(BaseModel):
    subject_id: str
    subject_type: SubjectType
    kyc_status: KycStatus
    is_verified: bool
    submitted_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    can_resubmit: bool
    message: str


class TransitionResponse(BaseModel):
    subject_id: str
    kyc_status: KycStatus
    is_verified: bool
    message: str
    audit_entry_id: str
    status: CanonicalStatus


# ============================================================
# ADMIN SCHEMAS
# ============================================================

class AdminDecisionRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class AdminRejectRequest(BaseModel):
    # emptiness is checked by the engine so the error text is the same everywhere
    reason: str = Field(..., max_length=1000)


class AdminStatusResponse(KycStatusResponse):
    record: Optional[VerificationRecord] = None
    consistency: ConsistencyReport


class PendingQueueResponse(BaseModel):
    count: int
    records: List[VerificationRecord]


class AuditQueryResponse(BaseModel):
    count: int
    entries: List[AuditEntry]


class ReconcileRequest(BaseModel):
    create_indexes: bool = True


class ReconcileResponse(BaseModel):
    success: bool
    subjects_scanned: int
    records_found: int
    inconsistencies_found: int
    inconsistencies_repaired: int
    indexes_created: int
    errors: List[str]
    audit_entry_id: Optional[str] = None
