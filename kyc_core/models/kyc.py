"""
KYC domain models.

Two records describe a subject's verification:

- VerificationRecord: the authoritative document (one active per subject per
  subject type). The state-machine fields live in a shared envelope; the
  submitted details live in `profile`, a tagged union keyed by `kind`.
- SubjectAccount: denormalized flags on the account, read by authorization
  checks elsewhere ("can this student view jobs?"). A cache of the record,
  never the source of truth.

Every transition also leaves one immutable AuditEntry behind.
"""

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator


def new_id() -> str:
    return str(ObjectId())


# ============================================================
# ENUMS
# ============================================================

class SubjectType(str, Enum):
    student = "student"
    individual_employer = "individual_employer"
    corporate_employer = "corporate_employer"
    local_business_employer = "local_business_employer"


EMPLOYER_TYPES = frozenset({
    SubjectType.individual_employer,
    SubjectType.corporate_employer,
    SubjectType.local_business_employer,
})


class RecordStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class KycStatus(str, Enum):
    not_submitted = "not_submitted"
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    suspended = "suspended"


class AuditAction(str, Enum):
    submitted = "submitted"
    approved = "approved"
    rejected = "rejected"
    resubmitted = "resubmitted"
    suspended = "suspended"
    reactivated = "reactivated"
    withdrawn = "withdrawn"
    type_changed = "type_changed"
    reconciled = "reconciled"


REASON_REQUIRED_ACTIONS = frozenset({AuditAction.rejected, AuditAction.suspended})


class ArchiveReason(str, Enum):
    type_change = "type_change"
    withdrawn = "withdrawn"


# ============================================================
# PROFILE PAYLOADS (opaque to the state machine)
# ============================================================

class EmergencyContact(BaseModel):
    name: str
    phone: str


class StudentProfile(BaseModel):
    kind: Literal["student"] = "student"
    full_name: str = Field(..., min_length=2, max_length=100)
    date_of_birth: Optional[date] = None
    phone: str = Field(..., min_length=6, max_length=20)
    email: EmailStr
    address: Optional[str] = None
    college: str = Field(..., min_length=2)
    course_year: Optional[str] = None
    student_id: Optional[str] = None
    stay_type: Optional[Literal["home", "pg"]] = None
    hours_per_week: Optional[int] = Field(None, ge=0, le=168)
    available_days: List[str] = []
    aadhaar_card_url: Optional[str] = None
    college_id_card_url: Optional[str] = None
    emergency_contact: Optional[EmergencyContact] = None
    preferred_job_types: List[str] = []


class IndividualEmployerProfile(BaseModel):
    kind: Literal["individual_employer"] = "individual_employer"
    full_name: str = Field(..., min_length=2, max_length=150)
    aadhaar_number: str = Field(..., min_length=12, max_length=14)
    address: Optional[str] = None
    city: Optional[str] = None
    pin_code: Optional[str] = None
    aadhaar_front_url: Optional[str] = None
    aadhaar_back_url: Optional[str] = None
    selfie_url: Optional[str] = None


class CorporateEmployerProfile(BaseModel):
    kind: Literal["corporate_employer"] = "corporate_employer"
    company_name: str = Field(..., min_length=2, max_length=200)
    company_email: Optional[EmailStr] = None
    company_phone: Optional[str] = Field(None, max_length=20)
    authorized_name: Optional[str] = None
    designation: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    gst_number: Optional[str] = None
    pan: Optional[str] = None
    documents: Dict[str, str] = {}


class LocalBusinessProfile(BaseModel):
    kind: Literal["local_business_employer"] = "local_business_employer"
    business_name: str = Field(..., min_length=2, max_length=200)
    business_type: Optional[str] = None
    owner_name: str
    owner_email: EmailStr
    owner_phone: str = Field(..., min_length=6, max_length=20)
    address: str
    city: Optional[str] = None
    pin_code: Optional[str] = None
    documents: Dict[str, str] = {}


Profile = Annotated[
    Union[StudentProfile, IndividualEmployerProfile, CorporateEmployerProfile, LocalBusinessProfile],
    Field(discriminator="kind"),
]


# ============================================================
# VERIFICATION RECORD
# ============================================================

class Suspension(BaseModel):
    """Account-level override recorded on the record; the record status is untouched."""
    suspended_at: datetime
    suspended_by: str
    reason: str


class VerificationRecord(BaseModel):
    id: str = Field(default_factory=new_id)
    subject_id: str
    subject_type: SubjectType
    profile: Profile

    status: RecordStatus = RecordStatus.pending
    submitted_at: datetime
    reviewed_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    reviewed_by: Optional[str] = None
    suspension: Optional[Suspension] = None

    is_archived: bool = False
    archived_at: Optional[datetime] = None
    archive_reason: Optional[ArchiveReason] = None

    version: int = 0
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def _check_envelope(self) -> "VerificationRecord":
        if self.profile.kind != self.subject_type.value:
            raise ValueError(
                f"profile kind '{self.profile.kind}' does not match subject type '{self.subject_type.value}'"
            )
        if self.status == RecordStatus.approved:
            if self.approved_at is None or self.rejected_at is not None:
                raise ValueError("approved records carry approved_at only")
        elif self.status == RecordStatus.rejected:
            if self.rejected_at is None or self.approved_at is not None:
                raise ValueError("rejected records carry rejected_at only")
        elif self.approved_at is not None or self.rejected_at is not None:
            raise ValueError("pending records carry neither approved_at nor rejected_at")

        has_reason = bool(self.rejection_reason and self.rejection_reason.strip())
        if has_reason != (self.status == RecordStatus.rejected):
            raise ValueError("rejection_reason is required when rejected and forbidden otherwise")
        return self

    def evolve(self, **changes: Any) -> "VerificationRecord":
        """Validated copy with `changes` applied (model_copy skips validation)."""
        data = self.model_dump()
        data.update(changes)
        return type(self).model_validate(data)


# ============================================================
# SUBJECT ACCOUNT FLAGS
# ============================================================

class SubjectAccount(BaseModel):
    """
    Denormalized verification flags. Not validated against the
    is_verified == (kyc_status == approved) invariant: drifted accounts
    must still load so the reconciliation job can repair them.
    """
    subject_id: str
    subject_type: SubjectType
    email: Optional[str] = None

    kyc_status: KycStatus = KycStatus.not_submitted
    is_verified: bool = False
    kyc_pending_at: Optional[datetime] = None
    kyc_verified_at: Optional[datetime] = None
    kyc_rejected_at: Optional[datetime] = None

    version: int = 0
    updated_at: Optional[datetime] = None

    @property
    def is_employer(self) -> bool:
        return self.subject_type in EMPLOYER_TYPES

    def with_flags(self, flags: "AccountFlags", now: datetime) -> "SubjectAccount":
        return self.model_copy(update={**flags.model_dump(), "updated_at": now})


class AccountFlags(BaseModel):
    kyc_status: KycStatus
    is_verified: bool
    kyc_pending_at: Optional[datetime] = None
    kyc_verified_at: Optional[datetime] = None
    kyc_rejected_at: Optional[datetime] = None


# ============================================================
# AUDIT
# ============================================================

class RequestContext(BaseModel):
    """Provenance of the request that triggered a transition."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class AuditEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    subject_id: str
    actor_id: str
    action: AuditAction
    reason: Optional[str] = None
    prev_status: Optional[KycStatus] = None
    new_status: Optional[KycStatus] = None
    timestamp: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    details: Dict[str, Any] = {}

    @model_validator(mode="after")
    def _check_required(self) -> "AuditEntry":
        if self.action in REASON_REQUIRED_ACTIONS and not (self.reason and self.reason.strip()):
            raise ValueError(f"audit action '{self.action.value}' requires a reason")
        # the batch reconciliation entry summarizes many subjects, so it has no single before/after
        if self.action != AuditAction.reconciled and (self.prev_status is None or self.new_status is None):
            raise ValueError(f"audit action '{self.action.value}' requires prev_status and new_status")
        return self


# ============================================================
# VIEWS AND RESULTS
# ============================================================

class CanonicalStatus(BaseModel):
    status: KycStatus
    is_verified: bool
    submitted_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    can_resubmit: bool


class FieldMismatch(BaseModel):
    field: str
    expected: Any = None
    actual: Any = None


class ConsistencyReport(BaseModel):
    subject_id: str
    consistent: bool
    mismatches: List[FieldMismatch] = []


class TransitionResult(BaseModel):
    record: Optional[VerificationRecord] = None
    account: SubjectAccount
    audit_entry: AuditEntry
    status: CanonicalStatus
    message: str


class StatusView(BaseModel):
    subject_id: str
    subject_type: SubjectType
    kyc_status: KycStatus
    status: CanonicalStatus
    account: SubjectAccount
    record: Optional[VerificationRecord] = None
    consistency: ConsistencyReport
    message: str


class ReconciliationSummary(BaseModel):
    subjects_scanned: int = 0
    records_found: int = 0
    inconsistencies_found: int = 0
    inconsistencies_repaired: int = 0
    indexes_created: int = 0
    errors: List[str] = []
    audit_entry_id: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return not self.errors
