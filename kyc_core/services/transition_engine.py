"""
Transition Engine

PURPOSE:
The ONLY code path that changes a subject's verification state. Every
operation writes, in one unit of work:
1. the VerificationRecord (authoritative)
2. the SubjectAccount flags (derived from the record via the Status Projection)
3. one AuditEntry
and only after the commit fires the best-effort side effects (real-time
status push, inbox notification).

STATE MACHINE (account-level view):
    not_submitted --submit--> pending --approve--> approved
                               |  ^                   |
                         reject|  |submit        suspend
                               v  |                   v
                            rejected           suspended --reactivate--> pending

pending can also be suspended (immediate freeze). Suspension is an override
annotated on the record; the record's own status stays pending/approved.

CONCURRENCY:
Legality is checked INSIDE the unit of work, on state read in that unit of
work. Two admins approving the same subject: one commits, the other either
reads the approved record and fails with InvalidTransition, or loses the
version race, gets WriteConflict, retries, and then fails the same way.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple, TypeVar, Union

import structlog

from kyc_core.core.config import Settings, get_settings
from kyc_core.core.errors import InvalidTransition, NotFound, ValidationError, WriteConflict
from kyc_core.db.unit_of_work import UnitOfWork, VerificationStore
from kyc_core.models.kyc import (
    EMPLOYER_TYPES,
    AccountFlags,
    ArchiveReason,
    AuditAction,
    AuditEntry,
    CanonicalStatus,
    KycStatus,
    Profile,
    RecordStatus,
    ReconciliationSummary,
    RequestContext,
    StatusView,
    SubjectAccount,
    SubjectType,
    Suspension,
    TransitionResult,
    VerificationRecord,
)
from kyc_core.services.consistency import diagnose
from kyc_core.services.notifier import NullNotifier, SafeNotifier, StatusNotifier
from kyc_core.services.projection import expected_flags, expected_kyc_status, project, status_message

log = structlog.get_logger(__name__)

T = TypeVar("T")

NOTIFICATION_TYPE = "kyc"

NOTIFICATION_TITLES = {
    AuditAction.submitted: "KYC Submitted",
    AuditAction.resubmitted: "KYC Resubmitted",
    AuditAction.approved: "KYC Approved",
    AuditAction.rejected: "KYC Rejected",
    AuditAction.suspended: "Account Suspended",
    AuditAction.reactivated: "Account Reactivated",
    AuditAction.withdrawn: "KYC Withdrawn",
    AuditAction.type_changed: "Employer Type Changed",
}

SUBMIT_BLOCKED = {
    KycStatus.pending: "KYC already submitted and under review",
    KycStatus.approved: "KYC already approved. Cannot resubmit unless rejected by admin.",
    KycStatus.suspended: "KYC is suspended. Please contact an administrator.",
}

DEFAULT_SUSPENSION_REASON = "Suspended by administrator"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Outcome(NamedTuple):
    record: Optional[VerificationRecord]
    account: SubjectAccount
    entry: AuditEntry


class TransitionEngine:
    """
    Performs KYC transitions atomically across record, flags and audit log.

    Args:
        store: backing VerificationStore
        notifier: post-commit side effects; wrapped so its failures are only logged
        settings: defaults to get_settings()
        clock: returns the current UTC time (injectable for tests)
    """

    def __init__(
        self,
        store: VerificationStore,
        notifier: Optional[StatusNotifier] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.notifier = SafeNotifier(notifier or NullNotifier())
        self.settings = settings or get_settings()
        self.clock = clock or utcnow

    # ============================================================
    # SUBJECT OPERATIONS
    # ============================================================

    def submit(
        self,
        subject_id: str,
        profile: Union[Profile, Dict[str, Any]],
        context: Optional[RequestContext] = None,
    ) -> TransitionResult:
        """
        Submit (or, after a rejection, resubmit) KYC details.
        Legal from not_submitted and rejected.
        """
        profile_data = profile if isinstance(profile, dict) else profile.model_dump()

        def work(uow: UnitOfWork) -> Tuple[_Outcome, AuditAction]:
            now = self.clock()
            account, record = self._load(uow, subject_id)
            if profile_data.get("kind") != account.subject_type.value:
                raise ValidationError(
                    f"Profile type '{profile_data.get('kind')}' does not match account type "
                    f"'{account.subject_type.value}'"
                )

            current = expected_kyc_status(record)
            if current in SUBMIT_BLOCKED:
                raise InvalidTransition(SUBMIT_BLOCKED[current], current.value, "submit")

            if record is None:
                action = AuditAction.submitted
                reason = "Initial KYC submission"
                new_record = VerificationRecord(
                    subject_id=subject_id,
                    subject_type=account.subject_type,
                    profile=profile_data,
                    status=RecordStatus.pending,
                    submitted_at=now,
                    created_at=now,
                    updated_at=now,
                )
            else:
                # resubmission overwrites the rejected record, keeping its id
                action = AuditAction.resubmitted
                reason = "Resubmission after rejection"
                new_record = record.evolve(
                    profile=profile_data,
                    status=RecordStatus.pending,
                    submitted_at=now,
                    reviewed_at=None,
                    reviewed_by=None,
                    rejected_at=None,
                    rejection_reason=None,
                    updated_at=now,
                )

            outcome = self._apply(
                uow, account, record, new_record, now, action,
                actor_id=subject_id, reason=reason, context=context,
            )
            return outcome, action

        outcome, action = self.run_in_transaction(work, "submit", subject_id)
        return self._after_commit(subject_id, outcome, action, actor_id=subject_id)

    def withdraw(self, subject_id: str, context: Optional[RequestContext] = None) -> TransitionResult:
        """Subject withdraws a pending or rejected submission (soft-deactivation by archiving)."""

        def work(uow: UnitOfWork) -> _Outcome:
            now = self.clock()
            account, record = self._load(uow, subject_id)
            current = expected_kyc_status(record)
            if record is None:
                raise InvalidTransition("No KYC submission to withdraw", current.value, "withdraw")
            if current not in (KycStatus.pending, KycStatus.rejected):
                raise InvalidTransition(
                    f"KYC is {current.value} and cannot be withdrawn. Please contact an administrator.",
                    current.value, "withdraw",
                )
            archived = self._archive(record, ArchiveReason.withdrawn, now)
            return self._apply(
                uow, account, record, archived, now, AuditAction.withdrawn,
                actor_id=subject_id, reason="Submission withdrawn by subject", context=context,
            )

        outcome = self.run_in_transaction(work, "withdraw", subject_id)
        return self._after_commit(subject_id, outcome, AuditAction.withdrawn, actor_id=subject_id)

    def change_employer_type(
        self,
        subject_id: str,
        new_type: Union[SubjectType, str],
        context: Optional[RequestContext] = None,
    ) -> TransitionResult:
        """
        Switch an employer to another category. The active record of the old
        category is archived and the subject starts over at not_submitted.
        """
        try:
            new_type = SubjectType(new_type)
        except ValueError:
            raise ValidationError(f"Unknown employer type '{new_type}'") from None
        if new_type not in EMPLOYER_TYPES:
            raise ValidationError("Valid employer type is required: individual, corporate or local business")

        def work(uow: UnitOfWork) -> _Outcome:
            now = self.clock()
            account, record = self._load(uow, subject_id)
            if not account.is_employer:
                raise ValidationError("Only employers can change their type")
            if account.subject_type == new_type:
                raise ValidationError("You are already registered as this employer type")

            current = expected_kyc_status(record)
            if current not in (KycStatus.not_submitted, KycStatus.rejected):
                raise InvalidTransition(
                    f"Cannot change employer type. Your KYC is {current.value}. Please contact admin to reset.",
                    current.value, "change_employer_type",
                )

            archived = self._archive(record, ArchiveReason.type_change, now) if record else None
            switched = account.model_copy(update={"subject_type": new_type})
            return self._apply(
                uow, switched, record, archived, now, AuditAction.type_changed,
                actor_id=subject_id, reason="Employer type changed", context=context,
                details={"old_type": account.subject_type.value, "new_type": new_type.value},
            )

        outcome = self.run_in_transaction(work, "change_employer_type", subject_id)
        return self._after_commit(subject_id, outcome, AuditAction.type_changed, actor_id=subject_id)

    # ============================================================
    # ADMIN OPERATIONS
    # ============================================================

    def approve(
        self,
        subject_id: str,
        actor_id: str,
        reason: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> TransitionResult:
        def work(uow: UnitOfWork) -> _Outcome:
            now = self.clock()
            account, record = self._load(uow, subject_id)
            self._require_pending(record, "approve")
            approved = record.evolve(
                status=RecordStatus.approved,
                approved_at=now,
                reviewed_at=now,
                reviewed_by=actor_id,
                rejection_reason=None,
                updated_at=now,
            )
            return self._apply(
                uow, account, record, approved, now, AuditAction.approved,
                actor_id=actor_id, reason=reason, context=context,
            )

        outcome = self.run_in_transaction(work, "approve", subject_id)
        return self._after_commit(subject_id, outcome, AuditAction.approved, actor_id=actor_id, reason=reason)

    def reject(
        self,
        subject_id: str,
        actor_id: str,
        reason: Optional[str],
        context: Optional[RequestContext] = None,
    ) -> TransitionResult:
        # checked before any unit of work is opened
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Rejection reason is required")

        def work(uow: UnitOfWork) -> _Outcome:
            now = self.clock()
            account, record = self._load(uow, subject_id)
            self._require_pending(record, "reject")
            rejected = record.evolve(
                status=RecordStatus.rejected,
                rejected_at=now,
                reviewed_at=now,
                reviewed_by=actor_id,
                rejection_reason=reason,
                updated_at=now,
            )
            return self._apply(
                uow, account, record, rejected, now, AuditAction.rejected,
                actor_id=actor_id, reason=reason, context=context,
            )

        outcome = self.run_in_transaction(work, "reject", subject_id)
        return self._after_commit(subject_id, outcome, AuditAction.rejected, actor_id=actor_id, reason=reason)

    def suspend(
        self,
        subject_id: str,
        actor_id: str,
        reason: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> TransitionResult:
        """Freeze an approved (or pending) subject. The record status is left as is."""
        reason = (reason or "").strip() or DEFAULT_SUSPENSION_REASON

        def work(uow: UnitOfWork) -> _Outcome:
            now = self.clock()
            account, record = self._load(uow, subject_id)
            current = expected_kyc_status(record)
            if current not in (KycStatus.approved, KycStatus.pending):
                raise InvalidTransition(
                    f"Only approved or pending subjects can be suspended (current status: {current.value})",
                    current.value, "suspend",
                )
            suspended = record.evolve(
                suspension=Suspension(suspended_at=now, suspended_by=actor_id, reason=reason).model_dump(),
                updated_at=now,
            )
            return self._apply(
                uow, account, record, suspended, now, AuditAction.suspended,
                actor_id=actor_id, reason=reason, context=context,
            )

        outcome = self.run_in_transaction(work, "suspend", subject_id)
        return self._after_commit(subject_id, outcome, AuditAction.suspended, actor_id=actor_id, reason=reason)

    def reactivate(
        self,
        subject_id: str,
        actor_id: str,
        reason: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> TransitionResult:
        """Lift a suspension. The subject goes back to pending for a fresh review."""

        def work(uow: UnitOfWork) -> _Outcome:
            now = self.clock()
            account, record = self._load(uow, subject_id)
            current = expected_kyc_status(record)
            if current != KycStatus.suspended:
                raise InvalidTransition(
                    f"Cannot reactivate: subject is not suspended (current status: {current.value})",
                    current.value, "reactivate",
                )
            reopened = record.evolve(
                status=RecordStatus.pending,
                suspension=None,
                approved_at=None,
                reviewed_at=None,
                reviewed_by=None,
                updated_at=now,
            )
            return self._apply(
                uow, account, record, reopened, now, AuditAction.reactivated,
                actor_id=actor_id, reason=reason, context=context,
            )

        outcome = self.run_in_transaction(work, "reactivate", subject_id)
        return self._after_commit(subject_id, outcome, AuditAction.reactivated, actor_id=actor_id, reason=reason)

    # ============================================================
    # REPAIR PATH (reconciliation job)
    # ============================================================

    def repair(self, subject_id: str, actor_id: Optional[str] = None) -> bool:
        """
        Force the account flags back to the record's projection.
        Re-checks inside the unit of work; returns False if there was nothing to fix.
        Writes no per-subject audit entry (the job writes one for the batch).
        """
        actor_id = actor_id or self.settings.system_actor_id

        def work(uow: UnitOfWork) -> Optional[SubjectAccount]:
            account, record = self._load(uow, subject_id)
            if diagnose(account, record).consistent:
                return None
            repaired = account.with_flags(expected_flags(record), self.clock())
            uow.save_account(repaired, expected_version=account.version)
            return repaired

        repaired = self.run_in_transaction(work, "repair", subject_id)
        if repaired is not None:
            log.info(
                "kyc_flags_repaired",
                subject_id=subject_id,
                actor_id=actor_id,
                kyc_status=repaired.kyc_status.value,
            )
        return repaired is not None

    def record_reconciliation(
        self,
        summary: ReconciliationSummary,
        actor_id: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> AuditEntry:
        """Append the single audit entry summarizing a reconciliation batch."""
        actor_id = actor_id or self.settings.system_actor_id
        context = context or RequestContext(user_agent="kyc-reconciliation-job")
        entry = AuditEntry(
            subject_id=actor_id,
            actor_id=actor_id,
            action=AuditAction.reconciled,
            reason=f"System reconciliation fixed {summary.inconsistencies_repaired} data inconsistencies",
            timestamp=self.clock(),
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            details={
                "subjects_scanned": summary.subjects_scanned,
                "inconsistencies_found": summary.inconsistencies_found,
                "inconsistencies_repaired": summary.inconsistencies_repaired,
            },
        )
        return self.run_in_transaction(lambda uow: uow.append_audit(entry), "record_reconciliation", actor_id)

    # ============================================================
    # READS
    # ============================================================

    def get_status(self, subject_id: str) -> StatusView:
        account = self.store.get_account(subject_id)
        if account is None:
            raise NotFound(f"Subject {subject_id} not found")
        record = self.store.get_active_record(subject_id, account.subject_type)
        canonical = self._canonical(record)
        kyc_status = canonical.status
        return StatusView(
            subject_id=subject_id,
            subject_type=account.subject_type,
            kyc_status=kyc_status,
            status=canonical,
            account=account,
            record=record,
            consistency=diagnose(account, record),
            message=status_message(kyc_status, canonical.rejection_reason),
        )

    def review_queue(self, subject_type: Optional[SubjectType] = None, limit: int = 100) -> List[VerificationRecord]:
        """Pending, unsuspended records awaiting an admin decision, newest first."""
        return self.store.list_records(
            status=RecordStatus.pending, subject_type=subject_type, include_suspended=False, limit=limit
        )

    # ============================================================
    # INTERNALS
    # ============================================================

    def run_in_transaction(self, work: Callable[[UnitOfWork], T], operation: str, subject_id: str) -> T:
        """
        Run `work` in a unit of work, retrying ONLY on WriteConflict and at
        most settings.transaction_max_retries times. Any other error
        propagates on the first attempt.
        """
        attempts = max(1, self.settings.transaction_max_retries)
        for attempt in range(1, attempts + 1):
            try:
                with self.store.unit_of_work() as uow:
                    result = work(uow)
                return result
            except WriteConflict:
                if attempt == attempts:
                    log.warning("kyc_transaction_conflict", operation=operation, subject_id=subject_id,
                                attempts=attempts, gave_up=True)
                    raise
                log.info("kyc_transaction_conflict", operation=operation, subject_id=subject_id,
                         attempt=attempt, gave_up=False)
        raise AssertionError("unreachable")

    def _load(self, uow: UnitOfWork, subject_id: str) -> Tuple[SubjectAccount, Optional[VerificationRecord]]:
        account = uow.get_account(subject_id)
        if account is None:
            raise NotFound(f"Subject {subject_id} not found")
        # archived records are invisible here: only the active one of the current type counts
        record = uow.get_active_record(subject_id, account.subject_type)
        return account, record

    @staticmethod
    def _canonical(record: Optional[VerificationRecord]) -> CanonicalStatus:
        """Projection as seen by the subject: a suspension overrides the record status."""
        canonical = project(record)
        if expected_kyc_status(record) == KycStatus.suspended:
            canonical = canonical.model_copy(
                update={"status": KycStatus.suspended, "is_verified": False, "can_resubmit": False}
            )
        return canonical

    @staticmethod
    def _require_pending(record: Optional[VerificationRecord], action: str) -> None:
        current = expected_kyc_status(record)
        if record is None or current != KycStatus.pending:
            raise InvalidTransition(
                f"Cannot {action}: KYC is not pending review (current status: {current.value})",
                current.value, action,
            )

    @staticmethod
    def _archive(record: VerificationRecord, reason: ArchiveReason, now: datetime) -> VerificationRecord:
        return record.evolve(is_archived=True, archived_at=now, archive_reason=reason, updated_at=now)

    def _apply(
        self,
        uow: UnitOfWork,
        account: SubjectAccount,
        record: Optional[VerificationRecord],
        new_record: Optional[VerificationRecord],
        now: datetime,
        action: AuditAction,
        actor_id: str,
        reason: Optional[str],
        context: Optional[RequestContext],
        details: Optional[Dict[str, Any]] = None,
    ) -> _Outcome:
        """Write record, flags and audit entry inside `uow`."""
        saved_record = None
        if new_record is not None:
            saved_record = uow.save_record(new_record, expected_version=record.version if record else None)

        active = saved_record if saved_record is not None and not saved_record.is_archived else None
        flags: AccountFlags = expected_flags(active)
        saved_account = uow.save_account(account.with_flags(flags, now), expected_version=account.version)

        context = context or RequestContext()
        entry = uow.append_audit(AuditEntry(
            subject_id=account.subject_id,
            actor_id=actor_id,
            action=action,
            reason=reason,
            prev_status=account.kyc_status,
            new_status=saved_account.kyc_status,
            timestamp=now,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            details=details or {},
        ))
        return _Outcome(saved_record, saved_account, entry)

    def _after_commit(
        self,
        subject_id: str,
        outcome: _Outcome,
        action: AuditAction,
        actor_id: str,
        reason: Optional[str] = None,
    ) -> TransitionResult:
        active = outcome.record if outcome.record is not None and not outcome.record.is_archived else None
        canonical = self._canonical(active)
        kyc_status = outcome.account.kyc_status
        message = status_message(kyc_status, canonical.rejection_reason)

        log.info(
            "kyc_transition_committed",
            subject_id=subject_id,
            actor_id=actor_id,
            action=action.value,
            prev_status=outcome.entry.prev_status.value,
            new_status=kyc_status.value,
        )

        payload: Dict[str, Any] = {
            "status": kyc_status.value,
            "isVerified": outcome.account.is_verified,
            "message": message,
            "action": action.value,
        }
        if reason:
            payload["reason"] = reason
        self.notifier.emit_status_change(subject_id, payload)
        self.notifier.create_notification(subject_id, NOTIFICATION_TYPE, NOTIFICATION_TITLES[action], message, actor_id)

        return TransitionResult(
            record=active,
            account=outcome.account,
            audit_entry=outcome.entry,
            status=canonical,
            message=message,
        )
