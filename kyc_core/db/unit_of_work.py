"""
Store interfaces used by the transition engine and the reconciliation job.

A VerificationStore hands out units of work. Everything written through a
UnitOfWork becomes visible together when the `with` block exits cleanly, and
nothing does if it raises:

    with store.unit_of_work() as uow:
        account = uow.get_account(subject_id)
        ...
        uow.save_record(record, expected_version=record.version)
        uow.save_account(account, expected_version=account.version)
        uow.append_audit(entry)

Records and accounts carry an integer `version`. A save names the version it
read; if the stored version moved on in the meantime the save raises
WriteConflict and the whole unit of work is rolled back.
"""

from abc import ABC, abstractmethod
from typing import ContextManager, Iterator, List, Optional

from kyc_core.models.kyc import (
    AuditAction,
    AuditEntry,
    RecordStatus,
    SubjectAccount,
    SubjectType,
    VerificationRecord,
)


class UnitOfWork(ABC):

    @abstractmethod
    def get_account(self, subject_id: str) -> Optional[SubjectAccount]:
        ...

    @abstractmethod
    def get_active_record(self, subject_id: str, subject_type: SubjectType) -> Optional[VerificationRecord]:
        """The subject's non-archived record of `subject_type`, if any."""

    @abstractmethod
    def save_record(self, record: VerificationRecord, expected_version: Optional[int]) -> VerificationRecord:
        """
        Insert (expected_version=None) or replace a record.
        Returns the stored record with its version bumped.
        Raises WriteConflict if the version moved or an active record already exists.
        """

    @abstractmethod
    def save_account(self, account: SubjectAccount, expected_version: int) -> SubjectAccount:
        ...

    @abstractmethod
    def append_audit(self, entry: AuditEntry) -> AuditEntry:
        ...


class VerificationStore(ABC):

    @abstractmethod
    def unit_of_work(self) -> ContextManager[UnitOfWork]:
        ...

    # ----- non-transactional reads -----

    @abstractmethod
    def get_account(self, subject_id: str) -> Optional[SubjectAccount]:
        ...

    @abstractmethod
    def get_active_record(self, subject_id: str, subject_type: SubjectType) -> Optional[VerificationRecord]:
        ...

    @abstractmethod
    def iter_accounts(self) -> Iterator[SubjectAccount]:
        ...

    @abstractmethod
    def list_records(
        self,
        status: Optional[RecordStatus] = None,
        subject_type: Optional[SubjectType] = None,
        include_archived: bool = False,
        include_suspended: bool = True,
        limit: int = 100,
    ) -> List[VerificationRecord]:
        """Records newest submission first. `limit` applies after every filter."""

    @abstractmethod
    def find_audit(
        self,
        subject_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        action: Optional[AuditAction] = None,
        limit: int = 50,
    ) -> List[AuditEntry]:
        """Audit entries matching every given filter, newest first."""

    # ----- setup -----

    @abstractmethod
    def create_account(self, account: SubjectAccount) -> SubjectAccount:
        """Register a subject account (registration itself lives outside this package)."""

    @abstractmethod
    def ensure_indexes(self) -> int:
        """Create backing indexes; returns how many were applied."""
