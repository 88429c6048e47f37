"""
In-memory VerificationStore.

Transactional the same way the Mongo store is: a unit of work stages its
writes and applies them only on a clean exit. A store-wide lock serializes
units of work, so two concurrent transitions on one subject can never both
see it in the same state.

Used by the test suite and for running the API locally without a replica set.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from kyc_core.core.errors import ValidationError, WriteConflict
from kyc_core.db.unit_of_work import UnitOfWork, VerificationStore
from kyc_core.models.kyc import (
    AuditAction,
    AuditEntry,
    RecordStatus,
    SubjectAccount,
    SubjectType,
    VerificationRecord,
)


class _MemoryUnitOfWork(UnitOfWork):

    def __init__(self, store: "InMemoryVerificationStore"):
        self._store = store
        self._records: Dict[str, VerificationRecord] = {}
        self._accounts: Dict[str, SubjectAccount] = {}
        self._audit: List[AuditEntry] = []

    def _current_record(self, record_id: str) -> Optional[VerificationRecord]:
        if record_id in self._records:
            return self._records[record_id]
        return self._store._records.get(record_id)

    def _current_account(self, subject_id: str) -> Optional[SubjectAccount]:
        if subject_id in self._accounts:
            return self._accounts[subject_id]
        return self._store._accounts.get(subject_id)

    def get_account(self, subject_id: str) -> Optional[SubjectAccount]:
        self._store._maybe_fail("get_account")
        account = self._current_account(subject_id)
        return account.model_copy(deep=True) if account else None

    def _find_active(self, subject_id: str, subject_type: SubjectType) -> Optional[VerificationRecord]:
        merged = {**self._store._records, **self._records}
        for record in merged.values():
            if record.subject_id == subject_id and record.subject_type == subject_type and not record.is_archived:
                return record
        return None

    def get_active_record(self, subject_id: str, subject_type: SubjectType) -> Optional[VerificationRecord]:
        self._store._maybe_fail("get_active_record")
        record = self._find_active(subject_id, subject_type)
        return record.model_copy(deep=True) if record else None

    def save_record(self, record: VerificationRecord, expected_version: Optional[int]) -> VerificationRecord:
        self._store._maybe_fail("save_record")
        current = self._current_record(record.id)
        if expected_version is None:
            if current is not None or (
                not record.is_archived and self._find_active(record.subject_id, record.subject_type)
            ):
                raise WriteConflict(f"active record already exists for subject {record.subject_id}")
            stored = record.model_copy(update={"version": 1})
        else:
            if current is None or current.version != expected_version:
                raise WriteConflict(f"record {record.id} was modified concurrently")
            stored = record.model_copy(update={"version": expected_version + 1})
        self._records[stored.id] = stored
        return stored.model_copy(deep=True)

    def save_account(self, account: SubjectAccount, expected_version: int) -> SubjectAccount:
        self._store._maybe_fail("save_account")
        current = self._current_account(account.subject_id)
        if current is None or current.version != expected_version:
            raise WriteConflict(f"account {account.subject_id} was modified concurrently")
        stored = account.model_copy(update={"version": expected_version + 1})
        self._accounts[stored.subject_id] = stored
        return stored.model_copy(deep=True)

    def append_audit(self, entry: AuditEntry) -> AuditEntry:
        self._store._maybe_fail("append_audit")
        self._audit.append(entry)
        return entry

    def _commit(self) -> None:
        self._store._maybe_fail("commit")
        self._store._records.update(self._records)
        self._store._accounts.update(self._accounts)
        self._store._audit.extend(self._audit)
        self._store.commits += 1


class InMemoryVerificationStore(VerificationStore):

    def __init__(self):
        self._lock = threading.RLock()
        self._records: Dict[str, VerificationRecord] = {}
        self._accounts: Dict[str, SubjectAccount] = {}
        self._audit: List[AuditEntry] = []
        self._failures: Dict[str, Exception] = {}
        self.commits = 0

    # ----- failure injection -----

    def fail_next(self, operation: str, error: Exception) -> None:
        """
        Make the next call to `operation` raise `error`.
        Operations: get_account, get_active_record, save_record, save_account,
        append_audit, commit.
        """
        self._failures[operation] = error

    def _maybe_fail(self, operation: str) -> None:
        error = self._failures.pop(operation, None)
        if error is not None:
            raise error

    # ----- transactions -----

    @contextmanager
    def unit_of_work(self) -> Iterator[UnitOfWork]:
        with self._lock:
            uow = _MemoryUnitOfWork(self)
            yield uow
            uow._commit()

    # ----- reads -----

    def get_account(self, subject_id: str) -> Optional[SubjectAccount]:
        with self._lock:
            account = self._accounts.get(subject_id)
            return account.model_copy(deep=True) if account else None

    def get_active_record(self, subject_id: str, subject_type: SubjectType) -> Optional[VerificationRecord]:
        with self._lock:
            for record in self._records.values():
                if record.subject_id == subject_id and record.subject_type == subject_type and not record.is_archived:
                    return record.model_copy(deep=True)
            return None

    def iter_accounts(self) -> Iterator[SubjectAccount]:
        with self._lock:
            accounts = [a.model_copy(deep=True) for _, a in sorted(self._accounts.items())]
        return iter(accounts)

    def list_records(
        self,
        status: Optional[RecordStatus] = None,
        subject_type: Optional[SubjectType] = None,
        include_archived: bool = False,
        include_suspended: bool = True,
        limit: int = 100,
    ) -> List[VerificationRecord]:
        with self._lock:
            records = [
                r for r in self._records.values()
                if (status is None or r.status == status)
                and (subject_type is None or r.subject_type == subject_type)
                and (include_archived or not r.is_archived)
                and (include_suspended or r.suspension is None)
            ]
            records.sort(key=lambda r: r.submitted_at, reverse=True)
            return [r.model_copy(deep=True) for r in records[:limit]]

    def find_audit(
        self,
        subject_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        action: Optional[AuditAction] = None,
        limit: int = 50,
    ) -> List[AuditEntry]:
        with self._lock:
            matches = [
                (position, e) for position, e in enumerate(self._audit)
                if (subject_id is None or e.subject_id == subject_id)
                and (actor_id is None or e.actor_id == actor_id)
                and (action is None or e.action == action)
            ]
        # newest first; insertion order breaks timestamp ties
        matches.sort(key=lambda item: (item[1].timestamp, item[0]), reverse=True)
        return [e for _, e in matches[:limit]]

    # ----- setup -----

    def create_account(self, account: SubjectAccount) -> SubjectAccount:
        with self._lock:
            if account.subject_id in self._accounts:
                raise ValidationError(f"account {account.subject_id} already exists")
            self._accounts[account.subject_id] = account.model_copy(deep=True)
            return account

    def force_account(self, account: SubjectAccount) -> SubjectAccount:
        """Overwrite an account's stored flags without a transition (imports, drift simulation)."""
        with self._lock:
            current = self._accounts.get(account.subject_id)
            version = current.version + 1 if current else 0
            stored = account.model_copy(update={"version": version})
            self._accounts[stored.subject_id] = stored
            return stored.model_copy(deep=True)

    def ensure_indexes(self) -> int:
        return 0

    @property
    def audit_entries(self) -> List[AuditEntry]:
        with self._lock:
            return list(self._audit)
