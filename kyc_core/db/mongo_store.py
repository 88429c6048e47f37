"""
MongoDB-backed VerificationStore.

Each unit of work is one client session running one multi-document
transaction (snapshot reads, majority writes). Replacements are guarded on
the document `version`, so a write that lost a race matches nothing and the
transaction is abandoned with WriteConflict instead of clobbering the winner.

pymongo errors are translated at this boundary:
- TransientTransactionError label / WriteConflict (code 112) / duplicate key -> WriteConflict
- ConnectionFailure (incl. server selection timeout)                         -> StoreUnavailable
"""

from contextlib import contextmanager
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel
from pymongo import DESCENDING, MongoClient, ReadPreference
from pymongo.client_session import ClientSession
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, DuplicateKeyError, OperationFailure, PyMongoError
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

from kyc_core.core.config import get_settings
from kyc_core.core.errors import StoreUnavailable, ValidationError, WriteConflict
from kyc_core.db.mongodb import COLLECTIONS, get_mongo_client, init_mongo_indexes
from kyc_core.db.unit_of_work import UnitOfWork, VerificationStore
from kyc_core.models.kyc import (
    AuditAction,
    AuditEntry,
    RecordStatus,
    SubjectAccount,
    SubjectType,
    VerificationRecord,
)

log = structlog.get_logger(__name__)

WRITE_CONFLICT_CODE = 112

M = TypeVar("M", bound=BaseModel)


# ============================================================
# HELPER: model <-> document conversion
# ============================================================

def _encode(value: Any) -> Any:
    """Make a model_dump() result BSON-encodable."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date) and not isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


def to_document(model: BaseModel, id_field: str = "id") -> Dict[str, Any]:
    doc = _encode(model.model_dump())
    doc["_id"] = doc[id_field] if id_field != "id" else doc.pop("id")
    return doc


def from_document(doc: Optional[Dict[str, Any]], model_cls: Type[M], id_field: str = "id") -> Optional[M]:
    if doc is None:
        return None
    data = dict(doc)
    _id = data.pop("_id")
    if id_field == "id":
        data["id"] = str(_id)
    return model_cls.model_validate(data)


def translate_error(exc: PyMongoError) -> Exception:
    """Map a pymongo error onto the KYC error taxonomy (unknown errors pass through)."""
    if exc.has_error_label("TransientTransactionError"):
        return WriteConflict(f"transaction aborted by a concurrent write: {exc}")
    if isinstance(exc, DuplicateKeyError):
        return WriteConflict(f"duplicate active record: {exc}")
    if isinstance(exc, ConnectionFailure):
        return StoreUnavailable(f"MongoDB unavailable: {exc}")
    if isinstance(exc, OperationFailure) and exc.code == WRITE_CONFLICT_CODE:
        return WriteConflict(f"write conflict: {exc}")
    return exc


# ============================================================
# UNIT OF WORK
# ============================================================

class _MongoUnitOfWork(UnitOfWork):

    def __init__(self, store: "MongoVerificationStore", session: ClientSession):
        self._store = store
        self._session = session

    def get_account(self, subject_id: str) -> Optional[SubjectAccount]:
        doc = self._store.accounts.find_one({"_id": subject_id}, session=self._session)
        return from_document(doc, SubjectAccount, id_field="subject_id")

    def get_active_record(self, subject_id: str, subject_type: SubjectType) -> Optional[VerificationRecord]:
        doc = self._store.records.find_one(
            {"subject_id": subject_id, "subject_type": subject_type.value, "is_archived": False},
            session=self._session,
        )
        return from_document(doc, VerificationRecord)

    def save_record(self, record: VerificationRecord, expected_version: Optional[int]) -> VerificationRecord:
        stored = record.model_copy(update={"version": (expected_version or 0) + 1})
        doc = to_document(stored)
        if expected_version is None:
            self._store.records.insert_one(doc, session=self._session)
        else:
            result = self._store.records.replace_one(
                {"_id": record.id, "version": expected_version}, doc, session=self._session
            )
            if result.matched_count == 0:
                raise WriteConflict(f"record {record.id} was modified concurrently")
        return stored

    def save_account(self, account: SubjectAccount, expected_version: int) -> SubjectAccount:
        stored = account.model_copy(update={"version": expected_version + 1})
        result = self._store.accounts.replace_one(
            {"_id": account.subject_id, "version": expected_version},
            to_document(stored, id_field="subject_id"),
            session=self._session,
        )
        if result.matched_count == 0:
            raise WriteConflict(f"account {account.subject_id} was modified concurrently")
        return stored

    def append_audit(self, entry: AuditEntry) -> AuditEntry:
        self._store.audit.insert_one(to_document(entry), session=self._session)
        return entry


# ============================================================
# STORE
# ============================================================

class MongoVerificationStore(VerificationStore):

    def __init__(self, client: Optional[MongoClient] = None, db: Optional[Database] = None):
        self.client = client or get_mongo_client()
        self.db = db if db is not None else self.client[get_settings().mongodb_db]
        self.records = self.db[COLLECTIONS["records"]]
        self.accounts = self.db[COLLECTIONS["accounts"]]
        self.audit = self.db[COLLECTIONS["audit"]]

    @contextmanager
    def unit_of_work(self) -> Iterator[UnitOfWork]:
        try:
            with self.client.start_session() as session:
                with session.start_transaction(
                    read_concern=ReadConcern("snapshot"),
                    write_concern=WriteConcern("majority"),
                    read_preference=ReadPreference.PRIMARY,
                ):
                    yield _MongoUnitOfWork(self, session)
        except PyMongoError as exc:
            translated = translate_error(exc)
            if translated is exc:
                raise
            log.warning("mongo_transaction_failed", error_type=type(translated).__name__, error=str(exc))
            raise translated from exc

    def get_account(self, subject_id: str) -> Optional[SubjectAccount]:
        with self._reading():
            return from_document(self.accounts.find_one({"_id": subject_id}), SubjectAccount, id_field="subject_id")

    def get_active_record(self, subject_id: str, subject_type: SubjectType) -> Optional[VerificationRecord]:
        with self._reading():
            doc = self.records.find_one(
                {"subject_id": subject_id, "subject_type": subject_type.value, "is_archived": False}
            )
            return from_document(doc, VerificationRecord)

    def iter_accounts(self) -> Iterator[SubjectAccount]:
        with self._reading():
            cursor = self.accounts.find({}).sort("_id", 1)
            for doc in cursor:
                yield from_document(doc, SubjectAccount, id_field="subject_id")

    def list_records(
        self,
        status: Optional[RecordStatus] = None,
        subject_type: Optional[SubjectType] = None,
        include_archived: bool = False,
        include_suspended: bool = True,
        limit: int = 100,
    ) -> List[VerificationRecord]:
        query: Dict[str, Any] = {}
        if status is not None:
            query["status"] = status.value
        if subject_type is not None:
            query["subject_type"] = subject_type.value
        if not include_archived:
            query["is_archived"] = False
        if not include_suspended:
            # matches both an explicit null and a missing field
            query["suspension"] = None
        with self._reading():
            cursor = self.records.find(query).sort("submitted_at", DESCENDING).limit(limit)
            return [from_document(doc, VerificationRecord) for doc in cursor]

    def find_audit(
        self,
        subject_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        action: Optional[AuditAction] = None,
        limit: int = 50,
    ) -> List[AuditEntry]:
        query: Dict[str, Any] = {}
        if subject_id is not None:
            query["subject_id"] = subject_id
        if actor_id is not None:
            query["actor_id"] = actor_id
        if action is not None:
            query["action"] = action.value
        with self._reading():
            cursor = self.audit.find(query).sort([("timestamp", DESCENDING), ("_id", DESCENDING)]).limit(limit)
            return [from_document(doc, AuditEntry) for doc in cursor]

    def create_account(self, account: SubjectAccount) -> SubjectAccount:
        try:
            self.accounts.insert_one(to_document(account, id_field="subject_id"))
        except DuplicateKeyError as exc:
            raise ValidationError(f"account {account.subject_id} already exists") from exc
        except PyMongoError as exc:
            raise translate_error(exc) from exc
        return account

    def ensure_indexes(self) -> int:
        with self._reading():
            return init_mongo_indexes(self.db)

    @contextmanager
    def _reading(self) -> Iterator[None]:
        try:
            yield
        except PyMongoError as exc:
            translated = translate_error(exc)
            if translated is exc:
                raise
            raise translated from exc
