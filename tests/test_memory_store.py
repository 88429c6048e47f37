"""Tests for the in-memory store's unit-of-work semantics."""

import pytest

from kyc_core.core.errors import ValidationError, WriteConflict
from kyc_core.models.kyc import KycStatus, SubjectAccount, SubjectType
from tests.helpers import STUDENT_ID


class TestUnitOfWork:

    def test_writes_are_invisible_until_commit(self, store) -> None:
        with store.unit_of_work() as uow:
            account = uow.get_account(STUDENT_ID)
            uow.save_account(account.model_copy(update={"kyc_status": KycStatus.pending}), account.version)
            assert uow.get_account(STUDENT_ID).kyc_status == KycStatus.pending
            assert store.get_account(STUDENT_ID).kyc_status == KycStatus.not_submitted
        assert store.get_account(STUDENT_ID).kyc_status == KycStatus.pending
        assert store.get_account(STUDENT_ID).version == 1

    def test_exception_discards_staged_writes(self, store) -> None:
        with pytest.raises(RuntimeError):
            with store.unit_of_work() as uow:
                account = uow.get_account(STUDENT_ID)
                uow.save_account(account.model_copy(update={"is_verified": True}), account.version)
                raise RuntimeError("boom")
        assert store.get_account(STUDENT_ID).is_verified is False

    def test_stale_version_conflicts(self, store) -> None:
        stale = store.get_account(STUDENT_ID)
        store.force_account(stale.model_copy(update={"is_verified": True}))

        with pytest.raises(WriteConflict):
            with store.unit_of_work() as uow:
                uow.save_account(stale, expected_version=stale.version)

    def test_reads_are_copies(self, store) -> None:
        account = store.get_account(STUDENT_ID)
        account.is_verified = True
        assert store.get_account(STUDENT_ID).is_verified is False

    def test_duplicate_account(self, store) -> None:
        with pytest.raises(ValidationError):
            store.create_account(SubjectAccount(subject_id=STUDENT_ID, subject_type=SubjectType.student))
