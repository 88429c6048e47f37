"""
Audit Log queries.

Entries are appended only by the transition engine, inside the same unit of
work as the state change they describe. This module only reads them back,
newest first.
"""

from typing import List, Optional, Union

from kyc_core.core.errors import ValidationError
from kyc_core.db.unit_of_work import VerificationStore
from kyc_core.models.kyc import AuditAction, AuditEntry

DEFAULT_LIMIT = 50
MAX_LIMIT = 500


class AuditLog:

    def __init__(self, store: VerificationStore):
        self.store = store

    def for_subject(self, subject_id: str, limit: int = DEFAULT_LIMIT) -> List[AuditEntry]:
        """Full verification history of one subject."""
        return self.query(subject_id=subject_id, limit=limit)

    def by_actor(self, actor_id: str, limit: int = DEFAULT_LIMIT) -> List[AuditEntry]:
        """Everything one admin (or the system actor) did."""
        return self.query(actor_id=actor_id, limit=limit)

    def by_action(self, action: Union[AuditAction, str], limit: int = DEFAULT_LIMIT) -> List[AuditEntry]:
        return self.query(action=action, limit=limit)

    def query(
        self,
        subject_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        action: Optional[Union[AuditAction, str]] = None,
        limit: int = DEFAULT_LIMIT,
    ) -> List[AuditEntry]:
        if limit < 1 or limit > MAX_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_LIMIT}")
        if action is not None:
            try:
                action = AuditAction(action)
            except ValueError:
                raise ValidationError(f"Unknown audit action '{action}'") from None
        return self.store.find_audit(subject_id=subject_id, actor_id=actor_id, action=action, limit=limit)
