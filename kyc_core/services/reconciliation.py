"""
Reconciliation Job

Finds accounts whose denormalized KYC flags drifted away from their
verification record and forces them back through the transition engine's
repair path. The record always wins.

Safe to run repeatedly: a second run over a healthy store finds nothing,
repairs nothing and writes no audit entry.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from typing import List, Optional

import structlog

from kyc_core.core.config import Settings, get_settings
from kyc_core.db.unit_of_work import VerificationStore
from kyc_core.models.kyc import ReconciliationSummary
from kyc_core.services.consistency import diagnose
from kyc_core.services.transition_engine import TransitionEngine

log = structlog.get_logger(__name__)


class ReconciliationJob:

    def __init__(
        self,
        store: VerificationStore,
        engine: TransitionEngine,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.engine = engine
        self.settings = settings or get_settings()

    def run(self, create_indexes: bool = True) -> ReconciliationSummary:
        summary = ReconciliationSummary(started_at=datetime.now(timezone.utc))
        log.info("reconciliation_started", create_indexes=create_indexes)

        # ---------- 1. Indexes ----------
        if create_indexes:
            try:
                summary.indexes_created = self.store.ensure_indexes()
            except Exception as exc:
                log.exception("reconciliation_index_creation_failed")
                summary.errors.append(f"index creation failed: {exc}")

        # ---------- 2. Scan ----------
        drifted = self._scan(summary)
        summary.inconsistencies_found = len(drifted)

        # ---------- 3. Repair ----------
        if drifted:
            self._repair_all(drifted, summary)

        # ---------- 4. Batch audit entry ----------
        if summary.inconsistencies_repaired:
            try:
                entry = self.engine.record_reconciliation(summary)
                summary.audit_entry_id = entry.id
            except Exception as exc:
                log.exception("reconciliation_audit_failed")
                summary.errors.append(f"audit entry failed: {exc}")

        summary.finished_at = datetime.now(timezone.utc)
        log.info(
            "reconciliation_completed",
            subjects_scanned=summary.subjects_scanned,
            records_found=summary.records_found,
            inconsistencies_found=summary.inconsistencies_found,
            inconsistencies_repaired=summary.inconsistencies_repaired,
            errors=len(summary.errors),
        )
        return summary

    def _scan(self, summary: ReconciliationSummary) -> List[str]:
        drifted: List[str] = []
        try:
            for account in self.store.iter_accounts():
                summary.subjects_scanned += 1
                try:
                    record = self.store.get_active_record(account.subject_id, account.subject_type)
                    consistent = diagnose(account, record).consistent
                except Exception as exc:
                    log.warning("reconciliation_scan_failed", subject_id=account.subject_id, error=str(exc))
                    summary.errors.append(f"{account.subject_id}: {exc}")
                    continue
                if record is not None:
                    summary.records_found += 1
                if not consistent:
                    drifted.append(account.subject_id)
        except Exception as exc:
            # the subjects already collected are still repaired
            log.exception("reconciliation_account_scan_aborted", subjects_scanned=summary.subjects_scanned)
            summary.errors.append(f"account scan aborted: {exc}")
        return drifted

    def _repair_all(self, subject_ids: List[str], summary: ReconciliationSummary) -> None:
        workers = max(1, min(self.settings.reconcile_concurrency, len(subject_ids)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {pool.submit(self.engine.repair, subject_id): subject_id for subject_id in subject_ids}
            for future in as_completed(futures):
                subject_id = futures[future]
                try:
                    repaired = future.result()
                except Exception as exc:
                    log.warning("reconciliation_repair_failed", subject_id=subject_id, error=str(exc))
                    summary.errors.append(f"{subject_id}: {exc}")
                    continue
                if repaired:
                    summary.inconsistencies_repaired += 1
