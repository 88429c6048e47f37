#!/usr/bin/env python3
"""
KYC Reconciliation Script

1. Ensures the MongoDB indexes exist
2. Scans every subject account for flags that drifted from the verification record
3. Repairs them (the record wins) and writes one summary audit entry

Safe to run repeatedly. Exits with status 1 if any error was recorded.

Usage: python scripts/run_reconciliation.py [--skip-indexes]
"""
import argparse
import sys
sys.path.insert(0, '.')

from kyc_core.core.config import get_settings
from kyc_core.core.logging import configure_logging
from kyc_core.db.mongo_store import MongoVerificationStore
from kyc_core.services.notifier import NullNotifier
from kyc_core.services.reconciliation import ReconciliationJob
from kyc_core.services.transition_engine import TransitionEngine


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Repair KYC account flags from verification records")
    parser.add_argument("--skip-indexes", action="store_true", help="do not (re)create MongoDB indexes")
    args = parser.parse_args(argv)

    configure_logging()
    settings = get_settings()
    store = MongoVerificationStore()
    engine = TransitionEngine(store, notifier=NullNotifier(), settings=settings)

    print("=" * 50)
    print("KYC RECONCILIATION")
    print("=" * 50)
    print(f"    Database: {settings.mongodb_db}")

    summary = ReconciliationJob(store, engine, settings=settings).run(create_indexes=not args.skip_indexes)

    print(f"\n    Indexes applied:          {summary.indexes_created}")
    print(f"    Subjects scanned:         {summary.subjects_scanned}")
    print(f"    Records found:            {summary.records_found}")
    print(f"    Inconsistencies found:    {summary.inconsistencies_found}")
    print(f"    Inconsistencies repaired: {summary.inconsistencies_repaired}")
    if summary.audit_entry_id:
        print(f"    Audit entry:              {summary.audit_entry_id}")

    if summary.errors:
        print(f"\n    ❌ {len(summary.errors)} error(s):")
        for error in summary.errors:
            print(f"       - {error}")
    else:
        print("\n    ✅ Reconciliation complete")
    print("=" * 50)

    return 0 if summary.success else 1


if __name__ == "__main__":
    sys.exit(main())
