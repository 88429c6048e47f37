"""
MongoDB Connection Utility

MongoDB stores:
- verification_records: one detailed KYC document per subject per subject type
- subject_accounts: the denormalized KYC flags on each account
- kyc_audit: append-only transition ledger
- notifications: inbox entries created after transitions

Transitions write records, flags and audit entries in one multi-document
transaction, so the server must run as a replica set.
"""
from typing import Optional

import structlog
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from kyc_core.core.config import get_settings

log = structlog.get_logger(__name__)

# Global client (connection pooling handled internally by pymongo)
_client: Optional[MongoClient] = None
_db: Optional[Database] = None


def get_mongo_client() -> MongoClient:
    """Get or create MongoDB client (singleton pattern)"""
    global _client
    if _client is None:
        settings = get_settings()
        # tz_aware: stored datetimes come back as UTC-aware, matching what we write
        _client = MongoClient(settings.mongodb_uri, tz_aware=True)
    return _client


def get_mongo_db() -> Database:
    """Get the KYC database"""
    global _db
    if _db is None:
        client = get_mongo_client()
        _db = client[get_settings().mongodb_db]
    return _db


def get_collection(name: str) -> Collection:
    """Get a collection by its COLLECTIONS key or raw name."""
    db = get_mongo_db()
    return db[COLLECTIONS.get(name, name)]


def test_mongo_connection() -> bool:
    """
    Test if MongoDB is reachable.
    Returns True if connection successful, False otherwise.
    """
    try:
        client = get_mongo_client()
        # ping command checks connection
        client.admin.command('ping')
        return True
    except PyMongoError as e:
        log.warning("mongo_connection_failed", error=str(e))
        return False


# Collection name constants (avoid typos)
COLLECTIONS = {
    "records": "verification_records",
    "accounts": "subject_accounts",
    "audit": "kyc_audit",
    "notifications": "notifications",
}


def init_mongo_indexes(db: Optional[Database] = None) -> int:
    """
    Create indexes for the KYC collections.
    Safe to call repeatedly (create_index is a no-op for an identical index).

    Returns:
        Number of index specifications applied.
    """
    db = db if db is not None else get_mongo_db()
    records = db[COLLECTIONS["records"]]
    audit = db[COLLECTIONS["audit"]]
    notifications = db[COLLECTIONS["notifications"]]
    created = 0

    # One active record per subject per subject type; archived ones are exempt
    records.create_index(
        [("subject_id", ASCENDING), ("subject_type", ASCENDING)],
        unique=True,
        partialFilterExpression={"is_archived": False},
        name="active_record_unique",
    )
    created += 1

    # Admin review queue
    records.create_index(
        [("status", ASCENDING), ("submitted_at", DESCENDING)],
        name="record_status_submitted",
    )
    created += 1

    # Audit reporting lookups (newest first)
    for field in ("subject_id", "actor_id", "action"):
        audit.create_index(
            [(field, ASCENDING), ("timestamp", DESCENDING)],
            name=f"kyc_audit_{field}_timestamp",
        )
        created += 1

    notifications.create_index(
        [("subject_id", ASCENDING), ("created_at", DESCENDING)],
        name="notification_subject_created",
    )
    created += 1

    log.info("mongo_indexes_initialized", count=created)
    return created
