"""
Database module - MongoDB connection and the VerificationStore implementations.
"""
from kyc_core.db.mongodb import get_mongo_db, test_mongo_connection
from kyc_core.db.unit_of_work import UnitOfWork, VerificationStore

__all__ = [
    "get_mongo_db",
    "test_mongo_connection",
    "UnitOfWork",
    "VerificationStore",
]
