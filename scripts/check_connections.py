#!/usr/bin/env python3
"""
Connection Check Script

Run this to verify the MongoDB connection and that it supports transactions.
Usage: python scripts/check_connections.py
"""
import sys
sys.path.insert(0, '.')

from pymongo.errors import PyMongoError

from kyc_core.core.config import get_settings
from kyc_core.db.mongodb import get_mongo_client, test_mongo_connection


def main() -> int:
    settings = get_settings()
    print("=" * 50)
    print("KYC SERVICE - CONNECTION CHECK")
    print("=" * 50)

    print("\n[1] Testing MongoDB...")
    print(f"    URI: {settings.mongodb_uri}")
    print(f"    Database: {settings.mongodb_db}")
    if not test_mongo_connection():
        print("    ❌ MongoDB: FAILED")
        return 1
    print("    ✅ MongoDB: CONNECTED")

    # Transitions need multi-document transactions, which need a replica set
    print("\n[2] Checking replica set...")
    try:
        hello = get_mongo_client().admin.command("hello")
    except PyMongoError as e:
        print(f"    ❌ hello failed: {e}")
        return 1
    if hello.get("setName"):
        print(f"    ✅ Replica set: {hello['setName']}")
    else:
        print("    ❌ Standalone server: transactions are not available")
        return 1

    print("\n" + "=" * 50)
    print("Connection check complete!")
    print("=" * 50)
    return 0


if __name__ == "__main__":
    sys.exit(main())
