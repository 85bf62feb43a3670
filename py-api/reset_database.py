#!/usr/bin/env python3
"""Reset the durable store: drops every account, the active code and any pending referral."""

import os
import sys

from dotenv import load_dotenv

load_dotenv()

# Check if MongoDB is enabled
ENABLE_MONGODB = os.getenv("ENABLE_MONGODB", "false").lower() == "true"

if not ENABLE_MONGODB:
    print("❌ MongoDB is not enabled. Set ENABLE_MONGODB=true in .env")
    sys.exit(1)

from pymongo.errors import PyMongoError

from gendesk.database import get_database
from gendesk.storage import KV_COLLECTION


def reset_all_collections():
    """Drop the key-value collection and start fresh."""
    db = get_database()

    print("🗑️  Clearing the key-value store...")
    try:
        db[KV_COLLECTION].drop()
        print(f"   ✓ Dropped {KV_COLLECTION}")
    except PyMongoError as e:
        print(f"   ⚠️  Could not drop {KV_COLLECTION}: {e}")
        return

    print("\n✅ Database reset complete!")
    print("📝 All accounts, balances and histories have been removed.")
    print("   - Existing access codes no longer log in")
    print("   - New accounts are created by purchasing a package")


if __name__ == "__main__":
    print("🚀 Resetting the GenDesk database...")
    print("   This will DELETE ALL existing data.")

    confirm = input("\n⚠️  Are you sure? Type 'yes' to continue: ")
    if confirm.lower() == 'yes':
        reset_all_collections()
    else:
        print("❌ Reset cancelled.")
