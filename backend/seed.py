"""
Seed script for the Civil Works Progress Ledger.

Creates:
- 1 ADMIN user (credentials: admin@example.com / admin123)
- 1 JE user (credentials: je@example.com / je123)
- 1 Ongoing sample project (work value 100000, nothing billed yet)
- Indexes used by the progress ledger
"""

import asyncio
from motor.motor_asyncio import AsyncIOMotorClient
from datetime import datetime
import os
from pathlib import Path
from dotenv import load_dotenv
import sys

# Add parent directory to path for imports
sys.path.append(str(Path(__file__).parent))

from auth import hash_password
from core.progress_ledger import ProjectAggregate

# Load environment
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB connection
mongo_url = os.environ['MONGO_URL']
db_name = os.environ['DB_NAME']

SEED_USERS = [
    {"name": "System Administrator", "email": "admin@example.com", "password": "admin123", "designation": "ADMIN"},
    {"name": "Junior Engineer", "email": "je@example.com", "password": "je123", "designation": "JE"},
]

SAMPLE_PROJECT_ID = "PRJ-0001"


async def seed_database():
    """Seed the database with initial data"""

    client = AsyncIOMotorClient(mongo_url)
    db = client[db_name]

    print("🌱 Starting database seeding...")

    try:
        # ============================================
        # 1. CREATE USERS
        # ============================================
        print("👤 Creating users...")

        user_ids = {}
        for seed_user in SEED_USERS:
            existing = await db.users.find_one({"email": seed_user["email"]})
            if existing:
                print(f"   ⚠️  {seed_user['designation']} user already exists. Skipping...")
                user_ids[seed_user["designation"]] = str(existing["_id"])
                continue

            result = await db.users.insert_one({
                "name": seed_user["name"],
                "email": seed_user["email"],
                "hashed_password": hash_password(seed_user["password"]),
                "designation": seed_user["designation"],
                "active_status": True,
                "created_at": datetime.utcnow(),
                "updated_at": datetime.utcnow()
            })
            user_ids[seed_user["designation"]] = str(result.inserted_id)
            print(f"   ✅ {seed_user['designation']} user created")
            print(f"      📧 Email: {seed_user['email']}")
            print(f"      🔑 Password: {seed_user['password']}")

        # ============================================
        # 2. CREATE SAMPLE PROJECT
        # ============================================
        print("🏗️  Creating sample project...")

        existing_project = await db.projects.find_one({"project_id": SAMPLE_PROJECT_ID})
        if existing_project:
            print("   ⚠️  Sample project already exists. Skipping...")
            project_oid = str(existing_project["_id"])
        else:
            aggregate = ProjectAggregate.create(SAMPLE_PROJECT_ID, 100000, status="Ongoing")
            project = aggregate.to_document()
            project.update({
                "project_name": "Sample Road Resurfacing",
                "district": "North Goa",
                "fund": "State Fund",
                "type_of_work": "Road",
                "nature_of_work": "Resurfacing",
                "status_history": [],
                "status_workflow": {},
                "created_by": {"user_id": user_ids.get("JE"), "name": "Junior Engineer", "role": "JE"},
                "created_at": datetime.utcnow(),
                "updated_at": datetime.utcnow()
            })
            result = await db.projects.insert_one(project)
            project_oid = str(result.inserted_id)
            print(f"   ✅ Sample project created: {SAMPLE_PROJECT_ID} ({project_oid})")

        # ============================================
        # 3. CREATE INDEXES FOR PERFORMANCE
        # ============================================
        print("📇 Creating database indexes...")

        await db.users.create_index("email", unique=True)
        await db.projects.create_index("project_id", unique=True)
        await db.projects.create_index([("status", 1), ("district", 1), ("fund", 1)])
        await db.audit_logs.create_index([("entity_type", 1), ("entity_id", 1)])
        await db.audit_logs.create_index([("project_id", 1), ("timestamp", -1)])
        await db.discarded_documents.create_index([("deleted", 1), ("queued_at", 1)])

        print("   ✅ Indexes created")

        # ============================================
        # SUMMARY
        # ============================================
        print("\n" + "="*60)
        print("✨ DATABASE SEEDING COMPLETE ✨")
        print("="*60)
        print(f"\n🏗️  Sample Project: {SAMPLE_PROJECT_ID} ({project_oid})")
        for seed_user in SEED_USERS:
            print(f"👤 {seed_user['designation']}: {seed_user['email']} / {seed_user['password']}")
        print("\n⚠️  SECURITY: Change seeded passwords after first login!")
        print("\n📖 API Documentation: http://localhost:8001/docs")
        print("="*60)

    except Exception as e:
        print(f"\n❌ Error during seeding: {str(e)}")
        raise
    finally:
        client.close()

if __name__ == "__main__":
    asyncio.run(seed_database())
