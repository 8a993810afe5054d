"""Seed the database with sample users and study materials."""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from studymate.db.session import AsyncSessionLocal, engine, Base

# Import ALL models to register them with Base.metadata
from studymate.models import DownloadRecord, DownloadToken, Material, User  # noqa: F401


SAMPLE_USERS = [
    {"id": "user_demo_alice", "email": "alice@example.edu", "name": "Alice Kumar"},
    {"id": "user_demo_bob", "email": "bob@example.edu", "name": "Bob Fernandes"},
]

SAMPLE_MATERIALS = [
    {
        "title": "Data Structures Unit 1 Notes",
        "description": "Arrays, linked lists and complexity analysis",
        "subject": "Data Structures",
        "course": "BCA",
        "year": "2",
        "semester": "3",
        "material_type": "notes",
        "file_type": "pdf",
        "file_url": "https://files.example.edu/materials/ds-unit-1.pdf",
        "file_size": 482_113,
        "uploaded_by": "user_demo_alice",
    },
    {
        "title": "Operating Systems 2025 End Semester Paper",
        "description": None,
        "subject": "Operating Systems",
        "course": "BCA",
        "year": "3",
        "semester": "5",
        "material_type": "question_paper",
        "file_type": "pdf",
        "file_url": "https://files.example.edu/materials/os-2025-endsem.pdf",
        "file_size": 210_554,
        "uploaded_by": "user_demo_bob",
    },
    {
        "title": "Microeconomics Assignment 2",
        "description": "Demand elasticity worked problems",
        "subject": "Economics",
        "course": "BCom",
        "year": "1",
        "semester": "2",
        "material_type": "assignment",
        "file_type": "docx",
        "file_url": "https://files.example.edu/materials/micro-assignment-2.docx",
        "file_size": 58_920,
        "uploaded_by": "user_demo_alice",
    },
]


async def seed_database():
    """Create sample users and materials."""
    print("Creating tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("Tables created successfully!")

    async with AsyncSessionLocal() as db:
        result = await db.execute(select(User).where(User.id == SAMPLE_USERS[0]["id"]))
        if result.scalar_one_or_none():
            print("Database already seeded!")
            return

        for data in SAMPLE_USERS:
            db.add(User(**data))
        await db.flush()

        for data in SAMPLE_MATERIALS:
            db.add(Material(downloads=0, **data))

        await db.commit()

    print(f"Seeded {len(SAMPLE_USERS)} users and {len(SAMPLE_MATERIALS)} materials.")


if __name__ == "__main__":
    asyncio.run(seed_database())
