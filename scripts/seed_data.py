"""Seed the database with initial data (point rules, optional demo circle).

Usage: uv run python scripts/seed_data.py [--demo]
"""

import argparse
import asyncio
import sys
from datetime import date
from pathlib import Path

# Ensure project root is on sys.path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import select

from app.config import settings
from app.database import init_db, async_session
from app.models.circle_session import CircleSession
from app.models.student import Student
from app.models.user import User, UserRole
from app.services.points import ensure_default_rules


DEMO_STAFF = [
    {"email": "admin@halaqat.local", "name": "Circle Admin", "role": UserRole.ADMIN.value},
    {"email": "teacher@halaqat.local", "name": "Sheikh Ahmad", "role": UserRole.TEACHER.value},
    {"email": "examiner@halaqat.local", "name": "Sheikh Yusuf", "role": UserRole.EXAMINER.value},
]

DEMO_STUDENTS = [
    {"external_id": "S-001", "name": "Abdullah"},
    {"external_id": "S-002", "name": "Omar"},
    {"external_id": "S-003", "name": "Khalid"},
]


async def seed(demo: bool) -> None:
    # Ensure data directory exists
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)

    # Create tables
    await init_db()
    print("Database tables created.")

    async with async_session() as session:
        created = await ensure_default_rules(session)
        print(f"  Point rules inserted: {created}")

        if not demo:
            print("Seed data complete.")
            return

        teacher = None
        for staff in DEMO_STAFF:
            result = await session.execute(select(User).where(User.email == staff["email"]))
            user = result.scalar_one_or_none()
            if user is None:
                user = User(**staff)
                session.add(user)
                print(f"  Inserted: {staff['email']} ({staff['role']})")
            if staff["role"] == UserRole.TEACHER.value:
                teacher = user

        for data in DEMO_STUDENTS:
            result = await session.execute(
                select(Student).where(Student.external_id == data["external_id"])
            )
            if result.scalar_one_or_none() is None:
                session.add(Student(**data))
                print(f"  Inserted: {data['external_id']} - {data['name']}")

        await session.flush()
        session.add(CircleSession(session_date=date.today(), teacher_id=teacher.id))
        print("  Inserted: circle session for today")

        await session.commit()

    print("Seed data complete.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--demo", action="store_true", help="also insert demo staff, students and a session")
    args = parser.parse_args()
    asyncio.run(seed(args.demo))
