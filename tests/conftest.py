"""Shared pytest fixtures for the Halaqat test suite."""

from collections.abc import AsyncGenerator
from datetime import date

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.config import settings
from app.database import Base, get_db
from app.models.circle_session import CircleSession
from app.models.student import Student
from app.models.user import User, UserRole
from app.services.auth import create_user
from app.services.points import ensure_default_rules
from main import app

# ---------------------------------------------------------------------------
# Async engine & session fixtures (SQLite file per test)
# ---------------------------------------------------------------------------


@pytest.fixture()
async def async_engine(tmp_path):
    """Create a fresh file-backed async engine per test.

    NullPool gives every session its own connection, so concurrent sessions
    behave like separate requests.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False, poolclass=NullPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
def session_factory(async_engine):
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide an async session that rolls back anything left uncommitted."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture()
async def client(session_factory) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTPX async client wired to the FastAPI app with test DB override."""

    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Convenience / data fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
async def staff(db_session: AsyncSession) -> dict[str, User]:
    """One registered user per role, keyed by role name."""
    users = {}
    for role in (UserRole.ADMIN, UserRole.TEACHER, UserRole.EXAMINER, UserRole.SUPERVISOR):
        users[role.value] = await create_user(
            db_session, f"{role.value}@example.com", f"Test {role.value}", role
        )
    return users


@pytest.fixture()
async def student(db_session: AsyncSession) -> Student:
    student = Student(external_id="S-001", name="Abdullah")
    db_session.add(student)
    await db_session.commit()
    await db_session.refresh(student)
    return student


@pytest.fixture()
async def circle_session(db_session: AsyncSession, staff) -> CircleSession:
    session = CircleSession(session_date=date(2026, 10, 19), teacher_id=staff["teacher"].id)
    db_session.add(session)
    await db_session.commit()
    await db_session.refresh(session)
    return session


@pytest.fixture()
async def point_rules(db_session: AsyncSession) -> int:
    return await ensure_default_rules(db_session)


@pytest.fixture()
def auth_headers():
    """Build the access-proxy authentication header for a user."""

    def _headers(user: User) -> dict[str, str]:
        return {settings.CF_AUTH_HEADER: user.email}

    return _headers
