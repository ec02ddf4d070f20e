"""Authentication service - access-proxy header parsing + staff lookup."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import Forbidden
from app.models.user import User, UserRole


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Look up a registered staff user by email."""
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def create_user(db: AsyncSession, email: str, name: str, role: UserRole | str) -> User:
    """Register a staff account."""
    user = User(email=email, name=name, role=UserRole(role).value)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


def ensure_role(user: User, *roles: UserRole) -> User:
    """Raise Forbidden unless the user holds one of *roles* (admins always pass)."""
    allowed = {r.value for r in roles} | {UserRole.ADMIN.value}
    if user.role not in allowed:
        names = " or ".join(r.value for r in roles)
        raise Forbidden(f"{names.capitalize()} access required")
    return user


def get_cf_email(headers) -> str | None:
    """Extract authenticated email from the access-proxy header."""
    return headers.get(settings.CF_AUTH_HEADER)
