"""FastAPI dependencies for route handlers."""

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models.user import User, UserRole
from app.services.auth import ensure_role, get_user_by_email


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
    """Require an authenticated and registered staff user."""
    email = getattr(request.state, "user_email", None)
    if not email:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user = await get_user_by_email(db, email)
    if user is None:
        raise HTTPException(status_code=403, detail="Not registered")
    return user


async def require_examiner(user: User = Depends(get_current_user)) -> User:
    """Require examiner or admin role."""
    return ensure_role(user, UserRole.EXAMINER)


async def require_teacher(user: User = Depends(get_current_user)) -> User:
    """Require teacher or admin role."""
    return ensure_role(user, UserRole.TEACHER)


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Require admin role."""
    return ensure_role(user, UserRole.ADMIN)
