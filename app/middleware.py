"""Request middleware."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.services.auth import get_cf_email


class AuthMiddleware(BaseHTTPMiddleware):
    """Record the access-proxy email on ``request.state.user_email``.

    Staff lookup happens in ``get_current_user``, only for routes that need it.
    """

    async def dispatch(self, request: Request, call_next):
        request.state.user_email = get_cf_email(request.headers)
        return await call_next(request)
