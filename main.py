"""Halaqat - FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import async_session, init_db
from app.errors import HalaqatError
from app.logging_config import configure_logging
from app.middleware import AuthMiddleware
from app.routers import curriculum, exams, health, points
from app.services.points import ensure_default_rules

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    configure_logging()
    # Create data directory if needed
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    # Initialize database tables and seed missing point rules
    await init_db()
    async with async_session() as db:
        created = await ensure_default_rules(db)
    if created:
        logger.info("Seeded %d default point rules", created)
    yield


app = FastAPI(title=settings.APP_NAME, version="0.1.0", lifespan=lifespan)

# Middleware
app.add_middleware(AuthMiddleware)


@app.exception_handler(HalaqatError)
async def halaqat_error_handler(request: Request, exc: HalaqatError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Routers
app.include_router(health.router)
app.include_router(curriculum.router)
app.include_router(exams.router)
app.include_router(points.router)
