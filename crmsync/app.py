"""FastAPI application factory for the CRM sync service."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import settings
from .worker import sync_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Auto-create tables for SQLite (local dev)
    if "sqlite" in settings.database_url:
        from .database import create_all
        await create_all()
    sync_scheduler.start()
    yield
    await sync_scheduler.stop()


app = FastAPI(title=settings.app_title, lifespan=lifespan)

# Import and register routers
from .routers import aasp, health  # noqa: E402

app.include_router(aasp.router)
app.include_router(health.router)
