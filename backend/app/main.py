"""Townsquare - community backend auth & session API."""
from contextlib import asynccontextmanager
import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import make_url

from app.api.errors import install_error_handlers
from app.config import get_settings

settings = get_settings()


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _ensure_sqlite_dir(database_url: str) -> None:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    configure_logging()

    # Startup: Create tables and start the inactivity reaper
    from app.database import Base, SessionLocal, engine
    from app.services.reaper import InactivityReaper

    # Import all models so they're registered with Base
    from app import models  # noqa: F401

    _ensure_sqlite_dir(settings.database_url)
    Base.metadata.create_all(bind=engine)

    reaper = InactivityReaper(SessionLocal, settings)
    app.state.reaper = reaper
    if settings.reaper_enabled:
        await reaper.start()

    yield

    # Shutdown
    await reaper.stop()


app = FastAPI(
    title=settings.app_name,
    description="Accounts, sessions and devices for the Townsquare community",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}


# Import and include routers
from app.api import auth, sessions  # noqa: E402

app.include_router(auth.router, prefix="/api")
app.include_router(sessions.router, prefix="/api")
