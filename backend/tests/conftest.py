import os
import sys
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef")
os.environ.setdefault("REFRESH_TOKEN_HASH_KEY", "fedcba9876543210FEDCBA9876543210fedcba9876543210FEDCBA9876543210")

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app import models  # noqa: E402,F401
from app.api import deps  # noqa: E402
from app.api.auth import router as auth_router  # noqa: E402
from app.api.errors import install_error_handlers  # noqa: E402
from app.api.sessions import router as sessions_router  # noqa: E402
from app.config import get_settings  # noqa: E402
from app.database import Base  # noqa: E402
from app.services.devices import DeviceRegistry  # noqa: E402
from app.services.sessions import SessionStore  # noqa: E402
from app.services.tokens import TokenCodec  # noqa: E402


class FakeClock:
    """Controllable stand-in for utcnow."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def codec(settings, clock):
    return TokenCodec(settings, clock=clock)


@pytest.fixture
def store(db, codec, clock):
    return SessionStore(db, codec, clock=clock)


@pytest.fixture
def registry(db, store, clock):
    return DeviceRegistry(db, store, clock=clock)


@pytest.fixture
def client(session_factory, clock):
    app = FastAPI()
    app.include_router(auth_router, prefix="/api")
    app.include_router(sessions_router, prefix="/api")
    install_error_handlers(app)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_clock] = lambda: clock
    return TestClient(app)
