"""Database connection and session management."""
from collections.abc import Generator
from contextlib import contextmanager
import logging

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.config import get_settings
from app.services.errors import PersistenceFailure

logger = logging.getLogger(__name__)

settings = get_settings()

# SQLite requires check_same_thread=False for FastAPI
connect_args = {"check_same_thread": False} if "sqlite" in settings.database_url else {}

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Dependency that provides a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def persistence_guard(db: Session) -> Generator[None, None, None]:
    """Surface driver errors on reads as PersistenceFailure."""
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(f"Auth storage read failed: {exc}")
        raise PersistenceFailure() from exc


@contextmanager
def atomic(db: Session) -> Generator[None, None, None]:
    """Commit the enclosed writes as one unit, or roll them all back."""
    try:
        yield
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(f"Auth storage write failed: {exc}")
        raise PersistenceFailure() from exc
    except Exception:
        db.rollback()
        raise
