"""Account credential store backed by argon2id password hashes."""
import logging

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHash, VerificationError
from sqlalchemy.orm import Session

from app.database import atomic, persistence_guard
from app.models.user import User
from app.services.clock import Clock, to_iso, utcnow
from app.services.errors import InvalidCredentials

logger = logging.getLogger(__name__)

_hasher = PasswordHasher(type=Type.ID)
_dummy_hash: str | None = None


def get_password_hash(password: str) -> str:
    """Hash a password."""
    return _hasher.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    try:
        return _hasher.verify(hashed_password, plain_password)
    except (InvalidHash, VerificationError):
        return False


def _burn_verification(password: str) -> None:
    # Unknown emails cost the same argon2 work as a wrong password.
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = _hasher.hash("townsquare-unknown-account")
    verify_password(password, _dummy_hash)


class CredentialStore:
    """Reads and writes account records and their password hashes."""

    def __init__(self, db: Session, clock: Clock = utcnow) -> None:
        self.db = db
        self._clock = clock

    def get_account(self, user_id: str) -> User | None:
        with persistence_guard(self.db):
            return self.db.query(User).filter(User.id == user_id).first()

    def find_by_email(self, email: str) -> User | None:
        with persistence_guard(self.db):
            return self.db.query(User).filter(User.email == email.strip().lower()).first()

    def find_by_username(self, username: str) -> User | None:
        with persistence_guard(self.db):
            return self.db.query(User).filter(User.username == username).first()

    def create_account(self, username: str, email: str, password: str) -> User:
        """Persist a new account with an argon2id password hash."""
        now = to_iso(self._clock())
        user = User(
            username=username,
            email=email.strip().lower(),
            password_hash=get_password_hash(password),
            display_name=username,
            show_email=False,
            bio="",
            created_at=now,
            updated_at=now,
        )
        with atomic(self.db):
            self.db.add(user)
        self.db.refresh(user)
        logger.info(f"Registered account {user.id}")
        return user

    def authenticate(self, email: str, password: str) -> User:
        """Return the account for valid credentials, else raise InvalidCredentials."""
        user = self.find_by_email(email)
        if user is None:
            _burn_verification(password)
            logger.warning("Login failed: invalid credentials")
            raise InvalidCredentials()

        if not verify_password(password, user.password_hash):
            logger.warning(f"Login failed: invalid credentials for account {user.id}")
            raise InvalidCredentials()

        if _hasher.check_needs_rehash(user.password_hash):
            with atomic(self.db):
                user.password_hash = get_password_hash(password)
                user.updated_at = to_iso(self._clock())
            logger.info(f"Upgraded password hash parameters for account {user.id}")

        return user
