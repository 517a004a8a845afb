"""Refresh-session store: create, rotate and revoke login sessions.

Sessions are never deleted; revocation is a one-way flag kept for audit.
Every read-modify-write of an account's sessions runs under that account's
lock, and rotation additionally compare-and-swaps on the stored hash so a
stale refresh secret can be spent at most once.
"""
from dataclasses import dataclass
from datetime import timedelta
import logging
import uuid

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.database import atomic, persistence_guard
from app.models.auth import RefreshSession
from app.services.clock import Clock, from_iso, to_iso, utcnow
from app.services.errors import SessionIntegrityError
from app.services.locks import account_locks
from app.services.tokens import TokenCodec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionMeta:
    """Free-form context captured when a session is created."""

    device_id: str | None = None
    user_agent: str | None = None
    ip: str | None = None


@dataclass(frozen=True)
class IssuedSession:
    session_id: str
    raw_secret: str


@dataclass(frozen=True)
class RevocationResult:
    """found: the session exists for the account; changed: this call revoked it."""

    user_id: str
    session_id: str
    found: bool
    changed: bool


class SessionStore:
    """Per-account refresh sessions, addressed by the hash of their secret."""

    def __init__(
        self,
        db: Session,
        codec: TokenCodec,
        clock: Clock = utcnow,
        refresh_ttl: timedelta | None = None,
    ) -> None:
        self.db = db
        self.codec = codec
        self._clock = clock
        self._refresh_ttl = refresh_ttl

    def create_session(self, user_id: str, meta: SessionMeta) -> IssuedSession:
        """Start a session and return its id with the raw secret (not stored)."""
        raw_secret = self.codec.mint_refresh_secret()
        now = self._clock()
        session_id = str(uuid.uuid4())
        session = RefreshSession(
            id=session_id,
            user_id=user_id,
            token_hash=self.codec.hash_refresh_secret(raw_secret),
            created_at=to_iso(now),
            last_used_at=to_iso(now),
            expires_at=to_iso(now + self._refresh_ttl) if self._refresh_ttl else None,
            revoked=False,
            device_id=meta.device_id,
            user_agent=meta.user_agent[:255] if meta.user_agent else None,
            ip_address=meta.ip[:45] if meta.ip else None,
        )
        with account_locks.hold(user_id), atomic(self.db):
            self.db.add(session)
        logger.info(f"Created session {session_id} for account {user_id}")
        return IssuedSession(session_id=session_id, raw_secret=raw_secret)

    def find_by_secret(self, raw_secret: str) -> RefreshSession | None:
        """Live session whose stored hash matches raw_secret, across all accounts."""
        matches = self._live_by_hash(self.codec.hash_refresh_secret(raw_secret))
        return matches[0] if matches else None

    def rotate(self, user_id: str, raw_secret: str) -> str | None:
        """Swap the session's secret for a fresh one; None means re-login is required."""
        old_hash = self.codec.hash_refresh_secret(raw_secret)
        with account_locks.hold(user_id):
            matches = self._live_by_hash(old_hash, user_id=user_id)
            if not matches:
                return None
            session = matches[0]

            expires_at = from_iso(session.expires_at)
            if session.expires_at and (expires_at is None or expires_at <= self._clock()):
                logger.info(f"Refresh rejected for expired session {session.id}")
                return None

            new_secret = self.codec.mint_refresh_secret()
            with atomic(self.db):
                result = self.db.execute(
                    update(RefreshSession)
                    .where(
                        RefreshSession.id == session.id,
                        RefreshSession.token_hash == old_hash,
                        RefreshSession.revoked.is_(False),
                    )
                    .values(
                        token_hash=self.codec.hash_refresh_secret(new_secret),
                        last_used_at=to_iso(self._clock()),
                    )
                    .execution_options(synchronize_session="fetch")
                )
                rotated = result.rowcount == 1
            if not rotated:
                logger.warning(f"Lost rotation race on session {session.id}")
                return None
        return new_secret

    def get_session(self, user_id: str, session_id: str) -> RefreshSession | None:
        with persistence_guard(self.db):
            return self.db.query(RefreshSession).filter(
                RefreshSession.user_id == user_id,
                RefreshSession.id == session_id,
            ).first()

    def list_sessions(self, user_id: str) -> list[RefreshSession]:
        """All sessions of the account, newest first, revoked ones included."""
        with persistence_guard(self.db):
            return (
                self.db.query(RefreshSession)
                .filter(RefreshSession.user_id == user_id)
                .order_by(RefreshSession.created_at.desc())
                .all()
            )

    def revoke_by_token(self, raw_secret: str) -> list[RefreshSession]:
        """Revoke whichever live session(s) hold this secret; returns those revoked."""
        revoked = []
        for session in self._live_by_hash(self.codec.hash_refresh_secret(raw_secret), strict=False):
            result = self.revoke_by_id(session.user_id, session.id)
            if result.changed:
                revoked.append(session)
        return revoked

    def revoke_by_id(self, user_id: str, session_id: str) -> RevocationResult:
        """Revoke one session; already-revoked sessions succeed unchanged."""
        with account_locks.hold(user_id):
            session = self.get_session(user_id, session_id)
            if session is None:
                return RevocationResult(user_id, session_id, found=False, changed=False)
            if session.revoked:
                return RevocationResult(user_id, session_id, found=True, changed=False)
            with atomic(self.db):
                self._mark_revoked(session)
        logger.info(f"Revoked session {session_id} for account {user_id}")
        return RevocationResult(user_id, session_id, found=True, changed=True)

    def revoke_all(self, user_id: str) -> list[RefreshSession]:
        """Revoke every live session of the account; returns those revoked."""
        with account_locks.hold(user_id):
            with persistence_guard(self.db):
                live = self.db.query(RefreshSession).filter(
                    RefreshSession.user_id == user_id,
                    RefreshSession.revoked.is_(False),
                ).all()
            if live:
                with atomic(self.db):
                    for session in live:
                        self._mark_revoked(session)
        logger.info(f"Revoked {len(live)} session(s) for account {user_id}")
        return live

    def _mark_revoked(self, session: RefreshSession) -> None:
        session.revoked = True
        session.revoked_at = to_iso(self._clock())

    def _live_by_hash(
        self,
        token_hash: str,
        user_id: str | None = None,
        strict: bool = True,
    ) -> list[RefreshSession]:
        with persistence_guard(self.db):
            query = self.db.query(RefreshSession).filter(
                RefreshSession.token_hash == token_hash,
                RefreshSession.revoked.is_(False),
            )
            if user_id is not None:
                query = query.filter(RefreshSession.user_id == user_id)
            matches = query.order_by(RefreshSession.created_at).all()
        if strict and len(matches) > 1:
            logger.error(f"{len(matches)} live sessions share one refresh hash")
            raise SessionIntegrityError()
        return matches
