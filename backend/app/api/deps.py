"""Shared API dependencies."""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.models.user import User
from app.services.clock import Clock, utcnow
from app.services.credentials import CredentialStore
from app.services.devices import DeviceRegistry
from app.services.errors import NotAuthenticated
from app.services.gate import RequestGate
from app.services.sessions import SessionStore
from app.services.tokens import Identity, TokenCodec

settings = get_settings()

__all__ = [
    "get_db",
    "get_clock",
    "get_token_codec",
    "get_credential_store",
    "get_session_store",
    "get_device_registry",
    "get_request_gate",
    "get_current_identity",
    "get_current_user",
    "get_request_ip",
]


def get_clock() -> Clock:
    """Clock used by the auth services; overridden in tests to move time."""
    return utcnow


def get_token_codec(clock: Clock = Depends(get_clock)) -> TokenCodec:
    return TokenCodec(settings, clock=clock)


def get_credential_store(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> CredentialStore:
    return CredentialStore(db, clock=clock)


def get_session_store(
    db: Session = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
    clock: Clock = Depends(get_clock),
) -> SessionStore:
    return SessionStore(db, codec, clock=clock, refresh_ttl=settings.refresh_token_ttl)


def get_device_registry(
    db: Session = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
    clock: Clock = Depends(get_clock),
) -> DeviceRegistry:
    return DeviceRegistry(db, sessions, clock=clock)


def get_request_gate(
    codec: TokenCodec = Depends(get_token_codec),
    devices: DeviceRegistry = Depends(get_device_registry),
) -> RequestGate:
    return RequestGate(
        codec,
        devices,
        inactivity_threshold=settings.inactivity_threshold,
        fail_closed_unknown_device=settings.device_unknown_fail_closed,
    )


def get_current_identity(
    request: Request,
    gate: RequestGate = Depends(get_request_gate),
) -> Identity:
    """Run the request gate; unauthenticated outcomes surface as their AuthError."""
    outcome = gate.check(
        request.cookies.get(settings.access_cookie_name),
        request.cookies.get(settings.device_cookie_name),
    )
    if not outcome.authenticated:
        raise outcome.failure
    return outcome.identity


def get_current_user(
    identity: Identity = Depends(get_current_identity),
    credentials: CredentialStore = Depends(get_credential_store),
) -> User:
    user = credentials.get_account(identity.user_id)
    if user is None:
        raise NotAuthenticated("Account no longer exists")
    return user


def get_request_ip(request: Request) -> str | None:
    """Extract best-effort client IP for session metadata."""
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None
