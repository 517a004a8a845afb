"""Session and device management endpoints, scoped to the caller's account."""
import logging

from fastapi import APIRouter, Depends, Request, Response

from app.api.cookies import clear_auth_cookies
from app.api.deps import get_current_identity, get_device_registry, get_session_store
from app.config import get_settings
from app.schemas.auth import (
    DeviceRevocationResponse,
    DeviceRevokeResponse,
    MessageResponse,
    SessionResponse,
)
from app.services.devices import DeviceRegistry
from app.services.errors import NotOwner
from app.services.sessions import SessionStore
from app.services.tokens import Identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])
settings = get_settings()


def _current_token_hash(request: Request, sessions: SessionStore) -> str | None:
    refresh_secret = request.cookies.get(settings.refresh_cookie_name)
    if not refresh_secret:
        return None
    return sessions.codec.hash_refresh_secret(refresh_secret)


@router.get("", response_model=list[SessionResponse])
def list_sessions(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    sessions: SessionStore = Depends(get_session_store),
):
    """List the caller's sessions, newest first."""
    current_hash = _current_token_hash(request, sessions)
    return [
        SessionResponse(
            id=s.id,
            created_at=s.created_at,
            last_used_at=s.last_used_at,
            expires_at=s.expires_at,
            revoked=bool(s.revoked),
            revoked_at=s.revoked_at,
            device_id=s.device_id,
            user_agent=s.user_agent,
            ip_address=s.ip_address,
            current=current_hash is not None and not s.revoked and s.token_hash == current_hash,
        )
        for s in sessions.list_sessions(identity.user_id)
    ]


@router.post("/revoke/{session_id}", response_model=MessageResponse)
def revoke_session(
    session_id: str,
    request: Request,
    response: Response,
    identity: Identity = Depends(get_current_identity),
    sessions: SessionStore = Depends(get_session_store),
    devices: DeviceRegistry = Depends(get_device_registry),
):
    """Revoke one of the caller's sessions."""
    session = sessions.get_session(identity.user_id, session_id)
    if session is None:
        logger.warning(f"Account {identity.user_id} tried to revoke foreign session {session_id}")
        raise NotOwner("Session not found for your account")

    is_current = session.token_hash == _current_token_hash(request, sessions)
    device_id = session.device_id
    sessions.revoke_by_id(identity.user_id, session_id)
    if device_id:
        devices.unlink_session(device_id, identity.user_id, session_id)

    if is_current:
        clear_auth_cookies(response)
    return MessageResponse(message="Session revoked")


@router.post("/revoke-device/{device_id}", response_model=DeviceRevokeResponse)
def revoke_device_sessions(
    device_id: str,
    identity: Identity = Depends(get_current_identity),
    devices: DeviceRegistry = Depends(get_device_registry),
):
    """Revoke the caller's sessions linked to a device; other accounts keep theirs."""
    if not devices.linked_sessions(device_id, user_id=identity.user_id):
        logger.warning(f"Account {identity.user_id} has no sessions on device {device_id}")
        raise NotOwner("No sessions for your account on this device")

    results = devices.revoke_device(device_id, only_user_id=identity.user_id)
    return DeviceRevokeResponse(
        device_id=device_id,
        sessions=[
            DeviceRevocationResponse(session_id=result.session_id, revoked=result.revoked)
            for result in results
        ],
    )
