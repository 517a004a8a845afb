"""Authentication API endpoints."""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from app.api.cookies import clear_auth_cookies, set_auth_cookies, set_device_cookie
from app.api.deps import (
    get_credential_store,
    get_current_identity,
    get_current_user,
    get_device_registry,
    get_request_ip,
    get_session_store,
    get_token_codec,
)
from app.config import get_settings
from app.models.user import User
from app.schemas.auth import (
    AccountHandle,
    AccountResponse,
    AuthResponse,
    MessageResponse,
    UserLogin,
    UserRegister,
)
from app.services.credentials import CredentialStore
from app.services.devices import DeviceRegistry, is_valid_device_id
from app.services.errors import DeviceInactive, PersistenceFailure, RefreshInvalid
from app.services.sessions import SessionMeta, SessionStore
from app.services.tokens import Identity, TokenCodec

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])
settings = get_settings()


def _unlink_revoked(devices: DeviceRegistry, revoked_sessions) -> None:
    for session in revoked_sessions:
        if session.device_id:
            devices.unlink_session(session.device_id, session.user_id, session.id)


@router.post("/register", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def register(
    user_data: UserRegister,
    credentials: CredentialStore = Depends(get_credential_store),
):
    """Register a new account."""
    # Check username
    if credentials.find_by_username(user_data.username):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username already registered",
        )

    # Check email
    if credentials.find_by_email(user_data.email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )

    return credentials.create_account(user_data.username, user_data.email, user_data.password)


@router.post("/login", response_model=AuthResponse)
def login(
    user_data: UserLogin,
    request: Request,
    response: Response,
    credentials: CredentialStore = Depends(get_credential_store),
    sessions: SessionStore = Depends(get_session_store),
    devices: DeviceRegistry = Depends(get_device_registry),
    codec: TokenCodec = Depends(get_token_codec),
):
    """Login, start a device-linked session and set the auth cookies."""
    user = credentials.authenticate(user_data.email, user_data.password)

    presented_device_id = request.cookies.get(settings.device_cookie_name)
    if is_valid_device_id(presented_device_id):
        # Sessions left on an idle device die before the device is touched again.
        devices.revoke_if_inactive(presented_device_id, settings.inactivity_threshold)
    device_id = devices.ensure_device(presented_device_id)
    issued = sessions.create_session(
        user.id,
        SessionMeta(
            device_id=device_id,
            user_agent=request.headers.get("user-agent"),
            ip=get_request_ip(request),
        ),
    )
    try:
        devices.link_session(device_id, user.id, issued.session_id)
    except PersistenceFailure:
        sessions.revoke_by_id(user.id, issued.session_id)
        raise

    identity = Identity(user_id=user.id, username=user.username)
    set_auth_cookies(response, codec.mint_access(identity), issued.raw_secret)
    set_device_cookie(response, device_id)
    logger.info(f"Account {user.id} logged in on device {device_id}")

    return AuthResponse(user_id=user.id, username=user.username)


@router.post("/token/refresh", response_model=AuthResponse)
def refresh_tokens(
    request: Request,
    response: Response,
    credentials: CredentialStore = Depends(get_credential_store),
    sessions: SessionStore = Depends(get_session_store),
    devices: DeviceRegistry = Depends(get_device_registry),
    codec: TokenCodec = Depends(get_token_codec),
):
    """Rotate the refresh secret and mint a new access token."""
    refresh_secret = request.cookies.get(settings.refresh_cookie_name)
    if not refresh_secret:
        raise RefreshInvalid("Missing refresh token")

    threshold = settings.inactivity_threshold
    device_id = request.cookies.get(settings.device_cookie_name)
    if device_id and devices.revoke_if_inactive(device_id, threshold) is not None:
        raise DeviceInactive()

    session = sessions.find_by_secret(refresh_secret)
    if session is None:
        logger.warning("Refresh attempted with an unknown or spent secret")
        raise RefreshInvalid()

    # The session's own device is authoritative over the cookie.
    session_device_id = session.device_id
    if session_device_id and session_device_id != device_id:
        if devices.revoke_if_inactive(session_device_id, threshold) is not None:
            raise DeviceInactive()

    user = credentials.get_account(session.user_id)
    if user is None:
        raise RefreshInvalid()

    new_secret = sessions.rotate(user.id, refresh_secret)
    if new_secret is None:
        raise RefreshInvalid("Refresh session expired")

    devices.record_activity(session_device_id or device_id)

    identity = Identity(user_id=user.id, username=user.username)
    set_auth_cookies(response, codec.mint_access(identity), new_secret)
    return AuthResponse(user_id=user.id, username=user.username)


@router.post("/logout", response_model=MessageResponse)
def logout(
    request: Request,
    response: Response,
    sessions: SessionStore = Depends(get_session_store),
    devices: DeviceRegistry = Depends(get_device_registry),
):
    """Revoke the session behind the presented refresh cookie."""
    refresh_secret = request.cookies.get(settings.refresh_cookie_name)
    if refresh_secret:
        revoked = sessions.revoke_by_token(refresh_secret)
        _unlink_revoked(devices, revoked)
        logger.info(f"Logout revoked {len(revoked)} session(s)")
    clear_auth_cookies(response)
    return MessageResponse(message="Successfully logged out")


@router.post("/logout-all", response_model=MessageResponse)
def logout_all(
    response: Response,
    identity: Identity = Depends(get_current_identity),
    sessions: SessionStore = Depends(get_session_store),
    devices: DeviceRegistry = Depends(get_device_registry),
):
    """Revoke every session of the current account."""
    revoked = sessions.revoke_all(identity.user_id)
    _unlink_revoked(devices, revoked)
    clear_auth_cookies(response)
    logger.info(f"Account {identity.user_id} logged out of {len(revoked)} session(s)")
    return MessageResponse(message=f"Logged out of {len(revoked)} session(s)")


@router.get("/me", response_model=AccountResponse)
def get_me(current_user: User = Depends(get_current_user)):
    """Current account."""
    return current_user


@router.get("/accounts", response_model=list[AccountHandle])
def list_device_accounts(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    credentials: CredentialStore = Depends(get_credential_store),
    sessions: SessionStore = Depends(get_session_store),
    devices: DeviceRegistry = Depends(get_device_registry),
):
    """Accounts with live sessions on this device, for an account switcher."""
    device_id = request.cookies.get(settings.device_cookie_name)
    user_ids = []
    if device_id:
        for user_id, session_id in devices.linked_sessions(device_id):
            session = sessions.get_session(user_id, session_id)
            if session is not None and not session.revoked and user_id not in user_ids:
                user_ids.append(user_id)
    if identity.user_id not in user_ids:
        user_ids.insert(0, identity.user_id)

    handles = []
    for user_id in user_ids:
        account = credentials.get_account(user_id)
        if account is None:
            continue
        handles.append(AccountHandle(
            id=account.id,
            username=account.username,
            display_name=account.display_name,
            active=account.id == identity.user_id,
        ))
    return handles
