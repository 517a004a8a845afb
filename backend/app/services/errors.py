"""Authentication and session error taxonomy.

Each error carries the HTTP status and stable error code it maps to, and
whether answering it should also drop the client's auth cookies.
"""


class AuthError(Exception):
    """Base class for authentication/session failures (401)."""

    status_code: int = 401
    error_code: str = "unauthorized"
    default_message: str = "Not authenticated"
    clear_cookies: bool = False

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotAuthenticated(AuthError):
    """No credentials were presented."""

    error_code = "not_authenticated"


class InvalidCredentials(AuthError):
    """Wrong email or password; never says which."""

    error_code = "invalid_credentials"
    default_message = "Invalid email or password"


class TokenInvalid(AuthError):
    """Access token failed signature or claim checks."""

    error_code = "token_invalid"
    default_message = "Invalid access token"


class TokenExpired(TokenInvalid):
    """Access token is past its expiry claim."""

    error_code = "token_expired"
    default_message = "Access token expired"


class RefreshInvalid(AuthError):
    """Refresh secret matches no live session, or the session expired."""

    error_code = "refresh_invalid"
    default_message = "Invalid refresh session"
    clear_cookies = True


class DeviceInactive(AuthError):
    """Device passed the inactivity threshold; its sessions were revoked."""

    error_code = "device_inactive"
    default_message = "Device inactive, please sign in again"
    clear_cookies = True


class NotOwner(AuthError):
    """Caller tried to manage a session or device outside their account."""

    status_code = 403
    error_code = "not_owner"
    default_message = "Not found for your account"


class PersistenceFailure(Exception):
    """Session or device state could not be read or written."""

    status_code: int = 503
    error_code: str = "persistence_failure"

    def __init__(self, message: str = "Session storage unavailable") -> None:
        self.message = message
        super().__init__(message)


class SessionIntegrityError(PersistenceFailure):
    """More than one live session matched a single refresh secret."""

    error_code = "session_integrity"
