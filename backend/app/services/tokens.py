"""Access-token signing and refresh-secret generation/hashing."""
from dataclasses import dataclass
from datetime import timedelta
import hashlib
import hmac
import secrets

from jose import JWTError, jwt

from app.config import Settings
from app.services.clock import Clock, utcnow
from app.services.errors import TokenExpired, TokenInvalid

REFRESH_SECRET_BYTES = 48
ACCESS_TOKEN_TYPE = "access"


@dataclass(frozen=True)
class Identity:
    """Authenticated caller as seen by downstream handlers."""

    user_id: str
    username: str


@dataclass(frozen=True)
class AccessTokenResult:
    """Outcome of access-token verification: an identity or the failure."""

    identity: Identity | None = None
    failure: TokenInvalid | None = None

    @property
    def ok(self) -> bool:
        return self.identity is not None


class TokenCodec:
    """Mints/verifies signed access tokens and hashes refresh secrets.

    The JWT signing key and the refresh HMAC key are distinct settings, so
    leaking one does not compromise the other.
    """

    def __init__(self, settings: Settings, clock: Clock = utcnow) -> None:
        self._signing_key = settings.secret_key
        self._algorithm = settings.algorithm
        self._hash_key = settings.refresh_token_hash_key.encode("utf-8")
        self._access_ttl = settings.access_token_ttl
        self._clock = clock

    @property
    def access_ttl(self) -> timedelta:
        return self._access_ttl

    def mint_access(self, identity: Identity) -> str:
        """Create a signed access token for the identity."""
        now = self._clock()
        claims = {
            "sub": identity.user_id,
            "username": identity.username,
            "type": ACCESS_TOKEN_TYPE,
            "iat": int(now.timestamp()),
            "exp": int((now + self._access_ttl).timestamp()),
        }
        return jwt.encode(claims, self._signing_key, algorithm=self._algorithm)

    def verify_access(self, token: str | None) -> AccessTokenResult:
        """Verify an access token; failures are returned, never raised."""
        if not token:
            return AccessTokenResult(failure=TokenInvalid("Missing access token"))

        # Expiry is checked against the injected clock below.
        try:
            payload = jwt.decode(
                token,
                self._signing_key,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except JWTError:
            return AccessTokenResult(failure=TokenInvalid())

        if payload.get("type") != ACCESS_TOKEN_TYPE:
            return AccessTokenResult(failure=TokenInvalid("Invalid token type"))

        user_id = payload.get("sub")
        username = payload.get("username")
        expires = payload.get("exp")
        if not isinstance(user_id, str) or not isinstance(username, str):
            return AccessTokenResult(failure=TokenInvalid())
        if not isinstance(expires, (int, float)) or isinstance(expires, bool):
            return AccessTokenResult(failure=TokenInvalid())

        if self._clock().timestamp() >= expires:
            return AccessTokenResult(failure=TokenExpired())

        return AccessTokenResult(identity=Identity(user_id=user_id, username=username))

    def mint_refresh_secret(self) -> str:
        """Random opaque refresh secret; only ever handed to the client."""
        return secrets.token_urlsafe(REFRESH_SECRET_BYTES)

    def hash_refresh_secret(self, raw_secret: str) -> str:
        """Keyed one-way hash of a refresh secret, for storage and lookup."""
        return hmac.new(self._hash_key, raw_secret.encode("utf-8"), hashlib.sha256).hexdigest()
