import base64

from jose import jwt

from app.services.errors import TokenExpired, TokenInvalid
from app.services.tokens import REFRESH_SECRET_BYTES, Identity, TokenCodec


def test_access_token_round_trips_identity(codec):
    token = codec.mint_access(Identity(user_id="user-1", username="alice"))

    result = codec.verify_access(token)

    assert result.ok
    assert result.identity == Identity(user_id="user-1", username="alice")
    assert result.failure is None


def test_access_token_expires_after_fifteen_minutes(codec, clock):
    token = codec.mint_access(Identity(user_id="user-1", username="alice"))

    clock.advance(minutes=14, seconds=59)
    assert codec.verify_access(token).ok

    clock.advance(seconds=1)
    result = codec.verify_access(token)
    assert not result.ok
    assert isinstance(result.failure, TokenExpired)


def test_tampered_or_foreign_tokens_are_invalid(codec, settings):
    token = codec.mint_access(Identity(user_id="user-1", username="alice"))
    header, payload, signature = token.split(".")
    forged_payload = base64.urlsafe_b64encode(b'{"sub":"admin","username":"root","type":"access","exp":9999999999}').rstrip(b"=").decode()

    tampered = codec.verify_access(f"{header}.{forged_payload}.{signature}")
    signed_with_hash_key = jwt.encode(
        {"sub": "user-1", "username": "alice", "type": "access", "exp": 9999999999},
        settings.refresh_token_hash_key,
        algorithm="HS256",
    )

    for result in (tampered, codec.verify_access(signed_with_hash_key), codec.verify_access("garbage")):
        assert not result.ok
        assert isinstance(result.failure, TokenInvalid)
        assert not isinstance(result.failure, TokenExpired)


def test_missing_token_and_wrong_type_are_invalid(codec, settings):
    refresh_typed = jwt.encode(
        {"sub": "user-1", "username": "alice", "type": "refresh", "exp": 9999999999},
        settings.secret_key,
        algorithm="HS256",
    )

    assert isinstance(codec.verify_access(None).failure, TokenInvalid)
    assert isinstance(codec.verify_access("").failure, TokenInvalid)
    assert isinstance(codec.verify_access(refresh_typed).failure, TokenInvalid)


def test_refresh_secrets_are_long_and_unique(codec):
    secrets_seen = {codec.mint_refresh_secret() for _ in range(200)}

    assert len(secrets_seen) == 200
    for secret in secrets_seen:
        padded = secret + "=" * (-len(secret) % 4)
        assert len(base64.urlsafe_b64decode(padded)) >= REFRESH_SECRET_BYTES


def test_refresh_hash_is_keyed_and_stable(codec, settings, clock):
    secret = codec.mint_refresh_secret()

    digest = codec.hash_refresh_secret(secret)

    assert digest == codec.hash_refresh_secret(secret)
    assert secret not in digest
    assert len(digest) == 64

    other_settings = settings.model_copy(update={"refresh_token_hash_key": settings.secret_key[::-1] + "x"})
    other_codec = TokenCodec(other_settings, clock=clock)
    assert other_codec.hash_refresh_secret(secret) != digest
