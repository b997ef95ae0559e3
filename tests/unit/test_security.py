import base64
import hashlib
import hmac
from uuid import uuid4

import pytest

from chatdesk.core.config import DEFAULT_AUTH_SECRET, Settings
from chatdesk.core.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    sign_hmac_sha256,
    verify_hmac_signature,
    verify_password,
)
from chatdesk.domain.enums import UserRole

SECRET = "unit-test-secret-that-is-long-enough"


def test_password_hash_round_trip() -> None:
    stored = hash_password("s3cret!")

    assert stored.startswith("pbkdf2_sha256$")
    assert verify_password("s3cret!", stored)
    assert not verify_password("wrong", stored)
    assert not verify_password("s3cret!", "not-a-hash")


def test_empty_password_is_rejected() -> None:
    with pytest.raises(ValueError):
        hash_password("")


def test_access_token_round_trip() -> None:
    user_id = uuid4()
    token, expires_at = create_access_token(
        user_id=user_id, role=UserRole.ADMIN, secret=SECRET, ttl_minutes=5
    )

    claims = decode_access_token(token, SECRET)

    assert claims.user_id == user_id
    assert claims.role == UserRole.ADMIN
    assert claims.expires_at == expires_at.replace(microsecond=0)


def test_expired_token_is_rejected() -> None:
    token, _ = create_access_token(
        user_id=uuid4(), role=UserRole.AGENT, secret=SECRET, ttl_minutes=-1
    )
    with pytest.raises(ValueError, match="expired"):
        decode_access_token(token, SECRET)


def test_token_signed_with_other_secret_is_rejected() -> None:
    token, _ = create_access_token(
        user_id=uuid4(), role=UserRole.AGENT, secret=SECRET, ttl_minutes=5
    )
    with pytest.raises(ValueError, match="signature"):
        decode_access_token(token, "another-secret")
    with pytest.raises(ValueError, match="Malformed"):
        decode_access_token("no-dot-here", SECRET)


def test_line_style_base64_signature() -> None:
    body = b'{"events":[]}'
    expected = base64.b64encode(
        hmac.new(b"channel-secret", body, hashlib.sha256).digest()
    ).decode("ascii")

    assert sign_hmac_sha256("channel-secret", body) == expected
    assert verify_hmac_signature("channel-secret", body, expected)
    assert not verify_hmac_signature("channel-secret", body + b" ", expected)
    assert not verify_hmac_signature("channel-secret", body, None)
    assert not verify_hmac_signature("", body, expected)


def test_meta_style_hex_signature_with_prefix() -> None:
    body = b'{"object":"page","entry":[]}'
    digest = hmac.new(b"app-secret", body, hashlib.sha256).hexdigest()

    assert verify_hmac_signature("app-secret", body, f"sha256={digest}", encoding="hex")
    assert verify_hmac_signature("app-secret", body, digest, encoding="hex")
    assert not verify_hmac_signature("app-secret", body, "sha256=deadbeef", encoding="hex")


def test_production_requires_overridden_secret() -> None:
    settings = Settings(_env_file=None, app_env="production", auth_secret=DEFAULT_AUTH_SECRET)
    with pytest.raises(ValueError, match="AUTH_SECRET"):
        settings.validate_security_settings()


def test_local_settings_skip_security_checks() -> None:
    settings = Settings(_env_file=None, app_env="local", cors_allowed_origins_raw="*")
    settings.validate_security_settings()
    assert settings.cors_allowed_origins == ["*"]
