from __future__ import annotations

import base64
import hashlib
import hmac
import json
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Literal
from uuid import UUID

from chatdesk.domain.enums import UserRole

PBKDF2_ALGORITHM = "pbkdf2_sha256"
PBKDF2_ITERATIONS = 260_000
PASSWORD_SALT_SIZE = 16
TOKEN_VERSION = 2
META_SIGNATURE_PREFIX = "sha256="


@dataclass(frozen=True, slots=True)
class AccessClaims:
    user_id: UUID
    role: UserRole
    expires_at: datetime


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(raw: str) -> bytes:
    padded = raw + ("=" * (-len(raw) % 4))
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def _sign(secret: str, data: bytes) -> bytes:
    return hmac.new(secret.encode("utf-8"), data, hashlib.sha256).digest()


def _derive(password: str, salt: bytes, iterations: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)


# Passwords


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("Password cannot be empty.")
    salt = secrets.token_bytes(PASSWORD_SALT_SIZE)
    digest = _derive(password, salt, PBKDF2_ITERATIONS)
    return "$".join(
        (PBKDF2_ALGORITHM, str(PBKDF2_ITERATIONS), _b64url_encode(salt), _b64url_encode(digest))
    )


def verify_password(password: str, stored_hash: str) -> bool:
    parts = stored_hash.split("$")
    if len(parts) != 4 or parts[0] != PBKDF2_ALGORITHM:
        return False
    try:
        iterations = int(parts[1])
        salt = _b64url_decode(parts[2])
        expected = _b64url_decode(parts[3])
    except (ValueError, TypeError):
        return False
    return hmac.compare_digest(_derive(password, salt, iterations), expected)


# Access tokens: "<b64url json payload>.<b64url hmac>"


def create_access_token(
    *,
    user_id: UUID,
    role: UserRole,
    secret: str,
    ttl_minutes: int,
) -> tuple[str, datetime]:
    issued_at = datetime.now(UTC)
    expires_at = issued_at + timedelta(minutes=ttl_minutes)
    payload = {
        "v": TOKEN_VERSION,
        "uid": str(user_id),
        "role": role.value,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    body = _b64url_encode(json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8"))
    signature = _b64url_encode(_sign(secret, body.encode("ascii")))
    return f"{body}.{signature}", expires_at


def _verified_payload(token: str, secret: str) -> dict[str, Any]:
    body, separator, signature = token.partition(".")
    if not separator or not body or not signature:
        raise ValueError("Malformed token")
    try:
        provided = _b64url_decode(signature)
    except (ValueError, TypeError) as exc:
        raise ValueError("Malformed token signature") from exc
    if not hmac.compare_digest(_sign(secret, body.encode("ascii")), provided):
        raise ValueError("Invalid token signature")

    try:
        payload = json.loads(_b64url_decode(body))
    except (ValueError, TypeError) as exc:
        raise ValueError("Malformed token payload") from exc
    if not isinstance(payload, dict):
        raise ValueError("Malformed token payload")
    return payload


def decode_access_token(token: str, secret: str) -> AccessClaims:
    payload = _verified_payload(token, secret)
    if payload.get("v") != TOKEN_VERSION:
        raise ValueError("Unsupported token version")

    try:
        claims = AccessClaims(
            user_id=UUID(str(payload["uid"])),
            role=UserRole(payload["role"]),
            expires_at=datetime.fromtimestamp(int(payload["exp"]), UTC),
        )
    except (KeyError, ValueError, TypeError) as exc:
        raise ValueError("Malformed token payload") from exc

    if claims.expires_at <= datetime.now(UTC):
        raise ValueError("Token expired")
    return claims


# Webhook signatures


def sign_hmac_sha256(
    secret: str,
    body: bytes,
    encoding: Literal["base64", "hex"] = "base64",
) -> str:
    digest = _sign(secret, body)
    if encoding == "hex":
        return digest.hex()
    return base64.b64encode(digest).decode("ascii")


def verify_hmac_signature(
    secret: str,
    body: bytes,
    signature: str | None,
    encoding: Literal["base64", "hex"] = "base64",
) -> bool:
    """Check a webhook signature header against the raw request body.

    LINE sends the base64 digest as-is; Facebook and Instagram send
    ``sha256=<hex digest>``.
    """
    if not secret or not signature:
        return False

    candidate = signature.strip()
    if encoding == "hex" and candidate.startswith(META_SIGNATURE_PREFIX):
        candidate = candidate[len(META_SIGNATURE_PREFIX) :]

    expected = sign_hmac_sha256(secret, body, encoding)
    return hmac.compare_digest(expected.encode("ascii"), candidate.encode("ascii", "replace"))
