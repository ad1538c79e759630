"""
Password hashing and session tokens.

Passwords are stored as ``SHA-256(key ":" salt ":" password)`` where
``key`` is the user's credential key (``user:<username>``) and ``salt`` a
hex-encoded random value.  Session tokens are HS256 JWTs carrying
``{"loggedInAs": username}``.
"""
import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import jwt

from blog_backend.config import get_settings

CLAIM_USERNAME = "loggedInAs"


def credential_key(username: str) -> str:
    return f"user:{username}"


def generate_salt(size: int | None = None) -> str:
    """Return *size* random bytes (``SALT_BYTES`` by default), hex-encoded."""
    return secrets.token_hex(size or get_settings().SALT_BYTES)


def hash_password(username: str, salt: str, password: str) -> str:
    material = f"{credential_key(username)}:{salt}:{password}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def verify_password(username: str, salt: str, password: str, expected_hash: str) -> bool:
    """Constant-time comparison of the recomputed hash against *expected_hash*."""
    return hmac.compare_digest(hash_password(username, salt, password), expected_hash)


def sign_token(claims: dict[str, Any]) -> str:
    """
    Sign *claims* with the shared secret.

    An ``exp`` claim is only added when ``TOKEN_EXPIRE_MINUTES`` is set;
    by default tokens do not expire.
    """
    settings = get_settings()
    to_encode = dict(claims)
    if settings.TOKEN_EXPIRE_MINUTES is not None:
        to_encode["exp"] = datetime.now(timezone.utc) + timedelta(
            minutes=settings.TOKEN_EXPIRE_MINUTES
        )
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def issue_session_token(username: str) -> str:
    return sign_token({CLAIM_USERNAME: username})


def decode_token(token: str) -> dict[str, Any]:
    """
    Verify *token* and return its claims.

    Raises:
        JWTError: bad signature, malformed token, or expired ``exp``.
    """
    settings = get_settings()
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
