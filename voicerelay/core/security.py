"""
core/security.py
----------------
Password hashing and JWT token utilities.

Design decisions:
  - bcrypt work factor from settings (12 in production, lower in tests).
  - Access token payload carries sub (user_id), username and role so every
    request can establish identity from the token alone.
  - Blob tokens are a second, narrower JWT type used by the local blob store
    to sign playback URLs. They bind a single key and carry typ="blob" so an
    access token can never be replayed as a blob token or vice versa.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from voicerelay.core.config import settings

pwd_context = CryptContext(
    schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS
)

ACCESS_TOKEN_TYPE = "access"
BLOB_TOKEN_TYPE = "blob"


# ── Password Utilities ────────────────────────────────────────────────────────

def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the plain-text password."""
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    """Constant-time comparison of plain password against stored hash."""
    return pwd_context.verify(plain, hashed)


# ── JWT Utilities ─────────────────────────────────────────────────────────────

def create_access_token(
    subject: str,
    username: str,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Mint a JWT access token.

    Args:
        subject: User UUID (stored in 'sub' claim).
        username: Login handle at the time of issue.
        role: 'moderator' | 'user'
        expires_delta: Optional custom expiry; defaults to settings value.

    Returns:
        Signed JWT string.
    """
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload: Dict[str, Any] = {
        "sub": subject,
        "username": username,
        "role": role,
        "typ": ACCESS_TOKEN_TYPE,
        "exp": expire,
        "iat": now,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate a JWT access token.

    Raises:
        JWTError: If the token is invalid, expired, tampered with, or is not
            an access token.

    Returns:
        Raw payload dict.
    """
    payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    if payload.get("typ") != ACCESS_TOKEN_TYPE:
        raise JWTError("Not an access token")
    return payload


def create_blob_token(key: str, ttl_seconds: int, secret_key: str) -> str:
    """Sign a short-lived grant to read a single blob key."""
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "key": key,
        "typ": BLOB_TOKEN_TYPE,
        "exp": now + timedelta(seconds=ttl_seconds),
        "iat": now,
    }
    return jwt.encode(payload, secret_key, algorithm=settings.ALGORITHM)


def verify_blob_token(token: str, key: str, secret_key: str) -> bool:
    """True if token is an unexpired blob grant for exactly this key."""
    try:
        payload = jwt.decode(token, secret_key, algorithms=[settings.ALGORITHM])
    except JWTError:
        return False
    return payload.get("typ") == BLOB_TOKEN_TYPE and payload.get("key") == key
