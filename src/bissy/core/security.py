"""JWT signing/verification and API key digests.

Provides the security primitives used by the authentication dependency and
by the API key store.
"""

from __future__ import annotations

import hashlib
import hmac
from datetime import datetime, timedelta, timezone

from fastapi import HTTPException, status
from jose import JWTError, jwt

from src.bissy.config import get_settings

AUTH_REALM = "bissy-api"
API_KEY_HEADER = "x-bissy-apikey"


def unauthorized(detail: str = "Unauthorized") -> HTTPException:
    """401 carrying the Bearer challenge expected by clients."""
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": f'Bearer realm="{AUTH_REALM}" charset="UTF-8"'},
    )


# ── JWT Token Creation ────────────────────────────────────────────────────────


def create_access_token(
    user_id: str,
    name: str | None = None,
    now: datetime | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT for a user.

    Claims: sub (user_id), name, iss, iat, exp. Signed with HMAC-SHA-512
    by default.
    """
    settings = get_settings()
    now = now or datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(hours=settings.JWT_EXPIRE_HOURS))
    claims = {
        "sub": user_id,
        "iss": settings.JWT_ISSUER,
        "iat": now,
        "exp": expire,
    }
    if name:
        claims["name"] = name
    return jwt.encode(claims, settings.JWT_SIGNING_KEY, algorithm=settings.JWT_ALGORITHM)


# ── JWT Token Verification ────────────────────────────────────────────────────


def verify_token(token: str) -> dict:
    """Decode and validate a JWT.

    Args:
        token: The JWT string.

    Returns:
        The decoded payload dict.

    Raises:
        HTTPException(401): If the token is invalid, expired, from another
            issuer, or has no subject.
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SIGNING_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            issuer=settings.JWT_ISSUER,
        )
    except JWTError:
        raise unauthorized("Could not validate credentials")
    if not payload.get("sub"):
        raise unauthorized("Could not validate credentials")
    return payload


# ── API Key Digests ───────────────────────────────────────────────────────────


def hash_api_key(key: str) -> str:
    """Deterministic digest used to index and look up API keys."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def api_key_matches(key: str, key_hash: str) -> bool:
    """Constant-time check of a presented key against a stored digest."""
    return hmac.compare_digest(hash_api_key(key), key_hash)
