"""
Credentials for staff accounts.

Access tokens are short-lived JWTs naming the user and their role at issue
time. Refresh tokens are opaque random strings stored in refresh_tokens and
rotated on every use.
"""

from datetime import datetime, timedelta, timezone
import secrets
from typing import Any, Dict, Optional, Tuple
from uuid import UUID

import bcrypt
from jose import JWTError, jwt

from sponsorship_admin.core.config import settings

REFRESH_TOKEN_BYTES = 48


def hash_password(plain_password: str) -> str:
    return bcrypt.hashpw(plain_password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash (e.g. restored from a foreign backup)
        return False


def create_access_token(
    *,
    user_id: UUID,
    role: str,
    issued_at: Optional[datetime] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    issued_at = issued_at or datetime.now(timezone.utc)
    lifetime = timedelta(minutes=expires_minutes or settings.access_token_expire_minutes)
    claims = {
        "sub": str(user_id),
        "role": role,
        "iat": int(issued_at.timestamp()),
        "exp": issued_at + lifetime,
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Claims of a valid, unexpired token; None otherwise."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def new_refresh_token(*, issued_at: Optional[datetime] = None) -> Tuple[str, datetime]:
    """A fresh opaque token and the moment it stops being accepted."""
    issued_at = issued_at or datetime.now(timezone.utc)
    return secrets.token_urlsafe(REFRESH_TOKEN_BYTES), issued_at + timedelta(days=settings.refresh_token_expire_days)
