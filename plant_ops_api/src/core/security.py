"""
Credentials for plant users.

Passwords are kept as bcrypt hashes. Logging in hands out a token pair signed
with JWT_SECRET_KEY:

* an access token naming the user and the plant roles (operator, manager,
  reviewer, admin) held at login, sent as a bearer token on every request;
* a refresh token naming only the user, traded at /auth/refresh for a new pair.

Roles are looked up again whenever a pair is issued, so a role change reaches
a user at their next refresh.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Sequence

from jose import JWTError, jwt
from passlib.context import CryptContext

from src.core.settings import get_app_settings

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"

_passwords = CryptContext(schemes=["bcrypt"], deprecated="auto")


# PUBLIC_INTERFACE
def hash_password(password: str) -> str:
    return _passwords.hash(password)


# PUBLIC_INTERFACE
def verify_password(password: str, password_hash: str) -> bool:
    return _passwords.verify(password, password_hash)


def _sign(claims: Dict[str, Any], token_type: str, lifetime_minutes: int) -> str:
    settings = get_app_settings()
    issued_at = datetime.now(tz=timezone.utc)
    body = {
        **claims,
        "type": token_type,
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=lifetime_minutes),
    }
    return jwt.encode(body, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


# PUBLIC_INTERFACE
def create_access_token(subject: str, roles: Optional[Sequence[str]] = None) -> str:
    """Bearer token for a user id, valid ACCESS_TOKEN_EXPIRE_MINUTES."""
    lifetime = get_app_settings().ACCESS_TOKEN_EXPIRE_MINUTES
    return _sign({"sub": subject, "roles": list(roles or [])}, ACCESS_TOKEN, lifetime)


# PUBLIC_INTERFACE
def create_refresh_token(subject: str) -> str:
    """Token that can only be traded for a new pair, valid REFRESH_TOKEN_EXPIRE_MINUTES."""
    lifetime = get_app_settings().REFRESH_TOKEN_EXPIRE_MINUTES
    return _sign({"sub": subject}, REFRESH_TOKEN, lifetime)


# PUBLIC_INTERFACE
def decode_token(token: str, token_type: Optional[str] = None) -> Dict[str, Any]:
    """
    Verify signature and expiry and return the claims.

    With token_type set, a token of the other type or one without a subject is
    rejected as well, so a refresh token cannot be used as a bearer token.

    Raises:
        JWTError: the token is not one this service would accept.
    """
    settings = get_app_settings()
    claims = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    if token_type is not None and (claims.get("type") != token_type or not claims.get("sub")):
        raise JWTError(f"Expected a {token_type} token")
    return claims
