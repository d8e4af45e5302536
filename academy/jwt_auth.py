"""
JWT Authentication for Academy
Session tokens (access + refresh) and the bearer dependency
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import settings
from .models import CurrentUser, Role

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
INVALID_REFRESH_TOKEN = "Invalid refresh token"

# Missing credentials are answered with our own 401
security = HTTPBearer(auto_error=False)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def create_access_token(user_id: str, email: str, role: str = Role.STUDENT.value) -> str:
    """
    Create JWT access token

    Args:
        user_id: Account id
        email: User email
        role: Profile role at sign-in time

    Returns:
        JWT token string
    """
    issued = _now()
    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "type": "access",
        "exp": issued + timedelta(hours=settings.JWT_EXPIRATION_HOURS),
        "iat": issued,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=JWT_ALGORITHM)


def create_refresh_token(user_id: str, email: str, role: str = Role.STUDENT.value) -> str:
    """Create refresh token for extended sessions"""
    issued = _now()
    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "type": "refresh",
        "exp": issued + timedelta(days=settings.REFRESH_TOKEN_DAYS),
        "iat": issued,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=JWT_ALGORITHM)


def verify_token(token: str, expected_type: str = "access") -> dict:
    """
    Verify and decode JWT token

    Raises:
        HTTPException: If token is invalid, expired or of the wrong type
    """
    try:
        payload: dict = jwt.decode(token, settings.JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    if payload.get("type") != expected_type:
        raise HTTPException(status_code=401, detail="Invalid token")
    return payload


def decode_refresh_token(refresh_token: str) -> dict:
    """Claims of a valid refresh token. The role claim is not trusted for new tokens."""
    try:
        return verify_token(refresh_token, expected_type="refresh")
    except HTTPException:
        raise HTTPException(status_code=401, detail=INVALID_REFRESH_TOKEN)


def get_optional_user(
    request: Request, credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> Optional[CurrentUser]:
    """Caller identity when a valid bearer token is present, otherwise None"""
    if credentials is None:
        return None
    payload = verify_token(credentials.credentials)
    try:
        role = Role(payload.get("role", Role.STUDENT.value))
    except ValueError:
        role = Role.STUDENT
    user = CurrentUser(id=payload["sub"], email=payload.get("email", ""), role=role)
    # Per-user rate limit key
    request.state.user_id = user.id
    return user


def get_current_user(
    request: Request, credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> CurrentUser:
    """Authenticated caller; 401 when no valid token is supplied"""
    user = get_optional_user(request, credentials)
    if user is None:
        raise HTTPException(status_code=401, detail="No autorizado")
    return user
