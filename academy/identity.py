"""
Account service

Users, password hashing and single-use verification links (signup
confirmation and password recovery). Route handlers talk to accounts only
through these functions.
"""

import hashlib
import logging
import secrets
from datetime import timedelta
from typing import Optional
from urllib.parse import urlencode
from uuid import uuid4

from mysql.connector import errorcode
from mysql.connector.errors import IntegrityError
from passlib.context import CryptContext

from .config import settings
from .models import LinkType, Role
from .repository import utcnow

logger = logging.getLogger(__name__)

# Password hashing context: prefer pbkdf2_sha256; verify legacy bcrypt if present
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")

DEFAULT_REDIRECT = "/curso"


class IdentityError(Exception):
    """Base error for account operations"""


class EmailAlreadyRegistered(IdentityError):
    """An account already exists for the email"""


def normalize_email(value) -> Optional[str]:
    """Trim and lowercase an email; None for non-strings or blanks"""
    if not isinstance(value, str):
        return None
    email = value.strip().lower()
    return email or None


def sanitize_redirect(value, default: str = DEFAULT_REDIRECT) -> str:
    """Only relative in-app paths are allowed as redirect targets"""
    if not isinstance(value, str):
        return default
    target = value.strip()
    if not target.startswith("/") or target.startswith("//"):
        return default
    return target


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        return False


def hash_link_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def get_user_by_email(cursor, email: str) -> Optional[dict]:
    cursor.execute(
        """
        SELECT u.id, u.email, u.password_hash, u.email_confirmed_at, p.full_name, p.role
        FROM users u
        LEFT JOIN profiles p ON p.id = u.id
        WHERE u.email = %s
        """,
        (email.lower(),),
    )
    return cursor.fetchone()


def create_user(
    cursor,
    email: str,
    password: Optional[str] = None,
    full_name: Optional[str] = None,
    country: Optional[str] = None,
    email_confirmed: bool = False,
    role: Role = Role.STUDENT,
) -> str:
    """Create an account and its profile row. Returns the new user id.

    Accounts created without a password can only sign in after a recovery
    link has been used to set one.
    """
    email = email.lower()
    if get_user_by_email(cursor, email):
        raise EmailAlreadyRegistered(email)

    user_id = str(uuid4())
    try:
        cursor.execute(
            "INSERT INTO users (id, email, password_hash, email_confirmed_at) VALUES (%s, %s, %s, %s)",
            (user_id, email, hash_password(password) if password else None, utcnow() if email_confirmed else None),
        )
        cursor.execute(
            "INSERT INTO profiles (id, email, full_name, country, role) VALUES (%s, %s, %s, %s, %s)",
            (user_id, email, full_name, country, role.value),
        )
    except IntegrityError as e:
        if e.errno == errorcode.ER_DUP_ENTRY:
            raise EmailAlreadyRegistered(email) from e
        raise

    logger.info(f"Account created: {user_id} (confirmed={email_confirmed})")
    return user_id


def delete_user(cursor, user_id: str) -> None:
    """Remove an account; profile, tokens and dependent rows cascade"""
    cursor.execute("DELETE FROM users WHERE id = %s", (user_id,))
    logger.info(f"Account deleted: {user_id}")


def confirm_email(cursor, user_id: str) -> None:
    cursor.execute(
        "UPDATE users SET email_confirmed_at = COALESCE(email_confirmed_at, %s) WHERE id = %s",
        (utcnow(), user_id),
    )


def set_password(cursor, user_id: str, password: str) -> None:
    cursor.execute("UPDATE users SET password_hash = %s WHERE id = %s", (hash_password(password), user_id))


def record_login(cursor, user_id: str) -> None:
    cursor.execute("UPDATE users SET last_login = %s WHERE id = %s", (utcnow(), user_id))


def authenticate(cursor, email: str, password: str) -> Optional[dict]:
    """User row when the credentials match, otherwise None"""
    user = get_user_by_email(cursor, email)
    if not user or not verify_password(password, user.get("password_hash")):
        return None
    return user


def generate_link_token(cursor, user_id: str, link_type: LinkType) -> str:
    """Create a single-use verification token; only its hash is stored"""
    token = secrets.token_urlsafe(32)
    expires_at = utcnow() + timedelta(hours=settings.AUTH_LINK_EXPIRY_HOURS)
    cursor.execute(
        """
        INSERT INTO auth_tokens (id, user_id, token_hash, token_type, expires_at)
        VALUES (%s, %s, %s, %s, %s)
        """,
        (str(uuid4()), user_id, hash_link_token(token), link_type.value, expires_at),
    )
    return token


def verify_link_token(cursor, token: str, link_type: LinkType, consume: bool = True) -> Optional[dict]:
    """Resolve an unexpired, unused link token to its user id. Consumed tokens cannot be reused."""
    cursor.execute(
        """
        SELECT id, user_id FROM auth_tokens
        WHERE token_hash = %s AND token_type = %s AND consumed_at IS NULL AND expires_at > %s
        """,
        (hash_link_token(token), link_type.value, utcnow()),
    )
    row = cursor.fetchone()
    if not row:
        return None

    if consume:
        cursor.execute(
            "UPDATE auth_tokens SET consumed_at = %s WHERE id = %s AND consumed_at IS NULL",
            (utcnow(), row["id"]),
        )
        if cursor.rowcount == 0:
            return None
    return row


def build_action_link(token: str, link_type: LinkType, next_path: str, app_url: Optional[str] = None) -> str:
    """Link that lands on the confirm endpoint, then continues to next_path"""
    base = (app_url or settings.APP_URL).rstrip("/")
    query = urlencode({"token_hash": token, "type": link_type.value, "next": sanitize_redirect(next_path)})
    return f"{base}/auth/confirm?{query}"
