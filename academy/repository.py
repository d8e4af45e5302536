"""Query functions for profiles, enrollments and invitations.

Every function takes an open dictionary cursor; callers own the connection
and decide when to commit.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the session time zone of the connection"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================
# Profiles
# ============================================


def get_profile(cursor, user_id: str) -> Optional[dict]:
    cursor.execute("SELECT * FROM profiles WHERE id = %s", (user_id,))
    return cursor.fetchone()


def get_profile_by_email(cursor, email: str) -> Optional[dict]:
    cursor.execute("SELECT id, email, full_name, role FROM profiles WHERE email = %s", (email.lower(),))
    return cursor.fetchone()


def update_profile(cursor, user_id: str, full_name: str, phone: Optional[str], country: Optional[str]) -> int:
    cursor.execute(
        "UPDATE profiles SET full_name = %s, phone = %s, country = %s WHERE id = %s",
        (full_name, phone, country, user_id),
    )
    return cursor.rowcount


def list_students(cursor) -> List[dict]:
    """Student profiles with their enrollment, newest first"""
    cursor.execute(
        """
        SELECT p.id, p.email, p.full_name, p.country, p.phone, p.avatar_url, p.created_at,
               e.id AS enrollment_id, e.payment_status, e.payment_method, e.payment_provider,
               e.amount_usd, e.currency, e.enrolled_at
        FROM profiles p
        LEFT JOIN enrollments e ON e.user_id = p.id
        WHERE p.role = 'student'
        ORDER BY p.created_at DESC
        """
    )
    return cursor.fetchall()


# ============================================
# Enrollments
# ============================================


def get_enrollment(cursor, user_id: str) -> Optional[dict]:
    cursor.execute("SELECT * FROM enrollments WHERE user_id = %s", (user_id,))
    return cursor.fetchone()


def has_completed_enrollment(cursor, user_id: str) -> bool:
    cursor.execute(
        "SELECT id FROM enrollments WHERE user_id = %s AND payment_status = 'completed'",
        (user_id,),
    )
    return cursor.fetchone() is not None


def upsert_enrollment(
    cursor,
    user_id: str,
    *,
    payment_provider: str,
    payment_method: str,
    amount_usd: float,
    currency: str,
    payment_id: Optional[str] = None,
    payment_status: str = "completed",
    enrolled_at: Optional[datetime] = None,
) -> None:
    """Insert or refresh the single enrollment row of a user (unique on user_id)"""
    cursor.execute(
        """
        INSERT INTO enrollments
            (id, user_id, payment_provider, payment_id, payment_status, payment_method,
             amount_usd, currency, enrolled_at)
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
        ON DUPLICATE KEY UPDATE
            payment_provider = VALUES(payment_provider),
            payment_id = VALUES(payment_id),
            payment_status = VALUES(payment_status),
            payment_method = VALUES(payment_method),
            amount_usd = VALUES(amount_usd),
            currency = VALUES(currency),
            enrolled_at = VALUES(enrolled_at)
        """,
        (
            str(uuid4()),
            user_id,
            payment_provider,
            payment_id,
            payment_status,
            payment_method,
            amount_usd,
            currency,
            enrolled_at or utcnow(),
        ),
    )


def list_enrolled_recipients(cursor) -> List[dict]:
    """Email and name of every student with a completed enrollment"""
    cursor.execute(
        """
        SELECT p.id, p.email, p.full_name
        FROM enrollments e
        JOIN profiles p ON p.id = e.user_id
        WHERE e.payment_status = 'completed'
        """
    )
    return cursor.fetchall()


# ============================================
# Invitations
# ============================================


def find_pending_invitation_by_email(cursor, email: str) -> Optional[dict]:
    cursor.execute(
        "SELECT id, accepted_at FROM invitations WHERE email = %s AND accepted_at IS NULL LIMIT 1",
        (email.lower(),),
    )
    return cursor.fetchone()


def find_valid_invitation(cursor, token: str, now: Optional[datetime] = None) -> Optional[dict]:
    """Invitation for the token that is neither accepted nor expired"""
    cursor.execute(
        """
        SELECT * FROM invitations
        WHERE token = %s AND accepted_at IS NULL AND expires_at > %s
        """,
        (token, now or utcnow()),
    )
    return cursor.fetchone()


def create_invitation(cursor, email: str, token: str, invited_by: Optional[str], expires_at: datetime) -> str:
    invitation_id = str(uuid4())
    cursor.execute(
        "INSERT INTO invitations (id, email, token, invited_by, expires_at) VALUES (%s, %s, %s, %s, %s)",
        (invitation_id, email.lower(), token, invited_by, expires_at),
    )
    return invitation_id


def mark_invitation_accepted(cursor, invitation_id: str, accepted_at: Optional[datetime] = None) -> bool:
    """False when another request accepted the invitation first"""
    cursor.execute(
        "UPDATE invitations SET accepted_at = %s WHERE id = %s AND accepted_at IS NULL",
        (accepted_at or utcnow(), invitation_id),
    )
    return cursor.rowcount > 0


def list_invitations(cursor, pending_only: bool = False) -> List[dict]:
    query = "SELECT * FROM invitations"
    if pending_only:
        query += " WHERE accepted_at IS NULL"
    query += " ORDER BY created_at DESC"
    cursor.execute(query)
    return cursor.fetchall()
