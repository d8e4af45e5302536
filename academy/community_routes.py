"""
Academy Community Routes

Forum threads, the student <-> staff message thread and the announcements
board. Message thread queries are shared with the admin inbox.
"""

import logging
from typing import List, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException

from .access import can_moderate_post, ensure_can_moderate_post, load_access_context
from .db import DB_UNAVAILABLE_DETAIL, get_db_connection_with_retry
from .jwt_auth import get_current_user
from .models import CurrentUser, ForumPostCreate, ForumReplyCreate, MessageCreate
from .repository import utcnow

logger = logging.getLogger(__name__)

forum_router = APIRouter(prefix="/api/forum", tags=["Forum"])
messages_router = APIRouter(prefix="/api/messages", tags=["Messages"])
announcements_router = APIRouter(prefix="/api/announcements", tags=["Announcements"])

MIN_REPLY_LENGTH = 5


# ============================================
# Forum queries
# ============================================


def list_posts(cursor) -> List[dict]:
    cursor.execute(
        """
        SELECT p.id, p.title, p.content, p.is_answered, p.created_at, p.user_id,
               pr.full_name AS author_name, pr.role AS author_role,
               COUNT(r.id) AS reply_count
        FROM forum_posts p
        JOIN profiles pr ON pr.id = p.user_id
        LEFT JOIN forum_replies r ON r.post_id = p.id
        GROUP BY p.id, p.title, p.content, p.is_answered, p.created_at, p.user_id, pr.full_name, pr.role
        ORDER BY p.created_at DESC
        """
    )
    return cursor.fetchall()


def get_post(cursor, post_id: str) -> Optional[dict]:
    cursor.execute(
        """
        SELECT p.*, pr.full_name AS author_name, pr.role AS author_role
        FROM forum_posts p
        JOIN profiles pr ON pr.id = p.user_id
        WHERE p.id = %s
        """,
        (post_id,),
    )
    return cursor.fetchone()


def list_replies(cursor, post_id: str) -> List[dict]:
    cursor.execute(
        """
        SELECT r.id, r.content, r.is_admin_reply, r.created_at, r.user_id,
               pr.full_name AS author_name, pr.role AS author_role
        FROM forum_replies r
        JOIN profiles pr ON pr.id = r.user_id
        WHERE r.post_id = %s
        ORDER BY r.created_at ASC
        """,
        (post_id,),
    )
    return cursor.fetchall()


def insert_post(cursor, user_id: str, title: str, content: str) -> str:
    post_id = str(uuid4())
    cursor.execute(
        "INSERT INTO forum_posts (id, user_id, title, content) VALUES (%s, %s, %s, %s)",
        (post_id, user_id, title, content),
    )
    return post_id


def insert_reply(cursor, post_id: str, user_id: str, content: str, is_admin_reply: bool) -> str:
    reply_id = str(uuid4())
    cursor.execute(
        "INSERT INTO forum_replies (id, post_id, user_id, content, is_admin_reply) VALUES (%s, %s, %s, %s, %s)",
        (reply_id, post_id, user_id, content, is_admin_reply),
    )
    return reply_id


def set_post_answered(cursor, post_id: str, answered: bool = True) -> None:
    cursor.execute("UPDATE forum_posts SET is_answered = %s WHERE id = %s", (answered, post_id))


# ============================================
# Message thread queries
# ============================================


def fetch_thread(cursor, student_id: str) -> List[dict]:
    """Every message of one student's thread, oldest first"""
    cursor.execute(
        """
        SELECT m.id, m.student_id, m.sender_id, m.message, m.created_at, m.read_at,
               pr.full_name AS sender_name, pr.role AS sender_role
        FROM direct_messages m
        JOIN profiles pr ON pr.id = m.sender_id
        WHERE m.student_id = %s
        ORDER BY m.created_at ASC
        """,
        (student_id,),
    )
    return cursor.fetchall()


def mark_thread_read(cursor, student_id: str, reader_is_staff: bool) -> int:
    """Mark the other side's unread messages as read"""
    sender_clause = "sender_id = student_id" if reader_is_staff else "sender_id <> student_id"
    cursor.execute(
        f"UPDATE direct_messages SET read_at = %s WHERE student_id = %s AND read_at IS NULL AND {sender_clause}",
        (utcnow(), student_id),
    )
    return cursor.rowcount


def insert_message(cursor, student_id: str, sender_id: str, text: str) -> dict:
    message_id = str(uuid4())
    created_at = utcnow()
    cursor.execute(
        "INSERT INTO direct_messages (id, student_id, sender_id, message, created_at) VALUES (%s, %s, %s, %s, %s)",
        (message_id, student_id, sender_id, text, created_at),
    )
    return {
        "id": message_id,
        "student_id": student_id,
        "sender_id": sender_id,
        "message": text,
        "created_at": created_at,
        "read_at": None,
    }


def group_conversations(rows: List[dict]) -> List[dict]:
    """Collapse messages (newest first) into one entry per student

    Each entry carries the latest message and how many messages the student
    sent that staff has not read yet.
    """
    conversations = {}
    for row in rows:
        student_id = row["student_id"]
        entry = conversations.get(student_id)
        if entry is None:
            entry = {
                "student_id": student_id,
                "student_name": row.get("student_name"),
                "student_email": row.get("student_email"),
                "last_message": row["message"],
                "last_message_at": row["created_at"],
                "last_sender_id": row["sender_id"],
                "unread_count": 0,
            }
            conversations[student_id] = entry
        if row["sender_id"] == student_id and row.get("read_at") is None:
            entry["unread_count"] += 1
    return list(conversations.values())


def list_all_messages(cursor) -> List[dict]:
    cursor.execute(
        """
        SELECT m.id, m.student_id, m.sender_id, m.message, m.created_at, m.read_at,
               pr.full_name AS student_name, pr.email AS student_email
        FROM direct_messages m
        JOIN profiles pr ON pr.id = m.student_id
        ORDER BY m.created_at DESC
        """
    )
    return cursor.fetchall()


# ============================================
# Announcement queries
# ============================================


def list_published_announcements(cursor) -> List[dict]:
    cursor.execute(
        """
        SELECT id, title, content, published_at, created_at
        FROM announcements
        WHERE is_active = TRUE AND published_at IS NOT NULL AND published_at <= %s
        ORDER BY published_at DESC
        """,
        (utcnow(),),
    )
    return cursor.fetchall()


# ============================================
# Forum Endpoints
# ============================================


@forum_router.get("/posts")
def get_posts(user: CurrentUser = Depends(get_current_user)):
    """All threads, newest first, with author and reply count"""
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                posts = list_posts(cursor)
            finally:
                cursor.close()

        return {"posts": posts}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching forum posts: {e}")
        raise HTTPException(status_code=500, detail="Error fetching posts")


@forum_router.post("/posts", status_code=201)
def create_post(payload: ForumPostCreate, user: CurrentUser = Depends(get_current_user)):
    title = payload.title.strip()
    text = payload.content.strip()
    if len(title) < 5:
        raise HTTPException(status_code=400, detail="El titulo debe tener al menos 5 caracteres")
    if len(text) < 20:
        raise HTTPException(status_code=400, detail="El contenido debe tener al menos 20 caracteres")

    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                post_id = insert_post(cursor, user.id, title, text)
                conn.commit()
            finally:
                cursor.close()

        logger.info(f"Forum post {post_id} created by {user.id}")
        return {"success": True, "id": post_id}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating forum post: {e}")
        raise HTTPException(status_code=500, detail="Error al publicar la pregunta")


@forum_router.get("/posts/{post_id}")
def get_post_detail(post_id: str, user: CurrentUser = Depends(get_current_user)):
    """A thread with its replies, oldest reply first"""
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                post = get_post(cursor, post_id)
                replies = list_replies(cursor, post_id) if post else []
            finally:
                cursor.close()

        if not post:
            raise HTTPException(status_code=404, detail="Pregunta no encontrada")
        return {"post": post, "replies": replies, "can_mark_answered": can_moderate_post(user, post)}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching forum post {post_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching post")


@forum_router.post("/posts/{post_id}/replies", status_code=201)
def create_reply(post_id: str, payload: ForumReplyCreate, user: CurrentUser = Depends(get_current_user)):
    text = payload.content.strip()
    if len(text) < MIN_REPLY_LENGTH:
        raise HTTPException(status_code=400, detail="La respuesta debe tener al menos 5 caracteres")

    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                if not get_post(cursor, post_id):
                    raise HTTPException(status_code=404, detail="Pregunta no encontrada")
                reply_id = insert_reply(cursor, post_id, user.id, text, is_admin_reply=user.is_admin)
                conn.commit()
            finally:
                cursor.close()

        return {"success": True, "id": reply_id, "is_admin_reply": user.is_admin}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error replying to forum post {post_id}: {e}")
        raise HTTPException(status_code=500, detail="Error al enviar la respuesta")


@forum_router.post("/posts/{post_id}/answered")
def mark_answered(post_id: str, user: CurrentUser = Depends(get_current_user)):
    """Thread author or staff flags the question as answered"""
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                post = get_post(cursor, post_id)
                if not post:
                    raise HTTPException(status_code=404, detail="Pregunta no encontrada")
                ensure_can_moderate_post(user, post)
                set_post_answered(cursor, post_id)
                conn.commit()
            finally:
                cursor.close()

        return {"success": True}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error marking forum post {post_id} answered: {e}")
        raise HTTPException(status_code=500, detail="Error al marcar como respondida")


# ============================================
# Message Endpoints
# ============================================


@messages_router.get("")
def get_my_messages(user: CurrentUser = Depends(get_current_user)):
    """The caller's thread with staff; staff replies are marked read"""
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                messages = fetch_thread(cursor, user.id)
                if mark_thread_read(cursor, user.id, reader_is_staff=False):
                    conn.commit()
            finally:
                cursor.close()

        return {"messages": messages}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching messages for {user.id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching messages")


@messages_router.post("", status_code=201)
def send_my_message(payload: MessageCreate, user: CurrentUser = Depends(get_current_user)):
    text = payload.message.strip()
    if not text:
        raise HTTPException(status_code=400, detail="El mensaje no puede estar vacio")

    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                message = insert_message(cursor, user.id, user.id, text)
                conn.commit()
            finally:
                cursor.close()

        return {"success": True, "message": message}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error sending message for {user.id}: {e}")
        raise HTTPException(status_code=500, detail="Error al enviar el mensaje")


# ============================================
# Announcement Endpoints
# ============================================


@announcements_router.get("")
def get_announcements(user: CurrentUser = Depends(get_current_user)):
    """Active, published announcements, newest first. Paid students and staff only."""
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                load_access_context(cursor, user).ensure_paid_access()
                announcements = list_published_announcements(cursor)
            finally:
                cursor.close()

        return {"announcements": announcements}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching announcements: {e}")
        raise HTTPException(status_code=500, detail="Error fetching announcements")
