"""
Academy Admin Routes

Back office: dashboard stats, course content management, resource uploads,
students and invitations, the staff message inbox and announcements.
Every endpoint requires an admin session.
"""

import asyncio
import logging
import secrets
from datetime import timedelta
from typing import List, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile

from . import identity, repository
from .access import require_admin
from .community_routes import fetch_thread, group_conversations, insert_message, list_all_messages, mark_thread_read
from .config import settings
from .courses import content
from .courses.models import LessonCreate, LessonUpdate, ModuleCreate, ModuleUpdate, PublishToggle
from .db import DB_UNAVAILABLE_DETAIL, get_db_connection_with_retry
from .email_client import EmailClient, EmailDeliveryError, get_email_client
from .email_templates import announcement_email, invitation_email
from .models import (
    AnnouncementBroadcast,
    AnnouncementCreate,
    AnnouncementUpdate,
    CurrentUser,
    InviteRequest,
    MessageCreate,
    ResourceDeleteRequest,
)
from .rate_limit import INVITE_RATE_LIMIT_MESSAGE, limiter, user_key
from .repository import utcnow
from .storage import ALLOWED_CONTENT_TYPES, LocalObjectStorage, StorageError, get_storage, resource_type

logger = logging.getLogger(__name__)

admin_router = APIRouter(prefix="/api/admin", tags=["Admin"])


# ============================================
# Helper Functions
# ============================================


async def send_announcement_emails(
    email_client: EmailClient, recipients: List[dict], title: str, body: str
) -> int:
    """Email every recipient concurrently; returns how many were accepted by the API"""
    html = announcement_email(title, body)

    async def _send(recipient: dict) -> bool:
        if not recipient.get("email"):
            return False
        try:
            await email_client.send_email(recipient["email"], f"\U0001F4E2 {title}", html)
            return True
        except EmailDeliveryError as e:
            logger.error(f"Announcement email to {recipient.get('id')} failed: {e}")
            return False

    results = await asyncio.gather(*(_send(recipient) for recipient in recipients))
    return sum(1 for sent in results if sent)


async def _broadcast(email_client: EmailClient, title: str, body: str) -> dict:
    with get_db_connection_with_retry() as conn:
        if not conn:
            raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

        cursor = conn.cursor(dictionary=True)
        try:
            recipients = repository.list_enrolled_recipients(cursor)
        finally:
            cursor.close()

    if not recipients:
        return {"success": True, "message": "No enrolled students to notify", "total_students": 0, "successful_emails": 0}

    sent = await send_announcement_emails(email_client, recipients, title, body)
    logger.info(f"Announcement '{title}' emailed to {sent}/{len(recipients)} students")
    return {
        "success": True,
        "message": f"Emails sent to {sent} students",
        "total_students": len(recipients),
        "successful_emails": sent,
    }


# ============================================
# Dashboard
# ============================================


@admin_router.get("/stats")
def get_stats(admin: CurrentUser = Depends(require_admin)):
    """Headline numbers for the admin dashboard"""
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                cursor.execute("SELECT COUNT(*) AS total FROM profiles WHERE role = 'student'")
                students = cursor.fetchone()["total"]

                cursor.execute("SELECT COUNT(*) AS total FROM enrollments WHERE payment_status = 'completed'")
                enrollments = cursor.fetchone()["total"]

                cursor.execute("SELECT COUNT(*) AS total FROM modules WHERE is_published = TRUE")
                modules = cursor.fetchone()["total"]

                cursor.execute("SELECT COUNT(*) AS total FROM invitations WHERE accepted_at IS NULL")
                pending_invitations = cursor.fetchone()["total"]

                cursor.execute(
                    """
                    SELECT e.id, e.user_id, e.payment_method, e.amount_usd, e.currency, e.enrolled_at,
                           p.full_name, p.email
                    FROM enrollments e
                    JOIN profiles p ON p.id = e.user_id
                    WHERE e.payment_status = 'completed'
                    ORDER BY e.enrolled_at DESC
                    LIMIT 5
                    """
                )
                recent = cursor.fetchall()
            finally:
                cursor.close()

        return {
            "total_students": students,
            "completed_enrollments": enrollments,
            "published_modules": modules,
            "pending_invitations": pending_invitations,
            "recent_enrollments": recent,
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching admin stats: {e}")
        raise HTTPException(status_code=500, detail="Error fetching stats")


# ============================================
# Content: Modules
# ============================================


@admin_router.get("/modules")
def list_all_modules(admin: CurrentUser = Depends(require_admin)):
    """Every module, published or not, with its lessons"""
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                modules = content.list_modules(cursor, published_only=False)
                for module in modules:
                    module["lessons"] = content.list_lessons(cursor, module["id"], published_only=False)
            finally:
                cursor.close()

        return {"modules": modules}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error listing modules: {e}")
        raise HTTPException(status_code=500, detail="Error fetching modules")


@admin_router.post("/modules", status_code=201)
def create_module(payload: ModuleCreate, admin: CurrentUser = Depends(require_admin)):
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                module_id = content.create_module(cursor, payload.model_dump(mode="json"))
                conn.commit()
            finally:
                cursor.close()

        logger.info(f"Module {module_id} created by {admin.id}")
        return {"success": True, "id": module_id}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating module: {e}")
        raise HTTPException(status_code=500, detail="Error al crear el modulo")


@admin_router.get("/modules/{module_id}")
def get_module(module_id: str, admin: CurrentUser = Depends(require_admin)):
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                module = content.get_module(cursor, module_id, published_only=False)
                lessons = content.list_lessons(cursor, module_id, published_only=False) if module else []
            finally:
                cursor.close()

        if not module:
            raise HTTPException(status_code=404, detail="Modulo no encontrado")
        module["lessons"] = lessons
        return module
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching module {module_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching module")


def _apply_change(get_fn, update_fn, row_id: str, changes: dict, not_found: str) -> dict:
    with get_db_connection_with_retry() as conn:
        if not conn:
            raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

        cursor = conn.cursor(dictionary=True)
        try:
            # rowcount is 0 for unchanged rows too, so check existence first
            if not get_fn(cursor, row_id, published_only=False):
                raise HTTPException(status_code=404, detail=not_found)
            update_fn(cursor, row_id, changes)
            conn.commit()
        finally:
            cursor.close()

    return {"success": True, "id": row_id}


@admin_router.put("/modules/{module_id}")
def update_module(module_id: str, payload: ModuleUpdate, admin: CurrentUser = Depends(require_admin)):
    try:
        return _apply_change(
            content.get_module, content.update_module, module_id,
            payload.model_dump(mode="json", exclude_unset=True), "Modulo no encontrado",
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating module {module_id}: {e}")
        raise HTTPException(status_code=500, detail="Error al actualizar el modulo")


@admin_router.patch("/modules/{module_id}/publish")
def publish_module(module_id: str, payload: PublishToggle, admin: CurrentUser = Depends(require_admin)):
    try:
        return _apply_change(
            content.get_module, content.update_module, module_id,
            {"is_published": payload.is_published}, "Modulo no encontrado",
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error publishing module {module_id}: {e}")
        raise HTTPException(status_code=500, detail="Error al actualizar el modulo")


@admin_router.delete("/modules/{module_id}")
def delete_module(module_id: str, admin: CurrentUser = Depends(require_admin)):
    """Deletes the module with its lessons and every progress row"""
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                deleted = content.delete_module(cursor, module_id)
                conn.commit()
            finally:
                cursor.close()

        if not deleted:
            raise HTTPException(status_code=404, detail="Modulo no encontrado")
        logger.info(f"Module {module_id} deleted by {admin.id}")
        return {"success": True}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting module {module_id}: {e}")
        raise HTTPException(status_code=500, detail="Error al eliminar el modulo")


# ============================================
# Content: Lessons
# ============================================


@admin_router.post("/modules/{module_id}/lessons", status_code=201)
def create_lesson(module_id: str, payload: LessonCreate, admin: CurrentUser = Depends(require_admin)):
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                if not content.get_module(cursor, module_id, published_only=False):
                    raise HTTPException(status_code=404, detail="Modulo no encontrado")
                lesson_id = content.create_lesson(cursor, module_id, payload.model_dump(mode="json"))
                conn.commit()
            finally:
                cursor.close()

        return {"success": True, "id": lesson_id}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating lesson in {module_id}: {e}")
        raise HTTPException(status_code=500, detail="Error al crear la leccion")


@admin_router.put("/lessons/{lesson_id}")
def update_lesson(lesson_id: str, payload: LessonUpdate, admin: CurrentUser = Depends(require_admin)):
    try:
        return _apply_change(
            content.get_lesson, content.update_lesson, lesson_id,
            payload.model_dump(mode="json", exclude_unset=True), "Leccion no encontrada",
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating lesson {lesson_id}: {e}")
        raise HTTPException(status_code=500, detail="Error al actualizar la leccion")


@admin_router.patch("/lessons/{lesson_id}/publish")
def publish_lesson(lesson_id: str, payload: PublishToggle, admin: CurrentUser = Depends(require_admin)):
    try:
        return _apply_change(
            content.get_lesson, content.update_lesson, lesson_id,
            {"is_published": payload.is_published}, "Leccion no encontrada",
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error publishing lesson {lesson_id}: {e}")
        raise HTTPException(status_code=500, detail="Error al actualizar la leccion")


@admin_router.delete("/lessons/{lesson_id}")
def delete_lesson(lesson_id: str, admin: CurrentUser = Depends(require_admin)):
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                deleted = content.delete_lesson(cursor, lesson_id)
                conn.commit()
            finally:
                cursor.close()

        if not deleted:
            raise HTTPException(status_code=404, detail="Leccion no encontrada")
        return {"success": True}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting lesson {lesson_id}: {e}")
        raise HTTPException(status_code=500, detail="Error al eliminar la leccion")


# ============================================
# Resource Uploads
# ============================================


@admin_router.post("/upload")
async def upload_resource(
    file: Optional[UploadFile] = File(None),
    lesson_id: Optional[str] = Form(None),
    admin: CurrentUser = Depends(require_admin),
    storage: LocalObjectStorage = Depends(get_storage),
):
    """Store a PDF, PowerPoint or Word file for a lesson"""
    if file is None or not lesson_id:
        raise HTTPException(status_code=400, detail="File and lesson_id are required")
    if file.content_type not in ALLOWED_CONTENT_TYPES:
        raise HTTPException(status_code=400, detail="Solo se permiten archivos PDF, PowerPoint y Word")

    data = await file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="El archivo no puede superar 20MB")

    try:
        path = storage.save(lesson_id, file.filename or "archivo", data)
    except StorageError as e:
        logger.error(f"Upload error: {e}")
        raise HTTPException(status_code=500, detail="Error al subir el archivo")

    return {
        "success": True,
        "resource": {
            "name": file.filename,
            "url": storage.object_url(path),
            "type": resource_type(file.content_type),
        },
    }


@admin_router.delete("/upload")
def delete_resource(
    payload: ResourceDeleteRequest,
    admin: CurrentUser = Depends(require_admin),
    storage: LocalObjectStorage = Depends(get_storage),
):
    if not payload.url:
        raise HTTPException(status_code=400, detail="URL is required")

    path = storage.path_from_url(payload.url)
    if not path:
        raise HTTPException(status_code=400, detail="Invalid URL")

    try:
        storage.delete(path)
    except StorageError as e:
        logger.error(f"Delete error: {e}")
        raise HTTPException(status_code=500, detail="Error al eliminar el archivo")
    return {"success": True}


# ============================================
# Students & Invitations
# ============================================


@admin_router.get("/students")
def list_students(admin: CurrentUser = Depends(require_admin)):
    """Student profiles with their enrollments, plus pending invitations"""
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                students = repository.list_students(cursor)
                pending = repository.list_invitations(cursor, pending_only=True)
            finally:
                cursor.close()

        return {"students": students, "pending_invitations": pending}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error listing students: {e}")
        raise HTTPException(status_code=500, detail="Error fetching students")


@admin_router.post("/invite")
@limiter.limit(settings.RATE_LIMIT_INVITE, key_func=user_key, error_message=INVITE_RATE_LIMIT_MESSAGE)
async def invite_student(
    request: Request,
    payload: InviteRequest,
    admin: CurrentUser = Depends(require_admin),
    email_client: EmailClient = Depends(get_email_client),
):
    """Create a 7-day invitation and email its link"""
    email = identity.normalize_email(payload.email)
    if not email:
        raise HTTPException(status_code=400, detail="Email es requerido")

    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                if repository.find_pending_invitation_by_email(cursor, email):
                    raise HTTPException(status_code=400, detail="Ya existe una invitación pendiente para este email")
                if repository.get_profile_by_email(cursor, email):
                    raise HTTPException(status_code=400, detail="Este email ya tiene una cuenta registrada")

                token = secrets.token_hex(32)
                expires_at = utcnow() + timedelta(days=settings.INVITATION_EXPIRY_DAYS)
                try:
                    repository.create_invitation(cursor, email, token, admin.id, expires_at)
                    conn.commit()
                except Exception as e:
                    conn.rollback()
                    logger.error(f"Error creating invitation: {e}")
                    raise HTTPException(status_code=500, detail="Error al crear la invitación")
            finally:
                cursor.close()

        invite_url = f"{settings.APP_URL.rstrip('/')}/invite/{token}"
        try:
            await email_client.send_email(
                email,
                f"Invitación a {settings.APP_NAME} - Tu acceso al curso",
                invitation_email(payload.full_name, invite_url),
            )
        except EmailDeliveryError as e:
            logger.error(f"Invitation email failed: {e}")
            return {
                "success": True,
                "message": "Invitación creada pero hubo un error al enviar el email",
                "invite_url": invite_url,
            }

        logger.info(f"Invitation sent by {admin.id}")
        return {"success": True, "message": "Invitación enviada correctamente"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in invite: {e}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@admin_router.get("/invite")
def list_invitations(admin: CurrentUser = Depends(require_admin)):
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                invitations = repository.list_invitations(cursor)
            finally:
                cursor.close()

        return {"invitations": invitations}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error listing invitations: {e}")
        raise HTTPException(status_code=500, detail="Error al obtener invitaciones")


# ============================================
# Messages
# ============================================


@admin_router.get("/messages")
def list_conversations(admin: CurrentUser = Depends(require_admin)):
    """One entry per student thread with the latest message and unread count"""
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                rows = list_all_messages(cursor)
            finally:
                cursor.close()

        return {"conversations": group_conversations(rows)}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error listing conversations: {e}")
        raise HTTPException(status_code=500, detail="Error fetching conversations")


@admin_router.get("/messages/{student_id}")
def get_conversation(student_id: str, admin: CurrentUser = Depends(require_admin)):
    """A student's thread; the student's messages are marked read"""
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                student = repository.get_profile(cursor, student_id)
                if not student:
                    raise HTTPException(status_code=404, detail="Estudiante no encontrado")
                messages = fetch_thread(cursor, student_id)
                if mark_thread_read(cursor, student_id, reader_is_staff=True):
                    conn.commit()
            finally:
                cursor.close()

        return {
            "student": {"id": student["id"], "full_name": student.get("full_name"), "email": student["email"]},
            "messages": messages,
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching conversation {student_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching conversation")


@admin_router.post("/messages/{student_id}", status_code=201)
def reply_to_student(student_id: str, payload: MessageCreate, admin: CurrentUser = Depends(require_admin)):
    text = payload.message.strip()
    if not text:
        raise HTTPException(status_code=400, detail="El mensaje no puede estar vacio")

    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                if not repository.get_profile(cursor, student_id):
                    raise HTTPException(status_code=404, detail="Estudiante no encontrado")
                message = insert_message(cursor, student_id, admin.id, text)
                conn.commit()
            finally:
                cursor.close()

        return {"success": True, "message": message}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error replying to {student_id}: {e}")
        raise HTTPException(status_code=500, detail="Error al enviar el mensaje")


# ============================================
# Announcements
# ============================================


@admin_router.get("/announcements")
def list_announcements(admin: CurrentUser = Depends(require_admin)):
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                cursor.execute("SELECT * FROM announcements ORDER BY created_at DESC")
                announcements = cursor.fetchall()
            finally:
                cursor.close()

        return {"announcements": announcements}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error listing announcements: {e}")
        raise HTTPException(status_code=500, detail="Error fetching announcements")


@admin_router.post("/announcements", status_code=201)
async def create_announcement(
    payload: AnnouncementCreate,
    admin: CurrentUser = Depends(require_admin),
    email_client: EmailClient = Depends(get_email_client),
):
    """Create an announcement, optionally publishing it and emailing enrolled students"""
    announcement_id = str(uuid4())
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                cursor.execute(
                    """
                    INSERT INTO announcements (id, title, content, created_by, published_at, is_active)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    """,
                    (
                        announcement_id,
                        payload.title.strip(),
                        payload.content,
                        admin.id,
                        utcnow() if payload.publish else None,
                        True,
                    ),
                )
                conn.commit()
            finally:
                cursor.close()

        response = {"success": True, "id": announcement_id}
        if payload.send_email:
            response["broadcast"] = await _broadcast(email_client, payload.title.strip(), payload.content)
        return response
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating announcement: {e}")
        raise HTTPException(status_code=500, detail="Error al crear el anuncio")


@admin_router.patch("/announcements/{announcement_id}")
def update_announcement(
    announcement_id: str, payload: AnnouncementUpdate, admin: CurrentUser = Depends(require_admin)
):
    """Toggle visibility or edit the text of an announcement"""
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No hay cambios")

    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                cursor.execute("SELECT id FROM announcements WHERE id = %s", (announcement_id,))
                if not cursor.fetchone():
                    raise HTTPException(status_code=404, detail="Anuncio no encontrado")
                columns = [col for col in ("title", "content", "is_active") if col in changes]
                cursor.execute(
                    f"UPDATE announcements SET {', '.join(f'{col} = %s' for col in columns)} WHERE id = %s",
                    (*(changes[col] for col in columns), announcement_id),
                )
                conn.commit()
            finally:
                cursor.close()

        return {"success": True}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating announcement {announcement_id}: {e}")
        raise HTTPException(status_code=500, detail="Error al actualizar el anuncio")


@admin_router.delete("/announcements/{announcement_id}")
def delete_announcement(announcement_id: str, admin: CurrentUser = Depends(require_admin)):
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                cursor.execute("DELETE FROM announcements WHERE id = %s", (announcement_id,))
                deleted = cursor.rowcount
                conn.commit()
            finally:
                cursor.close()

        if not deleted:
            raise HTTPException(status_code=404, detail="Anuncio no encontrado")
        return {"success": True}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting announcement {announcement_id}: {e}")
        raise HTTPException(status_code=500, detail="Error al eliminar el anuncio")


@admin_router.post("/announcements/broadcast")
async def broadcast_announcement(
    payload: AnnouncementBroadcast,
    admin: CurrentUser = Depends(require_admin),
    email_client: EmailClient = Depends(get_email_client),
):
    """Email an announcement to every student with a completed enrollment"""
    try:
        return await _broadcast(email_client, payload.title.strip(), payload.content)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error broadcasting announcement: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")
