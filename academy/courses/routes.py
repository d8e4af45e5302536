"""
Academy Course API Routes

Student-facing course endpoints: module list, module and lesson pages,
video progress heartbeats, progress summary and resource downloads.
"""

import logging
import mimetypes
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse

from ..access import AccessContext, load_access_context
from ..db import DB_UNAVAILABLE_DETAIL, get_db_connection_with_retry
from ..jwt_auth import get_current_user
from ..models import CurrentUser
from ..repository import utcnow
from ..storage import LocalObjectStorage, StorageError, get_storage
from ..video import ProgressState, apply_heartbeat, build_embed_url, mark_complete, progress_event_name
from . import content
from .models import ProgressUpdate

logger = logging.getLogger(__name__)

course_router = APIRouter(prefix="/api/course", tags=["Course"])


# ============================================
# Helper Functions
# ============================================


def _progress_view(row) -> dict:
    state = ProgressState.from_row(row) or ProgressState()
    return {
        "progress_seconds": state.progress_seconds,
        "completed": state.completed,
        "completed_at": state.completed_at,
    }


def _module_card(module: dict, ctx: AccessContext, lesson_count: int, completed: int, module_progress) -> dict:
    return {
        "id": module["id"],
        "title": module["title"],
        "description": module.get("description"),
        "thumbnail_url": module.get("thumbnail_url"),
        "order_index": module["order_index"],
        "duration_seconds": module.get("duration_seconds") or 0,
        "has_video": bool(module.get("bunny_video_guid")),
        "is_locked": not ctx.can_access(module),
        "lesson_count": lesson_count,
        "completed_lessons": completed,
        "completed": bool(module_progress and module_progress.get("completed")),
    }


def _load_gated_module(cursor, ctx: AccessContext, module_id: str) -> dict:
    module = content.get_module(cursor, module_id)
    if not module:
        raise HTTPException(status_code=404, detail="Modulo no encontrado")
    ctx.ensure_module_access(module)
    return module


def _load_gated_lesson(cursor, ctx: AccessContext, lesson_id: str):
    lesson = content.get_lesson(cursor, lesson_id)
    if not lesson:
        raise HTTPException(status_code=404, detail="Leccion no encontrada")
    module = _load_gated_module(cursor, ctx, lesson["module_id"])
    return lesson, module


def _module_list(cursor, user: CurrentUser) -> dict:
    ctx = load_access_context(cursor, user)
    modules = content.list_modules(cursor)
    lessons = content.list_all_published_lessons(cursor)
    lesson_progress = content.progress_map(cursor, "lesson", user.id)
    module_progress = content.progress_map(cursor, "module", user.id)

    cards = []
    for module in modules:
        module_lessons = [lesson for lesson in lessons if lesson["module_id"] == module["id"]]
        completed = sum(1 for lesson in module_lessons if (lesson_progress.get(lesson["id"]) or {}).get("completed"))
        cards.append(_module_card(module, ctx, len(module_lessons), completed, module_progress.get(module["id"])))
    return {"modules": cards, "has_enrollment": ctx.has_paid_access}


# ============================================
# Module Endpoints
# ============================================


@course_router.get("/modules")
def get_modules(user: CurrentUser = Depends(get_current_user)):
    """Published modules in order, each with its lock flag and the caller's completion"""
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                return _module_list(cursor, user)
            finally:
                cursor.close()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching modules: {e}")
        raise HTTPException(status_code=500, detail="Error fetching modules")


@course_router.get("/catalog")
def get_catalog(user: CurrentUser = Depends(get_current_user)):
    """Module list for the paywall page: what is free and what needs a purchase"""
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                listing = _module_list(cursor, user)
            finally:
                cursor.close()

        listing["free_modules"] = sum(1 for card in listing["modules"] if not card["is_locked"])
        listing["locked_modules"] = sum(1 for card in listing["modules"] if card["is_locked"])
        return listing
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching catalog: {e}")
        raise HTTPException(status_code=500, detail="Error fetching catalog")


@course_router.get("/modules/{module_id}")
def get_module_detail(
    module_id: str,
    user: CurrentUser = Depends(get_current_user),
    storage: LocalObjectStorage = Depends(get_storage),
):
    """Module page: lessons with progress, or the module's own video when it has no lessons"""
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                ctx = load_access_context(cursor, user)
                module = _load_gated_module(cursor, ctx, module_id)
                lessons = content.list_lessons(cursor, module_id)
                lesson_progress = content.progress_map(cursor, "lesson", user.id)
                module_progress = content.get_progress(cursor, "module", user.id, module_id)
            finally:
                cursor.close()

        lesson_views = []
        for lesson in lessons:
            view = _progress_view(lesson_progress.get(lesson["id"]))
            lesson_views.append(
                {
                    "id": lesson["id"],
                    "title": lesson["title"],
                    "description": lesson.get("description"),
                    "duration_seconds": lesson.get("duration_seconds") or 0,
                    "order_index": lesson["order_index"],
                    **view,
                }
            )

        module_view = dict(module)
        module_view["resources"] = storage.sign_resources(module.get("resources"))
        return {
            "module": module_view,
            "embed_url": build_embed_url(module.get("bunny_video_guid")),
            "progress_event": progress_event_name(module_id),
            "progress": _progress_view(module_progress),
            "lessons": lesson_views,
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching module {module_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching module")


@course_router.get("/modules/{module_id}/lessons/{lesson_id}")
def get_lesson_detail(
    module_id: str,
    lesson_id: str,
    user: CurrentUser = Depends(get_current_user),
    storage: LocalObjectStorage = Depends(get_storage),
):
    """Lesson page with embed URL, signed resources and previous/next navigation"""
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                ctx = load_access_context(cursor, user)
                module = _load_gated_module(cursor, ctx, module_id)
                lessons = content.list_lessons(cursor, module_id)
                progress = content.get_progress(cursor, "lesson", user.id, lesson_id)
            finally:
                cursor.close()

        index = next((i for i, lesson in enumerate(lessons) if lesson["id"] == lesson_id), None)
        if index is None:
            raise HTTPException(status_code=404, detail="Leccion no encontrada")

        lesson = dict(lessons[index])
        lesson["resources"] = storage.sign_resources(lesson.get("resources"))
        previous_lesson = lessons[index - 1] if index > 0 else None
        next_lesson = lessons[index + 1] if index + 1 < len(lessons) else None
        return {
            "module": {"id": module["id"], "title": module["title"]},
            "lesson": lesson,
            "embed_url": build_embed_url(lesson.get("bunny_video_guid")),
            "progress_event": progress_event_name(lesson_id),
            "progress": _progress_view(progress),
            "navigation": {
                "previous": {"id": previous_lesson["id"], "title": previous_lesson["title"]} if previous_lesson else None,
                "next": {"id": next_lesson["id"], "title": next_lesson["title"]} if next_lesson else None,
                "position": index + 1,
                "total": len(lessons),
            },
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching lesson {lesson_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching lesson")


# ============================================
# Progress Endpoints
# ============================================


def _record_progress(user: CurrentUser, unit: str, unit_id: str, update: Optional[ProgressUpdate] = None) -> dict:
    """Apply a heartbeat (or a manual completion when update is None) to one unit"""
    with get_db_connection_with_retry() as conn:
        if not conn:
            raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

        cursor = conn.cursor(dictionary=True)
        try:
            ctx = load_access_context(cursor, user)
            if unit == "lesson":
                _load_gated_lesson(cursor, ctx, unit_id)
            else:
                _load_gated_module(cursor, ctx, unit_id)

            previous = ProgressState.from_row(content.get_progress(cursor, unit, user.id, unit_id))
            now = utcnow()
            if update is None:
                state = mark_complete(previous, now)
            else:
                state = apply_heartbeat(previous, update.seconds, update.duration, now)

            if state is None:
                return {
                    "saved": False,
                    "just_completed": False,
                    "progress_seconds": previous.progress_seconds,
                    "completed": previous.completed,
                    "completed_at": previous.completed_at,
                }

            content.save_progress(cursor, unit, user.id, unit_id, state, now)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()

    just_completed = state.completed and not (previous and previous.completed)
    if just_completed:
        logger.info(f"User {user.id} completed {unit} {unit_id}")
    return {
        "saved": True,
        "just_completed": just_completed,
        "progress_seconds": state.progress_seconds,
        "completed": state.completed,
        "completed_at": state.completed_at,
    }


def _progress_endpoint(user: CurrentUser, unit: str, unit_id: str, update: Optional[ProgressUpdate] = None) -> dict:
    try:
        return _record_progress(user, unit, unit_id, update)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error saving {unit} progress for {unit_id}: {e}")
        raise HTTPException(status_code=500, detail="Error al guardar el progreso")


@course_router.post("/lessons/{lesson_id}/progress")
def update_lesson_progress(lesson_id: str, update: ProgressUpdate, user: CurrentUser = Depends(get_current_user)):
    """Player heartbeat for a lesson video"""
    return _progress_endpoint(user, "lesson", lesson_id, update)


@course_router.post("/modules/{module_id}/progress")
def update_module_progress(module_id: str, update: ProgressUpdate, user: CurrentUser = Depends(get_current_user)):
    """Player heartbeat for a module-level video"""
    return _progress_endpoint(user, "module", module_id, update)


@course_router.post("/lessons/{lesson_id}/complete")
def complete_lesson(lesson_id: str, user: CurrentUser = Depends(get_current_user)):
    return _progress_endpoint(user, "lesson", lesson_id)


@course_router.post("/modules/{module_id}/complete")
def complete_module(module_id: str, user: CurrentUser = Depends(get_current_user)):
    return _progress_endpoint(user, "module", module_id)


@course_router.get("/progress")
def get_progress_summary(user: CurrentUser = Depends(get_current_user)):
    """Completed and in-progress lessons, per module and overall"""
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                modules = content.list_modules(cursor)
                lessons = content.list_all_published_lessons(cursor)
                lesson_progress = content.progress_map(cursor, "lesson", user.id)
            finally:
                cursor.close()

        return content.build_progress_summary(modules, lessons, lesson_progress)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error building progress summary: {e}")
        raise HTTPException(status_code=500, detail="Error fetching progress")


# ============================================
# Resource Downloads
# ============================================


@course_router.get("/resources/download")
def download_resource(token: str = Query(..., min_length=1), storage: LocalObjectStorage = Depends(get_storage)):
    """Serve a lesson resource from a signed, time-limited URL"""
    try:
        path = storage.verify_signed_token(token)
        target = storage.resolve(path)
    except StorageError:
        raise HTTPException(status_code=403, detail="Enlace de descarga invalido o expirado")

    if not target.is_file():
        raise HTTPException(status_code=404, detail="Archivo no encontrado")

    filename = target.name.split("_", 1)[-1]
    media_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    return FileResponse(str(target), media_type=media_type, filename=filename)
