"""
Course content queries

Modules, lessons and per-user progress. All functions take an open
dictionary cursor.
"""

import json
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from uuid import uuid4

from ..video import ProgressState

logger = logging.getLogger(__name__)

# unit -> (table, key column)
PROGRESS_TABLES = {
    "lesson": ("lesson_progress", "lesson_id"),
    "module": ("module_progress", "module_id"),
}

MODULE_COLUMNS = (
    "title",
    "description",
    "thumbnail_url",
    "bunny_video_guid",
    "duration_seconds",
    "resources",
    "order_index",
    "is_published",
)
LESSON_COLUMNS = (
    "title",
    "description",
    "bunny_video_guid",
    "duration_seconds",
    "resources",
    "order_index",
    "is_published",
)


def decode_resources(value) -> List[dict]:
    """Resources column as a list; the driver returns JSON columns as text"""
    if not value:
        return []
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            logger.warning("Ignoring malformed resources column")
            return []
    return value if isinstance(value, list) else []


def _normalize(row: Optional[dict]) -> Optional[dict]:
    if row is None:
        return None
    item = dict(row)
    if "resources" in item:
        item["resources"] = decode_resources(item["resources"])
    if "is_published" in item:
        item["is_published"] = bool(item["is_published"])
    return item


def _encode_value(column: str, value):
    if column == "resources":
        return json.dumps(value or [])
    return value


# ============================================
# Modules
# ============================================


def list_modules(cursor, published_only: bool = True) -> List[dict]:
    query = "SELECT * FROM modules"
    if published_only:
        query += " WHERE is_published = TRUE"
    query += " ORDER BY order_index ASC"
    cursor.execute(query)
    return [_normalize(row) for row in cursor.fetchall()]


def get_module(cursor, module_id: str, published_only: bool = True) -> Optional[dict]:
    query = "SELECT * FROM modules WHERE id = %s"
    if published_only:
        query += " AND is_published = TRUE"
    cursor.execute(query, (module_id,))
    return _normalize(cursor.fetchone())


def create_module(cursor, data: dict) -> str:
    module_id = str(uuid4())
    cursor.execute(
        f"INSERT INTO modules (id, {', '.join(MODULE_COLUMNS)}) VALUES (%s{', %s' * len(MODULE_COLUMNS)})",
        (module_id, *(_encode_value(col, data.get(col)) for col in MODULE_COLUMNS)),
    )
    return module_id


def update_module(cursor, module_id: str, changes: dict) -> int:
    return _update(cursor, "modules", MODULE_COLUMNS, module_id, changes)


def delete_module(cursor, module_id: str) -> int:
    """Lessons and progress rows go with it"""
    cursor.execute("DELETE FROM modules WHERE id = %s", (module_id,))
    return cursor.rowcount


# ============================================
# Lessons
# ============================================


def list_lessons(cursor, module_id: str, published_only: bool = True) -> List[dict]:
    query = "SELECT * FROM lessons WHERE module_id = %s"
    if published_only:
        query += " AND is_published = TRUE"
    query += " ORDER BY order_index ASC"
    cursor.execute(query, (module_id,))
    return [_normalize(row) for row in cursor.fetchall()]


def list_all_published_lessons(cursor) -> List[dict]:
    cursor.execute(
        """
        SELECT l.id, l.module_id, l.title, l.order_index
        FROM lessons l
        JOIN modules m ON m.id = l.module_id
        WHERE l.is_published = TRUE AND m.is_published = TRUE
        ORDER BY m.order_index ASC, l.order_index ASC
        """
    )
    return cursor.fetchall()


def get_lesson(cursor, lesson_id: str, published_only: bool = True) -> Optional[dict]:
    query = "SELECT * FROM lessons WHERE id = %s"
    if published_only:
        query += " AND is_published = TRUE"
    cursor.execute(query, (lesson_id,))
    return _normalize(cursor.fetchone())


def create_lesson(cursor, module_id: str, data: dict) -> str:
    lesson_id = str(uuid4())
    cursor.execute(
        f"INSERT INTO lessons (id, module_id, {', '.join(LESSON_COLUMNS)}) "
        f"VALUES (%s, %s{', %s' * len(LESSON_COLUMNS)})",
        (lesson_id, module_id, *(_encode_value(col, data.get(col)) for col in LESSON_COLUMNS)),
    )
    return lesson_id


def update_lesson(cursor, lesson_id: str, changes: dict) -> int:
    return _update(cursor, "lessons", LESSON_COLUMNS, lesson_id, changes)


def delete_lesson(cursor, lesson_id: str) -> int:
    cursor.execute("DELETE FROM lessons WHERE id = %s", (lesson_id,))
    return cursor.rowcount


def _update(cursor, table: str, allowed: Iterable[str], row_id: str, changes: dict) -> int:
    columns = [col for col in allowed if col in changes]
    if not columns:
        return 0
    assignments = ", ".join(f"{col} = %s" for col in columns)
    cursor.execute(
        f"UPDATE {table} SET {assignments} WHERE id = %s",
        (*(_encode_value(col, changes[col]) for col in columns), row_id),
    )
    return cursor.rowcount


# ============================================
# Progress
# ============================================


def get_progress(cursor, unit: str, user_id: str, unit_id: str) -> Optional[dict]:
    table, key = PROGRESS_TABLES[unit]
    cursor.execute(f"SELECT * FROM {table} WHERE user_id = %s AND {key} = %s", (user_id, unit_id))
    return cursor.fetchone()


def save_progress(cursor, unit: str, user_id: str, unit_id: str, state: ProgressState, now: datetime) -> None:
    """Upsert the single progress row for (user, unit)"""
    table, key = PROGRESS_TABLES[unit]
    cursor.execute(
        f"""
        INSERT INTO {table} (id, user_id, {key}, progress_seconds, completed, completed_at, last_watched_at)
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        ON DUPLICATE KEY UPDATE
            progress_seconds = VALUES(progress_seconds),
            completed = VALUES(completed),
            completed_at = VALUES(completed_at),
            last_watched_at = VALUES(last_watched_at)
        """,
        (str(uuid4()), user_id, unit_id, state.progress_seconds, state.completed, state.completed_at, now),
    )


def progress_map(cursor, unit: str, user_id: str) -> Dict[str, dict]:
    """All progress rows of a user for one unit kind, keyed by unit id"""
    table, key = PROGRESS_TABLES[unit]
    cursor.execute(
        f"SELECT {key}, progress_seconds, completed, completed_at, last_watched_at FROM {table} WHERE user_id = %s",
        (user_id,),
    )
    return {row[key]: row for row in cursor.fetchall()}


def build_progress_summary(modules: List[dict], lessons: List[dict], lesson_progress: Dict[str, dict]) -> dict:
    """Course-wide and per-module completion over published lessons"""
    lessons_by_module: Dict[str, List[dict]] = {}
    for lesson in lessons:
        lessons_by_module.setdefault(lesson["module_id"], []).append(lesson)

    published_ids = {lesson["id"] for lesson in lessons}
    tracked = [row for lesson_id, row in lesson_progress.items() if lesson_id in published_ids]

    total = len(published_ids)
    completed = sum(1 for row in tracked if row.get("completed"))
    in_progress = sum(1 for row in tracked if not row.get("completed") and (row.get("progress_seconds") or 0) > 0)
    seconds_watched = sum(row.get("progress_seconds") or 0 for row in tracked)

    per_module = []
    for module in modules:
        module_lessons = lessons_by_module.get(module["id"], [])
        done = sum(1 for lesson in module_lessons if (lesson_progress.get(lesson["id"]) or {}).get("completed"))
        per_module.append(
            {
                "id": module["id"],
                "title": module["title"],
                "total_lessons": len(module_lessons),
                "completed_lessons": done,
                "percent": round(done / len(module_lessons) * 100) if module_lessons else 0,
            }
        )

    return {
        "total_lessons": total,
        "completed_lessons": completed,
        "in_progress_lessons": in_progress,
        "total_progress": round(completed / total * 100) if total else 0,
        "seconds_watched": seconds_watched,
        "hours_watched": seconds_watched // 3600,
        "minutes_watched": (seconds_watched % 3600) // 60,
        "modules": per_module,
    }
