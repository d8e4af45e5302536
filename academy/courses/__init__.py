# Academy Course Module
"""
Course content and progress for students: ordered modules and lessons,
video progress tracking and signed resource downloads.
"""

from .models import (
    LessonCreate,
    LessonUpdate,
    ModuleCreate,
    ModuleUpdate,
    ProgressUpdate,
    PublishToggle,
    Resource,
    ResourceType,
)
from .routes import course_router

__all__ = [
    "ModuleCreate",
    "ModuleUpdate",
    "LessonCreate",
    "LessonUpdate",
    "PublishToggle",
    "ProgressUpdate",
    "Resource",
    "ResourceType",
    "course_router",
]
