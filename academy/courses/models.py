"""
Academy Course Models

Pydantic models for course content (modules, lessons, resources) and
progress heartbeats.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class ResourceType(str, Enum):
    """Downloadable resource kinds"""

    PDF = "pdf"
    DOC = "doc"
    LINK = "link"
    OTHER = "other"


class Resource(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1)
    type: ResourceType = ResourceType.OTHER


class PartialUpdate(BaseModel):
    """Omitted fields stay unchanged; columns that are NOT NULL refuse an explicit null"""

    @field_validator("title", "order_index", "duration_seconds", "is_published", check_fields=False)
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("must not be null")
        return value


# ============================================
# Module Models
# ============================================


class ModuleBase(BaseModel):
    """Fields shared by module create and read models"""

    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    thumbnail_url: Optional[str] = Field(None, max_length=500)
    bunny_video_guid: Optional[str] = Field(None, max_length=100)
    duration_seconds: int = Field(default=0, ge=0)
    resources: List[Resource] = Field(default_factory=list)
    order_index: int = Field(default=0, ge=0)
    is_published: bool = False


class ModuleCreate(ModuleBase):
    pass


class ModuleUpdate(PartialUpdate):
    """Partial module update; omitted fields are left unchanged"""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    thumbnail_url: Optional[str] = Field(None, max_length=500)
    bunny_video_guid: Optional[str] = Field(None, max_length=100)
    duration_seconds: Optional[int] = Field(None, ge=0)
    resources: Optional[List[Resource]] = None
    order_index: Optional[int] = Field(None, ge=0)
    is_published: Optional[bool] = None


# ============================================
# Lesson Models
# ============================================


class LessonBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    bunny_video_guid: Optional[str] = Field(None, max_length=100)
    duration_seconds: int = Field(default=0, ge=0)
    resources: List[Resource] = Field(default_factory=list)
    order_index: int = Field(default=0, ge=0)
    is_published: bool = False


class LessonCreate(LessonBase):
    pass


class LessonUpdate(PartialUpdate):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    bunny_video_guid: Optional[str] = Field(None, max_length=100)
    duration_seconds: Optional[int] = Field(None, ge=0)
    resources: Optional[List[Resource]] = None
    order_index: Optional[int] = Field(None, ge=0)
    is_published: Optional[bool] = None


class PublishToggle(BaseModel):
    is_published: bool


# ============================================
# Progress Models
# ============================================


class ProgressUpdate(BaseModel):
    """Player heartbeat"""

    seconds: float = Field(..., ge=0)
    duration: float = Field(..., ge=0)
