"""
Video helpers

Embed URLs for the video CDN and the rules that turn player heartbeats
({seconds, duration}) into stored progress.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .config import settings

COMPLETION_THRESHOLD = 0.9
MIN_SAVE_INTERVAL_SECONDS = 10


def build_embed_url(video_guid: Optional[str], library_id: Optional[str] = None) -> Optional[str]:
    """Player iframe URL, or None when the unit has no video"""
    library = library_id if library_id is not None else settings.BUNNY_LIBRARY_ID
    if not video_guid or not library:
        return None
    host = settings.BUNNY_EMBED_HOST.rstrip("/")
    return f"{host}/embed/{library}/{video_guid}?autoplay=false&preload=true&responsive=true"


def progress_event_name(unit_id: str) -> str:
    """Browser event the embedded player dispatches for this unit"""
    return f"video-progress-{unit_id}"


def is_completion(seconds: float, duration: float) -> bool:
    return duration > 0 and seconds / duration >= COMPLETION_THRESHOLD


@dataclass
class ProgressState:
    progress_seconds: int = 0
    completed: bool = False
    completed_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Optional[dict]) -> Optional["ProgressState"]:
        if not row:
            return None
        return cls(
            progress_seconds=int(row.get("progress_seconds") or 0),
            completed=bool(row.get("completed")),
            completed_at=row.get("completed_at"),
        )


def should_save(previous: Optional[ProgressState], seconds: float, duration: float) -> bool:
    """Save every 10 seconds of movement, and always on the first crossing of the completion mark"""
    if previous is None:
        return True
    if not previous.completed and is_completion(seconds, duration):
        return True
    return abs(seconds - previous.progress_seconds) >= MIN_SAVE_INTERVAL_SECONDS


def apply_heartbeat(
    previous: Optional[ProgressState], seconds: float, duration: float, now: datetime
) -> Optional[ProgressState]:
    """Next stored state for a heartbeat, or None when it is throttled

    Completion is sticky; completed_at is set only on the first transition.
    """
    if seconds < 0 or duration < 0:
        raise ValueError("seconds and duration must be non-negative")
    if not should_save(previous, seconds, duration):
        return None

    already_completed = previous is not None and previous.completed
    if already_completed:
        return ProgressState(
            progress_seconds=math.floor(seconds), completed=True, completed_at=previous.completed_at or now
        )
    if is_completion(seconds, duration):
        return ProgressState(progress_seconds=math.floor(seconds), completed=True, completed_at=now)
    return ProgressState(progress_seconds=math.floor(seconds), completed=False, completed_at=None)


def mark_complete(previous: Optional[ProgressState], now: datetime) -> ProgressState:
    """Manual completion keeps the watched position and the first completion time"""
    if previous is not None and previous.completed:
        return previous
    return ProgressState(
        progress_seconds=previous.progress_seconds if previous else 0, completed=True, completed_at=now
    )
