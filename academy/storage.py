"""
Lesson resource storage

Files live under STORAGE_ROOT/<bucket>/<lesson_id>/<millis>_<safe name>.
Stored resource URLs point at the object ({APP_URL}/storage/<bucket>/<path>)
and are never served directly; students receive signed, time-limited
download URLs instead.
"""

import logging
import re
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, List, Optional
from urllib.parse import unquote, urlparse

import jwt

from .config import settings

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "application/pdf",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}

SIGNED_URL_ALGORITHM = "HS256"
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


class StorageError(Exception):
    """Object could not be written, read or removed"""


class InvalidSignedUrl(StorageError):
    """Signed download token is expired, tampered or malformed"""


def safe_filename(name: str) -> str:
    return _UNSAFE_CHARS.sub("_", name)


def resource_type(content_type: str) -> str:
    """pdf, doc (Word and other document formats) or other"""
    if content_type == "application/pdf":
        return "pdf"
    if "word" in content_type or "document" in content_type:
        return "doc"
    return "other"


class LocalObjectStorage:
    """Bucket-scoped file storage on the local filesystem"""

    def __init__(self, root: str, bucket: str, signing_secret: str, base_url: str):
        self.bucket = bucket
        self.bucket_dir = (Path(root) / bucket).resolve()
        self.signing_secret = signing_secret
        self.base_url = base_url.rstrip("/")

    def resolve(self, path: str) -> Path:
        """Filesystem location of an object path, refusing anything outside the bucket"""
        target = (self.bucket_dir / path).resolve()
        if target == self.bucket_dir or self.bucket_dir not in target.parents:
            raise StorageError(f"Path escapes bucket: {path}")
        return target

    def object_url(self, path: str) -> str:
        return f"{self.base_url}/storage/{self.bucket}/{path}"

    def path_from_url(self, url: str) -> Optional[str]:
        """Object path after /<bucket>/ in a stored URL, or None"""
        parts = urlparse(url).path.split(f"/{self.bucket}/", 1)
        if len(parts) < 2 or not parts[1]:
            return None
        return unquote(parts[1])

    def save(self, lesson_id: str, filename: str, content: bytes) -> str:
        """Write a new object and return its path within the bucket"""
        path = f"{safe_filename(lesson_id)}/{int(time.time() * 1000)}_{safe_filename(filename)}"
        target = self.resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "xb") as fh:
                fh.write(content)
        except OSError as e:
            raise StorageError(f"Could not write {path}: {e}") from e
        logger.info(f"Stored resource {path} ({len(content)} bytes)")
        return path

    def delete(self, path: str) -> bool:
        """Remove an object; False when it did not exist"""
        target = self.resolve(path)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Could not delete {path}: {e}") from e
        logger.info(f"Deleted resource {path}")
        return True

    def create_signed_url(self, path: str, ttl_seconds: Optional[int] = None) -> str:
        expires = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds or settings.SIGNED_URL_TTL)
        token = jwt.encode(
            {"path": path, "bucket": self.bucket, "exp": expires},
            self.signing_secret,
            algorithm=SIGNED_URL_ALGORITHM,
        )
        return f"{self.base_url}/api/course/resources/download?token={token}"

    def verify_signed_token(self, token: str) -> str:
        """Object path carried by a valid download token

        Raises:
            InvalidSignedUrl: expired, tampered, or for another bucket
        """
        try:
            payload = jwt.decode(token, self.signing_secret, algorithms=[SIGNED_URL_ALGORITHM])
        except jwt.InvalidTokenError as e:
            raise InvalidSignedUrl(str(e)) from e
        if payload.get("bucket") != self.bucket or not payload.get("path"):
            raise InvalidSignedUrl("Token does not reference this bucket")
        return payload["path"]

    def sign_resources(self, resources: Optional[Iterable[dict]]) -> List[dict]:
        """Replace stored object URLs with signed download URLs; external links pass through"""
        signed = []
        for resource in resources or []:
            item = dict(resource)
            path = self.path_from_url(item.get("url", "")) if item.get("url") else None
            if path and item["url"].startswith(f"{self.base_url}/storage/"):
                item["url"] = self.create_signed_url(path)
            signed.append(item)
        return signed


_storage: Optional[LocalObjectStorage] = None


def get_storage() -> LocalObjectStorage:
    """FastAPI dependency returning the storage bucket configured in settings"""
    global _storage
    if _storage is None:
        _storage = LocalObjectStorage(
            root=settings.STORAGE_ROOT,
            bucket=settings.STORAGE_BUCKET,
            signing_secret=settings.STORAGE_SIGNING_SECRET,
            base_url=settings.APP_URL,
        )
    return _storage
