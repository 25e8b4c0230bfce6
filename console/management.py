from __future__ import annotations

import re
import time
from typing import Any, Dict, Optional

from .config import dlog
from .errors import NotFoundError, ServiceError, ValidationError
from .queries import VIDEOS_TABLE, QueryExecutor
from .supabase_client import SupabaseClient


USERNAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
RESERVED_USERNAME = "admin"


def validate_new_user(username: Optional[str], password: Optional[str]) -> str:
    """Return the trimmed username or raise ValidationError with an operator-facing message."""
    name = (username or "").strip()
    if not name or not password:
        raise ValidationError("Please enter both username and password")
    if not USERNAME_RE.match(name):
        raise ValidationError("Username can only contain letters, numbers, underscore, and hyphen")
    if name == RESERVED_USERNAME:
        raise ValidationError('Cannot create user with username "admin"')
    return name


def storage_path_for(target_user: str, filename: str, now_ms: Optional[int] = None) -> str:
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{target_user}/{stamp}-{filename}"


class DisplayManager:
    """Write side of the console: display users and their uploaded videos."""

    def __init__(self, client: SupabaseClient, queries: QueryExecutor, *, bucket: str = "ads-videos") -> None:
        self._client = client
        self._queries = queries
        self.bucket = bucket

    def create_display_user(self, username: Optional[str], password: Optional[str]) -> str:
        name = validate_new_user(username, password)
        try:
            self._client.rpc("create_display_user", {"un": name, "pwd": password})
        except ServiceError as e:
            message = str(e)
            if "duplicate" in message or "unique" in message:
                raise ValidationError("Username already exists. Please choose a different username.") from e
            raise
        dlog("display_user_created", name)
        return name

    def delete_display_user(self, username: str) -> int:
        """Delete the user row, then every stored video object of that user.

        Returns the number of storage objects removed.
        """
        deleted = self._client.rpc("delete_display_user", {"un": username})
        if not deleted:
            raise NotFoundError("Failed to delete user. User may be admin or not found.")

        paths = self._queries.video_paths_for(username)
        if paths:
            self._client.storage_remove(self.bucket, paths)
        dlog("display_user_deleted", {"username": username, "videos_removed": len(paths)})
        return len(paths)

    def upload_video(
        self,
        target_user: Optional[str],
        filename: Optional[str],
        content: Optional[bytes],
        *,
        uploaded_by: Optional[str] = None,
        content_type: str = "application/octet-stream",
    ) -> Dict[str, Any]:
        if not target_user:
            raise ValidationError("Please select a display user")
        if not filename or not content:
            raise ValidationError("Please select a video file")

        path = storage_path_for(target_user, filename)
        self._client.storage_upload(self.bucket, path, content, content_type=content_type)
        record = {
            "filename": filename,
            "storage_path": path,
            "uploaded_by": uploaded_by or RESERVED_USERNAME,
            "display_user": target_user,
        }
        self._client.insert(VIDEOS_TABLE, [record])
        dlog("video_uploaded", record)
        return record

    def delete_video(self, video_id: Any, storage_path: Optional[str]) -> None:
        if storage_path:
            try:
                self._client.storage_remove(self.bucket, [storage_path])
            except ServiceError as e:
                # Row is deleted even when the object removal fails.
                dlog("video_storage_delete_error", {"path": storage_path, "error": str(e)})
        self._client.delete(VIDEOS_TABLE, filters=[("eq", "id", video_id)])
        dlog("video_deleted", {"id": video_id, "path": storage_path})
