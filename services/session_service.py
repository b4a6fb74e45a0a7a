"""
Session lookups behind the proxy routes: metadata passthrough, face crop and
original image resolution.
"""
from typing import Any, Dict, List, Optional

import config
from core.errors import NotFoundError, SecurityRejection
from core.logger import logger
from core.validators import (
    extract_face_index,
    is_safe_storage_path,
    storage_filename,
    validate_original_image_path,
)
from services.upstream_client import BinaryPayload, UpstreamClient


def find_face_entry(faces: Optional[List[Any]], face_index: int) -> Optional[Dict[str, Any]]:
    """
    Find the face whose storage path encodes `face_index`.

    The trailing `_<n>.<ext>` of face_path is the only link between a face
    entry and its crop image. Entries with a path outside the storage
    directories, or containing `..` or `//`, never match.
    """
    if not isinstance(faces, list):
        return None
    for face in faces:
        if not isinstance(face, dict):
            continue
        face_path = face.get("face_path")
        if not isinstance(face_path, str):
            continue
        if not is_safe_storage_path(face_path):
            logger.warning("Skipping face entry with suspicious storage path")
            continue
        if extract_face_index(face_path) == face_index:
            return face
    return None


class SessionService:
    """Read-only access to upstream sessions."""

    def __init__(self, upstream: UpstreamClient):
        self.upstream = upstream

    async def get_session_info(self, session_id: str) -> Dict[str, Any]:
        return await self.upstream.get_session_info(session_id)

    async def get_session_status(self, session_id: str) -> Dict[str, Any]:
        return await self.upstream.get_session_status(session_id)

    async def find_face(self, session_id: str, face_index: int) -> Dict[str, Any]:
        info = await self.upstream.get_session_info(session_id)
        face = find_face_entry(info.get("faces"), face_index)
        if face is None:
            raise NotFoundError(f"Face index {face_index} not found")
        return face

    async def get_face_image(self, session_id: str, face_index: int) -> BinaryPayload:
        """Crop image of the face stored under the given 0-based index."""
        face = await self.find_face(session_id, face_index)
        filename = storage_filename(face["face_path"])
        return await self._fetch("faces", filename)

    async def get_original_image(self, session_id: str) -> BinaryPayload:
        """Source image, located through the session's own image_path."""
        info = await self.upstream.get_session_info(session_id)
        image_path = info.get("image_path")
        if not image_path:
            raise NotFoundError("Original image not found")
        if not isinstance(image_path, str):
            raise SecurityRejection("non-string image path")
        filename = validate_original_image_path(image_path)
        return await self._fetch("original", filename)

    async def _fetch(self, kind: str, filename: str) -> BinaryPayload:
        payload = await self.upstream.fetch_storage_file(kind, filename)
        if not payload.content_type:
            payload.content_type = config.DEFAULT_IMAGE_CONTENT_TYPE
        return payload
