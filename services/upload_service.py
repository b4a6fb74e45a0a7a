"""
Upload dispatcher: turns a file or a remote image URL into an upstream session.
"""
import asyncio
import socket
from typing import Awaitable, Callable, List, Optional

import config
from core.errors import NotFoundError, SecurityRejection, UploadError, UpstreamError, ValidationError
from core.logger import logger
from core.validators import (
    filename_from_url,
    is_public_address,
    sanitize_filename,
    validate_url_length,
    validate_url_scheme,
)
from services.upstream_client import UpstreamClient


Resolver = Callable[[str], Awaitable[List[str]]]


async def resolve_host(hostname: str) -> List[str]:
    """Resolve a hostname to all of its IP addresses without blocking the loop."""
    infos = await asyncio.to_thread(socket.getaddrinfo, hostname, None, 0, socket.SOCK_STREAM)
    return sorted({info[4][0] for info in infos})


class UploadService:
    """Creates analysis sessions from uploaded files or image URLs."""

    def __init__(
        self,
        upstream: UpstreamClient,
        resolver: Resolver = resolve_host,
        max_upload_bytes: int = config.MAX_UPLOAD_SIZE_MB * 1024 * 1024,
        max_url_length: int = config.MAX_URL_LENGTH,
    ):
        self.upstream = upstream
        self.resolver = resolver
        self.max_upload_bytes = max_upload_bytes
        self.max_url_length = max_url_length

    async def submit_file(self, filename: Optional[str], content: bytes, content_type: Optional[str]) -> str:
        """
        Forward an uploaded file to the upstream create-session endpoint.

        Returns:
            Session identifier assigned by upstream

        Raises:
            ValidationError: empty or oversized file
            UploadError: upstream failed or returned no identifier
        """
        if not content:
            raise ValidationError("File not provided")
        if len(content) > self.max_upload_bytes:
            raise ValidationError("Image is too large")

        try:
            safe_name = sanitize_filename(filename or "")
        except ValueError:
            safe_name = config.DEFAULT_UPLOAD_FILENAME

        try:
            data = await self.upstream.create_session(safe_name, content, content_type)
        except UpstreamError as e:
            logger.error(f"Upload of {safe_name} failed: {e.message}")
            raise UploadError(details=e.details or e.message)

        session_id = data.get("uuid")
        if not session_id or not isinstance(session_id, str):
            logger.error("Upstream accepted upload but returned no session identifier")
            raise UploadError(details="UUID not received from server")

        logger.info(f"Created analysis session {session_id} ({safe_name}, {len(content)} bytes)")
        return session_id

    async def ensure_public_host(self, hostname: str) -> None:
        """Reject hosts that resolve to loopback, private or otherwise non-public addresses."""
        try:
            addresses = await self.resolver(hostname)
        except (OSError, UnicodeError):
            raise SecurityRejection("unresolvable host")
        if not addresses:
            raise SecurityRejection("unresolvable host")
        for address in addresses:
            if not is_public_address(address):
                logger.warning("Blocked URL submission resolving to a non-public address")
                raise SecurityRejection("non-public address")

    async def submit_url(self, url: Optional[str]) -> str:
        """
        Download an image URL and submit it as a file upload.

        Checks run in a fixed order: scheme, public address, length,
        fetch, content type. Nothing is fetched before the first three pass.
        """
        hostname = validate_url_scheme(url)
        url = url.strip()
        await self.ensure_public_host(hostname)
        validate_url_length(url, self.max_url_length)

        logger.info(f"Downloading image from submitted URL ({len(url)} chars)")
        try:
            remote = await self.upstream.fetch_remote_image(url)
        except (UpstreamError, NotFoundError) as e:
            raise UploadError("Error processing URL", details=e.details or e.message)

        content_type = (remote.content_type or "").split(";", 1)[0].strip().lower()
        if not content_type.startswith("image/"):
            raise ValidationError("URL does not point to an image")
        if not remote.content:
            raise ValidationError("URL returned an empty image")

        filename = filename_from_url(url, config.DEFAULT_UPLOAD_FILENAME)
        return await self.submit_file(filename, remote.content, content_type)
