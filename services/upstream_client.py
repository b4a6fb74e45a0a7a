"""
Client for the upstream deepfake-detection API.

Translates every failure into the proxy error taxonomy; upstream bodies and
headers are never passed through. Each call is recorded in the ApiLogBuffer.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import aiohttp

import config
from core.errors import NotFoundError, SecurityRejection, UpstreamError, ValidationError, truncate_detail
from core.logger import logger
from services.api_log import ApiLogBuffer


STORAGE_KINDS = ("original", "faces")
_CHUNK_SIZE = 64 * 1024


@dataclass
class BinaryPayload:
    """Bytes fetched from upstream storage or a remote URL."""
    content: bytes
    content_type: Optional[str]


def _summarize(data: Any) -> Dict[str, Any]:
    """Small, log-safe view of a JSON response."""
    if not isinstance(data, dict):
        return {"type": type(data).__name__}
    summary = {k: data[k] for k in ("uuid", "status", "total_faces") if k in data}
    if isinstance(data.get("faces"), list):
        summary["faces"] = len(data["faces"])
    return summary


def _error_message(data: Any) -> Optional[str]:
    """Pick a short human message out of an upstream error body, if any."""
    if isinstance(data, dict):
        for key in ("detail", "error", "message"):
            if isinstance(data.get(key), str):
                return truncate_detail(data[key])
    return None


class UpstreamClient:
    """Async wrapper around the fixed upstream contract."""

    def __init__(
        self,
        base_url: str = config.PROOFLY_API_BASE_URL,
        log_buffer: Optional[ApiLogBuffer] = None,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = config.UPSTREAM_TIMEOUT,
        upload_timeout: float = config.UPLOAD_TIMEOUT,
        url_fetch_timeout: float = config.URL_FETCH_TIMEOUT,
        user_agent: str = config.URL_FETCH_USER_AGENT,
        max_remote_bytes: int = config.MAX_REMOTE_IMAGE_MB * 1024 * 1024,
    ):
        self.base_url = base_url.rstrip("/")
        self.log_buffer = log_buffer or ApiLogBuffer(config.API_LOG_CAPACITY)
        self._session = session
        self._owns_session = session is None
        self.timeout = timeout
        self.upload_timeout = upload_timeout
        self.url_fetch_timeout = url_fetch_timeout
        self.user_agent = user_agent
        self.max_remote_bytes = max_remote_bytes

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    # ------------------------------------------------------------------
    # JSON endpoints
    # ------------------------------------------------------------------

    async def _request_json(self, method: str, endpoint: str, timeout: float, **kwargs) -> Any:
        url = f"{self.base_url}{endpoint}"
        try:
            async with self.session.request(
                method,
                url,
                timeout=aiohttp.ClientTimeout(total=timeout),
                allow_redirects=False,
                **kwargs,
            ) as resp:
                try:
                    data = await resp.json(content_type=None)
                except ValueError:
                    data = None

                if resp.status == 404:
                    self.log_buffer.record("error", endpoint, {"status": 404})
                    raise NotFoundError("Session not found", details=_error_message(data))
                if resp.status >= 300:
                    self.log_buffer.record("error", endpoint, {"status": resp.status})
                    raise UpstreamError(
                        "Upstream service error",
                        details=_error_message(data) or f"Upstream returned HTTP {resp.status}",
                    )
                if data is None:
                    self.log_buffer.record("error", endpoint, {"status": resp.status, "message": "invalid JSON"})
                    raise UpstreamError("Malformed response from upstream service")
        except asyncio.TimeoutError:
            self.log_buffer.record("error", endpoint, {"message": "timeout"})
            raise UpstreamError("Upstream service timed out")
        except aiohttp.ClientError as e:
            self.log_buffer.record("error", endpoint, {"message": type(e).__name__})
            raise UpstreamError("Upstream service unreachable", details=type(e).__name__)

        self.log_buffer.record("success", endpoint, _summarize(data))
        return data

    async def create_session(self, filename: str, content: bytes, content_type: Optional[str]) -> Dict[str, Any]:
        """POST {base}/upload as multipart with a single `file` field."""
        form = aiohttp.FormData()
        form.add_field(
            "file",
            content,
            filename=filename,
            content_type=content_type or "application/octet-stream",
        )
        self.log_buffer.record("info", "/upload", {"fileName": filename, "fileSize": len(content)})
        data = await self._request_json("POST", "/upload", self.upload_timeout, data=form)
        if not isinstance(data, dict):
            raise UpstreamError("Malformed response from upstream service")
        return data

    async def get_session_info(self, session_id: str) -> Dict[str, Any]:
        data = await self._request_json("GET", f"/{session_id}", self.timeout)
        if not isinstance(data, dict):
            raise UpstreamError("Malformed session payload")
        return data

    async def get_session_status(self, session_id: str) -> Dict[str, Any]:
        data = await self._request_json("GET", f"/{session_id}/status", self.timeout)
        if not isinstance(data, dict) or "status" not in data:
            raise UpstreamError("Malformed status payload")
        return data

    async def get_system_status(self) -> Any:
        return await self._request_json("GET", "/system/status", self.timeout)

    # ------------------------------------------------------------------
    # Binary fetches (redirects never followed)
    # ------------------------------------------------------------------

    async def _read_limited(self, resp: aiohttp.ClientResponse, limit: int) -> bytes:
        declared = resp.content_length
        if declared is not None and declared > limit:
            raise ValidationError("Image is too large")
        chunks = []
        received = 0
        async for chunk in resp.content.iter_chunked(_CHUNK_SIZE):
            received += len(chunk)
            if received > limit:
                raise ValidationError("Image is too large")
            chunks.append(chunk)
        return b"".join(chunks)

    async def _fetch_binary(
        self,
        url: str,
        endpoint: str,
        timeout: float,
        limit: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
        not_found_message: str = "Image not found",
    ) -> BinaryPayload:
        try:
            async with self.session.get(
                url,
                timeout=aiohttp.ClientTimeout(total=timeout),
                allow_redirects=False,
                headers=headers,
            ) as resp:
                if 300 <= resp.status < 400:
                    self.log_buffer.record("error", endpoint, {"status": resp.status, "message": "redirect refused"})
                    logger.warning(f"Refused redirect (HTTP {resp.status}) while fetching {endpoint}")
                    raise SecurityRejection("redirect on no-redirect fetch")
                if resp.status == 404:
                    self.log_buffer.record("error", endpoint, {"status": 404})
                    raise NotFoundError(not_found_message)
                if resp.status != 200:
                    self.log_buffer.record("error", endpoint, {"status": resp.status})
                    raise UpstreamError("Failed to fetch image", details=f"HTTP {resp.status}")
                if limit is None:
                    content = await resp.read()
                else:
                    content = await self._read_limited(resp, limit)
                content_type = resp.headers.get("Content-Type")
        except asyncio.TimeoutError:
            self.log_buffer.record("error", endpoint, {"message": "timeout"})
            raise UpstreamError("Image fetch timed out")
        except aiohttp.ClientError as e:
            self.log_buffer.record("error", endpoint, {"message": type(e).__name__})
            raise UpstreamError("Failed to fetch image", details=type(e).__name__)

        self.log_buffer.record("success", endpoint, {"size": len(content), "contentType": content_type})
        return BinaryPayload(content=content, content_type=content_type)

    async def fetch_storage_file(self, kind: str, filename: str) -> BinaryPayload:
        """GET {base}/storage/{kind}/{filename}."""
        if kind not in STORAGE_KINDS:
            raise ValueError(f"Unknown storage kind: {kind}")
        endpoint = f"/storage/{kind}/{quote(filename, safe='')}"
        return await self._fetch_binary(
            f"{self.base_url}{endpoint}",
            endpoint,
            self.timeout,
            headers={"Accept": "application/octet-stream"},
        )

    async def fetch_remote_image(self, url: str) -> BinaryPayload:
        """Download a user-supplied image URL with a browser-like User-Agent."""
        return await self._fetch_binary(
            url,
            "remote-image",
            self.url_fetch_timeout,
            limit=self.max_remote_bytes,
            headers={"User-Agent": self.user_agent, "Accept": "image/*"},
            not_found_message="URL not found or unavailable",
        )
