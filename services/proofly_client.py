"""
Client for this service's own proxy routes, used by the analysis workflow
and the command line.
"""
import asyncio
from typing import Any, Dict, Optional

import aiohttp

import config
from core.errors import ApiClientError
from services.api_log import ApiLogBuffer


class ProoflyClient:
    """Talks to the proxy surface (not to upstream directly)."""

    def __init__(
        self,
        server_url: str = "http://localhost:8000",
        api_prefix: str = config.API_PREFIX,
        log_buffer: Optional[ApiLogBuffer] = None,
        timeout: float = config.UPLOAD_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = f"{server_url.rstrip('/')}{api_prefix}"
        self.api_prefix = api_prefix
        self.log_buffer = log_buffer or ApiLogBuffer(config.API_LOG_CAPACITY)
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _call(self, method: str, path: str, action: str, **kwargs) -> Dict[str, Any]:
        endpoint = f"{self.api_prefix}{path}"
        try:
            async with self.session.request(
                method,
                f"{self.base_url}{path}",
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                **kwargs,
            ) as resp:
                try:
                    data = await resp.json(content_type=None)
                except ValueError:
                    data = None
                if resp.status >= 400:
                    message = data.get("error") if isinstance(data, dict) else None
                    message = message or f"Request failed with status code {resp.status}"
                    self.log_buffer.record("error", endpoint, {"status": resp.status, "message": message})
                    raise ApiClientError(f"{action}: {message}", status=resp.status, endpoint=endpoint)
        except asyncio.TimeoutError:
            self.log_buffer.record("error", endpoint, {"message": "timeout"})
            raise ApiClientError(f"{action}: Server response timeout", endpoint=endpoint)
        except aiohttp.ClientError as e:
            self.log_buffer.record("error", endpoint, {"message": str(e)})
            raise ApiClientError(f"{action}: Network error", endpoint=endpoint)

        if not isinstance(data, dict):
            self.log_buffer.record("error", endpoint, {"status": resp.status, "message": "invalid JSON"})
            raise ApiClientError(f"{action}: Invalid response from server", status=resp.status, endpoint=endpoint)
        self.log_buffer.record("success", endpoint, data)
        return data

    @staticmethod
    def _require_uuid(data: Dict[str, Any], action: str) -> str:
        session_id = data.get("uuid")
        if not session_id:
            raise ApiClientError(f"{action}: UUID not received from server")
        return session_id

    async def upload_image(self, filename: str, content: bytes, content_type: Optional[str] = None) -> str:
        action = "Error uploading image"
        form = aiohttp.FormData()
        form.add_field("file", content, filename=filename, content_type=content_type or "application/octet-stream")
        self.log_buffer.record("info", f"{self.api_prefix}/upload", {"fileName": filename, "fileSize": len(content)})
        data = await self._call("POST", "/upload", action, data=form)
        return self._require_uuid(data, action)

    async def upload_url(self, url: str) -> str:
        action = "Error sending URL"
        self.log_buffer.record("info", f"{self.api_prefix}/upload-url", {"url": url[:100]})
        data = await self._call("POST", "/upload-url", action, json={"url": url})
        return self._require_uuid(data, action)

    async def get_session_status(self, session_id: str) -> Dict[str, Any]:
        return await self._call("GET", f"/session/{session_id}/status", "Error getting session status")

    async def get_session_info(self, session_id: str) -> Dict[str, Any]:
        return await self._call("GET", f"/session/{session_id}", "Error getting session information")

    async def generate_pdf(self, session_id: str) -> Dict[str, Any]:
        return await self._call("GET", f"/generate-pdf/{session_id}", "Error generating PDF")

    def original_image_url(self, session_id: str) -> str:
        return f"{self.base_url}/session/{session_id}/original-image"

    def face_image_url(self, session_id: str, face_index: int) -> str:
        return f"{self.base_url}/session/{session_id}/face/{face_index}"
