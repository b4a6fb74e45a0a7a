"""
Shared FastAPI dependencies.

Long-lived objects live on `app.state` (created in the lifespan handler);
these accessors let tests swap them through `app.dependency_overrides`.
"""
import re

from fastapi import Depends, HTTPException, Request

import config
from core.errors import SecurityRejection
from core.logger import logger
from services.api_log import ApiLogBuffer
from services.report_exporter import ReportExporter
from services.session_service import SessionService
from services.upload_service import UploadService
from services.upstream_client import UpstreamClient


def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return value


def get_api_log(request: Request) -> ApiLogBuffer:
    return _state(request, "api_log")


def get_upstream(request: Request) -> UpstreamClient:
    return _state(request, "upstream")


def get_report_exporter(request: Request) -> ReportExporter:
    return _state(request, "report_exporter")


def get_upload_service(upstream: UpstreamClient = Depends(get_upstream)) -> UploadService:
    return UploadService(upstream)


def get_session_service(upstream: UpstreamClient = Depends(get_upstream)) -> SessionService:
    return SessionService(upstream)


def strict_route(template: str):
    """
    Dependency enforcing that the raw, still percent-encoded request path
    has exactly the shape of `template` (relative to API_PREFIX).

    `{name}` placeholders match one non-empty segment.
    """
    parts = re.split(r"(\{[^}]+\})", f"{config.API_PREFIX}{template}")
    pattern = re.compile(
        "^" + "".join("[^/]+" if p.startswith("{") else re.escape(p) for p in parts if p) + "$"
    )

    async def guard(request: Request) -> None:
        raw_path = request.scope.get("raw_path")
        path = raw_path.decode("latin-1") if raw_path else request.url.path
        path = path.split("?", 1)[0]
        if not pattern.match(path):
            logger.warning(f"Rejected request with unexpected path shape (length {len(path)})")
            raise SecurityRejection("route shape mismatch")

    return guard
