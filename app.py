"""
Deepfake analysis proxy: upload, session polling, face images and PDF reports
in front of the upstream analysis API.
"""
import shutil
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from core.errors import GENERIC_INVALID_REQUEST, ProxyError, SecurityRejection
from core.logger import logger
from middleware.security import (
    RateLimitMiddleware, SecurityHeadersMiddleware,
    setup_cors, setup_trusted_hosts
)
from services.api_log import ApiLogBuffer
from services.report_exporter import ReportExporter
from services.upstream_client import UpstreamClient
from routers.proxy import router as proxy_router
from routers.reports import router as reports_router
from routers.logs import router as logs_router


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan events for FastAPI app.
    Create the API call log, upstream client and report exporter on startup.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {config.APP_NAME}...")
    logger.info("=" * 60)

    app.state.api_log = ApiLogBuffer(capacity=config.API_LOG_CAPACITY)
    app.state.upstream = UpstreamClient(
        base_url=config.PROOFLY_API_BASE_URL,
        log_buffer=app.state.api_log,
    )
    app.state.report_exporter = ReportExporter(output_dir=config.REPORTS_DIR)

    logger.info(f"Upstream API: {config.PROOFLY_API_BASE_URL}")
    logger.info(f"Proxy routes mounted at: {config.API_PREFIX}")
    logger.info(f"Environment: {config.ENVIRONMENT}")
    logger.info("API Docs: http://localhost:8000/docs")
    logger.info("=" * 60)

    yield

    # Cleanup on shutdown
    logger.info("Shutting down...")
    await app.state.upstream.close()
    logger.info("Upstream connections closed")


# Initialize FastAPI app
app = FastAPI(
    title=config.APP_NAME,
    description="Proxy for deepfake image analysis with SSRF, traversal and redirect guards",
    version=config.APP_VERSION,
    lifespan=lifespan
)

# Setup security middleware
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    RateLimitMiddleware,
    requests_per_minute=config.RATE_LIMIT_PER_MINUTE,
    requests_per_hour=config.RATE_LIMIT_PER_HOUR,
    path_prefix=config.API_PREFIX
)
setup_cors(app, config.CORS_ORIGINS)
if config.ENVIRONMENT == "production":
    setup_trusted_hosts(app, config.TRUSTED_HOSTS)


@app.exception_handler(ProxyError)
async def proxy_error_handler(request: Request, exc: ProxyError):
    if isinstance(exc, SecurityRejection):
        logger.warning(f"Rejected {request.method} request: {exc.reason}")
    elif exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} ({exc.details})")
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.info(f"Invalid request parameters for {request.url.path}: {len(exc.errors())} error(s)")
    return JSONResponse(status_code=400, content={"error": GENERIC_INVALID_REQUEST})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


# Include routers
app.include_router(proxy_router)
app.include_router(reports_router)
app.include_router(logs_router)


@app.get("/")
async def root():
    """Root endpoint with API information."""
    prefix = config.API_PREFIX
    return {
        "message": config.APP_NAME,
        "version": config.APP_VERSION,
        "environment": config.ENVIRONMENT,
        "endpoints": {
            "upload": f"POST {prefix}/upload",
            "upload_url": f"POST {prefix}/upload-url",
            "session": f"GET {prefix}/session/{{uuid}}",
            "status": f"GET {prefix}/session/{{uuid}}/status",
            "original_image": f"GET {prefix}/session/{{uuid}}/original-image",
            "face_image": f"GET {prefix}/session/{{uuid}}/face/{{faceIndex}}",
            "system_status": f"GET {prefix}/status",
            "report": f"GET {prefix}/generate-pdf/{{uuid}}",
            "logs": f"GET {prefix}/logs",
        },
        "docs": "/docs",
    }


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint for monitoring."""
    health_status = {
        "status": "healthy",
        "timestamp": time.time(),
        "checks": {}
    }

    api_log = getattr(request.app.state, "api_log", None)
    upstream = getattr(request.app.state, "upstream", None)
    health_status["checks"]["upstream"] = {
        "status": "ok" if upstream is not None else "error",
        "base_url": config.PROOFLY_API_BASE_URL,
    }
    health_status["checks"]["api_log"] = {
        "entries": len(api_log) if api_log is not None else 0,
        "capacity": config.API_LOG_CAPACITY,
    }
    if upstream is None or api_log is None:
        health_status["status"] = "degraded"

    # Check disk space where reports are written
    try:
        config.REPORTS_DIR.mkdir(parents=True, exist_ok=True)
        disk_usage = shutil.disk_usage(config.REPORTS_DIR)
        free_gb = disk_usage.free / (1024 ** 3)
        health_status["checks"]["disk"] = {
            "free_gb": round(free_gb, 2),
            "percent_free": round((disk_usage.free / disk_usage.total) * 100, 2)
        }
        if free_gb < 1:
            health_status["status"] = "degraded"
    except OSError as e:
        health_status["checks"]["disk"] = {"error": str(e)}
        health_status["status"] = "degraded"

    return health_status


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
