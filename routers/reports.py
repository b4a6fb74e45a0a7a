"""
PDF report APIs.
"""
import asyncio

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse, JSONResponse

import config
from core.errors import NotFoundError, UpstreamError, ValidationError
from core.logger import logger
from core.schemas import PdfReportResponse
from core.validators import validate_session_id
from routers.deps import get_report_exporter, get_session_service, strict_route
from services.report_exporter import ReportExporter
from services.session_service import SessionService


router = APIRouter(prefix=config.API_PREFIX, tags=["reports"])


@router.get(
    "/generate-pdf/{uuid}",
    response_model=PdfReportResponse,
    dependencies=[Depends(strict_route("/generate-pdf/{uuid}"))],
)
async def generate_pdf(
    uuid: str,
    sessions: SessionService = Depends(get_session_service),
    exporter: ReportExporter = Depends(get_report_exporter),
):
    """
    Generate a PDF report for a finished session.
    400 when the session has no faces, 404 when it does not exist.
    """
    session_id = validate_session_id(uuid)
    logger.info(f"Generating PDF report for session: {session_id}")

    try:
        session_info = await sessions.get_session_info(session_id)
    except NotFoundError:
        raise NotFoundError("Session information not found")
    except UpstreamError as e:
        raise UpstreamError(
            "Failed to retrieve session information from API",
            details=e.details or e.message,
        )

    if not session_info.get("faces"):
        raise ValidationError("No face data available in session")

    result = await asyncio.to_thread(exporter.export, session_id, session_info)
    if not result.success:
        return JSONResponse(
            status_code=500,
            content={"error": "Error generating PDF", "details": (result.error or "Unknown error")[:200]},
        )

    return PdfReportResponse(
        success=True,
        message="PDF generated successfully",
        filename=result.filename,
    )


@router.get(
    "/generate-pdf/{uuid}/download",
    dependencies=[Depends(strict_route("/generate-pdf/{uuid}/download"))],
)
async def download_pdf(uuid: str, exporter: ReportExporter = Depends(get_report_exporter)):
    """Download a report produced earlier by /generate-pdf/{uuid}."""
    session_id = validate_session_id(uuid)
    path = exporter.path_for(session_id)
    if path is None:
        raise NotFoundError("Report not found")
    return FileResponse(path, media_type="application/pdf", filename=path.name)
