"""
Proxy APIs between the browser and the upstream analysis service.

Every identifier, index and path is validated before upstream is contacted.
"""
from typing import Optional

from fastapi import APIRouter, Depends, File, Response, UploadFile
from fastapi.responses import JSONResponse

import config
from core.errors import ValidationError
from core.logger import logger
from core.schemas import StatusResponse, UploadResponse, UrlUploadRequest
from core.validators import validate_face_index, validate_session_id
from routers.deps import get_session_service, get_upload_service, get_upstream, strict_route
from services.session_service import SessionService
from services.upload_service import UploadService
from services.upstream_client import BinaryPayload, UpstreamClient


router = APIRouter(prefix=config.API_PREFIX, tags=["proxy"])


def _image_response(payload: BinaryPayload) -> Response:
    return Response(
        content=payload.content,
        media_type=payload.content_type or config.DEFAULT_IMAGE_CONTENT_TYPE,
        headers={"Cache-Control": config.IMAGE_CACHE_CONTROL},
    )


@router.post("/upload", response_model=UploadResponse)
async def upload_image(
    file: Optional[UploadFile] = File(None),
    uploads: UploadService = Depends(get_upload_service),
):
    """
    Forward an uploaded image to upstream and return the new session id.
    """
    if file is None:
        raise ValidationError("File not provided")

    if file.size is not None and file.size > uploads.max_upload_bytes:
        raise ValidationError("Image is too large")
    # One byte past the cap is enough for submit_file to reject it
    content = await file.read(uploads.max_upload_bytes + 1)
    logger.info(f"Received file upload: {len(content)} bytes, type {file.content_type}")
    session_id = await uploads.submit_file(file.filename, content, file.content_type)
    return UploadResponse(uuid=session_id)


@router.post("/upload-url", response_model=UploadResponse)
async def upload_image_url(
    body: UrlUploadRequest,
    uploads: UploadService = Depends(get_upload_service),
):
    """
    Download an image URL and submit it for analysis.
    Subject to scheme, public-address, length and content-type checks.
    """
    if not body.url:
        raise ValidationError("URL not provided")
    session_id = await uploads.submit_url(body.url)
    return UploadResponse(uuid=session_id)


@router.get("/session/{uuid}", dependencies=[Depends(strict_route("/session/{uuid}"))])
async def get_session(uuid: str, sessions: SessionService = Depends(get_session_service)):
    """Session information, upstream JSON returned verbatim."""
    session_id = validate_session_id(uuid)
    return JSONResponse(content=await sessions.get_session_info(session_id))


@router.get(
    "/session/{uuid}/status",
    response_model=StatusResponse,
    dependencies=[Depends(strict_route("/session/{uuid}/status"))],
)
async def get_session_status(uuid: str, sessions: SessionService = Depends(get_session_service)):
    """Current processing status of a session."""
    session_id = validate_session_id(uuid)
    return JSONResponse(content=await sessions.get_session_status(session_id))


@router.get(
    "/session/{uuid}/original-image",
    dependencies=[Depends(strict_route("/session/{uuid}/original-image"))],
)
async def get_original_image(uuid: str, sessions: SessionService = Depends(get_session_service)):
    """Source image of a session."""
    session_id = validate_session_id(uuid)
    return _image_response(await sessions.get_original_image(session_id))


@router.get(
    "/session/{uuid}/face/{face_index}",
    dependencies=[Depends(strict_route("/session/{uuid}/face/{face_index}"))],
)
async def get_face_image(uuid: str, face_index: str, sessions: SessionService = Depends(get_session_service)):
    """
    Crop image of one face.

    face_index is the 0-based storage index encoded in the face's path,
    not the 1-based display number.
    """
    session_id = validate_session_id(uuid)
    index = validate_face_index(face_index)
    return _image_response(await sessions.get_face_image(session_id, index))


@router.get("/status")
async def get_system_status(upstream: UpstreamClient = Depends(get_upstream)):
    """Upstream system health passthrough."""
    return JSONResponse(content=await upstream.get_system_status())
