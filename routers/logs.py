"""
API call log APIs (diagnostics).
"""
from fastapi import APIRouter, Depends, status, Query, Response
from typing import Optional
from datetime import datetime, timezone
import csv
import io
import json

import config
from core.errors import ValidationError
from core.schemas import ApiLogListResponse
from routers.deps import get_api_log
from services.api_log import LOG_TYPES, ApiLogBuffer


router = APIRouter(prefix=f"{config.API_PREFIX}/logs", tags=["logs"])


def _check_type(type: Optional[str]) -> Optional[str]:
    if type and type not in LOG_TYPES:
        raise ValidationError(
            "Invalid request",
            details=f"Invalid log type. Use one of: {', '.join(LOG_TYPES)}"
        )
    return type


@router.get("", response_model=ApiLogListResponse)
async def list_logs(
    type: Optional[str] = Query(None),
    limit: int = Query(config.API_LOG_CAPACITY, ge=1, le=config.API_LOG_CAPACITY),
    buffer: ApiLogBuffer = Depends(get_api_log)
):
    """
    Recent upstream API calls, newest first.
    """
    entries = buffer.entries(type=_check_type(type), limit=limit)
    return ApiLogListResponse(data=entries, total=len(entries), capacity=buffer.capacity)


@router.get("/export")
async def export_logs(
    type: Optional[str] = Query(None),
    format: str = Query("csv", pattern="^(csv|json)$"),
    buffer: ApiLogBuffer = Depends(get_api_log)
):
    """
    Export logs (CSV/JSON).
    """
    entries = buffer.entries(type=_check_type(type))
    stamp = datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')

    if format == "csv":
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(["timestamp", "type", "endpoint", "details"])
        for entry in entries:
            writer.writerow([
                entry.timestamp,
                entry.type,
                entry.endpoint,
                json.dumps(entry.details, default=str) if entry.details else ""
            ])

        csv_content = output.getvalue()
        output.close()

        return Response(
            content=csv_content,
            media_type="text/csv",
            headers={
                "Content-Disposition": f"attachment; filename=api_logs_{stamp}.csv"
            }
        )

    json_content = json.dumps([entry.model_dump() for entry in entries], indent=2, default=str)
    return Response(
        content=json_content,
        media_type="application/json",
        headers={
            "Content-Disposition": f"attachment; filename=api_logs_{stamp}.json"
        }
    )


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def clear_logs(buffer: ApiLogBuffer = Depends(get_api_log)):
    """Drop all recorded entries."""
    buffer.clear()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
