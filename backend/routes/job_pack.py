"""Job pack export routes.

All gate decisions live in services.job_pack_export; these handlers only pull
the caller from the bearer token and shape the HTTP response. Gate failures
surface as ExportGateError and are rendered by the handler registered in
server.py.
"""
from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from middleware import get_current_user, client_ip
from models import EstimateRangeResponse, ExportErrorResponse
from services.job_pack_export import export_job_pack, job_estimate_range, preview_job_pack
import io
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/jobs", tags=["job-pack"])

GATE_RESPONSES = {
    code: {"model": ExportErrorResponse} for code in (400, 401, 403, 404, 500)
}


@router.post("/{job_id}/export", responses=GATE_RESPONSES)
async def export_job_pack_document(
    request: Request,
    job_id: str,
    format: str = "standard",
    file_type: str = "pdf",
):
    """
    Download a client-ready job pack.

    format: standard (full detail) or compact (single page)
    file_type: pdf or docx
    """
    user = await get_current_user(request)
    document = await export_job_pack(
        user,
        job_id,
        layout=format,
        file_type=file_type,
        ip_address=client_ip(request),
    )
    return StreamingResponse(
        io.BytesIO(document.content),
        media_type=document.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{document.filename}"'
        }
    )


@router.get("/{job_id}/estimate-range", response_model=EstimateRangeResponse)
async def get_estimate_range(request: Request, job_id: str):
    """Low/high range around the AI quote's total estimate, for the job preview."""
    user = await get_current_user(request)
    estimate = await job_estimate_range(user, job_id)
    return estimate.to_dict()


@router.get("/{job_id}/export/preview")
async def get_export_preview(request: Request, job_id: str, format: str = "standard"):
    user = await get_current_user(request)
    return await preview_job_pack(user, job_id, layout=format)
