"""
Job Pack Export Service - the gate chain in front of client-facing job packs.

Gates run in a fixed order and stop at the first failure:
    1. authenticated caller                  -> 401 NOT_AUTHENTICATED
    2. job exists                            -> 404 NOT_FOUND
    3. caller owns the job or is an admin    -> 403 NOT_AUTHORIZED
       (export options are validated here)   -> 400 INVALID_FORMAT
    4. caller's plan allows export           -> 403 PAID_PLAN_REQUIRED
    5. AI content confirmed by the owner     -> 400 CONFIRMATION_REQUIRED
    6. itemised materials match the total    -> 400 TOTALS_MISMATCH
    7. compose -> render -> file
Anything unexpected while composing or rendering becomes a generic
500 EXPORT_FAILED; no partial document is ever returned.

This module is the only place gates are evaluated. The composer and renderer
trust that they are only reached with an eligible job.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from models import AuditAction, ExportFileType, ExportLayout, Job, OwnerProfile
from services.access_policy import (
    PRICING_PATH, UPGRADE_HINT, can_export, export_denial_reason,
)
from services.confirmation_gate import (
    CONFIRMATION_HINT, CONFIRMATION_REQUIRED_MESSAGE, is_export_ready,
)
from services.document_composer import compose, document_reference
from services.document_sections import section_to_dict
from services.job_pack_renderer import DOCX_MEDIA_TYPE, PDF_MEDIA_TYPE, render_docx, render_pdf
from services.job_repository import (
    UnreadableMaterialsError, get_job_by_id, get_job_materials, get_owner_profile, is_admin,
)
from services.materials_reconciler import reconcile
from services.quote_parser import EstimateRange, calculate_estimate_range
from utils.audit import create_audit_log

logger = logging.getLogger(__name__)

TOTALS_MISMATCH_HINT = "Open the Materials Management section and click 'Recalculate' to fix the totals."


# ============================================================================
# ERRORS
# ============================================================================

class ExportGateError(Exception):
    """A gate refused the request. Carries everything the JSON failure body needs."""
    status_code = 400
    code = "EXPORT_DENIED"

    def __init__(
        self,
        error: str,
        details: Optional[Dict[str, Any]] = None,
        hint: Optional[str] = None,
        redirect_to: Optional[str] = None,
    ):
        super().__init__(error)
        self.error = error
        self.details = details
        self.hint = hint
        self.redirect_to = redirect_to

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error, "code": self.code}
        if self.details is not None:
            body["details"] = self.details
        if self.hint:
            body["hint"] = self.hint
        if self.redirect_to:
            body["redirectTo"] = self.redirect_to
        return body


class AuthenticationError(ExportGateError):
    status_code = 401
    code = "NOT_AUTHENTICATED"


class JobNotFoundError(ExportGateError):
    status_code = 404
    code = "NOT_FOUND"


class AuthorizationError(ExportGateError):
    status_code = 403
    code = "NOT_AUTHORIZED"


class InvalidExportOptionsError(ExportGateError):
    status_code = 400
    code = "INVALID_FORMAT"


class PlanRequiredError(ExportGateError):
    status_code = 403
    code = "PAID_PLAN_REQUIRED"


class ConfirmationRequiredError(ExportGateError):
    status_code = 400
    code = "CONFIRMATION_REQUIRED"


class TotalsMismatchError(ExportGateError):
    status_code = 400
    code = "TOTALS_MISMATCH"


class ExportFailedError(ExportGateError):
    status_code = 500
    code = "EXPORT_FAILED"


@dataclass(frozen=True)
class ExportedDocument:
    content: bytes
    filename: str
    media_type: str


# ============================================================================
# SHARED GATES (1-3)
# ============================================================================

async def authorize_job_access(user: Optional[Dict[str, Any]], job_id: str) -> Job:
    """Gates 1-3: caller is authenticated, the job exists, and the caller owns it or is an admin."""
    if not user or not user.get("user_id"):
        raise AuthenticationError("Not authenticated")

    job = await get_job_by_id(job_id)
    if job is None:
        raise JobNotFoundError("Job not found")

    if job.owner_id != user["user_id"] and not is_admin(user):
        logger.warning(
            "Job pack access denied: job_id=%s user_id=%s owner_id=%s",
            job_id, user["user_id"], job.owner_id,
        )
        raise AuthorizationError("You do not have access to this job")
    return job


def parse_export_options(layout: Optional[str], file_type: Optional[str] = None):
    try:
        return (
            ExportLayout((layout or ExportLayout.STANDARD.value).strip().lower()),
            ExportFileType((file_type or ExportFileType.PDF.value).strip().lower()),
        )
    except ValueError:
        raise InvalidExportOptionsError(
            "Invalid export options. format must be 'standard' or 'compact'; file_type must be 'pdf' or 'docx'.",
            details={"format": layout, "file_type": file_type},
        )


async def _issuer_for(job: Job, caller: Optional[OwnerProfile]):
    if caller is not None and caller.user_id == job.owner_id:
        return caller.business
    owner = await get_owner_profile(job.owner_id)
    return owner.business if owner else None


async def _deny(
    user: Dict[str, Any],
    job: Job,
    error: ExportGateError,
    ip_address: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
):
    logger.warning(
        "Job pack export denied: job_id=%s user_id=%s code=%s",
        job.job_id, user.get("user_id"), error.code,
    )
    await create_audit_log(
        action=AuditAction.JOB_PACK_EXPORT_DENIED,
        actor_role=user.get("role"),
        actor_id=user.get("user_id"),
        resource_type="job",
        resource_id=job.job_id,
        metadata={"code": error.code, **(extra or {})},
        reason_code=error.code,
        ip_address=ip_address,
    )
    raise error


async def _fail(
    user: Dict[str, Any],
    job: Job,
    metadata: Dict[str, Any],
    ip_address: Optional[str] = None,
):
    await create_audit_log(
        action=AuditAction.JOB_PACK_EXPORT_FAILED,
        actor_role=user.get("role"),
        actor_id=user.get("user_id"),
        resource_type="job",
        resource_id=job.job_id,
        metadata=metadata,
        ip_address=ip_address,
    )
    raise ExportFailedError("Failed to generate job pack")


# ============================================================================
# EXPORT
# ============================================================================

async def export_job_pack(
    user: Optional[Dict[str, Any]],
    job_id: str,
    layout: Optional[str] = ExportLayout.STANDARD.value,
    file_type: Optional[str] = ExportFileType.PDF.value,
    ip_address: Optional[str] = None,
) -> ExportedDocument:
    job = await authorize_job_access(user, job_id)
    export_layout, export_file_type = parse_export_options(layout, file_type)

    admin = is_admin(user)
    caller = None if admin else await get_owner_profile(user["user_id"])

    # Gate 4: plan
    plan = caller.plan if caller else None
    if not can_export(plan, admin):
        await _deny(user, job, PlanRequiredError(
            export_denial_reason(plan), hint=UPGRADE_HINT, redirect_to=PRICING_PATH,
        ), ip_address, extra={
            "plan_tier": plan.plan_tier if plan else None,
            "plan_status": plan.plan_status if plan else None,
        })

    # Gate 5: owner confirmation, evaluated for admins too
    if not is_export_ready(job):
        await _deny(user, job, ConfirmationRequiredError(
            CONFIRMATION_REQUIRED_MESSAGE, hint=CONFIRMATION_HINT,
        ), ip_address, extra={"ai_review_status": job.ai_review_status.value})

    # Gate 6: itemised materials (only when lines exist)
    failure_metadata = {"layout": export_layout.value, "file_type": export_file_type.value}
    try:
        materials = await get_job_materials(job.job_id, job.owner_id)
    except UnreadableMaterialsError:
        logger.error("Job pack export failed: job_id=%s material lines unreadable", job.job_id)
        await _fail(user, job, {**failure_metadata, "reason": "materials_unreadable"}, ip_address)
    if materials:
        result = await reconcile(job.job_id, job.owner_id, job.materials_total, materials)
        if not result.is_valid:
            await _deny(user, job, TotalsMismatchError(
                result.message, details=result.to_details(), hint=TOTALS_MISMATCH_HINT,
            ), ip_address, extra=result.to_details())

    # Step 7: compose and render
    try:
        issuer = await _issuer_for(job, caller)
        sections = compose(job, materials, export_layout, issuer)
        if export_file_type == ExportFileType.DOCX:
            content, media_type = render_docx(sections, export_layout), DOCX_MEDIA_TYPE
        else:
            content, media_type = render_pdf(sections, export_layout), PDF_MEDIA_TYPE
    except Exception as e:
        logger.error("Job pack export failed: job_id=%s error=%s", job.job_id, e, exc_info=True)
        await _fail(user, job, failure_metadata, ip_address)

    filename = f"job-pack-{job.job_id[:8]}.{export_file_type.value}"
    logger.info(
        "Job pack exported: job_id=%s user_id=%s layout=%s file_type=%s bytes=%d",
        job.job_id, user["user_id"], export_layout.value, export_file_type.value, len(content),
    )
    await create_audit_log(
        action=AuditAction.JOB_PACK_EXPORTED,
        actor_role=user.get("role"),
        actor_id=user["user_id"],
        resource_type="job",
        resource_id=job.job_id,
        metadata={
            "layout": export_layout.value,
            "file_type": export_file_type.value,
            "document_ref": document_reference(job.job_id),
            "material_lines": len(materials),
        },
        ip_address=ip_address,
    )
    return ExportedDocument(content=content, filename=filename, media_type=media_type)


# ============================================================================
# PREVIEWS (owner/admin only, not plan-gated)
# ============================================================================

async def job_estimate_range(user: Optional[Dict[str, Any]], job_id: str) -> EstimateRange:
    job = await authorize_job_access(user, job_id)
    return calculate_estimate_range(job.ai_quote)


async def preview_job_pack(
    user: Optional[Dict[str, Any]],
    job_id: str,
    layout: Optional[str] = ExportLayout.STANDARD.value,
) -> Dict[str, Any]:
    """Composed sections as JSON. Unconfirmed jobs carry a draft notice."""
    job = await authorize_job_access(user, job_id)
    export_layout, _ = parse_export_options(layout)

    try:
        materials = await get_job_materials(job.job_id, job.owner_id)
    except UnreadableMaterialsError:
        logger.error("Job pack preview failed: job_id=%s material lines unreadable", job.job_id)
        raise ExportFailedError("Failed to generate job pack")
    issuer = await _issuer_for(job, None)
    ready = is_export_ready(job)
    sections: List = compose(job, materials, export_layout, issuer, include_draft_notice=not ready)
    return {
        "jobId": job.job_id,
        "layout": export_layout.value,
        "documentRef": document_reference(job.job_id),
        "isExportReady": ready,
        "sections": [section_to_dict(s) for s in sections],
    }
