"""
Tests for the export gate chain: order of gates, error payloads, audit trail,
and the successful PDF/DOCX path.
"""
import json
import pytest
import sys
from pathlib import Path
from unittest.mock import patch

backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

from models import AuditAction
from services.job_pack_export import (
    AuthenticationError,
    AuthorizationError,
    ConfirmationRequiredError,
    ExportFailedError,
    InvalidExportOptionsError,
    JobNotFoundError,
    PlanRequiredError,
    TotalsMismatchError,
    export_job_pack,
    job_estimate_range,
    preview_job_pack,
)

JOB_ID = "abcdef12-3456-7890-abcd-ef1234567890"
OWNER = {"user_id": "owner-1", "role": "ROLE_TRADIE"}
STRANGER = {"user_id": "other-1", "role": "ROLE_TRADIE"}
ADMIN = {"user_id": "admin-1", "role": "ROLE_ADMIN"}


def _job(**overrides):
    doc = {
        "job_id": JOB_ID,
        "owner_id": "owner-1",
        "title": "Hot water system",
        "ai_review_status": "confirmed",
        "ai_quote": json.dumps({"totalEstimate": {"totalJobEstimate": "$2,400"}}),
        "ai_scope_of_work": "Remove old unit\nInstall new unit",
    }
    doc.update(overrides)
    return doc


def _users(tier="PRO", status="ACTIVE", **business):
    return {
        "owner-1": {"user_id": "owner-1", "plan_tier": tier, "plan_status": status, **business},
        "other-1": {"user_id": "other-1", "plan_tier": "PRO", "plan_status": "ACTIVE"},
    }


def _material(line_total):
    return {"job_id": JOB_ID, "owner_id": "owner-1", "name": "Valve", "unit_label": "ea",
            "quantity": 1, "line_total": line_total}


def _audit_actions(db):
    return [call.args[0]["action"] for call in db.audit_logs.insert_one.call_args_list]


class TestGateOrder:
    """Gates short-circuit on the first failure, in a fixed order."""

    @pytest.mark.asyncio
    async def test_unauthenticated(self, make_db):
        db = make_db(job=_job(), users=_users())
        with patch("services.job_repository.database.get_db", return_value=db):
            with pytest.raises(AuthenticationError) as exc:
                await export_job_pack(None, JOB_ID)
        assert exc.value.status_code == 401
        assert exc.value.to_response() == {"error": "Not authenticated", "code": "NOT_AUTHENTICATED"}
        db.jobs.find_one.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_job(self, make_db):
        db = make_db(job=None, users=_users())
        with patch("services.job_repository.database.get_db", return_value=db):
            with pytest.raises(JobNotFoundError) as exc:
                await export_job_pack(OWNER, JOB_ID)
        assert exc.value.status_code == 404
        assert exc.value.code == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_not_owner(self, make_db):
        db = make_db(job=_job(), users=_users())
        with patch("services.job_repository.database.get_db", return_value=db):
            with pytest.raises(AuthorizationError) as exc:
                await export_job_pack(STRANGER, JOB_ID)
        assert exc.value.status_code == 403
        assert exc.value.code == "NOT_AUTHORIZED"

    @pytest.mark.asyncio
    async def test_ownership_checked_before_format(self, make_db):
        db = make_db(job=_job(), users=_users())
        with patch("services.job_repository.database.get_db", return_value=db):
            with pytest.raises(AuthorizationError):
                await export_job_pack(STRANGER, JOB_ID, layout="poster")
            with pytest.raises(InvalidExportOptionsError) as exc:
                await export_job_pack(OWNER, JOB_ID, layout="poster")
        assert exc.value.code == "INVALID_FORMAT"
        assert exc.value.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_file_type(self, make_db):
        db = make_db(job=_job(), users=_users())
        with patch("services.job_repository.database.get_db", return_value=db):
            with pytest.raises(InvalidExportOptionsError):
                await export_job_pack(OWNER, JOB_ID, file_type="xlsx")

    @pytest.mark.asyncio
    async def test_free_plan_denied_with_upsell(self, make_db):
        db = make_db(job=_job(), users=_users(tier="FREE", status="ACTIVE"))
        with patch("services.job_repository.database.get_db", return_value=db):
            with pytest.raises(PlanRequiredError) as exc:
                await export_job_pack(OWNER, JOB_ID)
        body = exc.value.to_response()
        assert exc.value.status_code == 403
        assert body["code"] == "PAID_PLAN_REQUIRED"
        assert body["redirectTo"] == "/pricing"
        assert body["hint"]
        assert _audit_actions(db) == [AuditAction.JOB_PACK_EXPORT_DENIED.value]
        assert db.audit_logs.insert_one.call_args.args[0]["reason_code"] == "PAID_PLAN_REQUIRED"

    @pytest.mark.asyncio
    async def test_missing_owner_profile_denied(self, make_db):
        db = make_db(job=_job(), users={})
        with patch("services.job_repository.database.get_db", return_value=db):
            with pytest.raises(PlanRequiredError):
                await export_job_pack(OWNER, JOB_ID)

    @pytest.mark.asyncio
    async def test_plan_checked_before_confirmation(self, make_db):
        db = make_db(job=_job(ai_review_status="draft"), users=_users(tier="FREE", status="ACTIVE"))
        with patch("services.job_repository.database.get_db", return_value=db):
            with pytest.raises(PlanRequiredError):
                await export_job_pack(OWNER, JOB_ID)

    @pytest.mark.asyncio
    async def test_unconfirmed_job_denied(self, make_db):
        db = make_db(job=_job(ai_review_status="pending_review"), users=_users())
        with patch("services.job_repository.database.get_db", return_value=db):
            with pytest.raises(ConfirmationRequiredError) as exc:
                await export_job_pack(OWNER, JOB_ID)
        assert exc.value.status_code == 400
        assert exc.value.code == "CONFIRMATION_REQUIRED"
        assert exc.value.hint

    @pytest.mark.asyncio
    async def test_admin_still_needs_confirmation(self, make_db):
        db = make_db(job=_job(ai_review_status="draft"), users=_users())
        with patch("services.job_repository.database.get_db", return_value=db):
            with pytest.raises(ConfirmationRequiredError):
                await export_job_pack(ADMIN, JOB_ID)

    @pytest.mark.asyncio
    async def test_totals_mismatch(self, make_db):
        db = make_db(
            job=_job(materials_total="26.00"),
            materials=[_material("10.00"), _material("15.50")],
            users=_users(),
        )
        with patch("services.job_repository.database.get_db", return_value=db):
            with pytest.raises(TotalsMismatchError) as exc:
                await export_job_pack(OWNER, JOB_ID)
        body = exc.value.to_response()
        assert body["code"] == "TOTALS_MISMATCH"
        assert body["details"] == {"sumOfLineTotals": 25.5, "storedMaterialsTotal": 26.0, "difference": 0.5}
        assert "Recalculate" in body["hint"]


class TestSuccessfulExport:

    @pytest.mark.asyncio
    async def test_pdf_export(self, make_db):
        db = make_db(job=_job(), users=_users(business_name="Acme Plumbing"))
        with patch("services.job_repository.database.get_db", return_value=db):
            document = await export_job_pack(OWNER, JOB_ID)
        assert document.content.startswith(b"%PDF")
        assert document.filename == "job-pack-abcdef12.pdf"
        assert document.media_type == "application/pdf"
        assert _audit_actions(db) == [AuditAction.JOB_PACK_EXPORTED.value]
        audit = db.audit_logs.insert_one.call_args.args[0]
        assert audit["resource_id"] == JOB_ID
        assert audit["metadata"]["document_ref"] == "JP-ABCDEF12"

    @pytest.mark.asyncio
    async def test_compact_docx_export(self, make_db):
        db = make_db(job=_job(), users=_users())
        with patch("services.job_repository.database.get_db", return_value=db):
            document = await export_job_pack(OWNER, JOB_ID, layout="COMPACT", file_type="docx")
        assert document.content.startswith(b"PK")
        assert document.filename == "job-pack-abcdef12.docx"

    @pytest.mark.asyncio
    async def test_reconciled_lines_pass(self, make_db):
        db = make_db(
            job=_job(materials_total="25.51"),
            materials=[_material("10.00"), _material("15.50")],
            users=_users(),
        )
        with patch("services.job_repository.database.get_db", return_value=db):
            document = await export_job_pack(OWNER, JOB_ID)
        assert document.content.startswith(b"%PDF")

    @pytest.mark.asyncio
    async def test_admin_exports_without_plan(self, make_db):
        db = make_db(job=_job(), users={})
        with patch("services.job_repository.database.get_db", return_value=db):
            document = await export_job_pack(ADMIN, JOB_ID)
        assert document.content.startswith(b"%PDF")

    @pytest.mark.asyncio
    async def test_trial_tier_exports(self, make_db):
        db = make_db(job=_job(), users=_users(tier="TRIAL", status="TRIAL"))
        with patch("services.job_repository.database.get_db", return_value=db):
            document = await export_job_pack(OWNER, JOB_ID)
        assert document.filename.endswith(".pdf")

    @pytest.mark.asyncio
    async def test_render_failure_is_generic_500(self, make_db):
        db = make_db(job=_job(), users=_users())
        with patch("services.job_repository.database.get_db", return_value=db), \
                patch("services.job_pack_export.render_pdf", side_effect=RuntimeError("boom")):
            with pytest.raises(ExportFailedError) as exc:
                await export_job_pack(OWNER, JOB_ID)
        assert exc.value.status_code == 500
        assert exc.value.to_response() == {"error": "Failed to generate job pack", "code": "EXPORT_FAILED"}
        assert _audit_actions(db) == [AuditAction.JOB_PACK_EXPORT_FAILED.value]

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_block_export(self, make_db):
        db = make_db(job=_job(), users=_users())
        db.audit_logs.insert_one.side_effect = Exception("audit store down")
        with patch("services.job_repository.database.get_db", return_value=db):
            document = await export_job_pack(OWNER, JOB_ID)
        assert document.content.startswith(b"%PDF")

    @pytest.mark.asyncio
    async def test_unreadable_material_line_is_coded_failure(self, make_db):
        bad_line = {**_material("15.50"), "quantity": "two"}
        db = make_db(job=_job(), materials=[_material("10.00"), bad_line], users=_users())
        with patch("services.job_repository.database.get_db", return_value=db):
            with pytest.raises(ExportFailedError) as exc:
                await export_job_pack(OWNER, JOB_ID)
        assert exc.value.to_response() == {"error": "Failed to generate job pack", "code": "EXPORT_FAILED"}
        assert _audit_actions(db) == [AuditAction.JOB_PACK_EXPORT_FAILED.value]
        metadata = db.audit_logs.insert_one.call_args.args[0]["metadata"]
        assert metadata["reason"] == "materials_unreadable"


class TestPreviews:

    @pytest.mark.asyncio
    async def test_estimate_range_for_owner(self, make_db):
        db = make_db(job=_job(), users=_users(tier="FREE", status="ACTIVE"))
        with patch("services.job_repository.database.get_db", return_value=db):
            estimate = await job_estimate_range(OWNER, JOB_ID)
        assert estimate.formatted_range == "$2,280 – $2,640"

    @pytest.mark.asyncio
    async def test_estimate_range_requires_ownership(self, make_db):
        db = make_db(job=_job(), users=_users())
        with patch("services.job_repository.database.get_db", return_value=db):
            with pytest.raises(AuthorizationError):
                await job_estimate_range(STRANGER, JOB_ID)

    @pytest.mark.asyncio
    async def test_preview_marks_unconfirmed_draft(self, make_db):
        db = make_db(job=_job(ai_review_status="draft"), users=_users(tier="FREE", status="ACTIVE"))
        with patch("services.job_repository.database.get_db", return_value=db):
            preview = await preview_job_pack(OWNER, JOB_ID, layout="compact")
        assert preview["isExportReady"] is False
        assert preview["layout"] == "compact"
        assert preview["documentRef"] == "JP-ABCDEF12"
        notices = [s for s in preview["sections"] if s["kind"] == "HighlightBox" and s["part"] == "title"]
        assert notices and notices[0]["tone"] == "warning"

    @pytest.mark.asyncio
    async def test_preview_of_confirmed_job_has_no_notice(self, make_db):
        db = make_db(job=_job(), users=_users())
        with patch("services.job_repository.database.get_db", return_value=db):
            preview = await preview_job_pack(OWNER, JOB_ID)
        assert preview["isExportReady"] is True
        assert not [s for s in preview["sections"] if s["kind"] == "HighlightBox" and s["part"] == "title"]

    @pytest.mark.asyncio
    async def test_preview_with_unreadable_material_line(self, make_db):
        db = make_db(job=_job(), materials=[{**_material("10.00"), "quantity": "two"}], users=_users())
        with patch("services.job_repository.database.get_db", return_value=db):
            with pytest.raises(ExportFailedError):
                await preview_job_pack(OWNER, JOB_ID)
