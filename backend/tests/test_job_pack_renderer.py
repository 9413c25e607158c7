"""
Tests for PDF and DOCX rendering of composed job packs.
"""
import io
import json
import sys
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

from docx import Document

from models import BusinessProfile, ExportLayout, Job, JobMaterial
from services.document_composer import compose
from services.document_sections import Part, Paragraph
from services.job_pack_renderer import render_docx, render_pdf


def _job():
    return Job(
        job_id="abcdef12-3456-7890-abcd-ef1234567890",
        owner_id="owner-1",
        title="Bathroom reno <stage 1> & fit-off",
        client_name="Sam Client",
        ai_review_status="confirmed",
        ai_summary="Strip out and re-sheet the bathroom.",
        ai_quote=json.dumps({"totalEstimate": {"totalJobEstimate": "$2,400"}}),
        ai_scope_of_work="\n".join(f"Step {n}" for n in range(1, 16)),
        ai_inclusions="Labour\nWaste removal",
        ai_exclusions="Tiling\nPainting",
        ai_client_notes="Keep pets inside.",
        notes="Key under the mat.",
        materials_total=Decimal("30.00"),
    )


def _materials():
    return [
        JobMaterial(name="Villaboard sheet", unit_label="sheet", quantity=2, line_total=Decimal("20.00")),
        JobMaterial(name="Screws", unit_label="box", quantity=1, line_total=Decimal("10.00")),
    ]


def _docx_text(content: bytes) -> str:
    document = Document(io.BytesIO(content))
    parts = [p.text for p in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            for cell in row.cells:
                parts.append(cell.text)
    return "\n".join(parts)


class TestPdfRendering:

    @pytest.mark.parametrize("layout", [ExportLayout.STANDARD, ExportLayout.COMPACT])
    def test_renders_pdf(self, layout):
        sections = compose(_job(), _materials(), layout, BusinessProfile(business_name="Acme & Sons"))
        content = render_pdf(sections, layout)
        assert content.startswith(b"%PDF")
        assert len(content) > 1000

    def test_unsupported_section_kind_raises(self):
        with pytest.raises(TypeError):
            render_pdf([object()])


class TestDocxRendering:

    def test_standard_docx_contains_every_part(self):
        issuer = BusinessProfile(business_name="Acme Plumbing")
        content = render_docx(compose(_job(), _materials(), ExportLayout.STANDARD, issuer))
        text = _docx_text(content)
        for expected in (
            "Acme Plumbing",
            "Job Pack / Quote",
            "Summary",
            "Total Estimate",
            "Scope of Work",
            "15. Step 15",
            "What's Included",
            "✓  Labour",
            "✗  Tiling",
            "Villaboard sheet",
            "Materials Total",
            "Notes for Client",
            "Job Details",
            "CONTRACTOR/TRADE",
            "CLIENT/PRINCIPAL",
            "Issued by Acme Plumbing  |  JP-ABCDEF12",
        ):
            assert expected in text, expected

    def test_compact_docx_shows_overflow_and_columns(self):
        content = render_docx(compose(_job(), _materials(), ExportLayout.COMPACT), ExportLayout.COMPACT)
        text = _docx_text(content)
        assert "12. Step 12" in text
        assert "13. Step 13" not in text
        assert "+3 more items..." in text
        document = Document(io.BytesIO(content))
        column_table = [t for t in document.tables if "What's Included" in t.rows[0].cells[0].text]
        assert column_table
        assert "Not Included" in column_table[0].rows[0].cells[1].text

    def test_docx_core_properties(self):
        content = render_docx(compose(_job(), issuer=BusinessProfile(business_name="Acme Plumbing")))
        document = Document(io.BytesIO(content))
        assert document.core_properties.title == "JP-ABCDEF12"
        assert document.core_properties.author == "Acme Plumbing"

    def test_markup_characters_are_kept_verbatim(self):
        sections = [Paragraph(Part.SUMMARY, "Pipes < 20mm & fittings > 15mm")]
        assert "Pipes < 20mm & fittings > 15mm" in _docx_text(render_docx(sections))
        assert render_pdf(sections).startswith(b"%PDF")

    def test_client_acceptance_details(self):
        job = _job().model_copy(update={
            "client_accepted_at": datetime(2026, 3, 9, tzinfo=timezone.utc),
            "client_signed_name": "Sam C.",
            "quote_number": "Q-1042",
            "client_accepted_quote_version": 2,
            "client_acceptance_note": "Start after Easter please.",
        })
        sections = compose(job)
        text = _docx_text(render_docx(sections))
        for expected in (
            "Accepted by Sam C. on 9 March 2026",
            "Quote: Q-1042 v2",
            "Client note:",
            "Start after Easter please.",
        ):
            assert expected in text, expected
        assert render_pdf(sections).startswith(b"%PDF")
