"""
Job Pack Document Composer

Turns a job snapshot (plus its itemised material lines and the issuer's
business profile) into an ordered list of document sections. The result is a
pure function of its inputs: nothing is read from the database, nothing is
written, and composing the same snapshot twice yields equal section lists.

Canonical part order (never reordered by layout):
    header -> title/metadata -> summary -> pricing -> scope of work
    -> inclusions -> exclusions -> materials -> client notes -> job details
    -> signature block -> footer

Two layout strategies share that order:
- STANDARD: full detail, no caps, multi-page, materials disclaimer box
- COMPACT: fits on one page, fixed caps per part with "+N more"
  indicators, inclusions/exclusions side by side

Malformed AI content never raises out of here: a part whose payload cannot be
decoded is simply left out.
"""
import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence, Union

from models import BusinessProfile, ExportLayout, Job, JobMaterial
from services.document_sections import (
    BulletList, Column, Footer, Heading, HighlightBox, NumberedList, Paragraph,
    Part, Polarity, Section, SignatureBlock, SignatureParty, Table, Tone,
)
from services.quote_parser import calculate_estimate_range, parse_ai_materials, parse_quote
from services.section_splitter import cap, overflow_label, split_items
from utils.formatting import (
    format_abn, format_currency, format_date, format_quantity, truncate_text,
)

logger = logging.getLogger(__name__)

DOCUMENT_REF_PREFIX = os.getenv("DOCUMENT_REF_PREFIX", "JP")
DEFAULT_ISSUER_NAME = os.getenv("DEFAULT_ISSUER_NAME", "Job Pack")

MATERIALS_DISCLAIMER = (
    "Material prices are an estimate only and must be checked against current supplier pricing."
)
OVERRIDE_NOTE = "Final materials notes (overrides AI suggestion)"
DRAFT_NOTICE = (
    "This job pack contains AI-generated content that has not been confirmed. "
    "Review it and mark the AI pack as confirmed before sending it to a client."
)
FOOTER_NOTE = "Document formatted for Australian standards. Review required."


# ============================================
# Layout strategies
# ============================================

@dataclass(frozen=True)
class LayoutStrategy:
    """Per-layout caps and presentation switches. None means uncapped."""
    layout: ExportLayout
    scope_max_items: Optional[int] = None
    inclusions_max_items: Optional[int] = None
    exclusions_max_items: Optional[int] = None
    materials_max_rows: Optional[int] = None
    text_max_chars: Optional[int] = None
    show_materials_disclaimer: bool = True
    two_column_lists: bool = False


STANDARD_LAYOUT = LayoutStrategy(layout=ExportLayout.STANDARD)

# Compact caps keep the pack on one page; they are product policy, not derived values
COMPACT_LAYOUT = LayoutStrategy(
    layout=ExportLayout.COMPACT,
    scope_max_items=int(os.getenv("COMPACT_SCOPE_MAX_ITEMS", "12")),
    inclusions_max_items=int(os.getenv("COMPACT_INCLUSIONS_MAX_ITEMS", "6")),
    exclusions_max_items=int(os.getenv("COMPACT_EXCLUSIONS_MAX_ITEMS", "6")),
    materials_max_rows=int(os.getenv("COMPACT_MATERIALS_MAX_ROWS", "6")),
    text_max_chars=int(os.getenv("COMPACT_TEXT_MAX_CHARS", "250")),
    show_materials_disclaimer=False,
    two_column_lists=True,
)

LAYOUTS = {
    ExportLayout.STANDARD: STANDARD_LAYOUT,
    ExportLayout.COMPACT: COMPACT_LAYOUT,
}


def get_layout(layout: Union[ExportLayout, str, LayoutStrategy]) -> LayoutStrategy:
    if isinstance(layout, LayoutStrategy):
        return layout
    return LAYOUTS[ExportLayout(layout)]


def document_reference(job_id: str) -> str:
    return f"{DOCUMENT_REF_PREFIX}-{job_id[:8].upper()}"


# ============================================
# Composer
# ============================================

class JobPackComposer:
    """Builds the section list for one job pack, part by part."""

    def compose(
        self,
        job: Job,
        materials: Sequence[JobMaterial] = (),
        layout: Union[ExportLayout, str, LayoutStrategy] = ExportLayout.STANDARD,
        issuer: Optional[BusinessProfile] = None,
        include_draft_notice: bool = False,
    ) -> List[Section]:
        strategy = get_layout(layout)
        sections: List[Section] = []
        sections += self._header(issuer)
        sections += self._title(job, include_draft_notice)
        sections += self._summary(job, strategy)
        sections += self._pricing(job, strategy)
        sections += self._scope(job, strategy)
        sections += self._inclusions(job, strategy)
        sections += self._exclusions(job, strategy)
        sections += self._materials(job, materials, strategy)
        sections += self._text_part(Part.CLIENT_NOTES, "Notes for Client", job.ai_client_notes, strategy)
        sections += self._text_part(Part.JOB_DETAILS, "Job Details", job.notes, strategy)
        sections += self._signature(job, issuer)
        sections.append(self._footer(job, issuer))
        return sections

    # --- header / title -------------------------------------------------

    def _header(self, issuer: Optional[BusinessProfile]) -> List[Section]:
        if not issuer or not issuer.business_name:
            return [Heading(Part.HEADER, DEFAULT_ISSUER_NAME, level=1)]

        details = []
        if issuer.trading_name and issuer.trading_name != issuer.business_name:
            details.append(f"Trading as {issuer.trading_name}")
        if issuer.abn:
            details.append(f"ABN {format_abn(issuer.abn)}")
        details += [v for v in (issuer.phone, issuer.email) if v]

        address = ", ".join(
            v for v in (
                issuer.address_line1, issuer.address_line2,
                " ".join(v for v in (issuer.suburb, issuer.state, issuer.postcode) if v),
            ) if v
        )
        sections: List[Section] = [Heading(Part.HEADER, issuer.business_name, level=1)]
        if details:
            sections.append(Paragraph(Part.HEADER, "  |  ".join(details), style="muted"))
        if address:
            sections.append(Paragraph(Part.HEADER, address, style="muted"))
        return sections

    def _title(self, job: Job, include_draft_notice: bool) -> List[Section]:
        rows = [
            (label, value) for label, value in (
                ("Trade", job.trade_type),
                ("Property", job.property_type),
                ("Address", job.address),
                ("Client", job.client_name),
                ("Date", format_date(job.created_at)),
            ) if value
        ]
        sections: List[Section] = [
            Heading(Part.TITLE, job.title or "Job Pack", level=1),
            Paragraph(Part.TITLE, "Job Pack / Quote", style="muted"),
        ]
        if rows:
            sections.append(Table(Part.TITLE, headers=(), rows=tuple(rows), column_weights=(1, 3)))
        if include_draft_notice:
            sections.append(HighlightBox(Part.TITLE, "AI-generated draft", note=DRAFT_NOTICE, tone=Tone.WARNING))
        return sections

    # --- free text parts -------------------------------------------------

    def _summary(self, job: Job, strategy: LayoutStrategy) -> List[Section]:
        return self._text_part(Part.SUMMARY, "Summary", job.ai_summary, strategy)

    def _text_part(self, part: Part, title: str, text: Optional[str], strategy: LayoutStrategy) -> List[Section]:
        if not text or not text.strip():
            return []
        return [
            Heading(part, title),
            Paragraph(part, truncate_text(text, strategy.text_max_chars)),
        ]

    # --- pricing ---------------------------------------------------------

    def _pricing(self, job: Job, strategy: LayoutStrategy) -> List[Section]:
        quote = parse_quote(job.ai_quote)
        if quote is None:
            return []
        estimate = calculate_estimate_range(job.ai_quote)
        if estimate.base_total is None:
            return []

        sections: List[Section] = [Heading(Part.PRICING, "Pricing")]

        if quote.labour:
            sections.append(Heading(Part.PRICING, "Labour", level=3))
            if quote.labour.description:
                sections.append(Paragraph(Part.PRICING, truncate_text(quote.labour.description, strategy.text_max_chars)))
            details = [
                f"{label}: {value}" for label, value in (
                    ("Hours", quote.labour.hours),
                    ("Rate", quote.labour.rate_per_hour),
                    ("Total", quote.labour.total),
                ) if value
            ]
            if details:
                sections.append(Paragraph(Part.PRICING, "  |  ".join(details)))

        if quote.materials:
            sections.append(Heading(Part.PRICING, "Materials", level=3))
            if quote.materials.description:
                sections.append(Paragraph(Part.PRICING, truncate_text(quote.materials.description, strategy.text_max_chars)))
            if quote.materials.total_materials_cost:
                sections.append(Paragraph(Part.PRICING, f"Total: {quote.materials.total_materials_cost}"))

        headline = None
        if quote.total_estimate and quote.total_estimate.total_job_estimate:
            headline = quote.total_estimate.total_job_estimate.strip()
        sections.append(HighlightBox(
            Part.PRICING,
            label="Total Estimate",
            value=headline or estimate.formatted_range,
            note=f"Estimated range: {estimate.formatted_range}",
        ))
        return sections

    # --- lists -----------------------------------------------------------

    def _scope(self, job: Job, strategy: LayoutStrategy) -> List[Section]:
        split = split_items(job.ai_scope_of_work, strategy.scope_max_items)
        if not split.items:
            return []
        return [
            Heading(Part.SCOPE, "Scope of Work"),
            NumberedList(Part.SCOPE, split.items, overflow=split.overflow_label),
        ]

    def _inclusions(self, job: Job, strategy: LayoutStrategy) -> List[Section]:
        return self._polar_list(
            Part.INCLUSIONS, "What's Included", job.ai_inclusions, Polarity.POSITIVE,
            strategy.inclusions_max_items, Column.LEFT, strategy,
        )

    def _exclusions(self, job: Job, strategy: LayoutStrategy) -> List[Section]:
        return self._polar_list(
            Part.EXCLUSIONS, "Not Included", job.ai_exclusions, Polarity.NEGATIVE,
            strategy.exclusions_max_items, Column.RIGHT, strategy,
        )

    def _polar_list(
        self, part: Part, title: str, text: Optional[str], polarity: Polarity,
        max_items: Optional[int], column: Column, strategy: LayoutStrategy,
    ) -> List[Section]:
        split = split_items(text, max_items)
        if not split.items:
            return []
        if strategy.two_column_lists:
            # Heading travels with the list so the renderer can place both columns together
            return [BulletList(part, split.items, polarity, split.overflow_label, column, title)]
        return [
            Heading(part, title),
            BulletList(part, split.items, polarity, split.overflow_label),
        ]

    # --- materials -------------------------------------------------------

    def _materials(self, job: Job, materials: Sequence[JobMaterial], strategy: LayoutStrategy) -> List[Section]:
        """Itemised lines, else the owner's override text, else the AI suggestion."""
        if materials:
            sections = self._materials_from_lines(job, materials, strategy)
            is_estimate = job.materials_are_rough_estimate
        elif job.has_materials_override:
            sections = [
                Heading(Part.MATERIALS, "Materials"),
                Paragraph(Part.MATERIALS, OVERRIDE_NOTE, style="note"),
                Paragraph(Part.MATERIALS, truncate_text(job.materials_override_text, strategy.text_max_chars)),
            ]
            is_estimate = job.materials_are_rough_estimate
        else:
            sections = self._materials_from_ai(job, strategy)
            is_estimate = True

        if sections and is_estimate and strategy.show_materials_disclaimer:
            sections.append(HighlightBox(Part.MATERIALS, "Note", note=MATERIALS_DISCLAIMER, tone=Tone.WARNING))
        return sections

    def _materials_from_lines(self, job: Job, materials: Sequence[JobMaterial], strategy: LayoutStrategy) -> List[Section]:
        rows = tuple(
            (m.name, format_quantity(m.quantity), m.unit_label, format_currency(m.line_total or 0))
            for m in materials
        )
        shown = cap(rows, strategy.materials_max_rows)
        line_sum = sum((m.line_total or Decimal(0) for m in materials), Decimal(0))
        total = job.materials_total if job.materials_total is not None else line_sum
        return [
            Heading(Part.MATERIALS, "Materials"),
            Table(
                Part.MATERIALS,
                headers=("Material", "Qty", "Unit", "Total"),
                rows=shown,
                overflow=overflow_label(len(rows) - len(shown), "rows"),
                column_weights=(8, 2, 3, 3),
            ),
            HighlightBox(Part.MATERIALS, "Materials Total", format_currency(total)),
        ]

    def _materials_from_ai(self, job: Job, strategy: LayoutStrategy) -> List[Section]:
        items = parse_ai_materials(job.ai_materials)
        if not items:
            return []
        rows = tuple((m.item or "", m.quantity or "-", m.estimated_cost or "-") for m in items)
        shown = cap(rows, strategy.materials_max_rows)
        return [
            Heading(Part.MATERIALS, "Materials"),
            Table(
                Part.MATERIALS,
                headers=("Item", "Qty", "Est. Cost"),
                rows=shown,
                overflow=overflow_label(len(rows) - len(shown), "rows"),
                column_weights=(9, 3, 4),
            ),
        ]

    # --- closing ---------------------------------------------------------

    def _signature(self, job: Job, issuer: Optional[BusinessProfile]) -> List[Section]:
        parties = (
            SignatureParty("CONTRACTOR/TRADE", (issuer.business_name if issuer else None) or ""),
            SignatureParty("CLIENT/PRINCIPAL", job.client_name or ""),
        )
        accepted_by = job.client_accepted_by_name or job.client_signed_name
        if not (job.client_accepted_at and accepted_by):
            return [Heading(Part.SIGNATURE, "Client Acceptance"), SignatureBlock(Part.SIGNATURE, parties=parties)]

        accepted_quote = None
        if job.quote_number and job.client_accepted_quote_version:
            accepted_quote = f"Quote: {job.quote_number} v{job.client_accepted_quote_version}"
        note = (job.client_acceptance_note or "").strip()
        return [Heading(Part.SIGNATURE, "Client Acceptance"), SignatureBlock(
            Part.SIGNATURE,
            parties=parties,
            accepted_by=accepted_by,
            accepted_email=job.client_signed_email,
            accepted_on=format_date(job.client_accepted_at),
            accepted_quote=accepted_quote,
            acceptance_note=note or None,
        )]

    def _footer(self, job: Job, issuer: Optional[BusinessProfile]) -> Footer:
        return Footer(
            Part.FOOTER,
            document_ref=document_reference(job.job_id),
            issuer_name=issuer.business_name if issuer else None,
            note=FOOTER_NOTE,
        )


job_pack_composer = JobPackComposer()


def compose(
    job: Job,
    materials: Sequence[JobMaterial] = (),
    layout: Union[ExportLayout, str, LayoutStrategy] = ExportLayout.STANDARD,
    issuer: Optional[BusinessProfile] = None,
    include_draft_notice: bool = False,
) -> List[Section]:
    return job_pack_composer.compose(job, materials, layout, issuer, include_draft_notice)
