"""Job Pack Renderer - draw composed section lists as PDF (reportlab) or DOCX (python-docx).

The renderer knows nothing about jobs, plans or pricing. It walks the ordered
section list produced by the composer and draws each kind; layout only changes
typography, margins and the side-by-side placement of column lists.
"""
import io
import logging
from typing import Dict, List, Optional, Sequence, Tuple
from xml.sax.saxutils import escape

from reportlab.lib.colors import HexColor
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import mm
from reportlab.platypus import (
    SimpleDocTemplate, Paragraph as PdfParagraph, Spacer, Table as PdfTable,
    TableStyle, HRFlowable, KeepTogether,
)

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Pt, RGBColor, Cm

from models import ExportLayout
from services.document_sections import (
    BulletList, Column, Footer, Heading, HighlightBox, NumberedList, Paragraph,
    Part, Polarity, Section, SignatureBlock, Table, Tone,
)

logger = logging.getLogger(__name__)

# Brand colors
SLATE_900 = HexColor('#0f172a')
SLATE_600 = HexColor('#475569')
GRAY_500 = HexColor('#6b7280')
GRAY_200 = HexColor('#e5e7eb')
GRAY_50 = HexColor('#f9fafb')
ORANGE_500 = HexColor('#f97316')
ORANGE_50 = HexColor('#fff7ed')
AMBER_50 = HexColor('#fffbeb')
AMBER_600 = HexColor('#d97706')
WHITE = HexColor('#ffffff')

DOCX_SLATE = RGBColor(0x0F, 0x17, 0x2A)
DOCX_GRAY = RGBColor(0x6B, 0x72, 0x80)
DOCX_ORANGE = RGBColor(0xF9, 0x73, 0x16)
DOCX_AMBER = RGBColor(0xD9, 0x77, 0x06)

# ZapfDingbats glyphs: '4' is a check mark, '8' is a cross
_PDF_MARKERS = {
    Polarity.POSITIVE: ('4', '#16a34a'),
    Polarity.NEGATIVE: ('8', '#dc2626'),
}

_TYPE_SCALE: Dict[ExportLayout, Dict[str, float]] = {
    ExportLayout.STANDARD: {"title": 20, "h2": 13, "h3": 11, "body": 10, "small": 8, "margin": 20, "gap": 4},
    ExportLayout.COMPACT: {"title": 15, "h2": 10.5, "h3": 9.5, "body": 8.5, "small": 7, "margin": 12, "gap": 1.5},
}

PDF_MEDIA_TYPE = "application/pdf"
DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def _pair_columns(sections: Sequence[Section]) -> List[object]:
    """Group a left column list with the right column list that follows it."""
    grouped: List[object] = []
    i = 0
    while i < len(sections):
        section = sections[i]
        nxt = sections[i + 1] if i + 1 < len(sections) else None
        if (
            isinstance(section, BulletList) and section.column == Column.LEFT
            and isinstance(nxt, BulletList) and nxt.column == Column.RIGHT
        ):
            grouped.append((section, nxt))
            i += 2
            continue
        grouped.append(section)
        i += 1
    return grouped


# ============================================================================
# PDF
# ============================================================================

class PdfJobPackRenderer:
    """reportlab story builder for composed job packs."""

    def __init__(self, layout: ExportLayout = ExportLayout.STANDARD):
        self.layout = ExportLayout(layout)
        self.scale = _TYPE_SCALE[self.layout]
        self.styles = getSampleStyleSheet()
        self._setup_custom_styles()

    def _setup_custom_styles(self):
        s = self.scale
        self.styles.add(ParagraphStyle(
            name='PackIssuer',
            parent=self.styles['Normal'],
            fontName='Helvetica-Bold',
            fontSize=s["h2"] + 1,
            textColor=ORANGE_500,
            spaceAfter=s["gap"],
        ))
        self.styles.add(ParagraphStyle(
            name='PackTitle',
            parent=self.styles['Title'],
            fontSize=s["title"],
            leading=s["title"] + 4,
            textColor=SLATE_900,
            alignment=0,
            spaceAfter=s["gap"],
        ))
        self.styles.add(ParagraphStyle(
            name='SectionHeader',
            parent=self.styles['Heading2'],
            fontSize=s["h2"],
            textColor=SLATE_900,
            spaceBefore=s["gap"] * 3,
            spaceAfter=s["gap"],
        ))
        self.styles.add(ParagraphStyle(
            name='SubHeader',
            parent=self.styles['Heading3'],
            fontSize=s["h3"],
            textColor=SLATE_600,
            spaceBefore=s["gap"] * 2,
            spaceAfter=s["gap"] / 2,
        ))
        self.styles.add(ParagraphStyle(
            name='PackBody',
            parent=self.styles['Normal'],
            fontSize=s["body"],
            leading=s["body"] * 1.35,
            textColor=SLATE_900,
            spaceAfter=s["gap"],
        ))
        self.styles.add(ParagraphStyle(
            name='PackMuted',
            parent=self.styles['PackBody'],
            textColor=GRAY_500,
        ))
        self.styles.add(ParagraphStyle(
            name='PackNote',
            parent=self.styles['PackBody'],
            fontName='Helvetica-Oblique',
            textColor=SLATE_600,
        ))
        self.styles.add(ParagraphStyle(
            name='PackSmall',
            parent=self.styles['PackBody'],
            fontSize=s["small"],
            leading=s["small"] * 1.3,
            textColor=GRAY_500,
        ))
        self.styles.add(ParagraphStyle(
            name='HighlightValue',
            parent=self.styles['PackBody'],
            fontName='Helvetica-Bold',
            fontSize=s["h2"] + 2,
            leading=(s["h2"] + 2) * 1.3,
            alignment=TA_RIGHT,
        ))
        self.styles.add(ParagraphStyle(
            name='PackFooter',
            parent=self.styles['Normal'],
            fontSize=s["small"],
            textColor=GRAY_500,
            alignment=TA_CENTER,
        ))

    # --- entry point -----------------------------------------------------

    def render(self, sections: Sequence[Section]) -> bytes:
        footer = next((s for s in sections if isinstance(s, Footer)), None)
        margin = self.scale["margin"] * mm

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            topMargin=margin,
            bottomMargin=margin + 8 * mm,
            leftMargin=margin,
            rightMargin=margin,
            title=footer.document_ref if footer else "Job Pack",
        )
        self.width = doc.width

        story = []
        for item in _pair_columns(sections):
            story += self._flowables(item)

        on_page = self._page_footer(footer)
        doc.build(story, onFirstPage=on_page, onLaterPages=on_page)
        return buffer.getvalue()

    def _page_footer(self, footer: Optional[Footer]):
        parts = []
        if footer and footer.issuer_name:
            parts.append(f"Issued by {footer.issuer_name}")
        if footer:
            parts.append(footer.document_ref)
        text = "  |  ".join(parts)

        def draw(canvas, doc):
            canvas.saveState()
            canvas.setFont('Helvetica', self.scale["small"])
            canvas.setFillColor(GRAY_500)
            y = self.scale["margin"] * mm
            canvas.drawString(doc.leftMargin, y, text)
            canvas.drawRightString(doc.leftMargin + doc.width, y, f"Page {doc.page}")
            canvas.restoreState()

        return draw

    # --- per kind ----------------------------------------------------------

    def _p(self, text: str, style: str) -> PdfParagraph:
        return PdfParagraph(escape(text), self.styles[style])

    def _flowables(self, item) -> list:
        if isinstance(item, tuple):
            return [self._columns(*item)]
        if isinstance(item, Heading):
            return self._heading(item)
        if isinstance(item, Paragraph):
            style = {"muted": 'PackMuted', "note": 'PackNote'}.get(item.style, 'PackBody')
            return [self._p(item.text, style)]
        if isinstance(item, NumberedList):
            return self._numbered(item)
        if isinstance(item, BulletList):
            return self._bullets(item)
        if isinstance(item, Table):
            return self._table(item)
        if isinstance(item, HighlightBox):
            return [self._highlight(item)]
        if isinstance(item, SignatureBlock):
            return [self._signature(item)]
        if isinstance(item, Footer):
            return self._footer(item)
        raise TypeError(f"Unsupported section kind: {type(item).__name__}")

    def _heading(self, heading: Heading) -> list:
        if heading.part == Part.HEADER:
            return [
                self._p(heading.text, 'PackIssuer'),
            ]
        if heading.level == 1:
            return [
                HRFlowable(width="100%", thickness=2, color=ORANGE_500, spaceAfter=self.scale["gap"] * 2),
                self._p(heading.text, 'PackTitle'),
            ]
        style = 'SubHeader' if heading.level >= 3 else 'SectionHeader'
        return [self._p(heading.text, style)]

    def _numbered(self, lst: NumberedList) -> list:
        out = [self._p(f"{n}. {text}", 'PackBody') for n, text in enumerate(lst.items, start=1)]
        if lst.overflow:
            out.append(self._p(f"{lst.overflow} items...", 'PackMuted'))
        return out

    def _bullet_line(self, lst: BulletList, text: str) -> PdfParagraph:
        glyph = _PDF_MARKERS.get(lst.polarity)
        if glyph:
            marker = f'<font name="ZapfDingbats" color="{glyph[1]}">{glyph[0]}</font>'
        else:
            marker = "•"
        return PdfParagraph(f"{marker}&nbsp;&nbsp;{escape(text)}", self.styles['PackBody'])

    def _bullets(self, lst: BulletList) -> list:
        out = []
        if lst.title:
            out.append(self._p(lst.title, 'SubHeader'))
        out += [self._bullet_line(lst, text) for text in lst.items]
        if lst.overflow:
            out.append(self._p(f"{lst.overflow} items...", 'PackMuted'))
        return out

    def _columns(self, left: BulletList, right: BulletList) -> PdfTable:
        half = self.width / 2
        table = PdfTable([[self._bullets(left), self._bullets(right)]], colWidths=[half, half])
        table.setStyle(TableStyle([
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ('LEFTPADDING', (0, 0), (-1, -1), 0),
            ('RIGHTPADDING', (0, 0), (0, -1), 6),
        ]))
        return table

    def _col_widths(self, table: Table, columns: int) -> List[float]:
        weights = table.column_weights or (1,) * columns
        total = float(sum(weights))
        return [self.width * w / total for w in weights]

    def _table(self, table: Table) -> list:
        body = [[self._p(cell, 'PackBody') for cell in row] for row in table.rows]
        columns = len(table.headers) or (len(table.rows[0]) if table.rows else 1)
        commands = [
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ('TOPPADDING', (0, 0), (-1, -1), 3),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 3),
        ]
        if table.headers:
            header_style = ParagraphStyle('TableHead', parent=self.styles['PackBody'], fontName='Helvetica-Bold', textColor=WHITE)
            body.insert(0, [PdfParagraph(escape(h), header_style) for h in table.headers])
            commands += [
                ('BACKGROUND', (0, 0), (-1, 0), SLATE_900),
                ('LINEBELOW', (0, 1), (-1, -1), 0.5, GRAY_200),
                ('ROWBACKGROUNDS', (0, 1), (-1, -1), [WHITE, GRAY_50]),
            ]
        else:
            body = [[self._p(row[0], 'PackMuted')] + list(cells[1:]) for row, cells in zip(table.rows, body)]
        if not body:
            return []

        pdf_table = PdfTable(body, colWidths=self._col_widths(table, columns), repeatRows=1 if table.headers else 0)
        pdf_table.setStyle(TableStyle(commands))
        out = [pdf_table]
        if table.overflow:
            out.append(self._p(f"{table.overflow}...", 'PackMuted'))
        return out

    def _highlight(self, box: HighlightBox) -> PdfTable:
        warning = box.tone == Tone.WARNING
        background = AMBER_50 if warning else ORANGE_50
        border = AMBER_600 if warning else ORANGE_500

        left = [self._p(box.label, 'SubHeader')]
        if box.note:
            left.append(self._p(box.note, 'PackNote' if warning else 'PackMuted'))
        row = [left, self._p(box.value, 'HighlightValue')] if box.value else [left]
        widths = [self.width * 0.6, self.width * 0.4] if box.value else [self.width]

        table = PdfTable([row], colWidths=widths)
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, -1), background),
            ('BOX', (0, 0), (-1, -1), 1, border),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('LEFTPADDING', (0, 0), (-1, -1), 8),
            ('RIGHTPADDING', (0, 0), (-1, -1), 8),
            ('TOPPADDING', (0, 0), (-1, -1), 6),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
        ]))
        return KeepTogether([Spacer(1, self.scale["gap"] * mm / 2), table, Spacer(1, self.scale["gap"] * mm / 2)])

    def _signature(self, block: SignatureBlock):
        cells = []
        for party in block.parties:
            cells.append([
                self._p(party.label, 'SubHeader'),
                self._p(party.name or " ", 'PackBody'),
                Spacer(1, 10 * mm if self.layout == ExportLayout.STANDARD else 6 * mm),
                HRFlowable(width="90%", thickness=0.5, color=SLATE_600, hAlign='LEFT'),
                self._p("Signature / Date", 'PackSmall'),
            ])
        width = self.width / max(len(cells), 1)
        table = PdfTable([cells], colWidths=[width] * len(cells))
        table.setStyle(TableStyle([('VALIGN', (0, 0), (-1, -1), 'TOP'), ('LEFTPADDING', (0, 0), (-1, -1), 0)]))

        flowables = [table]
        if block.acceptance_line:
            flowables.append(self._p(block.acceptance_line, 'PackNote'))
            if block.accepted_quote:
                flowables.append(self._p(block.accepted_quote, 'PackNote'))
            if block.acceptance_note:
                flowables.append(self._p("Client note:", 'SubHeader'))
                flowables.append(self._p(block.acceptance_note, 'PackBody'))
        return KeepTogether(flowables)

    def _footer(self, footer: Footer) -> list:
        out = [Spacer(1, self.scale["gap"] * 2 * mm), HRFlowable(width="100%", thickness=0.5, color=GRAY_200)]
        if footer.note:
            out.append(self._p(footer.note, 'PackFooter'))
        return out


# ============================================================================
# DOCX
# ============================================================================

class DocxJobPackRenderer:
    """python-docx writer for composed job packs."""

    def __init__(self, layout: ExportLayout = ExportLayout.STANDARD):
        self.layout = ExportLayout(layout)
        self.scale = _TYPE_SCALE[self.layout]

    def render(self, sections: Sequence[Section]) -> bytes:
        doc = Document()
        footer = next((s for s in sections if isinstance(s, Footer)), None)

        core_props = doc.core_properties
        core_props.title = footer.document_ref if footer else "Job Pack"
        if footer and footer.issuer_name:
            core_props.author = footer.issuer_name

        for section in doc.sections:
            margin = Cm(self.scale["margin"] / 10)
            section.left_margin = section.right_margin = margin
            section.top_margin = section.bottom_margin = margin

        normal = doc.styles['Normal']
        normal.font.name = 'Calibri'
        normal.font.size = Pt(self.scale["body"])

        for item in _pair_columns(sections):
            self._write(doc, item)

        buffer = io.BytesIO()
        doc.save(buffer)
        return buffer.getvalue()

    def _run(self, paragraph, text: str, size: float = None, bold: bool = False,
             italic: bool = False, color: RGBColor = None):
        run = paragraph.add_run(text)
        run.bold = bold
        run.italic = italic
        if size:
            run.font.size = Pt(size)
        if color is not None:
            run.font.color.rgb = color
        return run

    def _write(self, doc, item):
        s = self.scale
        if isinstance(item, tuple):
            table = doc.add_table(rows=1, cols=2)
            for cell, lst in zip(table.rows[0].cells, item):
                cell.paragraphs[0].text = ""
                self._write_bullets(cell, lst, first=cell.paragraphs[0])
        elif isinstance(item, Heading):
            para = doc.add_paragraph()
            if item.part == Part.HEADER:
                self._run(para, item.text, s["h2"] + 1, bold=True, color=DOCX_ORANGE)
            elif item.level == 1:
                self._run(para, item.text, s["title"], bold=True, color=DOCX_SLATE)
            else:
                self._run(para, item.text, s["h2"] if item.level == 2 else s["h3"], bold=True, color=DOCX_SLATE)
        elif isinstance(item, Paragraph):
            para = doc.add_paragraph()
            self._run(
                para, item.text,
                italic=item.style == "note",
                color=DOCX_GRAY if item.style in ("muted", "note") else None,
            )
        elif isinstance(item, NumberedList):
            for n, text in enumerate(item.items, start=1):
                self._run(doc.add_paragraph(), f"{n}. {text}")
            if item.overflow:
                self._run(doc.add_paragraph(), f"{item.overflow} items...", italic=True, color=DOCX_GRAY)
        elif isinstance(item, BulletList):
            self._write_bullets(doc, item)
        elif isinstance(item, Table):
            self._write_table(doc, item)
        elif isinstance(item, HighlightBox):
            para = doc.add_paragraph()
            color = DOCX_AMBER if item.tone == Tone.WARNING else DOCX_ORANGE
            self._run(para, item.label, s["h3"], bold=True, color=color)
            if item.value:
                self._run(para, f"  {item.value}", s["h2"], bold=True)
            if item.note:
                self._run(doc.add_paragraph(), item.note, italic=True, color=DOCX_GRAY)
        elif isinstance(item, SignatureBlock):
            self._write_signature(doc, item)
        elif isinstance(item, Footer):
            doc.add_paragraph("_" * 60)
            para = doc.add_paragraph()
            para.alignment = WD_ALIGN_PARAGRAPH.CENTER
            parts = [f"Issued by {item.issuer_name}"] if item.issuer_name else []
            parts.append(item.document_ref)
            self._run(para, "  |  ".join(parts), s["small"], color=DOCX_GRAY)
            if item.note:
                note = doc.add_paragraph()
                note.alignment = WD_ALIGN_PARAGRAPH.CENTER
                self._run(note, item.note, s["small"], color=DOCX_GRAY)
        else:
            raise TypeError(f"Unsupported section kind: {type(item).__name__}")

    def _write_bullets(self, container, lst: BulletList, first=None):
        if lst.title:
            para = first or container.add_paragraph()
            first = None
            self._run(para, lst.title, self.scale["h3"], bold=True, color=DOCX_SLATE)
        for text in lst.items:
            para = first or container.add_paragraph()
            first = None
            self._run(para, f"{lst.marker}  {text}")
        if lst.overflow:
            self._run(container.add_paragraph(), f"{lst.overflow} items...", italic=True, color=DOCX_GRAY)

    def _write_table(self, doc, table: Table):
        rows: List[Tuple[str, ...]] = list(table.rows)
        if not rows and not table.headers:
            return
        columns = len(table.headers) or len(rows[0])
        docx_table = doc.add_table(rows=0, cols=columns)
        docx_table.style = 'Table Grid'
        if table.headers:
            cells = docx_table.add_row().cells
            for cell, header in zip(cells, table.headers):
                self._run(cell.paragraphs[0], header, bold=True)
        for row in rows:
            cells = docx_table.add_row().cells
            for n, (cell, value) in enumerate(zip(cells, row)):
                self._run(cell.paragraphs[0], value, bold=not table.headers and n == 0)
        if table.overflow:
            self._run(doc.add_paragraph(), f"{table.overflow}...", italic=True, color=DOCX_GRAY)

    def _write_signature(self, doc, block: SignatureBlock):
        table = doc.add_table(rows=1, cols=max(len(block.parties), 1))
        for cell, party in zip(table.rows[0].cells, block.parties):
            self._run(cell.paragraphs[0], party.label, bold=True)
            if party.name:
                self._run(cell.add_paragraph(), party.name)
            cell.add_paragraph()
            self._run(cell.add_paragraph(), "_" * 30)
            self._run(cell.add_paragraph(), "Signature / Date", self.scale["small"], color=DOCX_GRAY)
        if block.acceptance_line:
            self._run(doc.add_paragraph(), block.acceptance_line, italic=True, color=DOCX_GRAY)
            if block.accepted_quote:
                self._run(doc.add_paragraph(), block.accepted_quote, italic=True, color=DOCX_GRAY)
            if block.acceptance_note:
                self._run(doc.add_paragraph(), "Client note:", bold=True)
                self._run(doc.add_paragraph(), block.acceptance_note)


def render_pdf(sections: Sequence[Section], layout: ExportLayout = ExportLayout.STANDARD) -> bytes:
    return PdfJobPackRenderer(layout).render(sections)


def render_docx(sections: Sequence[Section], layout: ExportLayout = ExportLayout.STANDARD) -> bytes:
    return DocxJobPackRenderer(layout).render(sections)
