"""
Document Sections - the renderer-facing vocabulary of a composed job pack.

A composed document is an ordered list of these values. The set is closed:
renderers only need to know how to draw each kind, never what a job is.
Every value records ``part``, the logical part of the job pack it belongs to
(header, pricing, scope, materials, ...), so previews and tests can address
them without caring about layout.
"""
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


class Part(str, Enum):
    """Logical parts of a job pack, in document order."""
    HEADER = "header"
    TITLE = "title"
    SUMMARY = "summary"
    PRICING = "pricing"
    SCOPE = "scope"
    INCLUSIONS = "inclusions"
    EXCLUSIONS = "exclusions"
    MATERIALS = "materials"
    CLIENT_NOTES = "client_notes"
    JOB_DETAILS = "job_details"
    SIGNATURE = "signature"
    FOOTER = "footer"


class Polarity(str, Enum):
    POSITIVE = "positive"   # ✓ inclusions
    NEGATIVE = "negative"   # ✗ exclusions
    NEUTRAL = "neutral"


class Tone(str, Enum):
    INFO = "info"
    WARNING = "warning"


class Column(str, Enum):
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class Heading:
    part: Part
    text: str
    level: int = 2  # 1 = document title, 2 = section, 3 = subheading


@dataclass(frozen=True)
class Paragraph:
    part: Part
    text: str
    style: str = "body"  # body | muted | note


@dataclass(frozen=True)
class NumberedList:
    part: Part
    items: Tuple[str, ...]
    overflow: Optional[str] = None


@dataclass(frozen=True)
class BulletList:
    part: Part
    items: Tuple[str, ...]
    polarity: Polarity = Polarity.NEUTRAL
    overflow: Optional[str] = None
    column: Optional[Column] = None
    title: Optional[str] = None  # set when the list is laid out in a column

    @property
    def marker(self) -> str:
        return {Polarity.POSITIVE: "✓", Polarity.NEGATIVE: "✗"}.get(self.polarity, "•")


@dataclass(frozen=True)
class Table:
    part: Part
    headers: Tuple[str, ...]
    rows: Tuple[Tuple[str, ...], ...]
    overflow: Optional[str] = None
    column_weights: Optional[Tuple[int, ...]] = None


@dataclass(frozen=True)
class HighlightBox:
    part: Part
    label: str
    value: str = ""
    note: Optional[str] = None
    tone: Tone = Tone.INFO


@dataclass(frozen=True)
class SignatureParty:
    label: str
    name: str = ""


@dataclass(frozen=True)
class SignatureBlock:
    part: Part
    parties: Tuple[SignatureParty, ...]
    accepted_by: Optional[str] = None
    accepted_email: Optional[str] = None
    accepted_on: Optional[str] = None
    accepted_quote: Optional[str] = None
    acceptance_note: Optional[str] = None

    @property
    def acceptance_line(self) -> Optional[str]:
        """'Accepted by X (email) on date', or None when the client has not accepted."""
        if not self.accepted_by:
            return None
        line = f"Accepted by {self.accepted_by}"
        if self.accepted_email:
            line += f" ({self.accepted_email})"
        if self.accepted_on:
            line += f" on {self.accepted_on}"
        return line


@dataclass(frozen=True)
class Footer:
    part: Part
    document_ref: str
    issuer_name: Optional[str] = None
    note: Optional[str] = None


Section = Union[Heading, Paragraph, NumberedList, BulletList, Table, HighlightBox, SignatureBlock, Footer]

SECTION_KINDS = (Heading, Paragraph, NumberedList, BulletList, Table, HighlightBox, SignatureBlock, Footer)


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


def section_to_dict(section: Section) -> Dict[str, Any]:
    """JSON-safe representation used by the preview endpoint."""
    return {"kind": type(section).__name__, **_plain(asdict(section))}
