"""Quote Parser - decode AI pricing payloads into typed values.

The AI quote is stored as raw text that is *expected* to be JSON of the form
``{"labour": {...}, "materials": {...}, "totalEstimate": {...}}``. In practice
it may be missing, truncated, free text, or use numbers where strings were
asked for. Decoding therefore goes through an explicit result type and never
raises; callers that only care about "is there a usable quote" collapse the
result with ``parse_quote``.
"""
import json
import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from utils.formatting import format_currency_whole, round_half_up

logger = logging.getLogger(__name__)


# Range policy: low is 5% under base, high is 10% over, both to the nearest $10
RANGE_LOW_FACTOR = Decimal("0.95")
RANGE_HIGH_FACTOR = Decimal("1.10")
RANGE_ROUNDING_STEP = Decimal("10")
RANGE_FALLBACK_SPREAD = Decimal("50")

# Two dollar amounts closer than this are treated as the same figure
RANGE_DISTINCT_THRESHOLD = Decimal("1")

NOT_AVAILABLE = "N/A"

_DOLLAR_AMOUNT = re.compile(r"\$[\d,]+\.?\d*")
_CURRENCY_NOISE = re.compile(r"[$,£€¥\s]")
_LEADING_NUMBER = re.compile(r"^[-+]?(\d+\.?\d*|\.\d+)")


# ============================================
# Typed quote payload
# ============================================

class _QuotePart(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    @field_validator("*", mode="before")
    @classmethod
    def _numbers_as_text(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class LabourQuote(_QuotePart):
    description: Optional[str] = None
    hours: Optional[str] = None
    rate_per_hour: Optional[str] = Field(None, alias="ratePerHour")
    total: Optional[str] = None


class MaterialsQuote(_QuotePart):
    description: Optional[str] = None
    total_materials_cost: Optional[str] = Field(None, alias="totalMaterialsCost")


class TotalEstimateQuote(_QuotePart):
    description: Optional[str] = None
    total_job_estimate: Optional[str] = Field(None, alias="totalJobEstimate")


class ParsedQuote(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    labour: Optional[LabourQuote] = None
    materials: Optional[MaterialsQuote] = None
    total_estimate: Optional[TotalEstimateQuote] = Field(None, alias="totalEstimate")


class AIMaterialItem(_QuotePart):
    item: Optional[str] = None
    quantity: Optional[str] = None
    estimated_cost: Optional[str] = Field(None, alias="estimatedCost")


_ai_materials_adapter = TypeAdapter(List[AIMaterialItem])


@dataclass(frozen=True)
class QuoteDecodeResult:
    """Either a decoded quote or the reason decoding failed."""
    quote: Optional[ParsedQuote] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.quote is not None

    @classmethod
    def success(cls, quote: ParsedQuote) -> "QuoteDecodeResult":
        return cls(quote=quote)

    @classmethod
    def failure(cls, reason: str) -> "QuoteDecodeResult":
        return cls(error=reason)


@dataclass(frozen=True)
class EstimateRange:
    base_total: Optional[Decimal]
    low_estimate: Optional[Decimal]
    high_estimate: Optional[Decimal]
    formatted_range: str

    @classmethod
    def unavailable(cls) -> "EstimateRange":
        return cls(None, None, None, NOT_AVAILABLE)

    def to_dict(self) -> dict:
        def _num(value):
            return float(value) if value is not None else None
        return {
            "baseTotal": _num(self.base_total),
            "lowEstimate": _num(self.low_estimate),
            "highEstimate": _num(self.high_estimate),
            "formattedRange": self.formatted_range,
        }


# ============================================
# Decoding
# ============================================

def _load_json(raw: Optional[str]) -> Any:
    if raw is None or not str(raw).strip():
        raise ValueError("empty payload")
    return json.loads(raw)


def decode_quote(raw: Optional[str]) -> QuoteDecodeResult:
    """Decode a raw AI quote. Never raises."""
    try:
        payload = _load_json(raw)
    except (ValueError, TypeError) as e:
        return QuoteDecodeResult.failure(f"not valid JSON: {e}")

    if not isinstance(payload, dict):
        return QuoteDecodeResult.failure(f"expected a JSON object, got {type(payload).__name__}")

    try:
        return QuoteDecodeResult.success(ParsedQuote.model_validate(payload))
    except ValidationError as e:
        return QuoteDecodeResult.failure(f"unexpected quote shape: {e.error_count()} error(s)")


def parse_quote(raw: Optional[str]) -> Optional[ParsedQuote]:
    result = decode_quote(raw)
    if not result.ok:
        logger.debug("Quote payload skipped: %s", result.error)
    return result.quote


def parse_ai_materials(raw: Optional[str]) -> Optional[List[AIMaterialItem]]:
    """Decode the AI materials JSON array; None when it is absent or malformed."""
    try:
        payload = _load_json(raw)
        return _ai_materials_adapter.validate_python(payload)
    except (ValueError, TypeError, ValidationError):
        return None


# ============================================
# Estimate range
# ============================================

def extract_amount(text: Optional[str]) -> Optional[Decimal]:
    """'$1,385.50' -> Decimal('1385.50'); leading number of the cleaned text, else None."""
    if not text:
        return None
    match = _LEADING_NUMBER.match(_CURRENCY_NOISE.sub("", text))
    if not match:
        return None
    try:
        return Decimal(match.group(0))
    except InvalidOperation:
        return None


def _base_from_estimate_text(text: str) -> Optional[Decimal]:
    amounts = _DOLLAR_AMOUNT.findall(text)
    if not amounts:
        return extract_amount(text)

    first = extract_amount(amounts[0])
    second = extract_amount(amounts[1]) if len(amounts) > 1 else None
    if first is None:
        return None
    if second is not None and abs(first - second) > RANGE_DISTINCT_THRESHOLD:
        return (first + second) / 2
    return first


def _base_from_parts(quote: ParsedQuote) -> Optional[Decimal]:
    labour = extract_amount(quote.labour.total) if quote.labour else None
    materials = extract_amount(quote.materials.total_materials_cost) if quote.materials else None
    labour = labour if labour is not None else Decimal(0)
    materials = materials if materials is not None else Decimal(0)
    if labour > 0 or materials > 0:
        return labour + materials
    return None


def calculate_estimate_range(raw: Optional[str]) -> EstimateRange:
    """
    Derive a low/high estimate range from an AI quote.

    The base comes from totalEstimate.totalJobEstimate, falling back to
    labour + materials totals. Returns base_total=None and "N/A" when no
    positive figure can be found.
    """
    quote = parse_quote(raw)
    if quote is None:
        return EstimateRange.unavailable()

    base = None
    if quote.total_estimate and quote.total_estimate.total_job_estimate:
        base = _base_from_estimate_text(quote.total_estimate.total_job_estimate)
    if base is None:
        base = _base_from_parts(quote)

    if base is None or base <= 0:
        return EstimateRange.unavailable()

    try:
        low = round_half_up(base * RANGE_LOW_FACTOR, RANGE_ROUNDING_STEP)
        high = round_half_up(base * RANGE_HIGH_FACTOR, RANGE_ROUNDING_STEP)

        if low >= high:
            low = max(Decimal(0), round_half_up(base - RANGE_FALLBACK_SPREAD))
            high = round_half_up(base + RANGE_FALLBACK_SPREAD)

        formatted = f"{format_currency_whole(low)} – {format_currency_whole(high)}"
    except InvalidOperation:
        # more digits than the decimal context holds
        logger.warning("AI quote total could not be rounded: %s", base)
        return EstimateRange.unavailable()

    return EstimateRange(
        base_total=base,
        low_estimate=low,
        high_estimate=high,
        formatted_range=formatted,
    )
