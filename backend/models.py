from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
import uuid

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class UserRole(str, Enum):
    ROLE_TRADIE = "ROLE_TRADIE"
    ROLE_CLIENT = "ROLE_CLIENT"
    ROLE_ADMIN = "ROLE_ADMIN"

class AIReviewStatus(str, Enum):
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    CONFIRMED = "confirmed"

class PlanTier(str, Enum):
    FREE = "FREE"
    TRIAL = "TRIAL"
    PRO = "PRO"
    BUSINESS = "BUSINESS"

class PlanStatus(str, Enum):
    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"

class ExportLayout(str, Enum):
    STANDARD = "standard"
    COMPACT = "compact"

class ExportFileType(str, Enum):
    PDF = "pdf"
    DOCX = "docx"

class AuditAction(str, Enum):
    JOB_PACK_EXPORTED = "JOB_PACK_EXPORTED"
    JOB_PACK_EXPORT_DENIED = "JOB_PACK_EXPORT_DENIED"
    JOB_PACK_EXPORT_FAILED = "JOB_PACK_EXPORT_FAILED"


def _coerce_decimal(value: Any) -> Optional[Decimal]:
    """Accept floats, strings, Decimal and bson Decimal128 from Mongo."""
    if value is None or value == "":
        return None
    if hasattr(value, "to_decimal"):
        return value.to_decimal()
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


# ============================================================================
# JOB SNAPSHOT MODELS (read-only here; owned by the job editing surface)
# ============================================================================

class Job(BaseModel):
    model_config = ConfigDict(extra="ignore")

    job_id: str
    owner_id: str
    title: Optional[str] = None
    trade_type: Optional[str] = None
    property_type: Optional[str] = None
    address: Optional[str] = None
    client_name: Optional[str] = None
    created_at: Optional[datetime] = None

    ai_review_status: AIReviewStatus = AIReviewStatus.DRAFT
    ai_quote: Optional[str] = None
    ai_summary: Optional[str] = None
    ai_scope_of_work: Optional[str] = None
    ai_inclusions: Optional[str] = None
    ai_exclusions: Optional[str] = None
    ai_client_notes: Optional[str] = None
    ai_materials: Optional[str] = None

    materials_override_text: Optional[str] = None
    materials_total: Optional[Decimal] = None
    materials_are_rough_estimate: bool = False

    notes: Optional[str] = None

    # Client acceptance (written by the client portal)
    client_accepted_at: Optional[datetime] = None
    client_accepted_by_name: Optional[str] = None
    client_signed_name: Optional[str] = None
    client_signed_email: Optional[str] = None
    client_accepted_quote_version: Optional[int] = None
    client_acceptance_note: Optional[str] = None
    quote_number: Optional[str] = None

    @field_validator("materials_total", mode="before")
    @classmethod
    def _materials_total_decimal(cls, value):
        return _coerce_decimal(value)

    @field_validator("ai_review_status", mode="before")
    @classmethod
    def _unknown_status_is_draft(cls, value):
        # Anything unrecognised must never satisfy the confirmation gate
        try:
            return AIReviewStatus(value)
        except ValueError:
            return AIReviewStatus.DRAFT

    @property
    def has_materials_override(self) -> bool:
        return bool(self.materials_override_text and self.materials_override_text.strip())


class JobMaterial(BaseModel):
    model_config = ConfigDict(extra="ignore")

    material_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    job_id: Optional[str] = None
    owner_id: Optional[str] = None
    name: str = ""
    unit_label: str = ""
    quantity: float = 0
    line_total: Optional[Decimal] = None

    @field_validator("line_total", mode="before")
    @classmethod
    def _line_total_decimal(cls, value):
        return _coerce_decimal(value)

    @field_validator("quantity", mode="before")
    @classmethod
    def _quantity_number(cls, value):
        if hasattr(value, "to_decimal"):
            return float(value.to_decimal())
        return value


# ============================================================================
# OWNER / PLAN CONTEXT (read from the user record)
# ============================================================================

class PlanContext(BaseModel):
    model_config = ConfigDict(extra="ignore")

    plan_tier: Optional[str] = None
    plan_status: Optional[str] = None


class BusinessProfile(BaseModel):
    """Issuer details printed in the document header and footer."""
    model_config = ConfigDict(extra="ignore")

    business_name: Optional[str] = None
    trading_name: Optional[str] = None
    abn: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    suburb: Optional[str] = None
    state: Optional[str] = None
    postcode: Optional[str] = None


class OwnerProfile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: str
    plan: PlanContext = Field(default_factory=PlanContext)
    business: Optional[BusinessProfile] = None


# ============================================================================
# AUDIT
# ============================================================================

class AuditLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    audit_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    action: AuditAction
    actor_role: Optional[str] = None
    actor_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    reason_code: Optional[str] = None
    ip_address: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ============================================================================
# API RESPONSE MODELS
# ============================================================================

class ExportErrorResponse(BaseModel):
    error: str
    code: str
    details: Optional[Dict[str, Any]] = None
    hint: Optional[str] = None
    redirectTo: Optional[str] = None


class EstimateRangeResponse(BaseModel):
    baseTotal: Optional[float] = None
    lowEstimate: Optional[float] = None
    highEstimate: Optional[float] = None
    formattedRange: str = "N/A"
