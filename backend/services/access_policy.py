"""Export Access Policy - single source of truth for who may export job packs.

NON-NEGOTIABLE RULES:
1. Admins are never plan-gated
2. Everyone else needs a (plan_tier, plan_status) pair listed in EXPORT_ACCESS_MATRIX
3. Unknown tiers, unknown statuses and missing plan data are denied
4. Adding a plan tier is a change to EXPORT_ACCESS_MATRIX only; call sites never inspect tiers

Plan structure:
- FREE: create job packs only; export allowed while in the pilot program (TRIAL status)
- TRIAL: pilot tier, export while the trial or a subscription is running
- PRO / BUSINESS: paid tiers, export while the subscription is ACTIVE or TRIAL
"""
from typing import Dict, FrozenSet, Optional

from models import PlanContext, PlanStatus, PlanTier

PRICING_PATH = "/pricing"

PLAN_REQUIRED_MESSAGE = (
    "A paid plan or pilot program membership is required to download PDFs. "
    "Free users can create job packs only."
)
PLAN_INACTIVE_MESSAGE = (
    "Your subscription is not active. Please update your billing to download PDFs."
)
UPGRADE_HINT = "Upgrade your plan to export client-ready job packs."


# ============================================================================
# EXPORT ACCESS MATRIX - tier -> plan statuses that may export
# ============================================================================
_RUNNING = frozenset({PlanStatus.ACTIVE.value, PlanStatus.TRIAL.value})

EXPORT_ACCESS_MATRIX: Dict[str, FrozenSet[str]] = {
    PlanTier.FREE.value: frozenset({PlanStatus.TRIAL.value}),
    PlanTier.TRIAL.value: _RUNNING,
    PlanTier.PRO.value: _RUNNING,
    PlanTier.BUSINESS.value: _RUNNING,
}


def _normalize(value: Optional[str]) -> str:
    return (value or "").strip().upper()


def allowed_statuses(plan_tier: Optional[str]) -> FrozenSet[str]:
    return EXPORT_ACCESS_MATRIX.get(_normalize(plan_tier), frozenset())


def can_export(plan: Optional[PlanContext], is_admin: bool) -> bool:
    """Decide export eligibility. Pure: no I/O."""
    if is_admin:
        return True
    if plan is None:
        return False
    return _normalize(plan.plan_status) in allowed_statuses(plan.plan_tier)


def export_denial_reason(plan: Optional[PlanContext]) -> str:
    """User-facing explanation for a denied export."""
    if plan is not None and allowed_statuses(plan.plan_tier) and _normalize(plan.plan_tier) != PlanTier.FREE.value:
        return PLAN_INACTIVE_MESSAGE
    return PLAN_REQUIRED_MESSAGE
