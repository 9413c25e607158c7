"""Materials Reconciler - check itemised material lines against the stored total.

The materials management screen keeps an aggregate ``materials_total`` on the
job. Before a job pack leaves the building, the sum of the itemised
``line_total`` values must agree with it to the cent. A mismatch is reported
with enough detail to fix it; nothing is rounded away or corrected here.
"""
import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from models import JobMaterial
from services.job_repository import get_job_materials
from utils.formatting import format_currency

logger = logging.getLogger(__name__)

RECONCILE_TOLERANCE = Decimal(os.getenv("MATERIALS_RECONCILE_TOLERANCE", "0.01"))


@dataclass(frozen=True)
class ReconciliationResult:
    is_valid: bool
    sum_of_line_totals: Decimal
    stored_materials_total: Optional[Decimal]
    difference: Decimal
    line_count: int = 0
    message: Optional[str] = None

    def to_details(self) -> dict:
        return {
            "sumOfLineTotals": float(self.sum_of_line_totals),
            "storedMaterialsTotal": (
                float(self.stored_materials_total) if self.stored_materials_total is not None else None
            ),
            "difference": float(self.difference),
        }


def _mismatch_message(total: Decimal, stored: Optional[Decimal], difference: Decimal) -> str:
    if stored is None:
        return (
            f"Materials total has not been calculated, but material lines add up to "
            f"{format_currency(total)}. Please recalculate materials before exporting."
        )
    return (
        f"Materials total {format_currency(stored)} does not match the sum of material lines "
        f"{format_currency(total)} (difference {format_currency(abs(difference))}). "
        f"Please recalculate materials before exporting."
    )


def reconcile_line_totals(
    line_totals: Iterable[Optional[Decimal]],
    stored_total: Optional[Decimal],
    tolerance: Decimal = RECONCILE_TOLERANCE,
) -> ReconciliationResult:
    """Pure reconciliation over already-loaded line totals. None lines count as zero."""
    totals = list(line_totals)
    if not totals:
        return ReconciliationResult(
            is_valid=True,
            sum_of_line_totals=Decimal(0),
            stored_materials_total=stored_total,
            difference=Decimal(0),
        )

    line_sum = sum((t for t in totals if t is not None), Decimal(0))
    difference = (stored_total if stored_total is not None else Decimal(0)) - line_sum
    is_valid = abs(difference) <= tolerance
    if stored_total is None and line_sum != 0:
        is_valid = False

    return ReconciliationResult(
        is_valid=is_valid,
        sum_of_line_totals=line_sum,
        stored_materials_total=stored_total,
        difference=difference,
        line_count=len(totals),
        message=None if is_valid else _mismatch_message(line_sum, stored_total, difference),
    )


async def reconcile(
    job_id: str,
    owner_id: str,
    stored_total: Optional[Decimal],
    materials: Optional[Sequence[JobMaterial]] = None,
) -> ReconciliationResult:
    """Reconcile the job's material lines (scoped to its owner). Lines already loaded may be passed in."""
    if materials is None:
        materials = await get_job_materials(job_id, owner_id)
    result = reconcile_line_totals((m.line_total for m in materials), stored_total)
    if not result.is_valid:
        logger.info(
            "Materials totals mismatch job_id=%s lines=%d sum=%s stored=%s difference=%s",
            job_id, result.line_count, result.sum_of_line_totals, stored_total, result.difference,
        )
    return result
