"""Read-only lookups for the job pack export pipeline.

Jobs, material lines and owner records are written by the job editing,
materials management and billing surfaces. Everything here reads a snapshot
and fails closed: a missing or unreadable job or owner record is returned as
None, and unreadable material lines raise UnreadableMaterialsError. Either
way the caller denies.
"""
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from database import database
from models import BusinessProfile, Job, JobMaterial, OwnerProfile, PlanContext, UserRole

logger = logging.getLogger(__name__)

_BUSINESS_FIELDS = (
    "business_name", "trading_name", "abn", "email", "phone",
    "address_line1", "address_line2", "suburb", "state", "postcode",
)


async def get_job_by_id(job_id: str) -> Optional[Job]:
    db = database.get_db()
    doc = await db.jobs.find_one({"job_id": job_id}, {"_id": 0})
    if not doc:
        return None
    try:
        return Job.model_validate(doc)
    except ValidationError as e:
        logger.warning("Job %s could not be read: %s", job_id, e)
        return None


class UnreadableMaterialsError(Exception):
    """A stored material line failed validation, so the job's lines cannot be trusted."""


async def get_job_materials(job_id: str, owner_id: str) -> List[JobMaterial]:
    """Itemised material lines for a job, scoped to its owner, oldest first.

    Raises UnreadableMaterialsError rather than dropping a bad row: a partial
    set of lines would reconcile against the wrong total.
    """
    db = database.get_db()
    cursor = db.job_materials.find(
        {"job_id": job_id, "owner_id": owner_id},
        {"_id": 0},
    ).sort("created_at", 1)
    docs = await cursor.to_list(length=None)
    materials = []
    for doc in docs:
        try:
            materials.append(JobMaterial.model_validate(doc))
        except ValidationError as e:
            logger.warning("Material line for job %s could not be read: %s", job_id, e)
            raise UnreadableMaterialsError(job_id) from e
    return materials


def _business_from_user(doc: Dict[str, Any]) -> Optional[BusinessProfile]:
    if not doc.get("business_name"):
        return None
    return BusinessProfile(**{key: doc.get(key) for key in _BUSINESS_FIELDS})


async def get_owner_profile(user_id: str) -> Optional[OwnerProfile]:
    """Plan snapshot and issuer details for a user."""
    db = database.get_db()
    doc = await db.users.find_one(
        {"user_id": user_id},
        {"_id": 0, "user_id": 1, "plan_tier": 1, "plan_status": 1, **{key: 1 for key in _BUSINESS_FIELDS}},
    )
    if not doc:
        return None
    return OwnerProfile(
        user_id=user_id,
        plan=PlanContext(plan_tier=doc.get("plan_tier"), plan_status=doc.get("plan_status")),
        business=_business_from_user(doc),
    )


def is_admin(user: Optional[Dict[str, Any]]) -> bool:
    if not user:
        return False
    return user.get("role") == UserRole.ROLE_ADMIN.value
