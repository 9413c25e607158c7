"""Confirmation gate for client-facing exports.

AI review lifecycle (written by the job editing surface):

    draft --(AI generation completes)--> pending_review --(owner confirms)--> confirmed
    confirmed --(content edited after confirmation)--> pending_review

Only ``confirmed`` lets a job pack leave as a client-facing document.
"""
from typing import Dict, FrozenSet

from models import AIReviewStatus, Job

CONFIRMATION_REQUIRED_MESSAGE = (
    "Job pack must be confirmed before downloading PDF. Please review the AI-generated "
    "content and click 'Mark AI pack as confirmed'."
)
CONFIRMATION_HINT = "Confirm the AI pack to remove AI warnings and enable PDF export."

REVIEW_STATUS_TRANSITIONS: Dict[AIReviewStatus, FrozenSet[AIReviewStatus]] = {
    AIReviewStatus.DRAFT: frozenset({AIReviewStatus.PENDING_REVIEW}),
    AIReviewStatus.PENDING_REVIEW: frozenset({AIReviewStatus.CONFIRMED}),
    AIReviewStatus.CONFIRMED: frozenset({AIReviewStatus.PENDING_REVIEW}),
}


def is_export_ready(job: Job) -> bool:
    return job.ai_review_status == AIReviewStatus.CONFIRMED


def can_transition(current: AIReviewStatus, target: AIReviewStatus) -> bool:
    return target in REVIEW_STATUS_TRANSITIONS.get(current, frozenset())
