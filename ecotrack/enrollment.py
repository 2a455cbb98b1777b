"""
Challenge enrollment engine.

Joins users to challenges, accumulates progress and impact on enrollments,
and records a live statistic the first time an enrollment completes.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

from ecotrack.db import (
    DbClient,
    EnrollmentRecord,
    EnrollmentStatus,
    LiveStatisticRecord,
    utcnow,
)
from ecotrack.errors import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
)

logger = logging.getLogger(__name__)


@dataclass
class GlobalStatistics:
    total_users: int
    total_enrollments: int
    completed_enrollments: int
    total_co2_saved: float
    total_plastic_reduced: float


def _status_for(progress: float) -> EnrollmentStatus:
    return EnrollmentStatus.COMPLETED if progress >= 100 else EnrollmentStatus.ACTIVE


def _require_total(total_actions: int) -> int:
    if not total_actions or total_actions <= 0:
        raise InvalidStateError("Challenge has no actions to track progress against")
    return total_actions


def _load_enrollment(
    db: DbClient, enrollment_id: str, requester_email: Optional[str]
) -> EnrollmentRecord:
    enrollment = db.get_enrollment(enrollment_id)
    if not enrollment:
        raise NotFoundError("User challenge not found")
    if requester_email is not None and enrollment.email != requester_email:
        raise ForbiddenError("You can only update your own challenges")
    return enrollment


def join_challenge(
    db: DbClient,
    challenge_id: str,
    requester_email: str,
    claimed_email: Optional[str] = None,
) -> EnrollmentRecord:
    """Enroll the registered user behind ``requester_email`` in a challenge.

    The enrollment insert is conditional on (userId, challengeId) being free;
    the participants counter is bumped only after it succeeds, so a repeated
    join leaves the counter untouched.
    """
    if claimed_email is not None and claimed_email != requester_email:
        raise BadRequestError("Email does not match the signed-in user")
    user = db.get_user_by_email(requester_email)
    if not user:
        raise NotFoundError("User not found")
    challenge = db.get_challenge(challenge_id)
    if not challenge:
        raise NotFoundError("Challenge not found")

    now = utcnow()
    enrollment = db.insert_enrollment_if_absent(
        EnrollmentRecord(
            email=requester_email,
            user_id=user.id,
            challenge_id=challenge.id,
            total_actions=challenge.total_actions,
            join_date=now,
            last_updated=now,
        )
    )
    if enrollment is None:
        raise ConflictError("Already joined this challenge")

    if not db.increment_participants(challenge.id):
        logger.warning(
            "Challenge %s vanished before its participant count was updated",
            challenge.id,
        )
    logger.info("%s joined challenge %s", requester_email, challenge.id)
    return enrollment


def update_progress(
    db: DbClient,
    enrollment_id: str,
    *,
    actions_completed: Optional[int] = None,
    total_actions: Optional[int] = None,
    co2_per_action: Optional[float] = None,
    plastic_per_action: Optional[float] = None,
    requester_email: Optional[str] = None,
) -> EnrollmentRecord:
    """Add completed actions and impact deltas to an enrollment."""
    existing = _load_enrollment(db, enrollment_id, requester_email)
    total = _require_total(
        total_actions if total_actions is not None else existing.total_actions
    )

    new_actions = existing.actions_completed + (actions_completed or 0)
    new_progress = min(100.0, max(0.0, new_actions / total * 100))
    if (actions_completed or 0) >= 0 and total == existing.total_actions:
        # Steps may already have moved progress past the action count.
        new_progress = max(existing.progress, new_progress)
    status = (
        EnrollmentStatus.COMPLETED
        if existing.completed_at is not None
        else _status_for(new_progress)
    )
    changes = {
        "actions_completed": new_actions,
        "total_actions": total,
        "progress": new_progress,
        "co2_saved": existing.co2_saved + (co2_per_action or 0),
        "plastic_reduced": existing.plastic_reduced + (plastic_per_action or 0),
        "status": status,
        "last_updated": utcnow(),
    }
    updated = db.update_enrollment(enrollment_id, changes)
    if updated is None:
        raise NotFoundError("User challenge not found")
    if updated.status == EnrollmentStatus.COMPLETED:
        _record_completion(db, updated)
    return updated


def complete_step(
    db: DbClient,
    enrollment_id: str,
    step_id: str,
    requester_email: Optional[str] = None,
) -> EnrollmentRecord:
    """Mark one step done; completing the last step finishes the challenge."""
    existing = _load_enrollment(db, enrollment_id, requester_email)
    total = _require_total(existing.total_actions)

    with_step = db.add_completed_step(enrollment_id, step_id)
    if with_step is None:
        raise NotFoundError("User challenge not found")

    progress = min(100, math.floor(len(with_step.completed_steps) / total * 100))
    # Concurrent steps each raise progress; a stale lower value never lands.
    updated = db.raise_progress(
        enrollment_id, float(progress), _status_for(progress), utcnow()
    )
    if updated is None:
        raise NotFoundError("User challenge not found")
    if updated.status == EnrollmentStatus.COMPLETED:
        _record_completion(db, updated)
    return updated


def _record_completion(db: DbClient, enrollment: EnrollmentRecord) -> None:
    finished_at = utcnow()
    if not db.claim_completion(enrollment.id, finished_at):
        return
    challenge = db.get_challenge(enrollment.challenge_id)
    if not challenge:
        logger.warning(
            "Skipping live statistic for %s: challenge %s no longer exists",
            enrollment.id,
            enrollment.challenge_id,
        )
        return
    db.insert_live_statistic(
        LiveStatisticRecord(
            email=enrollment.email,
            user_id=enrollment.user_id,
            challenge_id=challenge.id,
            challenge_title=challenge.title,
            category=challenge.category,
            finished_at=finished_at,
        )
    )
    logger.info("%s completed challenge %s", enrollment.email, challenge.id)


def compute_global_statistics(db: DbClient) -> GlobalStatistics:
    co2, plastic = db.sum_enrollment_impact()
    return GlobalStatistics(
        total_users=db.count_users(),
        total_enrollments=db.count_enrollments(),
        completed_enrollments=db.count_enrollments(EnrollmentStatus.COMPLETED),
        total_co2_saved=co2,
        total_plastic_reduced=plastic,
    )


def compute_impact_totals(db: DbClient) -> tuple[float, float]:
    """Return (co2_saved, plastic_reduced) across every enrollment."""
    return db.sum_enrollment_impact()
