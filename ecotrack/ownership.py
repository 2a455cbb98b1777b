"""
Owner-gated mutation of challenges and tips, plus the tip upvote toggle.
"""

from __future__ import annotations

from typing import Optional

from ecotrack.db import ChallengeRecord, DbClient, TipRecord, utcnow
from ecotrack.errors import BadRequestError, ForbiddenError, NotFoundError

# Server-assigned challenge fields a client can never overwrite.
PROTECTED_CHALLENGE_FIELDS = frozenset(
    {"id", "created_by", "created_at", "updated_at", "participants"}
)
REQUIRED_TIP_FIELDS = ("title", "category", "content")


def ensure_owner(owner_email: str, requester_email: str, action: str) -> None:
    if owner_email != requester_email:
        raise ForbiddenError(f"Only the owner can {action} this resource")


def _owned_challenge(
    db: DbClient, challenge_id: str, requester_email: str, action: str
) -> ChallengeRecord:
    challenge = db.get_challenge(challenge_id)
    if not challenge:
        raise NotFoundError("Challenge not found")
    ensure_owner(challenge.created_by, requester_email, action)
    return challenge


def _owned_tip(db: DbClient, tip_id: str, requester_email: str, action: str) -> TipRecord:
    tip = db.get_tip(tip_id)
    if not tip:
        raise NotFoundError("Tip not found")
    ensure_owner(tip.author, requester_email, action)
    return tip


def update_challenge(
    db: DbClient, challenge_id: str, changes: dict, requester_email: str
) -> ChallengeRecord:
    _owned_challenge(db, challenge_id, requester_email, "update")
    allowed = {
        key: value
        for key, value in changes.items()
        if key not in PROTECTED_CHALLENGE_FIELDS
    }
    allowed["updated_at"] = utcnow()
    updated = db.update_challenge(challenge_id, allowed)
    if updated is None:
        raise NotFoundError("Challenge not found")
    return updated


def delete_challenge(db: DbClient, challenge_id: str, requester_email: str) -> None:
    _owned_challenge(db, challenge_id, requester_email, "delete")
    if not db.delete_challenge(challenge_id):
        raise NotFoundError("Challenge not found")


def update_tip(
    db: DbClient,
    tip_id: str,
    requester_email: str,
    *,
    title: Optional[str],
    category: Optional[str],
    content: Optional[str],
) -> TipRecord:
    """Replace a tip's text. All of title, category and content are required."""
    _owned_tip(db, tip_id, requester_email, "update")
    values = {"title": title, "category": category, "content": content}
    missing = [name for name in REQUIRED_TIP_FIELDS if not values[name]]
    if missing:
        raise BadRequestError(f"Missing required fields: {', '.join(missing)}")
    values["updated_at"] = utcnow()
    updated = db.update_tip(tip_id, values)
    if updated is None:
        raise NotFoundError("Tip not found")
    return updated


def delete_tip(db: DbClient, tip_id: str, requester_email: str) -> None:
    _owned_tip(db, tip_id, requester_email, "delete")
    if not db.delete_tip(tip_id):
        raise NotFoundError("Tip not found")


def toggle_tip_upvote(db: DbClient, tip_id: str, requester_email: str) -> tuple[bool, int]:
    """Flip the requester's vote on a tip; returns (voted, upvotes)."""
    tip = db.get_tip(tip_id)
    if not tip:
        raise NotFoundError("Tip not found")
    if tip.author == requester_email:
        raise BadRequestError("You cannot upvote your own tip")
    result = db.toggle_upvote(tip_id, requester_email)
    if result is None:
        raise NotFoundError("Tip not found")
    return result
