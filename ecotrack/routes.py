"""
HTTP routes for the EcoTrack API.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query

from ecotrack import enrollment, ownership
from ecotrack.auth import VerifiedPrincipal
from ecotrack.db import DbClient
from ecotrack.dependencies import get_current_principal, get_db_client
from ecotrack.errors import BadRequestError, ForbiddenError, NotFoundError
from ecotrack.schemas import (
    ChallengeCreateRequest,
    ChallengeListResponse,
    ChallengeResponse,
    ChallengeUpdateRequest,
    CompleteStepRequest,
    EnrollmentListResponse,
    EnrollmentResponse,
    EventCreateRequest,
    EventListResponse,
    EventResponse,
    GlobalStatsResponse,
    ImpactStatisticsResponse,
    JoinChallengeRequest,
    LiveStatisticListResponse,
    LiveStatisticResponse,
    MessageResponse,
    ProgressUpdateRequest,
    TipCreateRequest,
    TipListResponse,
    TipResponse,
    TipUpdateRequest,
    UpvoteResponse,
    UserResponse,
    UserUpsertRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# Users


@router.post("/user", response_model=UserResponse)
def upsert_user(
    payload: UserUpsertRequest,
    principal: VerifiedPrincipal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    if payload.email is not None and payload.email != principal.email:
        raise BadRequestError("Email does not match the signed-in user")
    user = db.upsert_user(principal.email, payload.name)
    return UserResponse(**user.as_dict())


@router.get("/user", response_model=UserResponse)
def get_own_user(
    principal: VerifiedPrincipal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    user = db.get_user_by_email(principal.email)
    if not user:
        raise NotFoundError("User not found")
    return UserResponse(**user.as_dict())


# Challenges


@router.get("/challenges", response_model=ChallengeListResponse)
def list_challenges(
    category: Optional[str] = Query(None),
    db: DbClient = Depends(get_db_client),
):
    challenges = db.list_challenges(category=category or None)
    return ChallengeListResponse(
        challenges=[ChallengeResponse(**c.as_dict()) for c in challenges]
    )


@router.get("/challenges/{challenge_id}", response_model=ChallengeResponse)
def get_challenge(challenge_id: str, db: DbClient = Depends(get_db_client)):
    challenge = db.get_challenge(challenge_id)
    if not challenge:
        raise NotFoundError("Challenge not found")
    return ChallengeResponse(**challenge.as_dict())


@router.post("/challenges", response_model=ChallengeResponse, status_code=201)
def create_challenge(
    payload: ChallengeCreateRequest,
    principal: VerifiedPrincipal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    challenge = db.insert_challenge(payload.to_record(created_by=principal.email))
    return ChallengeResponse(**challenge.as_dict())


@router.patch("/challenges/{challenge_id}", response_model=ChallengeResponse)
def update_challenge(
    challenge_id: str,
    payload: ChallengeUpdateRequest,
    principal: VerifiedPrincipal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    challenge = ownership.update_challenge(
        db, challenge_id, payload.to_changes(), principal.email
    )
    return ChallengeResponse(**challenge.as_dict())


@router.delete("/challenges/{challenge_id}", response_model=MessageResponse)
def delete_challenge(
    challenge_id: str,
    principal: VerifiedPrincipal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    ownership.delete_challenge(db, challenge_id, principal.email)
    return MessageResponse(message="Challenge deleted")


@router.post(
    "/challenges/join/{challenge_id}",
    response_model=EnrollmentResponse,
    status_code=201,
)
def join_challenge(
    challenge_id: str,
    payload: Optional[JoinChallengeRequest] = Body(None),
    principal: VerifiedPrincipal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    joined = enrollment.join_challenge(
        db,
        challenge_id,
        principal.email,
        claimed_email=payload.email if payload else None,
    )
    return EnrollmentResponse(**joined.as_dict())


# Enrollments


@router.get("/user-challenges", response_model=EnrollmentListResponse)
def list_user_challenges(
    principal: VerifiedPrincipal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    records = db.list_enrollments(email=principal.email)
    return EnrollmentListResponse(
        userChallenges=[EnrollmentResponse(**r.as_dict()) for r in records]
    )


@router.get("/user-challenges/{enrollment_id}", response_model=EnrollmentResponse)
def get_user_challenge(
    enrollment_id: str,
    principal: VerifiedPrincipal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    record = db.get_enrollment(enrollment_id)
    if not record:
        raise NotFoundError("User challenge not found")
    if record.email != principal.email:
        raise ForbiddenError("You can only view your own challenges")
    return EnrollmentResponse(**record.as_dict())


@router.patch(
    "/user-challenges/update/{enrollment_id}", response_model=EnrollmentResponse
)
def update_user_challenge(
    enrollment_id: str,
    payload: ProgressUpdateRequest,
    principal: VerifiedPrincipal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    record = enrollment.update_progress(
        db,
        enrollment_id,
        actions_completed=payload.actionsCompleted,
        total_actions=payload.totalActions,
        co2_per_action=payload.co2PerAction,
        plastic_per_action=payload.plasticPerAction,
        requester_email=principal.email,
    )
    return EnrollmentResponse(**record.as_dict())


@router.patch(
    "/user-challenges/{enrollment_id}/complete-step",
    response_model=EnrollmentResponse,
)
def complete_step(
    enrollment_id: str,
    payload: CompleteStepRequest,
    principal: VerifiedPrincipal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    record = enrollment.complete_step(
        db, enrollment_id, payload.stepId, requester_email=principal.email
    )
    return EnrollmentResponse(**record.as_dict())


# Tips


@router.get("/tips", response_model=TipListResponse)
def list_tips(
    category: Optional[str] = Query(None),
    db: DbClient = Depends(get_db_client),
):
    tips = db.list_tips(category=category or None)
    return TipListResponse(tips=[TipResponse(**t.as_dict()) for t in tips])


@router.get("/tips/{tip_id}", response_model=TipResponse)
def get_tip(tip_id: str, db: DbClient = Depends(get_db_client)):
    tip = db.get_tip(tip_id)
    if not tip:
        raise NotFoundError("Tip not found")
    return TipResponse(**tip.as_dict())


@router.post("/tips", response_model=TipResponse, status_code=201)
def create_tip(
    payload: TipCreateRequest,
    principal: VerifiedPrincipal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    tip = db.insert_tip(payload.to_record(author=principal.email))
    return TipResponse(**tip.as_dict())


@router.put("/tips/{tip_id}", response_model=TipResponse)
def update_tip(
    tip_id: str,
    payload: TipUpdateRequest,
    principal: VerifiedPrincipal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    tip = ownership.update_tip(
        db,
        tip_id,
        principal.email,
        title=payload.title,
        category=payload.category,
        content=payload.content,
    )
    return TipResponse(**tip.as_dict())


@router.delete("/tips/{tip_id}", response_model=MessageResponse)
def delete_tip(
    tip_id: str,
    principal: VerifiedPrincipal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    ownership.delete_tip(db, tip_id, principal.email)
    return MessageResponse(message="Tip deleted")


@router.put("/tips/{tip_id}/upvote", response_model=UpvoteResponse)
def upvote_tip(
    tip_id: str,
    principal: VerifiedPrincipal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    voted, upvotes = ownership.toggle_tip_upvote(db, tip_id, principal.email)
    return UpvoteResponse(voted=voted, upvotes=upvotes)


# Events


@router.get("/events", response_model=EventListResponse)
def list_events(db: DbClient = Depends(get_db_client)):
    return EventListResponse(
        events=[EventResponse(**e.as_dict()) for e in db.list_events()]
    )


@router.get("/events/{event_id}", response_model=EventResponse)
def get_event(event_id: str, db: DbClient = Depends(get_db_client)):
    event = db.get_event(event_id)
    if not event:
        raise NotFoundError("Event not found")
    return EventResponse(**event.as_dict())


@router.post("/events", response_model=EventResponse, status_code=201)
def create_event(
    payload: EventCreateRequest,
    principal: VerifiedPrincipal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    event = db.insert_event(payload.to_record(organizer=principal.email))
    return EventResponse(**event.as_dict())


# Statistics


@router.get("/global-stats", response_model=GlobalStatsResponse)
def global_stats(db: DbClient = Depends(get_db_client)):
    stats = enrollment.compute_global_statistics(db)
    return GlobalStatsResponse(
        totalUsers=stats.total_users,
        totalEnrollments=stats.total_enrollments,
        completedEnrollments=stats.completed_enrollments,
        totalCo2Saved=stats.total_co2_saved,
        totalPlasticReduced=stats.total_plastic_reduced,
    )


@router.get("/statistics", response_model=ImpactStatisticsResponse)
def impact_statistics(db: DbClient = Depends(get_db_client)):
    co2, plastic = enrollment.compute_impact_totals(db)
    return ImpactStatisticsResponse(totalCo2Saved=co2, totalPlasticReduced=plastic)


@router.get("/live-statistics", response_model=LiveStatisticListResponse)
def live_statistics(
    limit: int = Query(20, ge=1, le=100),
    db: DbClient = Depends(get_db_client),
):
    records = db.list_live_statistics(limit=limit)
    return LiveStatisticListResponse(
        statistics=[LiveStatisticResponse(**r.as_dict()) for r in records]
    )
