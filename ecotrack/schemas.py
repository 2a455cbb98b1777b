"""
Pydantic schemas for the EcoTrack API.

Request models only carry client-settable fields; ``to_record`` adds the
server-assigned ones. Response models mirror the camelCase record dicts.
"""

from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from ecotrack.db import ChallengeRecord, EventRecord, TipRecord


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


# Requests


class UserUpsertRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: Optional[EmailStr] = None


class ChallengeCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=80)
    description: Optional[str] = Field(None, max_length=4000)
    startDate: Optional[dt.date] = None
    endDate: Optional[dt.date] = None
    totalActions: int = Field(1, ge=0)

    def to_record(self, created_by: str) -> ChallengeRecord:
        return ChallengeRecord(
            title=self.title,
            category=self.category,
            created_by=created_by,
            total_actions=self.totalActions,
            description=self.description,
            start_date=_iso(self.startDate),
            end_date=_iso(self.endDate),
        )


class ChallengeUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    category: Optional[str] = Field(None, min_length=1, max_length=80)
    description: Optional[str] = Field(None, max_length=4000)
    startDate: Optional[dt.date] = None
    endDate: Optional[dt.date] = None
    totalActions: Optional[int] = Field(None, ge=0)

    def to_changes(self) -> dict:
        """Record attribute changes for the fields the client actually sent."""
        sent = self.model_dump(exclude_unset=True)
        changes = {}
        for key in ("title", "category"):
            if sent.get(key) is not None:
                changes[key] = sent[key]
        if "description" in sent:
            changes["description"] = sent["description"]
        if "startDate" in sent:
            changes["start_date"] = _iso(sent["startDate"])
        if "endDate" in sent:
            changes["end_date"] = _iso(sent["endDate"])
        if sent.get("totalActions") is not None:
            changes["total_actions"] = sent["totalActions"]
        return changes


class JoinChallengeRequest(BaseModel):
    email: Optional[EmailStr] = None


class ProgressUpdateRequest(BaseModel):
    actionsCompleted: Optional[int] = None
    totalActions: Optional[int] = None
    co2PerAction: Optional[float] = None
    plasticPerAction: Optional[float] = None


class CompleteStepRequest(BaseModel):
    stepId: str = Field(..., min_length=1, max_length=200)


class TipCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=80)
    content: str = Field(..., min_length=1, max_length=4000)

    def to_record(self, author: str) -> TipRecord:
        return TipRecord(
            author=author,
            title=self.title,
            category=self.category,
            content=self.content,
        )


class TipUpdateRequest(BaseModel):
    title: Optional[str] = None
    category: Optional[str] = None
    content: Optional[str] = None


class EventCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    date: dt.datetime
    description: Optional[str] = Field(None, max_length=4000)
    location: Optional[str] = Field(None, max_length=200)

    def to_record(self, organizer: str) -> EventRecord:
        return EventRecord(
            title=self.title,
            organizer=organizer,
            date=self.date.isoformat(),
            description=self.description,
            location=self.location,
        )


# Responses


class MessageResponse(BaseModel):
    message: str


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    createdAt: dt.datetime
    lastLogin: dt.datetime


class ChallengeResponse(BaseModel):
    id: str
    title: str
    category: str
    description: Optional[str] = None
    startDate: Optional[str] = None
    endDate: Optional[str] = None
    participants: int
    totalActions: int
    createdBy: str
    createdAt: dt.datetime
    updatedAt: Optional[dt.datetime] = None


class ChallengeListResponse(BaseModel):
    challenges: list[ChallengeResponse]


class EnrollmentResponse(BaseModel):
    id: str
    email: str
    userId: str
    challengeId: str
    status: str
    progress: float
    actionsCompleted: int
    totalActions: int
    co2Saved: float
    plasticReduced: float
    completedSteps: list[str]
    joinDate: dt.datetime
    lastUpdated: dt.datetime
    completedAt: Optional[dt.datetime] = None


class EnrollmentListResponse(BaseModel):
    userChallenges: list[EnrollmentResponse]


class TipResponse(BaseModel):
    id: str
    author: str
    title: str
    category: str
    content: str
    upvotes: int
    upvotedUsers: list[str]
    createdAt: dt.datetime
    updatedAt: Optional[dt.datetime] = None


class TipListResponse(BaseModel):
    tips: list[TipResponse]


class UpvoteResponse(BaseModel):
    voted: bool
    upvotes: int


class EventResponse(BaseModel):
    id: str
    title: str
    organizer: str
    date: str
    description: Optional[str] = None
    location: Optional[str] = None
    currentParticipants: int
    createdAt: dt.datetime


class EventListResponse(BaseModel):
    events: list[EventResponse]


class LiveStatisticResponse(BaseModel):
    id: str
    email: str
    userId: str
    challengeId: str
    challengeTitle: str
    category: str
    finishedAt: dt.datetime


class LiveStatisticListResponse(BaseModel):
    statistics: list[LiveStatisticResponse]


class GlobalStatsResponse(BaseModel):
    totalUsers: int
    totalEnrollments: int
    completedEnrollments: int
    totalCo2Saved: float
    totalPlasticReduced: float


class ImpactStatisticsResponse(BaseModel):
    totalCo2Saved: float
    totalPlasticReduced: float
