"""
Document store abstraction and an in-memory implementation.

Records are plain dataclasses; ``as_dict`` renders them with the camelCase
field names used both on the wire and in the MongoDB documents.
"""

from __future__ import annotations

import copy
import threading
import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Protocol, TypeVar


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


class EnrollmentStatus(str, Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    COMPLETED = "completed"


R = TypeVar("R", bound="_Record")


class _Record:
    def as_dict(self) -> dict:
        out = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, list):
                value = list(value)
            out[to_camel(f.name)] = value
        return out

    @classmethod
    def from_dict(cls: type[R], data: dict) -> R:
        values = {}
        for f in fields(cls):
            key = to_camel(f.name)
            if key in data:
                values[f.name] = data[key]
        return cls(**values)


@dataclass
class UserRecord(_Record):
    name: str
    email: str
    id: str = ""
    created_at: datetime = field(default_factory=utcnow)
    last_login: datetime = field(default_factory=utcnow)


@dataclass
class ChallengeRecord(_Record):
    title: str
    category: str
    created_by: str
    total_actions: int = 0
    description: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    participants: int = 0
    id: str = ""
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


@dataclass
class EnrollmentRecord(_Record):
    email: str
    user_id: str
    challenge_id: str
    total_actions: int
    status: EnrollmentStatus = EnrollmentStatus.NOT_STARTED
    progress: float = 0.0
    actions_completed: int = 0
    co2_saved: float = 0.0
    plastic_reduced: float = 0.0
    completed_steps: list[str] = field(default_factory=list)
    id: str = ""
    join_date: datetime = field(default_factory=utcnow)
    last_updated: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = EnrollmentStatus(self.status)


@dataclass
class TipRecord(_Record):
    author: str
    title: str
    category: str
    content: str
    upvotes: int = 0
    upvoted_users: list[str] = field(default_factory=list)
    id: str = ""
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


@dataclass
class EventRecord(_Record):
    title: str
    organizer: str
    date: str
    description: Optional[str] = None
    location: Optional[str] = None
    current_participants: int = 0
    id: str = ""
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class LiveStatisticRecord(_Record):
    email: str
    user_id: str
    challenge_id: str
    challenge_title: str
    category: str
    id: str = ""
    finished_at: datetime = field(default_factory=utcnow)


class DbClient(Protocol):
    """Interface for document store access.

    Update methods take a mapping of record attribute names to new values and
    return the updated record, or None when the record does not exist.
    """

    # Users
    def upsert_user(self, email: str, name: str) -> UserRecord:
        ...

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        ...

    def count_users(self) -> int:
        ...

    # Challenges
    def insert_challenge(self, record: ChallengeRecord) -> ChallengeRecord:
        ...

    def get_challenge(self, challenge_id: str) -> Optional[ChallengeRecord]:
        ...

    def list_challenges(self, category: Optional[str] = None) -> list[ChallengeRecord]:
        ...

    def update_challenge(
        self, challenge_id: str, changes: dict
    ) -> Optional[ChallengeRecord]:
        ...

    def delete_challenge(self, challenge_id: str) -> bool:
        ...

    def increment_participants(self, challenge_id: str, amount: int = 1) -> bool:
        ...

    # Enrollments
    def insert_enrollment_if_absent(
        self, record: EnrollmentRecord
    ) -> Optional[EnrollmentRecord]:
        """Insert unless (user_id, challenge_id) is taken; None on conflict."""
        ...

    def get_enrollment(self, enrollment_id: str) -> Optional[EnrollmentRecord]:
        ...

    def list_enrollments(self, email: Optional[str] = None) -> list[EnrollmentRecord]:
        ...

    def update_enrollment(
        self, enrollment_id: str, changes: dict
    ) -> Optional[EnrollmentRecord]:
        ...

    def add_completed_step(
        self, enrollment_id: str, step_id: str
    ) -> Optional[EnrollmentRecord]:
        ...

    def raise_progress(
        self,
        enrollment_id: str,
        progress: float,
        status: EnrollmentStatus,
        last_updated: datetime,
    ) -> Optional[EnrollmentRecord]:
        """Store progress and status unless ``progress`` is below the stored value."""
        ...

    def claim_completion(self, enrollment_id: str, finished_at: datetime) -> bool:
        """Set completed_at if unset. True only for the call that set it."""
        ...

    def count_enrollments(self, status: Optional[EnrollmentStatus] = None) -> int:
        ...

    def sum_enrollment_impact(self) -> tuple[float, float]:
        """Return (co2_saved, plastic_reduced) summed over all enrollments."""
        ...

    # Tips
    def insert_tip(self, record: TipRecord) -> TipRecord:
        ...

    def get_tip(self, tip_id: str) -> Optional[TipRecord]:
        ...

    def list_tips(self, category: Optional[str] = None) -> list[TipRecord]:
        ...

    def update_tip(self, tip_id: str, changes: dict) -> Optional[TipRecord]:
        ...

    def delete_tip(self, tip_id: str) -> bool:
        ...

    def toggle_upvote(self, tip_id: str, email: str) -> Optional[tuple[bool, int]]:
        """Flip ``email``'s vote; return (voted, upvotes) or None if missing."""
        ...

    # Events
    def insert_event(self, record: EventRecord) -> EventRecord:
        ...

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        ...

    def list_events(self) -> list[EventRecord]:
        ...

    # Live statistics
    def insert_live_statistic(
        self, record: LiveStatisticRecord
    ) -> LiveStatisticRecord:
        ...

    def list_live_statistics(self, limit: int = 20) -> list[LiveStatisticRecord]:
        ...

    def close(self) -> None:
        ...


class InMemoryDbClient:
    """Simple in-memory store for development and tests.

    Reads and writes share one lock, matching the per-record atomicity
    of the real stores.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self.users: Dict[str, UserRecord] = {}
        self.challenges: Dict[str, ChallengeRecord] = {}
        self.enrollments: Dict[str, EnrollmentRecord] = {}
        self.tips: Dict[str, TipRecord] = {}
        self.events: Dict[str, EventRecord] = {}
        self.live_statistics: list[LiveStatisticRecord] = []

    @staticmethod
    def _new_id() -> str:
        return uuid.uuid4().hex

    def _store(self, table: dict, record: R) -> R:
        stored = replace(record, id=self._new_id())
        table[stored.id] = stored
        return copy.deepcopy(stored)

    def _get(self, table: dict, record_id: str):
        with self._lock:
            record = table.get(record_id)
            return copy.deepcopy(record) if record else None

    def _update(self, table: dict, record_id: str, changes: dict):
        with self._lock:
            record = table.get(record_id)
            if not record:
                return None
            table[record_id] = replace(record, **changes)
            return copy.deepcopy(table[record_id])

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.users.clear()
            self.challenges.clear()
            self.enrollments.clear()
            self.tips.clear()
            self.events.clear()
            self.live_statistics.clear()

    def close(self) -> None:
        pass

    # Users

    def upsert_user(self, email: str, name: str) -> UserRecord:
        now = utcnow()
        with self._lock:
            for user_id, user in self.users.items():
                if user.email == email:
                    self.users[user_id] = replace(user, name=name, last_login=now)
                    return copy.deepcopy(self.users[user_id])
            return self._store(
                self.users,
                UserRecord(name=name, email=email, created_at=now, last_login=now),
            )

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self._lock:
            for user in self.users.values():
                if user.email == email:
                    return copy.deepcopy(user)
            return None

    def count_users(self) -> int:
        with self._lock:
            return len(self.users)

    # Challenges

    def insert_challenge(self, record: ChallengeRecord) -> ChallengeRecord:
        with self._lock:
            return self._store(self.challenges, record)

    def get_challenge(self, challenge_id: str) -> Optional[ChallengeRecord]:
        return self._get(self.challenges, challenge_id)

    def list_challenges(self, category: Optional[str] = None) -> list[ChallengeRecord]:
        with self._lock:
            return [
                copy.deepcopy(c)
                for c in self.challenges.values()
                if category is None or c.category == category
            ]

    def update_challenge(
        self, challenge_id: str, changes: dict
    ) -> Optional[ChallengeRecord]:
        return self._update(self.challenges, challenge_id, changes)

    def delete_challenge(self, challenge_id: str) -> bool:
        with self._lock:
            return self.challenges.pop(challenge_id, None) is not None

    def increment_participants(self, challenge_id: str, amount: int = 1) -> bool:
        with self._lock:
            challenge = self.challenges.get(challenge_id)
            if not challenge:
                return False
            challenge.participants += amount
            return True

    # Enrollments

    def insert_enrollment_if_absent(
        self, record: EnrollmentRecord
    ) -> Optional[EnrollmentRecord]:
        with self._lock:
            for existing in self.enrollments.values():
                if (
                    existing.user_id == record.user_id
                    and existing.challenge_id == record.challenge_id
                ):
                    return None
            return self._store(self.enrollments, record)

    def get_enrollment(self, enrollment_id: str) -> Optional[EnrollmentRecord]:
        return self._get(self.enrollments, enrollment_id)

    def list_enrollments(self, email: Optional[str] = None) -> list[EnrollmentRecord]:
        with self._lock:
            return [
                copy.deepcopy(e)
                for e in self.enrollments.values()
                if email is None or e.email == email
            ]

    def update_enrollment(
        self, enrollment_id: str, changes: dict
    ) -> Optional[EnrollmentRecord]:
        return self._update(self.enrollments, enrollment_id, changes)

    def add_completed_step(
        self, enrollment_id: str, step_id: str
    ) -> Optional[EnrollmentRecord]:
        with self._lock:
            enrollment = self.enrollments.get(enrollment_id)
            if not enrollment:
                return None
            if step_id not in enrollment.completed_steps:
                enrollment.completed_steps.append(step_id)
            return copy.deepcopy(enrollment)

    def raise_progress(
        self,
        enrollment_id: str,
        progress: float,
        status: EnrollmentStatus,
        last_updated: datetime,
    ) -> Optional[EnrollmentRecord]:
        with self._lock:
            enrollment = self.enrollments.get(enrollment_id)
            if not enrollment:
                return None
            if progress >= enrollment.progress:
                enrollment.progress = progress
                enrollment.status = status
            enrollment.last_updated = last_updated
            return copy.deepcopy(enrollment)

    def claim_completion(self, enrollment_id: str, finished_at: datetime) -> bool:
        with self._lock:
            enrollment = self.enrollments.get(enrollment_id)
            if not enrollment or enrollment.completed_at is not None:
                return False
            enrollment.completed_at = finished_at
            return True

    def count_enrollments(self, status: Optional[EnrollmentStatus] = None) -> int:
        with self._lock:
            return sum(
                1
                for e in self.enrollments.values()
                if status is None or e.status == status
            )

    def sum_enrollment_impact(self) -> tuple[float, float]:
        with self._lock:
            co2 = sum(e.co2_saved for e in self.enrollments.values())
            plastic = sum(e.plastic_reduced for e in self.enrollments.values())
        return float(co2), float(plastic)

    # Tips

    def insert_tip(self, record: TipRecord) -> TipRecord:
        with self._lock:
            return self._store(self.tips, record)

    def get_tip(self, tip_id: str) -> Optional[TipRecord]:
        return self._get(self.tips, tip_id)

    def list_tips(self, category: Optional[str] = None) -> list[TipRecord]:
        with self._lock:
            tips = [
                copy.deepcopy(t)
                for t in self.tips.values()
                if category is None or t.category == category
            ]
        return sorted(tips, key=lambda t: t.created_at, reverse=True)

    def update_tip(self, tip_id: str, changes: dict) -> Optional[TipRecord]:
        return self._update(self.tips, tip_id, changes)

    def delete_tip(self, tip_id: str) -> bool:
        with self._lock:
            return self.tips.pop(tip_id, None) is not None

    def toggle_upvote(self, tip_id: str, email: str) -> Optional[tuple[bool, int]]:
        with self._lock:
            tip = self.tips.get(tip_id)
            if not tip:
                return None
            if email in tip.upvoted_users:
                tip.upvoted_users.remove(email)
                tip.upvotes -= 1
                return False, tip.upvotes
            tip.upvoted_users.append(email)
            tip.upvotes += 1
            return True, tip.upvotes

    # Events

    def insert_event(self, record: EventRecord) -> EventRecord:
        with self._lock:
            return self._store(self.events, record)

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        return self._get(self.events, event_id)

    def list_events(self) -> list[EventRecord]:
        with self._lock:
            events = [copy.deepcopy(e) for e in self.events.values()]
        return sorted(events, key=lambda e: e.date)

    # Live statistics

    def insert_live_statistic(
        self, record: LiveStatisticRecord
    ) -> LiveStatisticRecord:
        with self._lock:
            stored = replace(record, id=self._new_id())
            self.live_statistics.append(stored)
            return copy.deepcopy(stored)

    def list_live_statistics(self, limit: int = 20) -> list[LiveStatisticRecord]:
        with self._lock:
            recent = sorted(
                self.live_statistics, key=lambda s: s.finished_at, reverse=True
            )
            return [copy.deepcopy(s) for s in recent[:limit]]
