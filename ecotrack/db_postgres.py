"""
SQLAlchemy-backed document store.
"""

from __future__ import annotations

import uuid
from dataclasses import fields
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    func,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ecotrack.db import (
    ChallengeRecord,
    EnrollmentRecord,
    EnrollmentStatus,
    EventRecord,
    LiveStatisticRecord,
    TipRecord,
    UserRecord,
    utcnow,
)


def _column_value(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return list(value)
    return value


def _row_values(record) -> dict:
    values = {f.name: _column_value(getattr(record, f.name)) for f in fields(record)}
    values["id"] = uuid.uuid4().hex
    return values


def _to_record(record_cls, row):
    values = {}
    for f in fields(record_cls):
        value = getattr(row, f.name)
        # SQLite drops tzinfo on the way back.
        if isinstance(value, datetime) and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        if isinstance(value, list):
            value = list(value)
        values[f.name] = value
    return record_cls(**values)


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def close(self) -> None:
        self.engine.dispose()

    def _insert(self, row_cls, record_cls, record):
        with self.Session() as session:
            row = row_cls(**_row_values(record))
            session.add(row)
            session.commit()
            return _to_record(record_cls, row)

    def _get(self, row_cls, record_cls, record_id: str):
        with self.Session() as session:
            row = session.get(row_cls, record_id)
            return _to_record(record_cls, row) if row else None

    def _update(self, row_cls, record_cls, record_id: str, changes: dict):
        with self.Session() as session:
            row = session.get(row_cls, record_id)
            if not row:
                return None
            for key, value in changes.items():
                setattr(row, key, _column_value(value))
            session.commit()
            return _to_record(record_cls, row)

    def _delete(self, row_cls, record_id: str) -> bool:
        with self.Session() as session:
            row = session.get(row_cls, record_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    # Users

    def upsert_user(self, email: str, name: str) -> UserRecord:
        now = utcnow()
        with self.Session() as session:
            stmt = select(UserRow).where(UserRow.email == email)
            row = session.execute(stmt).scalar_one_or_none()
            if row:
                row.name = name
                row.last_login = now
                session.commit()
                return _to_record(UserRecord, row)
        try:
            return self._insert(
                UserRow,
                UserRecord,
                UserRecord(name=name, email=email, created_at=now, last_login=now),
            )
        except IntegrityError:
            # Registered concurrently; refresh the winner instead.
            return self.upsert_user(email, name)

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self.Session() as session:
            stmt = select(UserRow).where(UserRow.email == email)
            row = session.execute(stmt).scalar_one_or_none()
            return _to_record(UserRecord, row) if row else None

    def count_users(self) -> int:
        with self.Session() as session:
            return session.execute(select(func.count()).select_from(UserRow)).scalar_one()

    # Challenges

    def insert_challenge(self, record: ChallengeRecord) -> ChallengeRecord:
        return self._insert(ChallengeRow, ChallengeRecord, record)

    def get_challenge(self, challenge_id: str) -> Optional[ChallengeRecord]:
        return self._get(ChallengeRow, ChallengeRecord, challenge_id)

    def list_challenges(self, category: Optional[str] = None) -> list[ChallengeRecord]:
        with self.Session() as session:
            stmt = select(ChallengeRow).order_by(ChallengeRow.created_at.asc())
            if category is not None:
                stmt = stmt.where(ChallengeRow.category == category)
            rows = session.execute(stmt).scalars().all()
            return [_to_record(ChallengeRecord, row) for row in rows]

    def update_challenge(
        self, challenge_id: str, changes: dict
    ) -> Optional[ChallengeRecord]:
        return self._update(ChallengeRow, ChallengeRecord, challenge_id, changes)

    def delete_challenge(self, challenge_id: str) -> bool:
        return self._delete(ChallengeRow, challenge_id)

    def increment_participants(self, challenge_id: str, amount: int = 1) -> bool:
        with self.Session() as session:
            result = session.execute(
                update(ChallengeRow)
                .where(ChallengeRow.id == challenge_id)
                .values(participants=ChallengeRow.participants + amount)
            )
            session.commit()
            return (result.rowcount or 0) > 0

    # Enrollments

    def insert_enrollment_if_absent(
        self, record: EnrollmentRecord
    ) -> Optional[EnrollmentRecord]:
        try:
            return self._insert(EnrollmentRow, EnrollmentRecord, record)
        except IntegrityError:
            return None

    def get_enrollment(self, enrollment_id: str) -> Optional[EnrollmentRecord]:
        return self._get(EnrollmentRow, EnrollmentRecord, enrollment_id)

    def list_enrollments(self, email: Optional[str] = None) -> list[EnrollmentRecord]:
        with self.Session() as session:
            stmt = select(EnrollmentRow).order_by(EnrollmentRow.join_date.asc())
            if email is not None:
                stmt = stmt.where(EnrollmentRow.email == email)
            rows = session.execute(stmt).scalars().all()
            return [_to_record(EnrollmentRecord, row) for row in rows]

    def update_enrollment(
        self, enrollment_id: str, changes: dict
    ) -> Optional[EnrollmentRecord]:
        return self._update(EnrollmentRow, EnrollmentRecord, enrollment_id, changes)

    def add_completed_step(
        self, enrollment_id: str, step_id: str
    ) -> Optional[EnrollmentRecord]:
        with self.Session() as session:
            stmt = (
                select(EnrollmentRow)
                .where(EnrollmentRow.id == enrollment_id)
                .with_for_update()
            )
            row = session.execute(stmt).scalar_one_or_none()
            if not row:
                return None
            steps = list(row.completed_steps or [])
            if step_id not in steps:
                steps.append(step_id)
                row.completed_steps = steps
            session.commit()
            return _to_record(EnrollmentRecord, row)

    def raise_progress(
        self,
        enrollment_id: str,
        progress: float,
        status: EnrollmentStatus,
        last_updated: datetime,
    ) -> Optional[EnrollmentRecord]:
        with self.Session() as session:
            session.execute(
                update(EnrollmentRow)
                .where(
                    EnrollmentRow.id == enrollment_id,
                    EnrollmentRow.progress <= progress,
                )
                .values(progress=progress, status=status.value)
            )
            session.execute(
                update(EnrollmentRow)
                .where(EnrollmentRow.id == enrollment_id)
                .values(last_updated=last_updated)
            )
            session.commit()
        return self.get_enrollment(enrollment_id)

    def claim_completion(self, enrollment_id: str, finished_at: datetime) -> bool:
        with self.Session() as session:
            result = session.execute(
                update(EnrollmentRow)
                .where(
                    EnrollmentRow.id == enrollment_id,
                    EnrollmentRow.completed_at.is_(None),
                )
                .values(completed_at=finished_at)
            )
            session.commit()
            return result.rowcount == 1

    def count_enrollments(self, status: Optional[EnrollmentStatus] = None) -> int:
        with self.Session() as session:
            stmt = select(func.count()).select_from(EnrollmentRow)
            if status is not None:
                stmt = stmt.where(EnrollmentRow.status == status.value)
            return session.execute(stmt).scalar_one()

    def sum_enrollment_impact(self) -> tuple[float, float]:
        with self.Session() as session:
            co2, plastic = session.execute(
                select(
                    func.coalesce(func.sum(EnrollmentRow.co2_saved), 0.0),
                    func.coalesce(func.sum(EnrollmentRow.plastic_reduced), 0.0),
                )
            ).one()
            return float(co2), float(plastic)

    # Tips

    def insert_tip(self, record: TipRecord) -> TipRecord:
        return self._insert(TipRow, TipRecord, record)

    def get_tip(self, tip_id: str) -> Optional[TipRecord]:
        return self._get(TipRow, TipRecord, tip_id)

    def list_tips(self, category: Optional[str] = None) -> list[TipRecord]:
        with self.Session() as session:
            stmt = select(TipRow).order_by(TipRow.created_at.desc())
            if category is not None:
                stmt = stmt.where(TipRow.category == category)
            rows = session.execute(stmt).scalars().all()
            return [_to_record(TipRecord, row) for row in rows]

    def update_tip(self, tip_id: str, changes: dict) -> Optional[TipRecord]:
        return self._update(TipRow, TipRecord, tip_id, changes)

    def delete_tip(self, tip_id: str) -> bool:
        return self._delete(TipRow, tip_id)

    def toggle_upvote(self, tip_id: str, email: str) -> Optional[tuple[bool, int]]:
        with self.Session() as session:
            stmt = select(TipRow).where(TipRow.id == tip_id).with_for_update()
            row = session.execute(stmt).scalar_one_or_none()
            if not row:
                return None
            voters = list(row.upvoted_users or [])
            if email in voters:
                voters.remove(email)
                row.upvotes = row.upvotes - 1
                voted = False
            else:
                voters.append(email)
                row.upvotes = row.upvotes + 1
                voted = True
            row.upvoted_users = voters
            session.commit()
            return voted, row.upvotes

    # Events

    def insert_event(self, record: EventRecord) -> EventRecord:
        return self._insert(EventRow, EventRecord, record)

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        return self._get(EventRow, EventRecord, event_id)

    def list_events(self) -> list[EventRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(EventRow).order_by(EventRow.date.asc())
            ).scalars().all()
            return [_to_record(EventRecord, row) for row in rows]

    # Live statistics

    def insert_live_statistic(
        self, record: LiveStatisticRecord
    ) -> LiveStatisticRecord:
        return self._insert(LiveStatisticRow, LiveStatisticRecord, record)

    def list_live_statistics(self, limit: int = 20) -> list[LiveStatisticRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(LiveStatisticRow)
                .order_by(LiveStatisticRow.finished_at.desc())
                .limit(limit)
            ).scalars().all()
            return [_to_record(LiveStatisticRecord, row) for row in rows]


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    last_login = Column(DateTime(timezone=True), nullable=False)


class ChallengeRow(Base):
    __tablename__ = "challenges"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    category = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)
    start_date = Column(String, nullable=True)
    end_date = Column(String, nullable=True)
    total_actions = Column(Integer, nullable=False, default=0)
    participants = Column(Integer, nullable=False, default=0)
    created_by = Column(String, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)


class EnrollmentRow(Base):
    __tablename__ = "user_challenges"
    __table_args__ = (
        UniqueConstraint("user_id", "challenge_id", name="uq_user_challenge"),
    )

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False)
    challenge_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, index=True)
    progress = Column(Float, nullable=False, default=0.0)
    actions_completed = Column(Integer, nullable=False, default=0)
    total_actions = Column(Integer, nullable=False)
    co2_saved = Column(Float, nullable=False, default=0.0)
    plastic_reduced = Column(Float, nullable=False, default=0.0)
    completed_steps = Column(JSON, nullable=False, default=list)
    join_date = Column(DateTime(timezone=True), nullable=False)
    last_updated = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)


class TipRow(Base):
    __tablename__ = "tips"

    id = Column(String, primary_key=True)
    author = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    category = Column(String, nullable=False, index=True)
    content = Column(Text, nullable=False)
    upvotes = Column(Integer, nullable=False, default=0)
    upvoted_users = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)


class EventRow(Base):
    __tablename__ = "events"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    organizer = Column(String, nullable=False)
    date = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)
    location = Column(String, nullable=True)
    current_participants = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False)


class LiveStatisticRow(Base):
    __tablename__ = "live_statistics"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False)
    user_id = Column(String, nullable=False)
    challenge_id = Column(String, nullable=False, index=True)
    challenge_title = Column(String, nullable=False)
    category = Column(String, nullable=False)
    finished_at = Column(DateTime(timezone=True), nullable=False, index=True)
