"""
MongoDB-backed document store.

Documents use the camelCase field names of the API; ``_id`` is the store
assigned ObjectId and is exposed as the string ``id`` on records.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError

from ecotrack.db import (
    ChallengeRecord,
    EnrollmentRecord,
    EnrollmentStatus,
    EventRecord,
    LiveStatisticRecord,
    TipRecord,
    UserRecord,
    to_camel,
    utcnow,
)

logger = logging.getLogger(__name__)

USERS = "users"
CHALLENGES = "challenges"
USER_CHALLENGES = "user_challenges"
TIPS = "tips"
EVENTS = "events"
LIVE_STATISTICS = "live_statistics"


def _oid(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def _to_doc(record) -> dict:
    doc = record.as_dict()
    doc.pop("id", None)
    return doc


def _from_doc(record_cls, doc: Optional[dict]):
    if doc is None:
        return None
    data = dict(doc)
    data["id"] = str(data.pop("_id"))
    return record_cls.from_dict(data)


def _set_fields(changes: dict) -> dict:
    out = {}
    for key, value in changes.items():
        if isinstance(value, Enum):
            value = value.value
        out[to_camel(key)] = value
    return out


class MongoDbClient:
    """pymongo implementation; every atomic operation is a single-document update."""

    def __init__(
        self,
        uri: str,
        database: str = "ecotrack",
        client: Optional[MongoClient] = None,
    ):
        if client is None:
            if not uri:
                raise ValueError("MONGODB_URI is required for MongoDbClient")
            client = MongoClient(uri, tz_aware=True, serverSelectionTimeoutMS=5000)
            # Fail fast at boot when the deployment is unreachable.
            client.admin.command("ping")
            logger.info("Connected to MongoDB database %s", database)
        self.client = client
        self.db = client[database]
        self.db[USERS].create_index("email", unique=True)
        self.db[USER_CHALLENGES].create_index(
            [("userId", ASCENDING), ("challengeId", ASCENDING)], unique=True
        )
        self.db[USER_CHALLENGES].create_index("email")

    def close(self) -> None:
        self.client.close()

    def _insert(self, collection: str, record_cls, record):
        doc = _to_doc(record)
        result = self.db[collection].insert_one(doc)
        doc["_id"] = result.inserted_id
        return _from_doc(record_cls, doc)

    def _get(self, collection: str, record_cls, record_id: str):
        oid = _oid(record_id)
        if oid is None:
            return None
        return _from_doc(record_cls, self.db[collection].find_one({"_id": oid}))

    def _update(self, collection: str, record_cls, record_id: str, changes: dict):
        oid = _oid(record_id)
        if oid is None:
            return None
        doc = self.db[collection].find_one_and_update(
            {"_id": oid},
            {"$set": _set_fields(changes)},
            return_document=ReturnDocument.AFTER,
        )
        return _from_doc(record_cls, doc)

    def _delete(self, collection: str, record_id: str) -> bool:
        oid = _oid(record_id)
        if oid is None:
            return False
        return self.db[collection].delete_one({"_id": oid}).deleted_count == 1

    # Users

    def upsert_user(self, email: str, name: str) -> UserRecord:
        now = utcnow()
        doc = self.db[USERS].find_one_and_update(
            {"email": email},
            {
                "$set": {"name": name, "lastLogin": now},
                "$setOnInsert": {"email": email, "createdAt": now},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return _from_doc(UserRecord, doc)

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        return _from_doc(UserRecord, self.db[USERS].find_one({"email": email}))

    def count_users(self) -> int:
        return self.db[USERS].count_documents({})

    # Challenges

    def insert_challenge(self, record: ChallengeRecord) -> ChallengeRecord:
        return self._insert(CHALLENGES, ChallengeRecord, record)

    def get_challenge(self, challenge_id: str) -> Optional[ChallengeRecord]:
        return self._get(CHALLENGES, ChallengeRecord, challenge_id)

    def list_challenges(self, category: Optional[str] = None) -> list[ChallengeRecord]:
        query = {"category": category} if category is not None else {}
        cursor = self.db[CHALLENGES].find(query).sort("createdAt", ASCENDING)
        return [_from_doc(ChallengeRecord, doc) for doc in cursor]

    def update_challenge(
        self, challenge_id: str, changes: dict
    ) -> Optional[ChallengeRecord]:
        return self._update(CHALLENGES, ChallengeRecord, challenge_id, changes)

    def delete_challenge(self, challenge_id: str) -> bool:
        return self._delete(CHALLENGES, challenge_id)

    def increment_participants(self, challenge_id: str, amount: int = 1) -> bool:
        oid = _oid(challenge_id)
        if oid is None:
            return False
        result = self.db[CHALLENGES].update_one(
            {"_id": oid}, {"$inc": {"participants": amount}}
        )
        return result.matched_count == 1

    # Enrollments

    def insert_enrollment_if_absent(
        self, record: EnrollmentRecord
    ) -> Optional[EnrollmentRecord]:
        try:
            return self._insert(USER_CHALLENGES, EnrollmentRecord, record)
        except DuplicateKeyError:
            return None

    def get_enrollment(self, enrollment_id: str) -> Optional[EnrollmentRecord]:
        return self._get(USER_CHALLENGES, EnrollmentRecord, enrollment_id)

    def list_enrollments(self, email: Optional[str] = None) -> list[EnrollmentRecord]:
        query = {"email": email} if email is not None else {}
        cursor = self.db[USER_CHALLENGES].find(query).sort("joinDate", ASCENDING)
        return [_from_doc(EnrollmentRecord, doc) for doc in cursor]

    def update_enrollment(
        self, enrollment_id: str, changes: dict
    ) -> Optional[EnrollmentRecord]:
        return self._update(USER_CHALLENGES, EnrollmentRecord, enrollment_id, changes)

    def add_completed_step(
        self, enrollment_id: str, step_id: str
    ) -> Optional[EnrollmentRecord]:
        oid = _oid(enrollment_id)
        if oid is None:
            return None
        doc = self.db[USER_CHALLENGES].find_one_and_update(
            {"_id": oid},
            {"$addToSet": {"completedSteps": step_id}},
            return_document=ReturnDocument.AFTER,
        )
        return _from_doc(EnrollmentRecord, doc)

    def raise_progress(
        self,
        enrollment_id: str,
        progress: float,
        status: EnrollmentStatus,
        last_updated: datetime,
    ) -> Optional[EnrollmentRecord]:
        oid = _oid(enrollment_id)
        if oid is None:
            return None
        collection = self.db[USER_CHALLENGES]
        collection.update_one(
            {"_id": oid, "progress": {"$lte": progress}},
            {"$set": {"progress": progress, "status": status.value}},
        )
        doc = collection.find_one_and_update(
            {"_id": oid},
            {"$set": {"lastUpdated": last_updated}},
            return_document=ReturnDocument.AFTER,
        )
        return _from_doc(EnrollmentRecord, doc)

    def claim_completion(self, enrollment_id: str, finished_at: datetime) -> bool:
        oid = _oid(enrollment_id)
        if oid is None:
            return False
        result = self.db[USER_CHALLENGES].update_one(
            {"_id": oid, "completedAt": None},
            {"$set": {"completedAt": finished_at}},
        )
        return result.modified_count == 1

    def count_enrollments(self, status: Optional[EnrollmentStatus] = None) -> int:
        query = {"status": status.value} if status is not None else {}
        return self.db[USER_CHALLENGES].count_documents(query)

    def sum_enrollment_impact(self) -> tuple[float, float]:
        pipeline = [
            {
                "$group": {
                    "_id": None,
                    "co2": {"$sum": "$co2Saved"},
                    "plastic": {"$sum": "$plasticReduced"},
                }
            }
        ]
        for row in self.db[USER_CHALLENGES].aggregate(pipeline):
            return float(row["co2"]), float(row["plastic"])
        return 0.0, 0.0

    # Tips

    def insert_tip(self, record: TipRecord) -> TipRecord:
        return self._insert(TIPS, TipRecord, record)

    def get_tip(self, tip_id: str) -> Optional[TipRecord]:
        return self._get(TIPS, TipRecord, tip_id)

    def list_tips(self, category: Optional[str] = None) -> list[TipRecord]:
        query = {"category": category} if category is not None else {}
        cursor = self.db[TIPS].find(query).sort("createdAt", DESCENDING)
        return [_from_doc(TipRecord, doc) for doc in cursor]

    def update_tip(self, tip_id: str, changes: dict) -> Optional[TipRecord]:
        return self._update(TIPS, TipRecord, tip_id, changes)

    def delete_tip(self, tip_id: str) -> bool:
        return self._delete(TIPS, tip_id)

    def toggle_upvote(self, tip_id: str, email: str) -> Optional[tuple[bool, int]]:
        oid = _oid(tip_id)
        if oid is None:
            return None
        tips = self.db[TIPS]
        # Each filter matches only one membership state; if the same user
        # flips concurrently between the two updates, try again.
        for _ in range(3):
            doc = tips.find_one_and_update(
                {"_id": oid, "upvotedUsers": {"$ne": email}},
                {"$inc": {"upvotes": 1}, "$addToSet": {"upvotedUsers": email}},
                projection={"upvotes": 1},
                return_document=ReturnDocument.AFTER,
            )
            if doc:
                return True, doc["upvotes"]
            doc = tips.find_one_and_update(
                {"_id": oid, "upvotedUsers": email},
                {"$inc": {"upvotes": -1}, "$pull": {"upvotedUsers": email}},
                projection={"upvotes": 1},
                return_document=ReturnDocument.AFTER,
            )
            if doc:
                return False, doc["upvotes"]
            if tips.count_documents({"_id": oid}, limit=1) == 0:
                return None
        raise RuntimeError(f"Upvote toggle on tip {tip_id} did not settle")

    # Events

    def insert_event(self, record: EventRecord) -> EventRecord:
        return self._insert(EVENTS, EventRecord, record)

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        return self._get(EVENTS, EventRecord, event_id)

    def list_events(self) -> list[EventRecord]:
        cursor = self.db[EVENTS].find({}).sort("date", ASCENDING)
        return [_from_doc(EventRecord, doc) for doc in cursor]

    # Live statistics

    def insert_live_statistic(
        self, record: LiveStatisticRecord
    ) -> LiveStatisticRecord:
        return self._insert(LIVE_STATISTICS, LiveStatisticRecord, record)

    def list_live_statistics(self, limit: int = 20) -> list[LiveStatisticRecord]:
        cursor = (
            self.db[LIVE_STATISTICS]
            .find({})
            .sort("finishedAt", DESCENDING)
            .limit(limit)
        )
        return [_from_doc(LiveStatisticRecord, doc) for doc in cursor]
