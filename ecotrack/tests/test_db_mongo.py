import unittest
from unittest.mock import MagicMock

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from ecotrack.db import EnrollmentRecord, EnrollmentStatus, utcnow
from ecotrack.db_mongo import MongoDbClient


class MongoDbClientTests(unittest.TestCase):
    """
    Exercises the query shapes against a mocked pymongo client. Every
    collection resolves to the same mock.
    """

    def setUp(self):
        self.client = MagicMock()
        self.collection = self.client["ecotrack"]["any"]
        self.db = MongoDbClient("", client=self.client)
        self.collection.reset_mock()
        self.oid = ObjectId()

    def test_indexes_enforce_single_enrollment(self):
        client = MagicMock()
        MongoDbClient("", client=client)
        collection = client["ecotrack"]["any"]
        index_calls = [call.args for call in collection.create_index.call_args_list]
        self.assertIn(([("userId", 1), ("challengeId", 1)],), index_calls)
        unique_calls = [
            call for call in collection.create_index.call_args_list
            if call.kwargs.get("unique")
        ]
        self.assertEqual(len(unique_calls), 2)

    def test_invalid_object_id_reads_as_missing(self):
        self.assertIsNone(self.db.get_challenge("not-an-object-id"))
        self.assertIsNone(self.db.toggle_upvote("not-an-object-id", "a@example.com"))
        self.assertFalse(self.db.delete_tip("not-an-object-id"))
        self.collection.find_one.assert_not_called()

    def test_documents_map_to_records(self):
        self.collection.find_one.return_value = {
            "_id": self.oid,
            "email": "a@example.com",
            "userId": "u1",
            "challengeId": "c1",
            "totalActions": 3,
            "status": "active",
            "progress": 33.0,
            "completedSteps": ["s1"],
        }
        record = self.db.get_enrollment(str(self.oid))
        self.assertEqual(record.id, str(self.oid))
        self.assertEqual(record.status, EnrollmentStatus.ACTIVE)
        self.assertEqual(record.completed_steps, ["s1"])
        self.collection.find_one.assert_called_once_with({"_id": self.oid})

    def test_duplicate_enrollment_returns_none(self):
        self.collection.insert_one.side_effect = DuplicateKeyError("E11000 duplicate key")
        result = self.db.insert_enrollment_if_absent(
            EnrollmentRecord(email="a@example.com", user_id="u1", challenge_id="c1", total_actions=3)
        )
        self.assertIsNone(result)

    def test_inserted_enrollment_uses_camel_case_fields(self):
        self.collection.insert_one.return_value.inserted_id = self.oid
        record = self.db.insert_enrollment_if_absent(
            EnrollmentRecord(email="a@example.com", user_id="u1", challenge_id="c1", total_actions=3)
        )
        self.assertEqual(record.id, str(self.oid))
        doc = self.collection.insert_one.call_args.args[0]
        self.assertEqual(doc["userId"], "u1")
        self.assertEqual(doc["status"], "not_started")
        self.assertNotIn("id", doc)

    def test_toggle_upvote_adds_vote_when_absent(self):
        self.collection.find_one_and_update.return_value = {"_id": self.oid, "upvotes": 3}
        self.assertEqual(self.db.toggle_upvote(str(self.oid), "a@example.com"), (True, 3))
        args, kwargs = self.collection.find_one_and_update.call_args
        self.assertEqual(args[0], {"_id": self.oid, "upvotedUsers": {"$ne": "a@example.com"}})
        self.assertEqual(
            args[1], {"$inc": {"upvotes": 1}, "$addToSet": {"upvotedUsers": "a@example.com"}}
        )
        self.assertEqual(kwargs["return_document"], ReturnDocument.AFTER)

    def test_toggle_upvote_retracts_existing_vote(self):
        self.collection.find_one_and_update.side_effect = [None, {"_id": self.oid, "upvotes": 2}]
        self.assertEqual(self.db.toggle_upvote(str(self.oid), "a@example.com"), (False, 2))
        args, _ = self.collection.find_one_and_update.call_args
        self.assertEqual(args[0], {"_id": self.oid, "upvotedUsers": "a@example.com"})
        self.assertEqual(
            args[1], {"$inc": {"upvotes": -1}, "$pull": {"upvotedUsers": "a@example.com"}}
        )

    def test_toggle_upvote_missing_tip(self):
        self.collection.find_one_and_update.return_value = None
        self.collection.count_documents.return_value = 0
        self.assertIsNone(self.db.toggle_upvote(str(self.oid), "a@example.com"))

    def test_claim_completion_only_matches_unset(self):
        finished = utcnow()
        self.collection.update_one.return_value.modified_count = 1
        self.assertTrue(self.db.claim_completion(str(self.oid), finished))
        self.collection.update_one.assert_called_once_with(
            {"_id": self.oid, "completedAt": None},
            {"$set": {"completedAt": finished}},
        )

    def test_raise_progress_only_matches_lower_stored_progress(self):
        now = utcnow()
        self.collection.find_one_and_update.return_value = None
        self.db.raise_progress(str(self.oid), 75.0, EnrollmentStatus.ACTIVE, now)
        self.collection.update_one.assert_called_once_with(
            {"_id": self.oid, "progress": {"$lte": 75.0}},
            {"$set": {"progress": 75.0, "status": "active"}},
        )
        args, _ = self.collection.find_one_and_update.call_args
        self.assertEqual(args[1], {"$set": {"lastUpdated": now}})

    def test_update_translates_field_names(self):
        self.collection.find_one_and_update.return_value = None
        self.db.update_enrollment(
            str(self.oid), {"co2_saved": 1.0, "status": EnrollmentStatus.COMPLETED}
        )
        args, _ = self.collection.find_one_and_update.call_args
        self.assertEqual(args[1], {"$set": {"co2Saved": 1.0, "status": "completed"}})

    def test_impact_sums_default_to_zero(self):
        self.collection.aggregate.return_value = iter([])
        self.assertEqual(self.db.sum_enrollment_impact(), (0.0, 0.0))
        self.collection.aggregate.return_value = iter([{"_id": None, "co2": 5, "plastic": 2}])
        self.assertEqual(self.db.sum_enrollment_impact(), (5.0, 2.0))


if __name__ == "__main__":
    unittest.main()
