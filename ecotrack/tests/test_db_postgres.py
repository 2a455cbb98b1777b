import unittest

from ecotrack import enrollment
from ecotrack.db import (
    ChallengeRecord,
    EnrollmentRecord,
    EnrollmentStatus,
    EventRecord,
    TipRecord,
    utcnow,
)
from ecotrack.db_postgres import PostgresDbClient


class PostgresDbClientTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the Postgres client logic.
    """

    def setUp(self):
        self.db = PostgresDbClient("sqlite+pysqlite:///:memory:")
        self.challenge = self.db.insert_challenge(
            ChallengeRecord(
                title="Zero waste", category="waste", created_by="owner@example.com", total_actions=2
            )
        )

    def tearDown(self):
        self.db.close()

    def _enrollment(self, user_id="u1") -> EnrollmentRecord:
        return EnrollmentRecord(
            email="member@example.com",
            user_id=user_id,
            challenge_id=self.challenge.id,
            total_actions=2,
        )

    def test_upsert_user_refreshes_existing(self):
        first = self.db.upsert_user("member@example.com", "Member")
        second = self.db.upsert_user("member@example.com", "Renamed")
        self.assertEqual(first.id, second.id)
        self.assertEqual(second.name, "Renamed")
        self.assertEqual(self.db.count_users(), 1)
        self.assertEqual(self.db.get_user_by_email("member@example.com").name, "Renamed")

    def test_challenge_crud_and_counter(self):
        self.assertTrue(self.db.increment_participants(self.challenge.id))
        self.assertFalse(self.db.increment_participants("missing"))
        updated = self.db.update_challenge(self.challenge.id, {"title": "Less waste"})
        self.assertEqual(updated.title, "Less waste")
        self.assertEqual(updated.participants, 1)
        self.assertEqual(len(self.db.list_challenges(category="waste")), 1)
        self.assertEqual(self.db.list_challenges(category="energy"), [])
        self.assertTrue(self.db.delete_challenge(self.challenge.id))
        self.assertIsNone(self.db.get_challenge(self.challenge.id))

    def test_enrollment_insert_is_conditional(self):
        first = self.db.insert_enrollment_if_absent(self._enrollment())
        self.assertIsNotNone(first)
        self.assertEqual(first.status, EnrollmentStatus.NOT_STARTED)
        self.assertIsNone(self.db.insert_enrollment_if_absent(self._enrollment()))
        self.assertIsNotNone(self.db.insert_enrollment_if_absent(self._enrollment("u2")))
        self.assertEqual(self.db.count_enrollments(), 2)

    def test_completed_steps_and_completion_claim(self):
        record = self.db.insert_enrollment_if_absent(self._enrollment())
        self.db.add_completed_step(record.id, "a")
        with_steps = self.db.add_completed_step(record.id, "a")
        self.assertEqual(with_steps.completed_steps, ["a"])
        self.assertIsNone(self.db.add_completed_step("missing", "a"))

        self.assertTrue(self.db.claim_completion(record.id, utcnow()))
        self.assertFalse(self.db.claim_completion(record.id, utcnow()))

    def test_impact_sums_and_status_counts(self):
        self.assertEqual(self.db.sum_enrollment_impact(), (0.0, 0.0))
        record = self.db.insert_enrollment_if_absent(self._enrollment())
        self.db.update_enrollment(
            record.id,
            {"co2_saved": 4.5, "plastic_reduced": 1.5, "status": EnrollmentStatus.COMPLETED},
        )
        self.assertEqual(self.db.sum_enrollment_impact(), (4.5, 1.5))
        self.assertEqual(self.db.count_enrollments(EnrollmentStatus.COMPLETED), 1)
        self.assertEqual(self.db.count_enrollments(EnrollmentStatus.ACTIVE), 0)

    def test_toggle_upvote(self):
        tip = self.db.insert_tip(
            TipRecord(author="owner@example.com", title="Compost", category="waste", content="Start small.")
        )
        self.assertEqual(self.db.toggle_upvote(tip.id, "member@example.com"), (True, 1))
        self.assertEqual(self.db.get_tip(tip.id).upvoted_users, ["member@example.com"])
        self.assertEqual(self.db.toggle_upvote(tip.id, "member@example.com"), (False, 0))
        self.assertIsNone(self.db.toggle_upvote("missing", "member@example.com"))

    def test_raise_progress_ignores_lower_values(self):
        joined = self.db.insert_enrollment_if_absent(self._enrollment())
        now = utcnow()
        raised = self.db.raise_progress(joined.id, 50.0, EnrollmentStatus.ACTIVE, now)
        self.assertEqual(raised.progress, 50)
        self.assertEqual(raised.status, EnrollmentStatus.ACTIVE)
        stale = self.db.raise_progress(joined.id, 0.0, EnrollmentStatus.NOT_STARTED, now)
        self.assertEqual(stale.progress, 50)
        self.assertEqual(stale.status, EnrollmentStatus.ACTIVE)
        self.assertIsNone(self.db.raise_progress("missing", 10.0, EnrollmentStatus.ACTIVE, now))

    def test_events_sorted_by_date(self):
        self.db.insert_event(EventRecord(title="Later", organizer="o@example.com", date="2026-09-01"))
        self.db.insert_event(EventRecord(title="Sooner", organizer="o@example.com", date="2026-03-01"))
        self.assertEqual([e.title for e in self.db.list_events()], ["Sooner", "Later"])

    def test_step_completion_scenario(self):
        self.db.upsert_user("member@example.com", "Member")
        joined = enrollment.join_challenge(self.db, self.challenge.id, "member@example.com")
        enrollment.complete_step(self.db, joined.id, "a")
        final = enrollment.complete_step(self.db, joined.id, "b")
        self.assertEqual(final.status, EnrollmentStatus.COMPLETED)
        self.assertEqual(final.progress, 100)
        stats = self.db.list_live_statistics()
        self.assertEqual(len(stats), 1)
        self.assertEqual(stats[0].challenge_title, "Zero waste")
        self.assertEqual(self.db.get_challenge(self.challenge.id).participants, 1)


if __name__ == "__main__":
    unittest.main()
