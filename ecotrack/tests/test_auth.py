import unittest
from unittest.mock import MagicMock, patch

from firebase_admin import auth as firebase_auth

from ecotrack.auth import FirebaseIdentityVerifier, StaticIdentityVerifier
from ecotrack.config import Settings
from ecotrack.db import InMemoryDbClient
from ecotrack.dependencies import build_db_client, build_identity_verifier
from ecotrack.errors import ForbiddenError


class StaticIdentityVerifierTests(unittest.TestCase):
    def test_known_token_yields_email(self):
        verifier = StaticIdentityVerifier({"t1": "a@example.com"})
        self.assertEqual(verifier.verify("t1").email, "a@example.com")

    def test_unknown_token_is_forbidden(self):
        with self.assertRaises(ForbiddenError):
            StaticIdentityVerifier({}).verify("t1")


@patch("ecotrack.auth.firebase_admin.get_app", return_value=MagicMock())
class FirebaseIdentityVerifierTests(unittest.TestCase):
    @patch("ecotrack.auth.firebase_auth.verify_id_token")
    def test_verified_token_yields_principal(self, mock_verify, _mock_app):
        mock_verify.return_value = {"email": "a@example.com", "uid": "u1", "name": "A"}
        principal = FirebaseIdentityVerifier().verify("token")
        self.assertEqual(principal.email, "a@example.com")
        self.assertEqual(principal.uid, "u1")

    @patch("ecotrack.auth.firebase_auth.verify_id_token")
    def test_rejected_token_is_forbidden(self, mock_verify, _mock_app):
        mock_verify.side_effect = firebase_auth.InvalidIdTokenError("expired")
        with self.assertRaises(ForbiddenError):
            FirebaseIdentityVerifier().verify("token")

    @patch("ecotrack.auth.firebase_auth.verify_id_token")
    def test_malformed_token_is_forbidden(self, mock_verify, _mock_app):
        mock_verify.side_effect = ValueError("not a jwt")
        with self.assertRaises(ForbiddenError):
            FirebaseIdentityVerifier().verify("token")

    @patch("ecotrack.auth.firebase_auth.verify_id_token")
    def test_token_without_email_is_forbidden(self, mock_verify, _mock_app):
        mock_verify.return_value = {"uid": "u1"}
        with self.assertRaises(ForbiddenError):
            FirebaseIdentityVerifier().verify("token")


class BackendSelectionTests(unittest.TestCase):
    def test_in_memory_flag_selects_dev_backends(self):
        settings = Settings(
            use_in_memory_backends=True,
            mongodb_uri="mongodb://unused",
            dev_auth_tokens={"t1": "a@example.com"},
        )
        self.assertIsInstance(build_db_client(settings), InMemoryDbClient)
        verifier = build_identity_verifier(settings)
        self.assertIsInstance(verifier, StaticIdentityVerifier)
        self.assertEqual(verifier.verify("t1").email, "a@example.com")


if __name__ == "__main__":
    unittest.main()
