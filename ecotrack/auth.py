"""
Bearer-token identity verification.

Verification is delegated to Firebase Authentication; a static token table
stands in for it during development and tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import firebase_admin
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials

from ecotrack.errors import ForbiddenError

logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = "ecotrack"


@dataclass(frozen=True)
class VerifiedPrincipal:
    email: str
    uid: Optional[str] = None
    name: Optional[str] = None


class IdentityVerifier(Protocol):
    def verify(self, token: str) -> VerifiedPrincipal:
        """Return the principal for ``token`` or raise ForbiddenError."""
        ...


class StaticIdentityVerifier:
    """Maps fixed tokens to emails. For local development and tests only."""

    def __init__(self, tokens: Optional[dict[str, str]] = None):
        self.tokens = dict(tokens or {})

    def verify(self, token: str) -> VerifiedPrincipal:
        email = self.tokens.get(token)
        if not email:
            raise ForbiddenError("Invalid or expired token")
        return VerifiedPrincipal(email=email, uid=token)


class FirebaseIdentityVerifier:
    """Verifies Firebase ID tokens with the Admin SDK."""

    def __init__(
        self,
        project_id: Optional[str] = None,
        credentials_path: Optional[str] = None,
    ):
        try:
            self.app = firebase_admin.get_app(FIREBASE_APP_NAME)
        except ValueError:
            cred = (
                credentials.Certificate(credentials_path)
                if credentials_path
                else credentials.ApplicationDefault()
            )
            options = {"projectId": project_id} if project_id else None
            self.app = firebase_admin.initialize_app(
                cred, options, name=FIREBASE_APP_NAME
            )

    def verify(self, token: str) -> VerifiedPrincipal:
        try:
            decoded = firebase_auth.verify_id_token(token, app=self.app)
        except (
            ValueError,
            firebase_auth.InvalidIdTokenError,
            firebase_auth.CertificateFetchError,
            firebase_auth.UserDisabledError,
        ) as exc:
            logger.info("Rejected identity token: %s", exc)
            raise ForbiddenError("Invalid or expired token") from exc
        email = decoded.get("email")
        if not email:
            raise ForbiddenError("Token carries no email")
        return VerifiedPrincipal(
            email=email, uid=decoded.get("uid"), name=decoded.get("name")
        )
