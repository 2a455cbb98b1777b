"""
Dependency wiring for the FastAPI app.

Store and verifier instances are built once by ``create_app`` and kept on
``app.state``; handlers receive them through ``Depends``.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header, Request

from ecotrack.auth import (
    FirebaseIdentityVerifier,
    IdentityVerifier,
    StaticIdentityVerifier,
    VerifiedPrincipal,
)
from ecotrack.config import Settings
from ecotrack.db import DbClient, InMemoryDbClient
from ecotrack.errors import UnauthorizedError

logger = logging.getLogger(__name__)


def build_db_client(settings: Settings) -> DbClient:
    if settings.use_in_memory_backends:
        return InMemoryDbClient()
    if settings.mongodb_uri:
        from ecotrack.db_mongo import MongoDbClient

        return MongoDbClient(settings.mongodb_uri, settings.mongodb_database)
    if settings.database_url:
        from ecotrack.db_postgres import PostgresDbClient

        return PostgresDbClient(settings.database_url)
    logger.warning("No document store configured; using in-memory store")
    return InMemoryDbClient()


def build_identity_verifier(settings: Settings) -> IdentityVerifier:
    if settings.use_in_memory_backends or not settings.firebase_project_id:
        return StaticIdentityVerifier(settings.dev_auth_tokens)
    return FirebaseIdentityVerifier(
        project_id=settings.firebase_project_id,
        credentials_path=settings.firebase_credentials_path,
    )


def get_db_client(request: Request) -> DbClient:
    return request.app.state.db


def get_identity_verifier(request: Request) -> IdentityVerifier:
    return request.app.state.verifier


def get_current_principal(
    authorization: Optional[str] = Header(None),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
) -> VerifiedPrincipal:
    """Resolve the ``Authorization: Bearer <token>`` header to a principal."""
    if not authorization:
        raise UnauthorizedError("Unauthorized access")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("Unauthorized access")
    return verifier.verify(token.strip())
