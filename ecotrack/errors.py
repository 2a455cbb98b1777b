"""
Error taxonomy shared by the enrollment engine, ownership checks and routes.

Each error carries the HTTP status it maps to; the handlers installed by
``create_app`` render them as ``{"message": ...}`` bodies.
"""

from __future__ import annotations


class EcoTrackError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequestError(EcoTrackError):
    status_code = 400


class UnauthorizedError(EcoTrackError):
    status_code = 401


class ForbiddenError(EcoTrackError):
    status_code = 403


class NotFoundError(EcoTrackError):
    status_code = 404


class ConflictError(EcoTrackError):
    status_code = 409


class InvalidStateError(EcoTrackError):
    """Stored data cannot support the requested computation."""

    status_code = 422
