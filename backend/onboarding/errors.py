# Overview: Failure taxonomy for workflow operations and its JSON rendering.

"""
Every core operation either returns its result or raises exactly one
OnboardingError subclass. The HTTP layer maps each subclass to a stable
status code through error_response(); nothing else should be raised on
purpose from the services.
"""

from __future__ import annotations

from flask import jsonify


class OnboardingError(Exception):
    """Base class for typed workflow failures."""

    code = "ERROR"
    status_code = 500
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {
            "error": self.message,
            "code": self.code,
            "retryable": self.retryable,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationFailed(OnboardingError):
    """Malformed or incomplete input. Fixed by the caller, never retried."""

    code = "VALIDATION_FAILED"
    status_code = 400


class Forbidden(OnboardingError):
    """Actor is not allowed to act on this specific record."""

    code = "FORBIDDEN"
    status_code = 403


class NotFound(OnboardingError):
    """Referenced merchant or user does not exist."""

    code = "NOT_FOUND"
    status_code = 404


class Conflict(OnboardingError):
    """
    Status precondition does not hold (including the already-in-target-state
    case) or a unique operator field is already taken.
    """

    code = "CONFLICT"
    status_code = 409


class AllocationConflict(OnboardingError):
    """Short-code allocation lost its races more times than allowed. Transition not applied."""

    code = "ALLOCATION_CONFLICT"
    status_code = 409
    retryable = True


class StoreUnavailable(OnboardingError):
    """Database unreachable, locked or timing out after bounded retries."""

    code = "STORE_UNAVAILABLE"
    status_code = 503
    retryable = True


def error_response(exc: OnboardingError):
    """Render a typed failure as (json, status)."""
    return jsonify(exc.to_dict()), exc.status_code
