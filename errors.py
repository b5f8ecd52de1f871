# errors.py
from __future__ import annotations

from typing import Optional


class PlannerError(Exception):
    """Base class for planning failures that the service knows how to handle."""


class TransientServiceError(PlannerError):
    """The generation service is temporarily overloaded; retrying may help."""

    def __init__(self, message: str, status: Optional[int] = None, attempts: int = 1):
        super().__init__(message)
        self.status = status
        self.attempts = attempts


class FatalServiceError(PlannerError):
    """The generation service rejected the request; retrying will not help."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class GenerationNetworkError(FatalServiceError):
    """The generation service could not be reached at all."""


class ServiceNotConfiguredError(FatalServiceError):
    """No generation service is available (e.g. missing API key)."""


class MalformedPayloadError(PlannerError):
    """The generated text held no usable itinerary JSON."""


class SubmissionInFlightError(PlannerError):
    """A planning request for this session is already outstanding."""


class NoItineraryError(PlannerError):
    """The session has no itinerary to operate on."""
