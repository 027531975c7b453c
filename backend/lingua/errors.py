"""Domain exceptions raised by services and repositories.

Services raise these for missing entities, rejected input and storage
failures; `main.py` translates them into HTTP responses. Each exception
carries a human-readable `message` and a `details` dict with the ids
needed to diagnose the failure without re-querying.
"""

from typing import Any, Dict, Optional


class LinguaError(Exception):
    """Base class for all domain errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": type(self).__name__, "message": self.message, "details": self.details}

    def __str__(self) -> str:
        if self.details:
            ctx = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({ctx})"
        return self.message


class NotFoundError(LinguaError):
    """A referenced user, lesson or result does not exist."""

    status_code = 404


class InvalidArgumentError(LinguaError):
    """Malformed input such as an unknown period or a non-positive limit."""

    status_code = 400


class ConflictError(LinguaError):
    """The entity already exists (e.g. a taken username)."""

    status_code = 409


class StoreError(LinguaError):
    """I/O failure against a backing store."""

    status_code = 500
