"""
lessonflow.errors
=================

Error taxonomy for the status-tracking core.

Every error carries a stable ``code`` and an ``http_status`` hint so an
external API layer can translate it without inspecting messages.
"""

from __future__ import annotations

from typing import Any, Dict


class LifecycleError(Exception):
    """Base class for predictable lifecycle errors."""

    code = "LIFECYCLE_ERROR"
    http_status = 500

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> Dict[str, Any]:
        """Shape handed to the API layer for serialization."""
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        payload.update({k: v for k, v in self.details.items() if v is not None})
        return payload


class ValidationError(LifecycleError):
    """Malformed status record input (unknown status, future timestamp, ...)."""

    code = "STATUS_INVALID"
    http_status = 400


class InvalidTransitionError(LifecycleError):
    """Requested transition is not in the kind's legal-transition table."""

    code = "TRANSITION_NOT_ALLOWED"
    http_status = 409

    def __init__(self, entity_kind, from_status, to_status, message: str | None = None) -> None:
        self.entity_kind = entity_kind
        self.from_status = from_status
        self.to_status = to_status
        from_name = _name(from_status) or "<none>"
        super().__init__(
            message or f"illegal {_name(entity_kind)} transition {from_name} → {_name(to_status)}",
            entity_kind=_name(entity_kind),
            from_status=_name(from_status),
            to_status=_name(to_status),
        )


class OrderingError(LifecycleError):
    """A record would make the history go backwards in time."""

    code = "HISTORY_OUT_OF_ORDER"
    http_status = 500


class MappingError(LifecycleError):
    """Persisted data violates the current-status invariants."""

    code = "STATUS_MAPPING_FAILED"
    http_status = 500


class ConcurrentTransitionError(LifecycleError):
    """Losing side of a race on the same owner; retry with a fresh read."""

    code = "CONCURRENT_TRANSITION"
    http_status = 409


class OwnerNotFoundError(LifecycleError):
    """No owner row exists for the given kind and id."""

    code = "OWNER_NOT_FOUND"
    http_status = 404


class OwnerConflictError(LifecycleError):
    """Owner row clashes with stored data: taken id, missing parent or live children."""

    code = "OWNER_CONFLICT"
    http_status = 409


def _name(value: Any) -> str | None:
    if value is None:
        return None
    return getattr(value, "value", str(value))
