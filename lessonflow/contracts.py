"""
lessonflow.contracts
====================

Shapes handed to :meth:`LifecycleService.handle` by an external API layer.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from lessonflow.errors import ValidationError
from lessonflow.kinds import EntityKind, parse_kind


class Role(str, Enum):
    STUDENT = "STUDENT"
    TEACHER = "TEACHER"
    ADMIN = "ADMIN"


class Caller(BaseModel):
    """Authenticated identity, as supplied by the auth layer."""
    id: str = Field(min_length=1)
    role: Role


class TransitionRequest(BaseModel):
    """Model for a status transition request."""
    entity_kind: EntityKind
    owner_id: str = Field(min_length=1)
    requested_status: str = Field(min_length=1)
    context: Optional[Any] = None

    @field_validator("entity_kind", mode="before")
    @classmethod
    def _kind(cls, value):
        try:
            return parse_kind(value)
        except ValidationError as exc:
            raise ValueError(exc.message) from None

    @field_validator("requested_status", mode="before")
    @classmethod
    def _status(cls, value):
        # enum members arrive from in-process callers
        return getattr(value, "value", value)
