"""
lessonflow.models
=================

Value objects and domain entities.

* :class:`StatusRecord` – one immutable fact: *owner X had status S
  (with optional context C) at time T*.
* :class:`OwnerEntity` and its subclasses – the in-memory shape of a
  lesson, lesson plan, milestone, goal, quote or objective, carrying
  both the resolved current status and the full history.

Like the rest of the domain layer these objects carry no database
dependencies; :pymod:`lessonflow.mappers` builds them from rows.
"""

from __future__ import annotations

import copy
import json
import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta, timezone
from typing import Any, ClassVar, Dict, Optional

from lessonflow.errors import ValidationError
from lessonflow.history import StatusHistory
from lessonflow.kinds import EntityKind, StatusValue, descriptor_for
from lessonflow.settings import settings


def utcnow() -> datetime:
    """Timezone-aware server clock."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------
# StatusRecord
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class StatusRecord:
    """
    Immutable, timestamped status fact.

    Parameters
    ----------
    id : str
        Opaque identifier.
    owner_id : str
        The lesson / plan / milestone / goal this record belongs to.
    status : StatusValue
        Member of the owning kind's status enumeration.
    created_at : datetime
        When the status took effect (normalised to UTC).
    context : JSON-like, default=None
        Free-form payload; never interpreted here.

    Use :meth:`create` on write paths: it parses the status for a given
    kind and rejects timestamps from the future.  Direct construction
    skips the future-timestamp check and is meant for stored or otherwise
    trusted data (the mappers build records this way).
    """
    id: str
    owner_id: str
    status: StatusValue
    created_at: datetime
    context: Any = field(default=None, hash=False)

    def __post_init__(self):
        if not isinstance(self.status, StatusValue):
            raise ValidationError(f"status must be a status enum member, got {self.status!r}")
        if not self.id or not self.owner_id:
            raise ValidationError("status record needs both id and owner_id")
        if not isinstance(self.created_at, datetime):
            raise ValidationError(f"created_at must be a datetime, got {self.created_at!r}")
        object.__setattr__(self, "created_at", as_utc(self.created_at))

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        kind,
        owner_id: str,
        status,
        context: Any = None,
        *,
        created_at: Optional[datetime] = None,
        record_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "StatusRecord":
        """Validate input for *kind* and build a record.

        Raises :class:`ValidationError` if *status* is not a member of
        the kind's enumeration, *created_at* lies in the future relative
        to *now* (server clock), or *context* is not JSON-serialisable.
        """
        desc = descriptor_for(kind)
        value = desc.parse_status(status)
        now = as_utc(now) if now is not None else utcnow()

        if created_at is None:
            created_at = now
        else:
            created_at = as_utc(created_at)
            limit = now + timedelta(seconds=settings.clock_skew_seconds)
            if created_at > limit:
                raise ValidationError(
                    f"created_at {created_at.isoformat()} is in the future (server time {now.isoformat()})",
                    entity_kind=desc.kind.value,
                    owner_id=owner_id,
                )

        return cls(
            id=record_id or new_id(),
            owner_id=owner_id,
            status=value,
            created_at=created_at,
            context=_frozen_context(context),
        )

    # ------------------------------------------------------------------
    # Convenience helpers
    # ------------------------------------------------------------------
    @property
    def kind(self) -> EntityKind:
        return _KIND_BY_ENUM[type(self.status)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "status": self.status.value,
            "context": copy.deepcopy(self.context),
            "created_at": self.created_at.isoformat(),
        }


def _frozen_context(context: Any) -> Any:
    if context is None:
        return None
    try:
        json.dumps(context)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"context is not JSON-serialisable: {exc}") from exc
    # private copy so later mutation by the caller cannot leak in
    return copy.deepcopy(context)


# ---------------------------------------------------------------------
# Owner entities
# ---------------------------------------------------------------------
@dataclass(kw_only=True)
class OwnerEntity:
    """
    Common shape of every status-tracked entity.

    ``current_status`` is the record ``current_status_id`` points at,
    unless ``status_diverged`` is set: then the pointer named an older
    record and ``current_status`` is the history's latest instead.
    """
    kind: ClassVar[EntityKind]

    id: str
    current_status_id: Optional[str] = None
    current_status: Optional[StatusRecord] = None
    statuses: StatusHistory = field(default_factory=StatusHistory)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    status_diverged: bool = False

    @property
    def status(self) -> Optional[StatusValue]:
        return self.current_status.status if self.current_status else None

    def status_label(self) -> Optional[str]:
        if self.current_status is None:
            return None
        return descriptor_for(self.kind).label(self.current_status.status)

    def to_dict(self) -> Dict[str, Any]:
        """Plain, JSON-ready dict for the API layer."""
        out: Dict[str, Any] = {"kind": self.kind.value}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, StatusHistory):
                value = [rec.to_dict() for rec in value]
            elif isinstance(value, StatusRecord):
                value = value.to_dict()
            elif isinstance(value, datetime):
                value = value.isoformat()
            out[f.name] = value
        out["status"] = self.status.value if self.status else None
        return out


@dataclass(kw_only=True)
class Lesson(OwnerEntity):
    """A booked lesson; its parent chain is quote → request → student."""
    kind: ClassVar[EntityKind] = EntityKind.LESSON

    quote_id: str


@dataclass(kw_only=True)
class LessonPlan(OwnerEntity):
    kind: ClassVar[EntityKind] = EntityKind.LESSON_PLAN

    teacher_id: str
    title: str
    description: str = ""
    lesson_id: Optional[str] = None
    due_date: Optional[datetime] = None


@dataclass(kw_only=True)
class Milestone(OwnerEntity):
    kind: ClassVar[EntityKind] = EntityKind.MILESTONE

    lesson_plan_id: str
    title: str
    description: str = ""
    due_date: Optional[datetime] = None


@dataclass(kw_only=True)
class Goal(OwnerEntity):
    kind: ClassVar[EntityKind] = EntityKind.GOAL

    lesson_id: str
    title: str
    description: str = ""
    estimated_lesson_count: int = 1


@dataclass(kw_only=True)
class LessonQuote(OwnerEntity):
    """A teacher's offer for a lesson request; ``hourly_rate`` in minor units."""
    kind: ClassVar[EntityKind] = EntityKind.LESSON_QUOTE

    lesson_request_id: str
    teacher_id: str
    hourly_rate: int = 0


@dataclass(kw_only=True)
class Objective(OwnerEntity):
    kind: ClassVar[EntityKind] = EntityKind.OBJECTIVE

    student_id: str
    title: str
    description: str = ""
    target_date: Optional[datetime] = None


_KIND_BY_ENUM = {descriptor_for(k).status_enum: k for k in EntityKind}

ENTITY_CLASSES: Dict[EntityKind, type] = {
    cls.kind: cls for cls in (Lesson, LessonPlan, Milestone, Goal, LessonQuote, Objective)
}
