"""
lessonflow.mappers
==================

Row → domain conversion for status-tracked owners.

A mapper receives what the store read (owner row, its status rows and
the row the owner's ``current_status_id`` points at) and builds the
in-memory entity.  Mappers never touch the database and never mutate
their input, so the same :class:`PersistedOwner` always maps to an
equal entity.

Stored status strings that no longer parse fall back to the kind's
default with a warning.  Broken current-status pointers raise
:class:`~lessonflow.errors.MappingError`; a pointer at an older record
of the same owner is tolerated and flagged as ``status_diverged``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from lessonflow.errors import MappingError, OrderingError, ValidationError
from lessonflow.history import StatusHistory
from lessonflow.kinds import EntityKind, descriptor_for
from lessonflow.models import (
    Goal,
    Lesson,
    LessonPlan,
    LessonQuote,
    Milestone,
    Objective,
    OwnerEntity,
    StatusRecord,
    as_utc,
)

logger = logging.getLogger(__name__)


@dataclass
class PersistedOwner:
    """Raw read of one owner: its row, status rows and the pointed-at row."""
    row: Any
    statuses: List[Any] = field(default_factory=list)
    current_status: Optional[Any] = None


class EntityMapper:
    """Generic mapper; subclasses name the entity class and its fields."""

    entity_cls: type = OwnerEntity
    field_names: Tuple[str, ...] = ()

    def __init__(self) -> None:
        self.kind: EntityKind = self.entity_cls.kind
        self.descriptor = descriptor_for(self.kind)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def to_domain(self, persisted: PersistedOwner, *, strict: bool = False) -> OwnerEntity:
        """Build the entity.

        With *strict* (write paths) a current record whose stored status
        no longer parses is a :class:`MappingError` instead of falling back.
        """
        row = persisted.row
        if strict:
            self._check_latest_parses(row.id, persisted.statuses)
        history = self.history_from_rows(row.id, persisted.statuses)
        current, diverged = self._resolve_current(row, persisted.current_status, history)
        return self.entity_cls(
            id=row.id,
            current_status_id=row.current_status_id,
            current_status=current,
            statuses=history,
            created_at=_opt_utc(getattr(row, "created_at", None)),
            updated_at=_opt_utc(getattr(row, "updated_at", None)),
            status_diverged=diverged,
            **self.fields(row),
        )

    def record_from_row(self, status_row) -> StatusRecord:
        """Build a record, substituting the kind's fallback for unknown values."""
        try:
            status = self.descriptor.parse_status(status_row.status)
        except ValidationError:
            status = self.descriptor.fallback
            logger.warning(
                f"Invalid {self.kind.value} status value '{status_row.status}' on record "
                f"{status_row.id}; defaulting to {status.value}"
            )
        try:
            return StatusRecord(
                id=status_row.id,
                owner_id=status_row.owner_id,
                status=status,
                created_at=status_row.created_at,
                context=status_row.context,
            )
        except ValidationError as exc:
            raise MappingError(
                f"unreadable {self.kind.value} status record {status_row.id}: {exc.message}",
                entity_kind=self.kind.value,
                record_id=status_row.id,
            ) from exc

    def history_from_rows(self, owner_id: str, status_rows) -> StatusHistory:
        ordered = sorted(status_rows, key=_row_order)
        records = [self.record_from_row(r) for r in ordered]
        for rec in records:
            if rec.owner_id != owner_id:
                raise MappingError(
                    f"status record {rec.id} belongs to {rec.owner_id}, not {self.kind.value} {owner_id}",
                    entity_kind=self.kind.value,
                    owner_id=owner_id,
                    record_id=rec.id,
                )
        try:
            return StatusHistory(records)
        except OrderingError as exc:  # pragma: no cover - rows are sorted above
            raise MappingError(exc.message, entity_kind=self.kind.value, owner_id=owner_id) from exc

    def _check_latest_parses(self, owner_id: str, status_rows) -> None:
        if not status_rows:
            return
        latest = max(status_rows, key=_row_order)
        try:
            self.descriptor.parse_status(latest.status)
        except ValidationError as exc:
            raise MappingError(
                f"current status '{latest.status}' of {self.kind.value} {owner_id} is not a "
                f"{self.kind.value} status; refusing to write on top of it",
                entity_kind=self.kind.value,
                owner_id=owner_id,
                record_id=latest.id,
            ) from exc

    def fields(self, row) -> Dict[str, Any]:
        """Kind-specific constructor arguments taken from the owner row."""
        out = {}
        for name in self.field_names:
            value = getattr(row, name)
            if name.endswith("_date") and value is not None:
                value = as_utc(value)
            out[name] = value
        return out

    # ------------------------------------------------------------------
    # Current-status resolution
    # ------------------------------------------------------------------
    def _resolve_current(
        self, row, pointed_row, history: StatusHistory
    ) -> Tuple[Optional[StatusRecord], bool]:
        kind = self.kind.value
        pointer = row.current_status_id

        if pointer is None:
            if history:
                raise MappingError(
                    f"{kind} {row.id} has {len(history)} status records but no current status",
                    entity_kind=kind,
                    owner_id=row.id,
                )
            if self.descriptor.created_with is not None:
                raise MappingError(
                    f"{kind} {row.id} has no status; it should have been created "
                    f"with {self.descriptor.created_with.value}",
                    entity_kind=kind,
                    owner_id=row.id,
                )
            return None, False

        if pointed_row is None:
            raise MappingError(
                f"{kind} {row.id} points at missing status record {pointer}",
                entity_kind=kind,
                owner_id=row.id,
                record_id=pointer,
            )
        if pointed_row.owner_id != row.id:
            raise MappingError(
                f"{kind} {row.id} points at status record {pointer} of owner {pointed_row.owner_id}",
                entity_kind=kind,
                owner_id=row.id,
                record_id=pointer,
            )

        pointed = history.find(pointer)
        if pointed is None:
            raise MappingError(
                f"current status {pointer} of {kind} {row.id} is not in its history",
                entity_kind=kind,
                owner_id=row.id,
                record_id=pointer,
            )

        latest = history.current()
        if latest.id != pointed.id:
            logger.warning(
                f"{kind} {row.id} current status {pointer} ({pointed.status}) lags history "
                f"latest {latest.id} ({latest.status}); using history"
            )
            return latest, True
        return pointed, False


# ---------------------------------------------------------------------
# Per-kind mappers
# ---------------------------------------------------------------------
class LessonMapper(EntityMapper):
    entity_cls = Lesson
    field_names = ("quote_id",)


class LessonPlanMapper(EntityMapper):
    entity_cls = LessonPlan
    field_names = ("teacher_id", "title", "description", "lesson_id", "due_date")


class MilestoneMapper(EntityMapper):
    entity_cls = Milestone
    field_names = ("lesson_plan_id", "title", "description", "due_date")


class GoalMapper(EntityMapper):
    entity_cls = Goal
    field_names = ("lesson_id", "title", "description", "estimated_lesson_count")


class LessonQuoteMapper(EntityMapper):
    entity_cls = LessonQuote
    field_names = ("lesson_request_id", "teacher_id", "hourly_rate")


class ObjectiveMapper(EntityMapper):
    entity_cls = Objective
    field_names = ("student_id", "title", "description", "target_date")


MAPPERS: Dict[EntityKind, EntityMapper] = {
    m.kind: m
    for m in (
        LessonMapper(),
        LessonPlanMapper(),
        MilestoneMapper(),
        GoalMapper(),
        LessonQuoteMapper(),
        ObjectiveMapper(),
    )
}


def mapper_for(kind) -> EntityMapper:
    return MAPPERS[descriptor_for(kind).kind]


def _row_order(status_row):
    return as_utc(status_row.created_at), getattr(status_row, "position", 0)


def _opt_utc(value):
    return as_utc(value) if value is not None else None
