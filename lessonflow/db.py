"""
lessonflow.db
=============

SQL persistence layer for lessonflow.

This module exposes:

* ``engine`` – a global SQLModel engine pointing at ``settings.database_url``
* ``SessionLocal`` – a session factory used via ``with SessionLocal() as s:``
* one owner table and one status table per entity kind
* ``create_all()`` – helper to create tables at first run

Status tables all share the same columns (``owner_id``, ``position``,
``status``, ``context``, ``created_at``); ``position`` is unique per
owner, which is what makes two concurrent appends collide.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Tuple, Type

from sqlalchemy import JSON, DateTime, UniqueConstraint, event
from sqlalchemy.engine import Engine
from sqlmodel import Field, Session, SQLModel, create_engine

from lessonflow.kinds import EntityKind
from lessonflow.models import StatusRecord, utcnow
from lessonflow.settings import settings


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
def make_engine(url: str | None = None, echo: bool | None = None) -> Engine:
    """Create an engine; SQLite connections get foreign-key enforcement."""
    url = url or settings.database_url
    is_sqlite = url.startswith("sqlite")
    eng = create_engine(
        url,
        echo=settings.db_echo if echo is None else echo,
        connect_args={"check_same_thread": False} if is_sqlite else {},
    )
    if is_sqlite:
        event.listen(eng, "connect", _enable_sqlite_fks)
    return eng


def _enable_sqlite_fks(dbapi_conn, _record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


engine = make_engine()


# ---------------------------------------------------------------------------
# Session factory
# ---------------------------------------------------------------------------
def SessionLocal(bind: Engine | None = None) -> Session:  # noqa: N802 (factory camel-case)
    """Return a new Session bound to *bind* or the global engine."""
    return Session(bind or engine, expire_on_commit=False)


# ---------------------------------------------------------------------------
# Shared column sets
# ---------------------------------------------------------------------------
class OwnerRowBase(SQLModel):
    """Columns every status-tracked owner table carries."""

    id: str = Field(primary_key=True)
    # no FK: owner and status tables would reference each other
    current_status_id: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class StatusRowBase(SQLModel):
    """Columns every status-history table carries (``owner_id`` is per table)."""

    id: str = Field(primary_key=True)
    position: int
    status: str = Field(max_length=50)
    context: Optional[Any] = Field(default=None, sa_type=JSON)
    created_at: datetime = Field(sa_type=DateTime(timezone=True))

    @classmethod
    def from_record(cls, record: StatusRecord, position: int) -> "StatusRowBase":
        """Create a DB row from an in-memory status record."""
        return cls(
            id=record.id,
            owner_id=record.owner_id,
            position=position,
            status=record.status.value,
            context=record.context,
            created_at=record.created_at,
        )


# ---------------------------------------------------------------------------
# Owner tables
# ---------------------------------------------------------------------------
class LessonQuoteDB(OwnerRowBase, table=True):
    __tablename__ = "lesson_quote"

    lesson_request_id: str = Field(index=True)
    teacher_id: str = Field(index=True)
    hourly_rate: int = 0


class LessonDB(OwnerRowBase, table=True):
    __tablename__ = "lesson"

    quote_id: str = Field(foreign_key="lesson_quote.id", index=True)


class LessonPlanDB(OwnerRowBase, table=True):
    __tablename__ = "lesson_plan"

    teacher_id: str = Field(index=True)
    lesson_id: Optional[str] = Field(default=None, foreign_key="lesson.id", unique=True)
    title: str
    description: str = ""
    due_date: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))


class MilestoneDB(OwnerRowBase, table=True):
    __tablename__ = "milestone"

    lesson_plan_id: str = Field(foreign_key="lesson_plan.id", index=True)
    title: str
    description: str = ""
    due_date: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))


class GoalDB(OwnerRowBase, table=True):
    __tablename__ = "goal"

    lesson_id: str = Field(foreign_key="lesson.id", index=True)
    title: str
    description: str = ""
    estimated_lesson_count: int = 1


class ObjectiveDB(OwnerRowBase, table=True):
    __tablename__ = "objective"

    student_id: str = Field(index=True)
    title: str
    description: str = ""
    target_date: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))


# ---------------------------------------------------------------------------
# Status tables
# ---------------------------------------------------------------------------
class LessonStatusDB(StatusRowBase, table=True):
    __tablename__ = "lesson_status"
    __table_args__ = (UniqueConstraint("owner_id", "position", name="uq_lesson_status_position"),)

    owner_id: str = Field(foreign_key="lesson.id", index=True)


class LessonPlanStatusDB(StatusRowBase, table=True):
    __tablename__ = "lesson_plan_status"
    __table_args__ = (UniqueConstraint("owner_id", "position", name="uq_lesson_plan_status_position"),)

    owner_id: str = Field(foreign_key="lesson_plan.id", index=True)


class MilestoneStatusDB(StatusRowBase, table=True):
    __tablename__ = "milestone_status"
    __table_args__ = (UniqueConstraint("owner_id", "position", name="uq_milestone_status_position"),)

    owner_id: str = Field(foreign_key="milestone.id", index=True)


class GoalStatusDB(StatusRowBase, table=True):
    __tablename__ = "goal_status"
    __table_args__ = (UniqueConstraint("owner_id", "position", name="uq_goal_status_position"),)

    owner_id: str = Field(foreign_key="goal.id", index=True)


class LessonQuoteStatusDB(StatusRowBase, table=True):
    __tablename__ = "lesson_quote_status"
    __table_args__ = (UniqueConstraint("owner_id", "position", name="uq_lesson_quote_status_position"),)

    owner_id: str = Field(foreign_key="lesson_quote.id", index=True)


class ObjectiveStatusDB(StatusRowBase, table=True):
    __tablename__ = "objective_status"
    __table_args__ = (UniqueConstraint("owner_id", "position", name="uq_objective_status_position"),)

    owner_id: str = Field(foreign_key="objective.id", index=True)


TABLES: Dict[EntityKind, Tuple[Type[OwnerRowBase], Type[StatusRowBase]]] = {
    EntityKind.LESSON: (LessonDB, LessonStatusDB),
    EntityKind.LESSON_PLAN: (LessonPlanDB, LessonPlanStatusDB),
    EntityKind.MILESTONE: (MilestoneDB, MilestoneStatusDB),
    EntityKind.GOAL: (GoalDB, GoalStatusDB),
    EntityKind.LESSON_QUOTE: (LessonQuoteDB, LessonQuoteStatusDB),
    EntityKind.OBJECTIVE: (ObjectiveDB, ObjectiveStatusDB),
}


def owner_table(kind: EntityKind) -> Type[OwnerRowBase]:
    return TABLES[kind][0]


def status_table(kind: EntityKind) -> Type[StatusRowBase]:
    return TABLES[kind][1]


# ---------------------------------------------------------------------------
# Utility: create tables
# ---------------------------------------------------------------------------
def create_all(bind: Engine | None = None) -> None:
    """Create all tables (safe if they already exist)."""
    SQLModel.metadata.create_all(bind or engine)

