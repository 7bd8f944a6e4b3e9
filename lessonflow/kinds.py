"""
lessonflow.kinds
================

Entity kinds and their status vocabularies.

Every owner kind (lesson, lesson plan, milestone, goal, quote, objective)
follows the same status-history pattern; what differs is data: the
status enumeration, the legal-transition table, the statuses a fresh
entity may start in and the fallback used when stored data drifts.
That data lives in one :class:`KindDescriptor` per kind so the rest of
the package can stay generic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Mapping, Optional, Type

from lessonflow.errors import ValidationError


class EntityKind(str, Enum):
    """Owner kinds that carry a status history."""
    LESSON = "lesson"
    LESSON_PLAN = "lesson_plan"
    MILESTONE = "milestone"
    GOAL = "goal"
    LESSON_QUOTE = "lesson_quote"
    OBJECTIVE = "objective"

    def __str__(self) -> str:
        return self.value


class StatusValue(str, Enum):
    """Base for every per-kind status enumeration."""

    def __str__(self) -> str:        # nicer REPL display
        return self.name


class LessonStatusValue(StatusValue):
    REQUESTED = "REQUESTED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"
    VOIDED = "VOIDED"


class LessonPlanStatusValue(StatusValue):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


class MilestoneStatusValue(StatusValue):
    CREATED = "CREATED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class GoalStatusValue(StatusValue):
    CREATED = "CREATED"          # defined, not started
    IN_PROGRESS = "IN_PROGRESS"
    ACHIEVED = "ACHIEVED"
    ABANDONED = "ABANDONED"      # no longer pursued


class LessonQuoteStatusValue(StatusValue):
    CREATED = "CREATED"
    ACCEPTED = "ACCEPTED"        # student accepted; a lesson follows
    REJECTED = "REJECTED"


class ObjectiveStatusValue(StatusValue):
    CREATED = "CREATED"
    IN_PROGRESS = "IN_PROGRESS"
    ACHIEVED = "ACHIEVED"
    ABANDONED = "ABANDONED"


TransitionTable = Mapping[StatusValue, Mapping[str, StatusValue]]


@dataclass(frozen=True)
class KindDescriptor:
    """
    Everything the generic machinery needs to know about one kind.

    Parameters
    ----------
    kind : EntityKind
        Which owner kind this describes.
    status_enum : type[StatusValue]
        The kind's status enumeration.
    transitions : mapping
        ``current status → {action name → resulting status}``.  A status
        mapped to an empty dict is terminal.  Self-loops are only legal
        when listed here.
    initial : frozenset
        Statuses a kind may enter when its history is empty.
    fallback : StatusValue
        Substituted on read paths when a stored status string does not
        parse.  Write paths never use it.
    created_with : StatusValue | None
        Status written together with the owner row, or ``None`` when the
        kind is created with an empty history.
    labels : mapping
        Display-label overrides; everything else is title-cased.
    """
    kind: EntityKind
    status_enum: Type[StatusValue]
    transitions: TransitionTable
    initial: FrozenSet[StatusValue]
    fallback: StatusValue
    created_with: Optional[StatusValue] = None
    labels: Mapping[StatusValue, str] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Status parsing
    # ------------------------------------------------------------------
    def parse_status(self, value) -> StatusValue:
        """Return the enum member for *value* or raise ValidationError."""
        if isinstance(value, self.status_enum):
            return value
        if isinstance(value, StatusValue):
            # member of another kind's enum, e.g. GoalStatusValue on a lesson
            raise ValidationError(
                f"{value.name} is a {type(value).__name__}, not a {self.kind.value} status",
                entity_kind=self.kind.value,
                status=value.value,
            )
        try:
            return self.status_enum(str(value).strip().upper())
        except ValueError:
            raise ValidationError(
                f"invalid {self.kind.value} status value: {value!r}",
                entity_kind=self.kind.value,
                status=str(value),
            ) from None

    # ------------------------------------------------------------------
    # Table queries
    # ------------------------------------------------------------------
    def targets(self, current: Optional[StatusValue]) -> FrozenSet[StatusValue]:
        """Statuses reachable in one step (``None`` = empty history)."""
        if current is None:
            return self.initial
        return frozenset(self.transitions.get(current, {}).values())

    def actions(self, current: Optional[StatusValue]) -> Dict[str, StatusValue]:
        if current is None:
            return {}
        return dict(self.transitions.get(current, {}))

    def is_terminal(self, status: StatusValue) -> bool:
        return not self.transitions.get(status)

    def label(self, status: StatusValue) -> str:
        """Human-readable label, e.g. ``PENDING_APPROVAL`` → ``Pending Approval``."""
        if status in self.labels:
            return self.labels[status]
        return " ".join(word.capitalize() for word in status.value.split("_"))


# ---------------------------------------------------------------------
# Per-kind tables
# ---------------------------------------------------------------------
_L = LessonStatusValue
_LP = LessonPlanStatusValue
_M = MilestoneStatusValue
_G = GoalStatusValue
_Q = LessonQuoteStatusValue
_O = ObjectiveStatusValue

DESCRIPTORS: Dict[EntityKind, KindDescriptor] = {
    EntityKind.LESSON: KindDescriptor(
        kind=EntityKind.LESSON,
        status_enum=LessonStatusValue,
        transitions={
            _L.REQUESTED: {"ACCEPT": _L.ACCEPTED, "REJECT": _L.REJECTED},
            _L.ACCEPTED:  {"COMPLETE": _L.COMPLETED, "VOID": _L.VOIDED},
            _L.REJECTED:  {"VOID": _L.VOIDED},
            _L.COMPLETED: {"VOID": _L.VOIDED},
            _L.VOIDED:    {},
        },
        # booked straight from an accepted quote, or requested first
        initial=frozenset({_L.REQUESTED, _L.ACCEPTED}),
        fallback=_L.REQUESTED,
    ),
    EntityKind.LESSON_PLAN: KindDescriptor(
        kind=EntityKind.LESSON_PLAN,
        status_enum=LessonPlanStatusValue,
        transitions={
            _LP.DRAFT: {
                "SUBMIT_FOR_APPROVAL": _LP.PENDING_APPROVAL,
                "CANCEL_PLAN": _LP.CANCELLED,
            },
            _LP.PENDING_APPROVAL: {
                "APPROVE": _LP.ACTIVE,
                "REJECT": _LP.REJECTED,
                "REVISE": _LP.DRAFT,
                "CANCEL_PLAN": _LP.CANCELLED,
            },
            _LP.ACTIVE: {"COMPLETE_PLAN": _LP.COMPLETED, "CANCEL_PLAN": _LP.CANCELLED},
            _LP.REJECTED: {"REVISE": _LP.DRAFT, "CANCEL_PLAN": _LP.CANCELLED},
            _LP.COMPLETED: {},
            _LP.CANCELLED: {},
        },
        initial=frozenset({_LP.DRAFT}),
        fallback=_LP.DRAFT,
        created_with=_LP.DRAFT,
    ),
    EntityKind.MILESTONE: KindDescriptor(
        kind=EntityKind.MILESTONE,
        status_enum=MilestoneStatusValue,
        transitions={
            _M.CREATED: {"START_PROGRESS": _M.IN_PROGRESS, "CANCEL_MILESTONE": _M.CANCELLED},
            _M.IN_PROGRESS: {
                "MARK_COMPLETED": _M.COMPLETED,
                "CANCEL_MILESTONE": _M.CANCELLED,
                "RESET_TO_CREATED": _M.CREATED,
            },
            # a completed milestone is still cancelled when its plan is
            _M.COMPLETED: {"CANCEL_MILESTONE": _M.CANCELLED},
            _M.CANCELLED: {},
        },
        initial=frozenset({_M.CREATED}),
        fallback=_M.CREATED,
        created_with=_M.CREATED,
    ),
    EntityKind.GOAL: KindDescriptor(
        kind=EntityKind.GOAL,
        status_enum=GoalStatusValue,
        transitions={
            _G.CREATED:     {"START": _G.IN_PROGRESS, "ABANDON": _G.ABANDONED},
            _G.IN_PROGRESS: {"COMPLETE": _G.ACHIEVED, "ABANDON": _G.ABANDONED},
            _G.ACHIEVED:    {"ABANDON": _G.ABANDONED},
            _G.ABANDONED:   {},
        },
        initial=frozenset({_G.CREATED}),
        fallback=_G.CREATED,
        created_with=_G.CREATED,
        labels={_G.CREATED: "Ready to Start"},
    ),
    EntityKind.LESSON_QUOTE: KindDescriptor(
        kind=EntityKind.LESSON_QUOTE,
        status_enum=LessonQuoteStatusValue,
        transitions={
            _Q.CREATED:  {"ACCEPT": _Q.ACCEPTED, "REJECT": _Q.REJECTED},
            _Q.ACCEPTED: {},
            _Q.REJECTED: {},
        },
        initial=frozenset({_Q.CREATED}),
        fallback=_Q.CREATED,
        created_with=_Q.CREATED,
    ),
    EntityKind.OBJECTIVE: KindDescriptor(
        kind=EntityKind.OBJECTIVE,
        status_enum=ObjectiveStatusValue,
        transitions={
            _O.CREATED: {
                "START": _O.IN_PROGRESS,
                "COMPLETE": _O.ACHIEVED,
                "ABANDON": _O.ABANDONED,
            },
            _O.IN_PROGRESS: {"COMPLETE": _O.ACHIEVED, "ABANDON": _O.ABANDONED},
            _O.ACHIEVED:    {"ABANDON": _O.ABANDONED},
            _O.ABANDONED:   {},
        },
        initial=frozenset({_O.CREATED}),
        fallback=_O.CREATED,
        created_with=_O.CREATED,
    ),
}


def parse_kind(value) -> EntityKind:
    """Accept ``EntityKind``, ``"lesson_plan"``, ``"LESSON_PLAN"`` or ``"lesson-plan"``."""
    if isinstance(value, EntityKind):
        return value
    key = str(value).strip().lower().replace("-", "_")
    try:
        return EntityKind(key)
    except ValueError:
        raise ValidationError(f"unknown entity kind: {value!r}", entity_kind=str(value)) from None


def descriptor_for(kind) -> KindDescriptor:
    return DESCRIPTORS[parse_kind(kind)]


def all_kinds() -> List[EntityKind]:
    return list(DESCRIPTORS)
