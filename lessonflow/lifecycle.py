"""
lessonflow.lifecycle
====================

State-transition guard for status-tracked entities.

Each entity kind has a small finite-state machine (see
:pydata:`lessonflow.kinds.DESCRIPTORS`) describing which statuses are
legal successors of each status, and which statuses a fresh entity may
start in.  :class:`TransitionValidator` answers questions against that
table; :func:`advance_status` applies a validated transition to an
in-memory entity.

Every write in the package goes through :meth:`TransitionValidator.validate_or_fail`.
"""

from __future__ import annotations

from functools import lru_cache
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional, Tuple

from lessonflow.errors import InvalidTransitionError, ValidationError
from lessonflow.kinds import KindDescriptor, StatusValue, descriptor_for
from lessonflow.models import OwnerEntity, StatusRecord, as_utc, utcnow


class TransitionValidator:
    """
    Legal-transition checks for one entity kind.

    Example
    -------
    >>> v = validator_for("lesson")
    >>> v.can_transition("REQUESTED", "ACCEPTED")
    True
    >>> v.validate_or_fail("COMPLETED", "REQUESTED")
    Traceback (most recent call last):
        ...
    lessonflow.errors.InvalidTransitionError: illegal lesson transition COMPLETED → REQUESTED
    """

    def __init__(self, descriptor: KindDescriptor) -> None:
        self.descriptor = descriptor

    @property
    def kind(self):
        return self.descriptor.kind

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _current(self, current) -> Optional[StatusValue]:
        if current is None:
            return None
        if isinstance(current, StatusRecord):
            current = current.status
        return self.descriptor.parse_status(current)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def can_transition(self, current, requested) -> bool:
        """``True`` if *requested* may follow *current* (``None`` = empty history)."""
        try:
            self.validate_or_fail(current, requested)
        except (InvalidTransitionError, ValidationError):
            return False
        return True

    def validate_or_fail(self, current, requested) -> StatusValue:
        """
        Return the parsed requested status if the transition is legal.

        Raises :class:`ValidationError` for values outside the kind's
        enumeration and :class:`InvalidTransitionError` naming the pair
        otherwise.  Re-entering the current status is only legal when
        the table lists the self-loop.
        """
        cur = self._current(current)
        target = self.descriptor.parse_status(requested)
        if target in self.descriptor.targets(cur):
            return target

        if cur is None:
            starts = ", ".join(sorted(s.value for s in self.descriptor.initial))
            msg = f"{self.kind.value} cannot start in {target.value} (allowed: {starts})"
        elif cur is target:
            msg = f"{self.kind.value} is already {target.value}"
        else:
            msg = None
        raise InvalidTransitionError(self.kind, cur, target, message=msg)

    def allowed_from(self, current) -> FrozenSet[StatusValue]:
        return self.descriptor.targets(self._current(current))

    def actions_from(self, current) -> Dict[str, StatusValue]:
        """Named actions available from *current*, e.g. ``{"ACCEPT": ACCEPTED}``."""
        return self.descriptor.actions(self._current(current))

    def resolve_action(self, current, action: str) -> StatusValue:
        """Resulting status of applying *action* to *current*."""
        cur = self._current(current)
        name = str(action).strip().upper()
        actions = self.descriptor.actions(cur)
        if name not in actions:
            available = ", ".join(sorted(actions)) or "none"
            raise InvalidTransitionError(
                self.kind,
                cur,
                name,
                message=(
                    f"action {name} is not available for {self.kind.value} in "
                    f"{cur.value if cur else '<none>'} (available: {available})"
                ),
            )
        return actions[name]

    def edges(self) -> List[Tuple[Optional[StatusValue], Optional[str], StatusValue]]:
        """The whole table as ``(from, action, to)`` rows; creation rows have ``from=None``."""
        rows: List[Tuple[Optional[StatusValue], Optional[str], StatusValue]] = [
            (None, None, s) for s in sorted(self.descriptor.initial, key=_order(self.descriptor))
        ]
        for src in self.descriptor.status_enum:
            for action, dst in self.descriptor.actions(src).items():
                rows.append((src, action, dst))
        return rows


def _order(descriptor: KindDescriptor):
    members = list(descriptor.status_enum)
    return members.index


@lru_cache(maxsize=None)
def _cached_validator(kind) -> TransitionValidator:
    return TransitionValidator(descriptor_for(kind))


def validator_for(kind) -> TransitionValidator:
    """Shared validator for a kind (``EntityKind`` or its name)."""
    return _cached_validator(descriptor_for(kind).kind)


def advance_status(
    entity: OwnerEntity,
    requested,
    context=None,
    *,
    now: Optional[datetime] = None,
) -> StatusRecord:
    """
    Validate and apply a transition to *entity* **in-place**.

    The new record is timestamped by the server clock, never earlier
    than the current record, so the history stays monotonic.  The
    entity's history, ``current_status`` and ``current_status_id`` are
    updated; the record is returned for persisting.
    """
    validator = validator_for(entity.kind)
    current = entity.statuses.current()
    target = validator.validate_or_fail(current, requested)

    stamp = as_utc(now) if now is not None else utcnow()
    if current is not None and current.created_at > stamp:
        stamp = current.created_at

    record = StatusRecord.create(entity.kind, entity.id, target, context, now=stamp)
    entity.statuses = entity.statuses.append(record)
    entity.current_status = record
    entity.current_status_id = record.id
    entity.status_diverged = False
    entity.updated_at = record.created_at
    return record
