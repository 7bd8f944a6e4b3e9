"""
lessonflow.history
==================

Append-only, time-ordered sequence of status records for one owner.

A :class:`StatusHistory` never changes after construction; ``append``
returns a new history whose ``current()`` is the appended record.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Iterator, Optional, Tuple

from lessonflow.errors import OrderingError, ValidationError

if TYPE_CHECKING:  # pragma: no cover
    from lessonflow.models import StatusRecord

logger = logging.getLogger(__name__)


class StatusHistory:
    """
    Ordered status records of a single owner, oldest first.

    Example
    -------
    >>> h = StatusHistory()
    >>> h.current() is None
    True
    >>> h = h.append(first)
    >>> h.current() is first
    True
    """

    __slots__ = ("_records",)

    def __init__(self, records: Iterable["StatusRecord"] = ()) -> None:
        items: Tuple["StatusRecord", ...] = tuple(records)
        for prev, rec in zip(items, items[1:]):
            _check_follows(prev, rec)
        self._records = items

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def append(self, record: "StatusRecord") -> "StatusHistory":
        """Return a new history ending in *record*.

        Raises :class:`OrderingError` if *record* is older than the
        current record, :class:`ValidationError` if it belongs to a
        different owner.
        """
        last = self.current()
        if last is not None:
            _check_follows(last, record)
        clone = StatusHistory.__new__(StatusHistory)
        clone._records = self._records + (record,)
        return clone

    def current(self) -> Optional["StatusRecord"]:
        """Latest record, or ``None`` for an empty history."""
        return self._records[-1] if self._records else None

    @property
    def owner_id(self) -> Optional[str]:
        return self._records[0].owner_id if self._records else None

    def find(self, record_id: str) -> Optional["StatusRecord"]:
        for rec in self._records:
            if rec.id == record_id:
                return rec
        return None

    def statuses(self) -> list:
        """Status values in order, e.g. for timelines."""
        return [rec.status for rec in self._records]

    # ------------------------------------------------------------------
    # Dunder helpers
    # ------------------------------------------------------------------
    def __iter__(self) -> Iterator["StatusRecord"]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __bool__(self) -> bool:
        return bool(self._records)

    def __getitem__(self, index):
        return self._records[index]

    def __eq__(self, other) -> bool:
        if not isinstance(other, StatusHistory):
            return NotImplemented
        return self._records == other._records

    __hash__ = None

    def __repr__(self) -> str:
        return f"StatusHistory({[str(r.status) for r in self._records]})"


def _check_follows(prev: "StatusRecord", rec: "StatusRecord") -> None:
    if rec.owner_id != prev.owner_id:
        raise ValidationError(
            f"status record {rec.id} belongs to {rec.owner_id}, not {prev.owner_id}",
            record_id=rec.id,
            owner_id=rec.owner_id,
        )
    if rec.created_at < prev.created_at:
        logger.error(
            f"Status history for {prev.owner_id} would regress: "
            f"{rec.created_at.isoformat()} < {prev.created_at.isoformat()}"
        )
        raise OrderingError(
            f"record {rec.id} at {rec.created_at.isoformat()} precedes "
            f"current record {prev.id} at {prev.created_at.isoformat()}",
            owner_id=prev.owner_id,
            record_id=rec.id,
        )
