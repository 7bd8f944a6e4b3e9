"""
lessonflow.store
================

SQLModel-backed persistence adapter for status-tracked owners.

:class:`StatusStore` wraps a session and offers exactly what the
lifecycle service needs:

* fetch an owner joined with its full status collection and the
  pointed-at current record (:class:`~lessonflow.mappers.PersistedOwner`)
* insert an immutable status row
* compare-and-swap the owner's ``current_status_id``
* create and (cascade-)delete owners

Transactions are the caller's business; the store only flushes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete, update
from sqlmodel import Session, col, select

from lessonflow.db import SessionLocal, owner_table, status_table
from lessonflow.errors import OwnerNotFoundError
from lessonflow.kinds import parse_kind
from lessonflow.mappers import PersistedOwner
from lessonflow.models import StatusRecord


class StatusStore:
    """
    Session wrapper used by :class:`~lessonflow.service.LifecycleService`.

    Usable as a context manager; the session is closed on exit.
    """

    def __init__(self, session: Session | None = None) -> None:
        self._session: Session = session or SessionLocal()

    @property
    def session(self) -> Session:
        return self._session

    # ------------------------------------------------------------------ reads
    def fetch(self, kind, owner_id: str) -> Optional[PersistedOwner]:
        """Owner row + status rows (oldest first) + pointed-at row, or ``None``."""
        kind = parse_kind(kind)
        owner_cls, status_cls = owner_table(kind), status_table(kind)

        # pointer updates bypass the ORM, so never trust the identity map here
        row = self._session.get(owner_cls, owner_id, populate_existing=True)
        if row is None:
            return None
        statuses = self._session.exec(
            select(status_cls)
            .where(status_cls.owner_id == owner_id)
            .order_by(col(status_cls.created_at), col(status_cls.position))
        ).all()
        # looked up without an owner filter so foreign pointers stay visible
        current = (
            self._session.get(status_cls, row.current_status_id)
            if row.current_status_id is not None
            else None
        )
        return PersistedOwner(row=row, statuses=list(statuses), current_status=current)

    def require(self, kind, owner_id: str) -> PersistedOwner:
        persisted = self.fetch(kind, owner_id)
        if persisted is None:
            kind = parse_kind(kind)
            raise OwnerNotFoundError(
                f"{kind.value} {owner_id} not found", entity_kind=kind.value, owner_id=owner_id
            )
        return persisted

    # ----------------------------------------------------------------- writes
    def add_owner(self, kind, **fields: Any):
        """Insert an owner row (no status yet) and flush."""
        row = owner_table(parse_kind(kind))(**fields)
        self._session.add(row)
        self._session.flush()
        return row

    def insert_record(self, kind, record: StatusRecord, position: int):
        """Insert *record* as the owner's *position*-th status row and flush.

        A concurrent writer that already took *position* makes the flush
        fail with :class:`sqlalchemy.exc.IntegrityError`.
        """
        row = status_table(parse_kind(kind)).from_record(record, position)
        self._session.add(row)
        self._session.flush()
        return row

    def swap_pointer(
        self,
        kind,
        owner_id: str,
        expected_id: Optional[str],
        new_id: str,
        updated_at: datetime,
    ) -> bool:
        """Point the owner at *new_id* iff it still points at *expected_id*."""
        owner_cls = owner_table(parse_kind(kind))
        pointer = col(owner_cls.current_status_id)
        stmt = (
            update(owner_cls)
            .where(col(owner_cls.id) == owner_id)
            .where(pointer.is_(None) if expected_id is None else pointer == expected_id)
            .values(current_status_id=new_id, updated_at=updated_at)
        )
        result = self._session.connection().execute(stmt)
        return result.rowcount == 1

    def delete_owner(self, kind, owner_id: str) -> int:
        """Delete the owner and all of its status rows; returns rows removed."""
        kind = parse_kind(kind)
        owner_cls, status_cls = owner_table(kind), status_table(kind)
        row = self._session.get(owner_cls, owner_id)
        if row is None:
            raise OwnerNotFoundError(
                f"{kind.value} {owner_id} not found", entity_kind=kind.value, owner_id=owner_id
            )
        result = self._session.connection().execute(
            delete(status_cls).where(col(status_cls.owner_id) == owner_id)
        )
        self._session.delete(row)
        self._session.flush()
        return result.rowcount

    # ----------------------------------------------------- context manager
    def __enter__(self) -> "StatusStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._session.close()
