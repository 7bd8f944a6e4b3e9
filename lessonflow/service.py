"""
lessonflow.service
==================

The only writer of status records and the only mutator of an owner's
``current_status_id``.

Writes are optimistic: :meth:`LifecycleService.transition` validates
against a snapshot, then in one transaction appends the record at the
next history position and swaps the owner's pointer from the snapshot
value to the new record.  A concurrent writer makes either step fail,
the transaction rolls back, and the loser gets
:class:`~lessonflow.errors.ConcurrentTransitionError`.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import MISSING, fields as dc_fields
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, Optional, get_type_hints

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from lessonflow.contracts import Caller, TransitionRequest
from lessonflow.db import SessionLocal
from lessonflow.errors import (
    ConcurrentTransitionError,
    InvalidTransitionError,
    OwnerConflictError,
    ValidationError,
)
from lessonflow.history import StatusHistory
from lessonflow.kinds import EntityKind, parse_kind
from lessonflow.lifecycle import advance_status, validator_for
from lessonflow.mappers import mapper_for
from lessonflow.models import OwnerEntity, StatusRecord, new_id, utcnow
from lessonflow.settings import settings
from lessonflow.store import StatusStore

logger = logging.getLogger(__name__)

_UNSET: Any = object()


class LifecycleService:
    """
    Orchestrates status changes for every entity kind.

    Parameters
    ----------
    session_factory : callable, default=SessionLocal
        Returns a fresh :class:`sqlmodel.Session`; one is opened per
        read and per write transaction.
    clock : callable, default=utcnow
        Server clock used to timestamp new records.
    heal_on_read : bool, optional
        Repair a lagging ``current_status_id`` in :meth:`get`
        (defaults to ``settings.heal_on_read``).
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        clock: Callable[[], datetime] = utcnow,
        heal_on_read: Optional[bool] = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self.heal_on_read = settings.heal_on_read if heal_on_read is None else heal_on_read

    @contextmanager
    def _store(self) -> Iterator[StatusStore]:
        with StatusStore(self._session_factory()) as store:
            yield store

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def snapshot(self, kind, owner_id: str, *, strict: bool = False) -> OwnerEntity:
        """Map the owner as currently stored; no healing, no writes."""
        kind = parse_kind(kind)
        with self._store() as store:
            return mapper_for(kind).to_domain(store.require(kind, owner_id), strict=strict)

    def get(self, kind, owner_id: str) -> OwnerEntity:
        entity = self.snapshot(kind, owner_id)
        if entity.status_diverged and self.heal_on_read:
            self._heal(entity)
        return entity

    def history(self, kind, owner_id: str) -> StatusHistory:
        return self.snapshot(kind, owner_id).statuses

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def create(
        self,
        kind,
        *,
        owner_id: Optional[str] = None,
        initial_status=None,
        context: Any = None,
        **fields: Any,
    ) -> OwnerEntity:
        """
        Insert a new owner together with its first status record.

        Kinds created with a status (everything but lessons) get it here;
        *initial_status* overrides it and must be a legal first status.
        A lesson without *initial_status* starts with an empty history.
        """
        kind = parse_kind(kind)
        values = _coerce_fields(kind, fields)
        owner_id = owner_id or new_id()
        now = self._clock()

        first = initial_status if initial_status is not None else mapper_for(kind).descriptor.created_with
        target = validator_for(kind).validate_or_fail(None, first) if first is not None else None

        record = StatusRecord.create(kind, owner_id, target, context, now=now) if target is not None else None
        with self._store() as store:
            try:
                with store.session.begin():
                    store.add_owner(kind, id=owner_id, created_at=now, updated_at=now, **values)
                    if record is not None:
                        store.insert_record(kind, record, 1)
                        store.swap_pointer(kind, owner_id, None, record.id, record.created_at)
            except IntegrityError as exc:
                raise OwnerConflictError(
                    f"cannot create {kind.value} {owner_id}: the id is taken or a parent "
                    f"reference ({_refs(values)}) does not exist",
                    entity_kind=kind.value,
                    owner_id=owner_id,
                ) from exc
            entity = mapper_for(kind).to_domain(store.require(kind, owner_id))

        logger.info(f"Created {kind.value} {owner_id} in {entity.status or '<no status>'}")
        return entity

    def transition(
        self,
        kind,
        owner_id: str,
        requested,
        context: Any = None,
        *,
        expected_status_id: Optional[str] = _UNSET,
    ) -> StatusRecord:
        """
        Append *requested* to the owner's history and point at it.

        Raises :class:`InvalidTransitionError` (nothing written) for an
        illegal move and :class:`ConcurrentTransitionError` when another
        writer got there first or ``expected_status_id`` no longer names
        the current record.
        """
        kind = parse_kind(kind)
        entity = self._snapshot_for_write(kind, owner_id)
        baseline = entity.current_status_id
        current = entity.statuses.current()

        if expected_status_id is not _UNSET:
            observed = current.id if current else None
            if expected_status_id != observed:
                raise ConcurrentTransitionError(
                    f"{kind.value} {owner_id} moved on: expected current status "
                    f"{expected_status_id}, found {observed}",
                    entity_kind=kind.value,
                    owner_id=owner_id,
                )

        try:
            record = advance_status(entity, requested, context, now=self._clock())
        except InvalidTransitionError as exc:
            logger.warning(f"Rejected {kind.value} {owner_id}: {exc.message}")
            raise

        try:
            with self._store() as store:
                with store.session.begin():
                    store.insert_record(kind, record, len(entity.statuses))
                    if not store.swap_pointer(kind, owner_id, baseline, record.id, record.created_at):
                        raise self._lost_race(kind, owner_id, record)
        except IntegrityError as exc:
            raise self._lost_race(kind, owner_id, record) from exc

        from_status = current.status if current else "<none>"
        logger.info(f"{kind.value} {owner_id}: {from_status} → {record.status} ({record.id})")
        return record

    def apply_action(self, kind, owner_id: str, action: str, context: Any = None) -> StatusRecord:
        """Run a named action (e.g. ``ACCEPT``) through :meth:`transition`."""
        kind = parse_kind(kind)
        current = self._snapshot_for_write(kind, owner_id).statuses.current()
        target = validator_for(kind).resolve_action(current, action)
        return self.transition(
            kind, owner_id, target, context, expected_status_id=current.id if current else None
        )

    def reconcile(self, kind, owner_id: str) -> bool:
        """Repair a lagging pointer; ``True`` if something was fixed."""
        entity = self.snapshot(kind, owner_id)
        if not entity.status_diverged:
            return False
        return self._heal(entity)

    def delete(self, kind, owner_id: str) -> int:
        """Delete the owner and its whole history; returns status rows removed."""
        kind = parse_kind(kind)
        with self._store() as store:
            try:
                with store.session.begin():
                    removed = store.delete_owner(kind, owner_id)
            except IntegrityError as exc:
                raise OwnerConflictError(
                    f"cannot delete {kind.value} {owner_id}: other records still reference it",
                    entity_kind=kind.value,
                    owner_id=owner_id,
                ) from exc
        logger.info(f"Deleted {kind.value} {owner_id} with {removed} status records")
        return removed

    # ------------------------------------------------------------------
    # Inbound requests
    # ------------------------------------------------------------------
    def handle(self, request: TransitionRequest, caller: Caller) -> StatusRecord:
        """Entry point for an authenticated request; authorization is upstream."""
        logger.info(
            f"{caller.role.value} {caller.id} requests {request.entity_kind.value} "
            f"{request.owner_id} → {request.requested_status}"
        )
        return self.transition(
            request.entity_kind,
            request.owner_id,
            request.requested_status,
            request.context,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _snapshot_for_write(self, kind: EntityKind, owner_id: str) -> OwnerEntity:
        return self.snapshot(kind, owner_id, strict=True)

    def _lost_race(self, kind: EntityKind, owner_id: str, record: StatusRecord) -> ConcurrentTransitionError:
        logger.warning(f"Concurrent transition on {kind.value} {owner_id}; {record.status} discarded")
        return ConcurrentTransitionError(
            f"{kind.value} {owner_id} was changed by another request; reload and retry",
            entity_kind=kind.value,
            owner_id=owner_id,
            to_status=record.status.value,
        )

    def _heal(self, entity: OwnerEntity) -> bool:
        latest = entity.statuses.current()
        with self._store() as store:
            with store.session.begin():
                healed = store.swap_pointer(
                    entity.kind, entity.id, entity.current_status_id, latest.id, self._clock()
                )
        if healed:
            logger.warning(
                f"Healed {entity.kind.value} {entity.id}: current status "
                f"{entity.current_status_id} → {latest.id}"
            )
            entity.current_status_id = latest.id
            entity.status_diverged = False
        else:
            logger.warning(f"Could not heal {entity.kind.value} {entity.id}; pointer changed concurrently")
        return healed


def _refs(values: Dict[str, Any]) -> str:
    refs = [f"{k}={v}" for k, v in values.items() if k.endswith("_id") and v is not None]
    return ", ".join(refs) or "none"


def _coerce_fields(kind: EntityKind, values: Dict[str, Any]) -> Dict[str, Any]:
    """Check owner columns against the entity class and coerce their types."""
    mapper = mapper_for(kind)
    hints = get_type_hints(mapper.entity_cls)
    known = {f.name: f for f in dc_fields(mapper.entity_cls) if f.name in mapper.field_names}

    unknown = sorted(set(values) - set(known))
    if unknown:
        raise ValidationError(f"unknown {kind.value} field(s): {', '.join(unknown)}", entity_kind=kind.value)
    missing = sorted(
        name for name, f in known.items()
        if name not in values and f.default is MISSING and f.default_factory is MISSING
    )
    if missing:
        raise ValidationError(f"missing {kind.value} field(s): {', '.join(missing)}", entity_kind=kind.value)

    out = {}
    for name, value in values.items():
        try:
            out[name] = TypeAdapter(hints[name]).validate_python(value)
        except PydanticValidationError as exc:
            raise ValidationError(
                f"bad value for {kind.value}.{name}: {value!r}", entity_kind=kind.value
            ) from exc
    return out
