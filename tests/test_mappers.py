"""
tests/test_mappers.py
=====================

Unit tests for lessonflow.mappers.  Rows are plain namespaces, so no
database is involved.
"""

import copy
import logging
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from lessonflow.errors import MappingError
from lessonflow.kinds import EntityKind, LessonStatusValue as L, MilestoneStatusValue as M
from lessonflow.mappers import MAPPERS, PersistedOwner, mapper_for
from lessonflow.models import Lesson, Milestone

T0 = datetime(2024, 5, 1, 10, 0)  # naive, as SQLite hands it back


def _status(rid, owner, status, minutes, position):
    return SimpleNamespace(
        id=rid, owner_id=owner, status=status, context=None,
        created_at=T0 + timedelta(minutes=minutes), position=position,
    )


def _milestone_row(pointer):
    return SimpleNamespace(
        id="m-1", current_status_id=pointer, lesson_plan_id="p-1", title="Arpeggios",
        description="", due_date=None, created_at=T0, updated_at=T0,
    )


def _milestone(pointer="s2", statuses=None, current="s2"):
    statuses = statuses if statuses is not None else [
        _status("s1", "m-1", "CREATED", 0, 1),
        _status("s2", "m-1", "IN_PROGRESS", 5, 2),
    ]
    by_id = {s.id: s for s in statuses}
    return PersistedOwner(
        row=_milestone_row(pointer),
        statuses=statuses,
        current_status=by_id.get(current) if isinstance(current, str) else current,
    )


def test_registry_covers_every_kind():
    assert set(MAPPERS) == set(EntityKind)
    assert mapper_for("milestone").entity_cls is Milestone


def test_maps_full_history():
    ent = mapper_for("milestone").to_domain(_milestone())
    assert isinstance(ent, Milestone)
    assert ent.status is M.IN_PROGRESS
    assert [r.id for r in ent.statuses] == ["s1", "s2"]
    assert ent.current_status is ent.statuses.current()
    assert ent.current_status.created_at.tzinfo is timezone.utc
    assert ent.title == "Arpeggios"
    assert not ent.status_diverged


def test_rows_are_ordered_by_time_then_position():
    statuses = [
        _status("s2", "m-1", "IN_PROGRESS", 0, 2),
        _status("s1", "m-1", "CREATED", 0, 1),
    ]
    ent = mapper_for("milestone").to_domain(_milestone(statuses=statuses))
    assert [r.id for r in ent.statuses] == ["s1", "s2"]


def test_mapper_is_pure():
    persisted = _milestone()
    before = copy.deepcopy(persisted)
    a = mapper_for("milestone").to_domain(persisted)
    b = mapper_for("milestone").to_domain(persisted)
    assert persisted == before
    assert a == b


def test_statuses_without_pointer_raise():
    """Non-empty history but no current status is a data-integrity error."""
    with pytest.raises(MappingError) as exc:
        mapper_for("milestone").to_domain(_milestone(pointer=None, current=None))
    assert exc.value.code == "STATUS_MAPPING_FAILED"


def test_empty_history_raises_for_kinds_created_with_status():
    with pytest.raises(MappingError):
        mapper_for("milestone").to_domain(_milestone(pointer=None, statuses=[], current=None))


def test_empty_lesson_maps_without_status():
    row = SimpleNamespace(id="l-1", current_status_id=None, quote_id="q-1", created_at=T0, updated_at=T0)
    ent = mapper_for(EntityKind.LESSON).to_domain(PersistedOwner(row=row))
    assert isinstance(ent, Lesson)
    assert ent.status is None
    assert len(ent.statuses) == 0


def test_dangling_pointer_raises():
    with pytest.raises(MappingError):
        mapper_for("milestone").to_domain(_milestone(pointer="gone", current=None))


def test_pointer_into_other_owner_raises():
    foreign = _status("x9", "m-2", "CREATED", 0, 1)
    with pytest.raises(MappingError):
        mapper_for("milestone").to_domain(_milestone(pointer="x9", current=foreign))


def test_lagging_pointer_is_flagged(caplog):
    """Pointer at an older record: history wins, entity is flagged."""
    with caplog.at_level(logging.WARNING, logger="lessonflow.mappers"):
        ent = mapper_for("milestone").to_domain(_milestone(pointer="s1", current="s1"))
    assert ent.status_diverged
    assert ent.current_status.id == "s2"
    assert ent.current_status_id == "s1"
    assert "lags history" in caplog.text


def test_unknown_status_falls_back(caplog):
    row = SimpleNamespace(id="l-1", current_status_id="s1", quote_id="q-1", created_at=T0, updated_at=T0)
    stored = _status("s1", "l-1", "CONFIRMED", 0, 1)
    with caplog.at_level(logging.WARNING, logger="lessonflow.mappers"):
        ent = mapper_for("lesson").to_domain(PersistedOwner(row=row, statuses=[stored], current_status=stored))
    assert ent.status is L.REQUESTED
    assert "CONFIRMED" in caplog.text


def test_strict_mapping_rejects_unparseable_current():
    row = SimpleNamespace(id="l-1", current_status_id="s2", quote_id="q-1", created_at=T0, updated_at=T0)
    statuses = [_status("s1", "l-1", "REQUESTED", 0, 1), _status("s2", "l-1", "LEGACY_CONFIRMED", 5, 2)]
    persisted = PersistedOwner(row=row, statuses=statuses, current_status=statuses[1])
    with pytest.raises(MappingError) as exc:
        mapper_for("lesson").to_domain(persisted, strict=True)
    assert exc.value.details["record_id"] == "s2"
    # the lenient read path still maps it
    assert mapper_for("lesson").to_domain(persisted).status is L.REQUESTED


def test_strict_mapping_tolerates_drift_in_older_records():
    row = SimpleNamespace(id="l-1", current_status_id="s2", quote_id="q-1", created_at=T0, updated_at=T0)
    statuses = [_status("s1", "l-1", "LEGACY_PENDING", 0, 1), _status("s2", "l-1", "ACCEPTED", 5, 2)]
    ent = mapper_for("lesson").to_domain(
        PersistedOwner(row=row, statuses=statuses, current_status=statuses[1]), strict=True
    )
    assert ent.status is L.ACCEPTED
