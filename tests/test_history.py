"""
tests/test_history.py
=====================

Unit tests for lessonflow.history.StatusHistory
"""

from datetime import datetime, timedelta, timezone

import pytest

from lessonflow.errors import OrderingError, ValidationError
from lessonflow.history import StatusHistory
from lessonflow.kinds import MilestoneStatusValue as M
from lessonflow.models import StatusRecord

T0 = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def _rec(rid, status, minutes, owner="m-1"):
    return StatusRecord(rid, owner, status, T0 + timedelta(minutes=minutes))


def test_empty_history():
    h = StatusHistory()
    assert h.current() is None
    assert len(h) == 0
    assert not h


def test_append_returns_new_history():
    first = _rec("r1", M.CREATED, 0)
    h0 = StatusHistory()
    h1 = h0.append(first)
    assert h0.current() is None          # original untouched
    assert h1.current() is first


def test_current_is_last_appended():
    h = StatusHistory()
    for i, status in enumerate([M.CREATED, M.IN_PROGRESS, M.COMPLETED]):
        rec = _rec(f"r{i}", status, i)
        h = h.append(rec)
        assert h.current() is rec
    assert h.statuses() == [M.CREATED, M.IN_PROGRESS, M.COMPLETED]


def test_equal_timestamps_allowed():
    h = StatusHistory([_rec("r1", M.CREATED, 0), _rec("r2", M.IN_PROGRESS, 0)])
    assert h.current().id == "r2"


def test_append_older_record_raises():
    h = StatusHistory([_rec("r1", M.CREATED, 5)])
    with pytest.raises(OrderingError) as exc:
        h.append(_rec("r2", M.IN_PROGRESS, 1))
    assert exc.value.code == "HISTORY_OUT_OF_ORDER"
    assert len(h) == 1


def test_constructor_checks_order():
    with pytest.raises(OrderingError):
        StatusHistory([_rec("r1", M.CREATED, 5), _rec("r2", M.IN_PROGRESS, 1)])


def test_foreign_owner_rejected():
    h = StatusHistory([_rec("r1", M.CREATED, 0)])
    with pytest.raises(ValidationError):
        h.append(_rec("r2", M.IN_PROGRESS, 1, owner="m-2"))


def test_iteration_is_restartable():
    h = StatusHistory([_rec("r1", M.CREATED, 0), _rec("r2", M.IN_PROGRESS, 1)])
    assert [r.id for r in h] == ["r1", "r2"]
    assert [r.id for r in h] == ["r1", "r2"]
    assert h[0].id == "r1"
    assert h.find("r2").status is M.IN_PROGRESS
    assert h.find("nope") is None
    assert h.owner_id == "m-1"
