"""
tests/test_contracts.py
=======================

Inbound request shapes and the error payloads handed back to the API layer.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from lessonflow.contracts import Caller, Role, TransitionRequest
from lessonflow.errors import (
    ConcurrentTransitionError,
    InvalidTransitionError,
    LifecycleError,
    MappingError,
    OrderingError,
    OwnerConflictError,
    OwnerNotFoundError,
    ValidationError,
)
from lessonflow.kinds import EntityKind, LessonStatusValue


def test_request_normalises_kind_and_status():
    req = TransitionRequest(entity_kind="lesson-plan", owner_id="p-1", requested_status="DRAFT")
    assert req.entity_kind is EntityKind.LESSON_PLAN
    req = TransitionRequest(entity_kind=EntityKind.LESSON, owner_id="l-1",
                            requested_status=LessonStatusValue.ACCEPTED, context={"a": [1]})
    assert req.requested_status == "ACCEPTED"
    assert req.context == {"a": [1]}


def test_request_rejects_unknown_kind():
    with pytest.raises(PydanticValidationError):
        TransitionRequest(entity_kind="invoice", owner_id="x", requested_status="PAID")


def test_caller_requires_role():
    assert Caller(id="t-1", role="TEACHER").role is Role.TEACHER
    with pytest.raises(PydanticValidationError):
        Caller(id="t-1", role="JANITOR")


def test_error_codes_are_distinct():
    classes = [
        ValidationError,
        InvalidTransitionError,
        OrderingError,
        MappingError,
        ConcurrentTransitionError,
        OwnerNotFoundError,
        OwnerConflictError,
    ]
    codes = {cls.code for cls in classes}
    assert len(codes) == len(classes)
    assert all(issubclass(cls, LifecycleError) for cls in classes)


def test_payload_drops_empty_details():
    err = InvalidTransitionError(EntityKind.LESSON, None, LessonStatusValue.COMPLETED)
    assert err.to_payload() == {
        "code": "TRANSITION_NOT_ALLOWED",
        "message": "illegal lesson transition <none> → COMPLETED",
        "entity_kind": "lesson",
        "to_status": "COMPLETED",
    }
