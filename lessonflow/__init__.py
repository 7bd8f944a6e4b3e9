"""
lessonflow
==========

Status-history tracking for a tutoring marketplace.

Lessons, lesson plans, milestones, goals, quotes and objectives all carry
the same kind of lifecycle: an append-only list of timestamped status
records plus a pointer to the current one.  This package keeps the two
consistent and refuses transitions the per-kind tables do not allow.

Import structure
----------------
`import lessonflow` stays cheap.  The SQLModel layer is only imported
when you touch :pymod:`lessonflow.db`, :pymod:`lessonflow.store` or
:pymod:`lessonflow.service`.

Sub-modules
~~~~~~~~~~~
- :pymod:`lessonflow.kinds`       – entity kinds, status enums, transition tables
- :pymod:`lessonflow.models`      – ``StatusRecord`` value object + domain entities
- :pymod:`lessonflow.history`     – ``StatusHistory`` (append-only, ordered)
- :pymod:`lessonflow.lifecycle`   – ``TransitionValidator``
- :pymod:`lessonflow.mappers`     – persisted row → domain entity
- :pymod:`lessonflow.service`     – ``LifecycleService`` (the only writer)
- :pymod:`lessonflow.errors`      – error taxonomy with stable codes
- :pymod:`lessonflow.db`          – SQLModel tables, engine and session factory
- :pymod:`lessonflow.store`       – persistence adapter (joined reads, CAS pointer)
- :pymod:`lessonflow.contracts`   – inbound request / caller shapes
- :pymod:`lessonflow.cli`         – `lessonflow` command

Quick start
-----------
>>> from lessonflow.kinds import EntityKind
>>> from lessonflow.service import LifecycleService
>>> svc = LifecycleService()
>>> quote = svc.create(EntityKind.LESSON_QUOTE, lesson_request_id="r-1", teacher_id="t-1")
>>> lesson = svc.create(EntityKind.LESSON, quote_id=quote.id)
>>> svc.transition(EntityKind.LESSON, lesson.id, "REQUESTED").status
<LessonStatusValue.REQUESTED: 'REQUESTED'>
"""

__all__ = [
    "kinds",
    "models",
    "history",
    "lifecycle",
    "mappers",
    "service",
    "errors",
    "db",
    "store",
    "contracts",
    "cli",
    "settings",
]

__version__ = "0.1.0"
