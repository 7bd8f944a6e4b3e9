"""
Ensure project root is on sys.path so `import lessonflow` works during tests,
and provide a throw-away SQLite database per test.
"""

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent  # tests/.. → project root
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from lessonflow.db import SessionLocal, create_all, make_engine  # noqa: E402
from lessonflow.service import LifecycleService  # noqa: E402


@pytest.fixture()
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'lessonflow-test.db'}"


@pytest.fixture()
def engine(db_url):
    eng = make_engine(db_url, echo=False)
    create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return lambda: SessionLocal(engine)


@pytest.fixture()
def service(session_factory):
    return LifecycleService(session_factory=session_factory)


@pytest.fixture()
def quote(service):
    """A fresh lesson quote (lessons need one as parent)."""
    return service.create("lesson_quote", lesson_request_id="req-1", teacher_id="t-1", hourly_rate=4500)


@pytest.fixture()
def lesson(service, quote):
    """A lesson created from *quote*, still without any status."""
    return service.create("lesson", quote_id=quote.id)
