"""Pytest configuration and fixtures."""

from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from system_agent import models  # noqa: F401
from system_agent.agent import SystemAgent
from system_agent.database import Base
from system_agent.services.action_queue import DatabaseActionQueue
from system_agent.services.jobs import Jobs
from system_agent.tasks.registry import build_task_registry, builtin_tasks


class RecordingQueue:
    """Deferred facility double that records what was scheduled."""

    def __init__(self, accept: bool = True):
        self.accept = accept
        self.scheduled: List[Dict[str, Any]] = []

    def schedule_single_action(self, timestamp, hook, args, group=""):
        self.scheduled.append({"timestamp": timestamp, "hook": hook, "args": args, "group": group})
        return len(self.scheduled) if self.accept else None


class FakeReplicateClient:
    """Replicate client double returning canned predictions."""

    def __init__(self, api_key: Optional[str] = "test-key", responses=None, created=None):
        self.api_key = api_key
        self.responses = list(responses or [])
        self.created = created
        self.polled: List[str] = []
        self.create_calls: List[Dict[str, Any]] = []

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def get_prediction(self, prediction_id):
        self.polled.append(prediction_id)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def create_prediction(self, model, model_input):
        self.create_calls.append({"model": model, "input": model_input})
        if isinstance(self.created, Exception):
            raise self.created
        return self.created


@pytest.fixture(scope="function")
def session_factory():
    """Session factory over a fresh in-memory database."""
    # StaticPool keeps one connection so every session sees the same database
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)

    engine.dispose()


@pytest.fixture
def jobs(session_factory):
    return Jobs(session_factory)


@pytest.fixture
def action_queue(session_factory):
    return DatabaseActionQueue(session_factory)


@pytest.fixture
def recording_queue():
    return RecordingQueue()


@pytest.fixture
def system_agent(jobs, action_queue):
    """Agent with the built-in tasks and the database queue."""
    return SystemAgent(jobs, action_queue, build_task_registry([builtin_tasks]))


@pytest.fixture
def no_replicate_key(monkeypatch):
    """Make sure no Replicate API key is configured."""
    from system_agent.config import settings

    monkeypatch.setattr(settings, "REPLICATE_API_KEY", None)


@pytest.fixture
def fake_replicate():
    """Replicate client double; tests queue responses on it."""
    return FakeReplicateClient()
