"""Tests for the action runner."""

import threading
import time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from system_agent.database import Base
from system_agent.services.action_queue import DatabaseActionQueue
from system_agent.worker import ActionRunner


def _runner(action_queue, **options):
    options.setdefault("concurrent_batches", 1)
    return ActionRunner(action_queue, **options)


@pytest.fixture
def file_session_factory(tmp_path):
    """Session factory over a SQLite file, one connection per thread."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'actions.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)

    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)

    engine.dispose()


def _drain(runners, expected, calls):
    """Run passes until every action ran once or the pass limit is hit."""
    for _ in range(50):
        threads = [threading.Thread(target=r.run_pending) for r in runners]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)
        if len(calls) >= expected:
            break


def test_process_dispatches_to_registered_hook(action_queue):
    """Test args are passed to the callback as keywords."""
    calls = []
    runner = _runner(action_queue)
    runner.register_hook("handle", lambda job_id: calls.append(job_id))

    action_id = action_queue.schedule_single_action(time.time(), "handle", {"job_id": 5})

    assert runner.run_pending() == 1
    assert calls == [5]
    assert action_queue.get_action(action_id)["status"] == "complete"


def test_failing_callback_marks_action_failed(action_queue):
    """Test callback exceptions are recorded, not raised."""

    def explode(**kwargs):
        raise RuntimeError("callback exploded")

    runner = _runner(action_queue)
    runner.register_hook("explode", explode)
    action_id = action_queue.schedule_single_action(time.time(), "explode", {})

    assert runner.run_pending() == 1

    action = action_queue.get_action(action_id)
    assert action["status"] == "failed"
    assert action["last_error"] == "callback exploded"


def test_unknown_hook_marks_action_failed(action_queue):
    """Test actions without a callback fail."""
    runner = _runner(action_queue)
    action_id = action_queue.schedule_single_action(time.time(), "nobody_listens", {})

    runner.run_pending()

    action = action_queue.get_action(action_id)
    assert action["status"] == "failed"
    assert "nobody_listens" in action["last_error"]


def test_batch_size_limits_one_pass(action_queue):
    """Test one batch runs at most batch_size actions."""
    calls = []
    runner = _runner(action_queue, batch_size=2)
    runner.register_hook("handle", lambda n: calls.append(n))
    for n in range(3):
        action_queue.schedule_single_action(time.time(), "handle", {"n": n})

    assert runner.run_pending() == 2
    assert runner.run_pending() == 1
    assert calls == [0, 1, 2]


def test_time_limit_releases_remaining_actions(action_queue, monkeypatch):
    """Test actions left when the time limit hits go back to pending."""
    class FakeClock:
        ticks = iter([0.0, 0.0, 120.0])

        def monotonic(self):
            return next(self.ticks)

        def sleep(self, seconds):
            pass

    monkeypatch.setattr("system_agent.worker.time", FakeClock())

    calls = []
    runner = _runner(action_queue, time_limit=60)
    runner.register_hook("handle", lambda n: calls.append(n))
    action_queue.schedule_single_action(time.time(), "handle", {"n": 1})
    second = action_queue.schedule_single_action(time.time(), "handle", {"n": 2})

    assert runner.run_batch() == 1
    assert calls == [1]
    assert action_queue.get_action(second)["status"] == "pending"


def test_cleanup_stale_claims_runs_once_per_interval(action_queue):
    """Test cleanup is throttled unless forced."""
    released = []
    action_queue.release_stale_claims = lambda max_age: released.append(max_age) or 0
    runner = _runner(action_queue)

    runner.cleanup_stale_claims()
    runner.cleanup_stale_claims()
    runner.cleanup_stale_claims(force=True)

    assert released == [runner.stale_claim_max_age, runner.stale_claim_max_age]


def test_run_stops_on_stop_event(action_queue):
    """Test the loop exits once the stop event is set."""
    stop_event = threading.Event()
    calls = []
    runner = _runner(action_queue, poll_interval=0.01)

    def handle():
        calls.append(1)
        stop_event.set()

    runner.register_hook("handle", handle)
    action_queue.schedule_single_action(time.time(), "handle", {})

    thread = threading.Thread(target=runner.run, kwargs={"stop_event": stop_event})
    thread.start()
    thread.join(timeout=5)

    assert not thread.is_alive()
    assert calls == [1]


def test_concurrent_batches_run_each_action_once(file_session_factory):
    """Test parallel batches never claim the same action."""
    queue = DatabaseActionQueue(file_session_factory)
    calls = []
    runner = ActionRunner(queue, concurrent_batches=3, batch_size=25)
    runner.register_hook("handle", lambda n: calls.append(n))
    for n in range(60):
        queue.schedule_single_action(time.time(), "handle", {"n": n})

    _drain([runner], 60, calls)

    assert sorted(calls) == list(range(60))


def test_separate_runners_share_a_queue_table(file_session_factory):
    """Test runners with their own queue objects split the work."""
    calls = []
    runners = []
    for _ in range(3):
        runner = ActionRunner(DatabaseActionQueue(file_session_factory), concurrent_batches=2, batch_size=10)
        runner.register_hook("handle", lambda n: calls.append(n))
        runners.append(runner)
    for n in range(60):
        runners[0].queue.schedule_single_action(time.time(), "handle", {"n": n})

    _drain(runners, 60, calls)

    assert sorted(calls) == list(range(60))
