"""
Tests de las tareas Celery (se llaman directo, sin broker).
"""

from types import SimpleNamespace

import pytest

import hoofbook.context
import hoofbook.tasks.sync_tasks as sync_tasks
from hoofbook.schemas.sync import SyncResult
from tests.conftest import make_token


class FakeLock:
    def __init__(self, acquired: bool):
        self.acquired = acquired
        self.released = False

    def acquire(self, blocking: bool = True) -> bool:
        return self.acquired

    def release(self) -> None:
        self.released = True


@pytest.fixture
def token_path(tmp_path, monkeypatch):
    path = tmp_path / "access_token"
    monkeypatch.setattr(sync_tasks.settings, "SESSION_TOKEN_PATH", str(path))
    return path


@pytest.fixture
def lock(monkeypatch) -> FakeLock:
    lock = FakeLock(acquired=True)
    monkeypatch.setattr(
        sync_tasks, "get_redis", lambda: SimpleNamespace(lock=lambda *a, **kw: lock),
    )
    return lock


def test_retry_countdown_doubles_and_caps():
    assert sync_tasks.retry_countdown(0) == 60
    assert sync_tasks.retry_countdown(3) == 480
    assert sync_tasks.retry_countdown(20) == 5 * 60 * 60


def test_run_cycle_without_session_is_skipped(token_path):
    assert sync_tasks.run_sync_cycle() == {"status": "unauthenticated"}


def test_run_cycle_for_other_user_is_skipped(token_path):
    token_path.write_text(make_token("user-1"))

    assert sync_tasks.run_sync_cycle("user-2") == {"status": "skipped"}


def test_run_cycle_is_skipped_while_locked(token_path, lock):
    token_path.write_text(make_token())
    lock.acquired = False

    assert sync_tasks.run_sync_cycle() == {"status": "locked"}


def test_run_cycle_runs_orchestrator_and_releases_lock(token_path, lock, monkeypatch):
    token_path.write_text(make_token())
    closed = []

    async def perform_sync():
        return SyncResult(pushed_count=2, pulled_count=3)

    async def aclose():
        closed.append(True)

    fake_ctx = SimpleNamespace(
        orchestrator=SimpleNamespace(perform_sync=perform_sync),
        aclose=aclose,
    )
    monkeypatch.setattr(hoofbook.context, "build_sync_context", lambda settings: fake_ctx)

    result = sync_tasks.run_sync_cycle()

    assert result["status"] == "completed"
    assert result["pushed_count"] == 2
    assert result["pulled_count"] == 3
    assert closed == [True]
    assert lock.released is True
