"""Unit tests for the regeneration worker tasks."""

import asyncio
from contextlib import asynccontextmanager

import pytest
from sqlalchemy.pool import NullPool

from analytics_service.api.dependencies import Stores
from analytics_service.config import Settings
from analytics_service.exceptions import DependencyUnavailableError
from analytics_service.infrastructure.database import connection
from analytics_worker.main import app as celery_app
from analytics_worker.tasks import regenerate


@pytest.fixture
def memory_worker(monkeypatch: pytest.MonkeyPatch, stores: Stores) -> Stores:
    settings = Settings(app_env="test", storage_backend="memory")
    monkeypatch.setattr(regenerate, "get_settings", lambda: settings)
    monkeypatch.setattr(regenerate, "build_stores", lambda _settings: stores)
    return stores


def test_regenerate_all_task(memory_worker: Stores) -> None:
    result = regenerate.regenerate_all_customer_summaries.run()

    assert result["total_customers"] == 3
    assert result["error_count"] == 0


def test_regenerate_customer_task(memory_worker: Stores) -> None:
    result = regenerate.regenerate_customer_summary.run("alice")

    assert result == {"success": True, "customer_id": "alice", "total_orders": 2}


def test_regenerate_customer_task_without_orders(memory_worker: Stores) -> None:
    result = regenerate.regenerate_customer_summary.run("nobody")

    assert result == {"success": False, "customer_id": "nobody", "total_orders": 0}


def test_nightly_schedule_registered() -> None:
    entry = celery_app.conf.beat_schedule["regenerate-customer-analytics"]
    assert entry["task"] == "analytics_worker.tasks.regenerate.regenerate_all_customer_summaries"


class _RecordingScope:
    """Stands in for the run-scoped engine, recording open and dispose per run."""

    def __init__(self) -> None:
        self.opened = 0
        self.disposed = 0
        self.loops: list[object] = []

    @asynccontextmanager
    async def __call__(self, settings: Settings):
        self.opened += 1
        self.loops.append(asyncio.get_running_loop())
        try:
            yield object()
        finally:
            self.disposed += 1


@pytest.fixture
def sql_worker(monkeypatch: pytest.MonkeyPatch, stores: Stores) -> _RecordingScope:
    scope = _RecordingScope()
    settings = Settings(app_env="test", storage_backend="postgres")
    monkeypatch.setattr(regenerate, "get_settings", lambda: settings)
    monkeypatch.setattr(regenerate, "scoped_session_factory", scope)
    monkeypatch.setattr(regenerate, "sql_stores", lambda _factory: stores)
    return scope


class TestEnginePerRun:
    def test_each_run_gets_and_disposes_its_own_engine(self, sql_worker: _RecordingScope) -> None:
        regenerate.regenerate_all_customer_summaries.run()
        regenerate.regenerate_customer_summary.run("alice")
        regenerate.regenerate_all_customer_summaries.run()

        assert sql_worker.opened == 3
        assert sql_worker.disposed == 3
        # asyncio.run gives every task a fresh loop
        assert len({id(loop) for loop in sql_worker.loops}) == 3

    def test_engine_disposed_when_run_fails(
        self, sql_worker: _RecordingScope, stores: Stores, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def unavailable(_customer_id: str):
            raise DependencyUnavailableError("transactions", ConnectionError("down"))

        monkeypatch.setattr(stores.transactions, "list_transactions_for_customer", unavailable)

        with pytest.raises(DependencyUnavailableError):
            regenerate.regenerate_customer_summary.run("alice")

        assert sql_worker.disposed == sql_worker.opened == 1


class TestScopedSessionFactory:
    class _Engine:
        def __init__(self) -> None:
            self.disposed = False

        async def dispose(self) -> None:
            self.disposed = True

    @pytest.mark.asyncio
    async def test_unpooled_and_disposed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        created: dict = {}
        engine = self._Engine()

        def fake_create(url, **kwargs):
            created.update(kwargs, url=url)
            return engine

        monkeypatch.setattr(connection, "create_async_engine", fake_create)
        settings = Settings(app_env="test")

        async with connection.scoped_session_factory(settings) as factory:
            assert factory.kw["bind"] is engine
            assert not engine.disposed

        assert created["poolclass"] is NullPool
        assert created["url"] == settings.database_url
        assert engine.disposed

    @pytest.mark.asyncio
    async def test_disposed_on_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        engine = self._Engine()
        monkeypatch.setattr(connection, "create_async_engine", lambda url, **kwargs: engine)

        with pytest.raises(RuntimeError):
            async with connection.scoped_session_factory(Settings(app_env="test")):
                raise RuntimeError("boom")

        assert engine.disposed
