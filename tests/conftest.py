import os
import tempfile

# Point both relational services at a throwaway SQLite file before any
# service module builds its engine.
_tmpdir = tempfile.mkdtemp(prefix="lugx-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmpdir, 'lugx.db')}"
os.environ["INIT_RETRY_DELAY"] = "0"

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def catalog_client():
    from catalog.app import db
    from catalog.app.main import app
    from catalog.app.models import Base

    Base.metadata.drop_all(bind=db.engine)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def orders_client():
    from orders.app import db
    from orders.app.main import app
    from orders.app.models import Base

    Base.metadata.drop_all(bind=db.engine)
    with TestClient(app) as client:
        yield client


class FakeClickHouse:
    """Records every statement; answers SELECTs from canned data."""

    def __init__(self):
        self.calls = []
        self.rows = []
        self.count = 0
        self.overview = {}
        self.fail = False

    def _record(self, kind, query, params, settings=None):
        if self.fail:
            from lugx_common.errors import StorageError
            raise StorageError()
        self.calls.append({"kind": kind, "query": query, "params": dict(params or {}), "settings": settings})

    def execute(self, query, params=None, settings=None):
        self._record("execute", query, params, settings)
        return ""

    def select(self, query, params=None):
        self._record("select", query, params)
        if "AS total FROM" in query:
            return [{"total": str(self.count)}]
        if "total_events" in query:
            return [self.overview] if self.overview else []
        return list(self.rows)

    def ping(self):
        self._record("execute", "SELECT 1", None)


@pytest.fixture
def clickhouse():
    return FakeClickHouse()


@pytest.fixture
def analytics_client(clickhouse):
    from analytics.app.main import app, get_store
    from analytics.app.repo import EventStore

    app.dependency_overrides[get_store] = lambda: EventStore(clickhouse)
    try:
        # No context manager: startup would try to reach a real ClickHouse.
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
