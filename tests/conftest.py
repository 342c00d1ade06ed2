"""
Shared fixtures.

Every engine test runs against both storage backends (SQLite in memory and
the JSON file store) with a fake clock, so ordering and expiry checks are
deterministic.
"""

import pytest
from fastapi.testclient import TestClient

from mpbot.config import Settings
from mpbot.database import make_engine, make_session_factory
from mpbot.main import create_app
from mpbot.services import LicenseService, TargetService
from mpbot.storage import JsonFileStore, SqlStore

ADMIN_TOKEN = "test-admin-token"
T0 = 1_700_000_000_000


class FakeClock:
    """Returns ``now`` and then advances it by ``step`` ms."""

    def __init__(self, start=T0, step=1):
        self.now = start
        self.step = step

    def __call__(self):
        value = self.now
        self.now += self.step
        return value


def make_sql_store():
    engine = make_engine("sqlite://")
    return SqlStore(make_session_factory(engine), engine=engine)


@pytest.fixture(params=["sql", "json"])
def store(request, tmp_path):
    if request.param == "sql":
        s = make_sql_store()
    else:
        s = JsonFileStore(tmp_path / "store.json")
    yield s
    s.close()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def targets(store, clock):
    return TargetService(store, default_theta=270, default_phi=90, default_tolerance=10, clock=clock)


@pytest.fixture()
def licenses(store, clock):
    return LicenseService(store, clock=clock)


@pytest.fixture()
def settings():
    return Settings(_env_file=None, admin_token=ADMIN_TOKEN, database_url="sqlite://")


@pytest.fixture()
def client(settings):
    app = create_app(settings, store=make_sql_store())
    return TestClient(app)


@pytest.fixture()
def admin_headers():
    return {"X-Admin-Token": ADMIN_TOKEN}
