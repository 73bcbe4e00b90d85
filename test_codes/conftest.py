import psycopg2
import pytest

from requestkit_backend.app import create_app
from requestkit_backend.requestkitUtils.dbConnectionDecorator import DBConnectionGuard


class FakeConnection:
    """Stands in for a psycopg2 connection; records calls in a shared list."""

    def __init__(self, calls, autocommit=False, fail_rollback=False):
        self.calls = calls
        self.closed = 0
        self.autocommit = autocommit
        self.fail_rollback = fail_rollback

    def rollback(self):
        self.calls.append("rollback")
        if self.fail_rollback:
            raise psycopg2.OperationalError("server closed the connection unexpectedly")

    def close(self):
        self.calls.append("close")
        self.closed = 1


class FakePool:
    def __init__(self, calls, autocommit=False, fail_rollback=False, fail_putconn=False):
        self.calls = calls
        self.autocommit = autocommit
        self.fail_rollback = fail_rollback
        self.fail_putconn = fail_putconn
        self.handed_out = []
        self.returned = []
        self.closed_all = False

    def getconn(self):
        self.calls.append("getconn")
        conn = FakeConnection(self.calls, autocommit=self.autocommit, fail_rollback=self.fail_rollback)
        self.handed_out.append(conn)
        return conn

    def putconn(self, conn):
        self.calls.append("putconn")
        if self.fail_putconn:
            raise psycopg2.InterfaceError("connection already closed")
        self.returned.append(conn)

    def closeall(self):
        self.closed_all = True


class FakePoolProvider:
    def __init__(self, db_pool=None, error=None):
        self.db_pool = db_pool
        self.error = error
        self.requested = []

    def get_pool(self, pool_name=None):
        self.requested.append(pool_name)
        if self.error is not None:
            raise self.error
        return self.db_pool


@pytest.fixture
def calls():
    return []


@pytest.fixture
def fake_pool(calls):
    return FakePool(calls)


@pytest.fixture
def pool_provider(fake_pool):
    return FakePoolProvider(fake_pool)


@pytest.fixture
def guard(pool_provider):
    return DBConnectionGuard(pool_provider)


@pytest.fixture
def app_run(pool_provider):
    app = create_app(
        test_config={"TESTING": True},
        environment={"entorno": "desarrollo"},
        pool_provider=pool_provider,
    )
    yield app


@pytest.fixture
def client(app_run):
    return app_run.test_client()
