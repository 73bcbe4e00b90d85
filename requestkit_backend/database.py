import threading
from urllib.parse import urlparse

import psycopg2
from psycopg2 import pool

from requestkit_backend.requestkitUtils.environmentLookup import POOL_KEY_PREFIX, EnvironmentLookup
from requestkit_backend.requestkitUtils.errors import ConfigurationError


DEFAULT_DB_POOL_NAME = "db_pool"


def create_db_pool(db_url, pool_name=DEFAULT_DB_POOL_NAME, minconn=1, maxconn=20):
    """Creates a threaded psycopg2 pool from a database URL."""
    try:
        url = urlparse(db_url)
        return pool.ThreadedConnectionPool(
            minconn=minconn, maxconn=maxconn,
            user=url.username, password=url.password,
            host=url.hostname, port=url.port,
            dbname=url.path[1:]
        )
    except (psycopg2.Error, ValueError) as e:
        raise ConfigurationError(POOL_KEY_PREFIX + pool_name, f"failed to create database connection pool: {e}") from e


class PoolProvider:
    """
    Resolves a pool name into a shared connection pool.

    The database URL for pool 'x' is read from 'jdbc/x' in the environment
    lookup. Pools are created on first use and then shared by every request.
    """

    def __init__(self, lookup: EnvironmentLookup, minconn=1, maxconn=20, pool_factory=None):
        self.lookup = lookup
        self.minconn = minconn
        self.maxconn = maxconn
        self.pool_factory = pool_factory or create_db_pool
        self._pools = {}
        self._lock = threading.Lock()

    def get_pool(self, pool_name=None):
        if pool_name is None:
            pool_name = DEFAULT_DB_POOL_NAME

        with self._lock:
            db_pool = self._pools.get(pool_name)
            if db_pool is None:
                db_url = self.lookup.get_pool_url(pool_name)
                db_pool = self.pool_factory(db_url, pool_name=pool_name, minconn=self.minconn, maxconn=self.maxconn)
                self._pools[pool_name] = db_pool
        return db_pool

    def close_all(self):
        with self._lock:
            pools, self._pools = self._pools, {}
        for db_pool in pools.values():
            db_pool.closeall()
