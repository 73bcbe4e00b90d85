import functools
import logging
from contextlib import contextmanager

from flask import current_app

from requestkit_backend.database import DEFAULT_DB_POOL_NAME
from requestkit_backend.dto.guardDTO import TeardownResultDTO
from requestkit_backend.requestkitUtils.errors import (
    GUARD_ERROR_POLICY,
    ConfigurationError,
    ConnectionAcquisitionError,
    ErrorPolicy,
    GuardStep,
)
from requestkit_backend.requestkitUtils.executionContext import ExecutionContext, get_execution_context


class DBConnectionGuard:
    """
    Brackets a request with database connection handling.

    open -> handler -> rollback (only if the handler failed) -> close.
    After the bracket the execution context never holds a connection,
    whatever the outcome of the handler.
    """

    def __init__(self, pool_provider=None, pool_name=None, app=None):
        self.pool_provider = pool_provider
        self.pool_name = pool_name
        self.logger = logging.getLogger(__name__)
        if app is not None:
            self.init_app(app)

    def init_app(self, app, filter_requests=True):
        """
        Registers the guard on the app.

        In filter mode every request gets a connection before the view runs.
        Teardown is registered in both modes, so a connection taken with
        get_db_conn() is always handed back at the end of the request.
        """
        if self.pool_provider is None:
            self.pool_provider = app.extensions["db_pools"]
        self.logger = app.logger
        app.extensions["db_guard"] = self

        if filter_requests:
            app.before_request(self._open_request)
        app.teardown_request(self._teardown_request)

        # teardown_request only sees exceptions Flask could not handle; abort()
        # and errorhandler-managed errors arrive as None. Every exception raised
        # by before_request or the view goes through handle_user_exception.
        handle_user_exception = app.handle_user_exception

        @functools.wraps(handle_user_exception)
        def mark_failed(e):
            get_execution_context().failed = True
            return handle_user_exception(e)

        app.handle_user_exception = mark_failed

    def open(self, context: ExecutionContext):
        """Makes sure the context holds an open connection and returns it."""
        conn = context.connection
        if conn is not None and conn.closed:
            # Closed underneath us without clearing the slot.
            self.logger.debug("Detaching a closed database connection from the execution context.")
            self._release(*context.detach())

        if not context.has_connection():
            try:
                db_pool = self.pool_provider.get_pool(self.pool_name)
                conn = db_pool.getconn()
            except ConfigurationError:
                raise
            except Exception as e:
                raise ConnectionAcquisitionError(self.pool_name or DEFAULT_DB_POOL_NAME, str(e)) from e
            context.attach(conn, db_pool)

        return context.connection

    def rollback(self, context: ExecutionContext) -> TeardownResultDTO:
        conn = context.connection
        # Manual commit mode is rolled back even when nothing was written.
        if conn is None or conn.closed or conn.autocommit:
            return TeardownResultDTO(step=GuardStep.ROLLBACK)

        try:
            conn.rollback()
        except Exception as e:
            return self._step_failed(GuardStep.ROLLBACK, e, "Could not roll back the database transaction")
        return TeardownResultDTO(step=GuardStep.ROLLBACK, performed=True)

    def close(self, context: ExecutionContext) -> TeardownResultDTO:
        return self._release(*context.detach())

    def _release(self, conn, db_pool) -> TeardownResultDTO:
        # A pooled connection goes back with putconn() even when it is closed:
        # psycopg2 only frees its slot that way.
        if conn is None or (db_pool is None and conn.closed):
            return TeardownResultDTO(step=GuardStep.CLOSE)

        try:
            if db_pool is not None:
                db_pool.putconn(conn)
            else:
                conn.close()
        except Exception as e:
            return self._step_failed(GuardStep.CLOSE, e, "Could not close the database connection")
        return TeardownResultDTO(step=GuardStep.CLOSE, performed=True)

    @contextmanager
    def connection_scope(self, context: ExecutionContext):
        """
        Runs the body of the with-block inside the guard.

        with guard.connection_scope(context) as conn:
            ...
        """
        conn = self.open(context)
        try:
            yield conn
        except Exception:
            self.rollback(context)
            raise
        finally:
            self.close(context)

    def _step_failed(self, step, error, message):
        if GUARD_ERROR_POLICY[step] is ErrorPolicy.PROPAGATE:
            raise error
        self.logger.error(f"{message}: {error}", exc_info=error)
        return TeardownResultDTO(step=step, performed=True, error=str(error))

    def _open_request(self):
        self.open(get_execution_context())

    def _teardown_request(self, exc=None):
        context = get_execution_context()
        if exc is not None or context.failed:
            self.rollback(context)
        self.close(context)


def get_db_conn():
    """Returns the connection of the current request, opening one if there is none yet."""
    return current_app.extensions['db_guard'].open(get_execution_context())


def with_db_connection(func):
    """A decorator that runs a view inside the DB guard and hands it the connection as conn."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        guard = current_app.extensions['db_guard']
        with guard.connection_scope(get_execution_context()) as conn:
            return func(*args, conn=conn, **kwargs)
    return wrapper
