from flask import g


class ExecutionContext:
    """
    Request-scoped slot for the active database connection.

    Holds at most one connection, together with the pool it came from so
    it can be handed back. Inside a Flask request the context lives on g;
    outside one it can be created and passed around explicitly.
    """

    def __init__(self):
        self.connection = None
        self.pool = None
        # Set when the request handler raised, handled by Flask or not.
        self.failed = False

    def has_connection(self) -> bool:
        return self.connection is not None

    def attach(self, conn, db_pool=None):
        if self.connection is not None:
            raise RuntimeError("The execution context already holds a database connection.")
        self.connection = conn
        self.pool = db_pool

    def detach(self):
        """Empties the slot and returns the (connection, pool) it held."""
        conn, db_pool = self.connection, self.pool
        self.connection = None
        self.pool = None
        self.failed = False
        return conn, db_pool


def get_execution_context() -> ExecutionContext:
    """Returns the execution context of the current request, creating it if needed."""
    if 'db_context' not in g:
        # g lasts for one request.
        g.db_context = ExecutionContext()
    return g.db_context
