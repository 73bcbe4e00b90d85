import atexit

from dotenv import load_dotenv
from flask import Flask

from requestkit_backend.database import PoolProvider
from requestkit_backend.requestkitUtils.dbConnectionDecorator import DBConnectionGuard
from requestkit_backend.requestkitUtils.environmentLookup import EnvironmentLookup


# Load environment variables from .env file
load_dotenv()


def create_app(test_config=None, environment=None, pool_provider=None):
    """
    Application factory function for the Flask app.

    environment replaces the process environment as the source of named
    values (entorno, jdbc/<pool>, DB_POOL_*), pool_provider replaces the
    psycopg2 pools. Both exist mainly for tests.

    Pools created here are closed at interpreter exit. An injected
    pool_provider is owned by the caller, who closes it.
    """
    app = Flask(__name__)
    lookup = EnvironmentLookup(environment)

    # --- Configuration ---
    app.secret_key = lookup.find("FLASK_SECRET_KEY")
    app.config.from_mapping(
        DB_POOL_NAME=lookup.find("DB_POOL_NAME"),
        DB_POOL_MINCONN=lookup.get_int("DB_POOL_MINCONN", 1),
        DB_POOL_MAXCONN=lookup.get_int("DB_POOL_MAXCONN", 20),
        DB_GUARD_ALL_REQUESTS=True,
    )
    if test_config:
        app.config.update(test_config)

    # Raises ConfigurationError when 'entorno' is not defined: without it we
    # cannot tell whether this is production.
    app.config["PRODUCTION"] = lookup.is_production()
    app.extensions["env_lookup"] = lookup

    if pool_provider is None:
        pool_provider = PoolProvider(
            lookup,
            minconn=app.config["DB_POOL_MINCONN"],
            maxconn=app.config["DB_POOL_MAXCONN"],
        )
        atexit.register(pool_provider.close_all)
    app.extensions["db_pools"] = pool_provider

    guard = DBConnectionGuard(pool_provider, pool_name=app.config["DB_POOL_NAME"])
    guard.init_app(app, filter_requests=app.config["DB_GUARD_ALL_REQUESTS"])

    return app


if __name__ == "__main__":

    app = create_app()
    app.run(host="0.0.0.0", port=5000, debug=not app.config["PRODUCTION"])
