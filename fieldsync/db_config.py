"""Database configuration for the local mutation store in each environment."""
import os

from fieldsync.config import get_environment


def get_database_engine_options():
    """Get database engine options for PostgreSQL-backed gateways."""
    from sqlalchemy.pool import QueuePool

    return {
        "pool_pre_ping": True,        # Detect and refresh dead connections before use
        "pool_recycle": 280,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_reset_on_return": "commit",
        "poolclass": QueuePool,
        "connect_args": {
            "connect_timeout": 10,
            "application_name": "fieldsync",
        },
    }


def get_local_database_config():
    """Get database configuration for a field device.

    Returns:
        tuple: (database_uri, engine_options)
    """
    database_uri = os.environ.get("LOCAL_DATABASE_URL") or "sqlite:///fieldsync.sqlite"
    return database_uri, None  # SQLite doesn't need engine options


def get_sandbox_database_config():
    """Get database configuration for sandbox/staging environment.

    Returns:
        tuple: (database_uri, engine_options)

    Raises:
        ValueError: If database URL is not configured
    """
    database_url = os.environ.get("SANDBOX_DATABASE_URL")
    if not database_url:
        raise ValueError("SANDBOX_DATABASE_URL must be set for sandbox environment")

    return database_url, get_database_engine_options()


def get_production_database_config():
    """Get database configuration for production environment.

    Production gateways may still run on a device-local SQLite file; pooled
    engine options only apply to server databases.

    Raises:
        ValueError: If database URL is not configured
    """
    database_url = os.environ.get("PRODUCTION_DATABASE_URL") or os.environ.get("DATABASE_URL")
    if not database_url:
        raise ValueError("PRODUCTION_DATABASE_URL or DATABASE_URL must be set for production environment")

    if database_url.startswith("sqlite"):
        return database_url, None
    return database_url, get_database_engine_options()


def get_database_config(environment=None):
    """Get database configuration based on environment.

    Args:
        environment: Environment name ('local', 'sandbox', 'production').
                     If None, it is read from ENVIRONMENT or FLASK_ENV.

    Returns:
        tuple: (database_uri, engine_options)
    """
    if environment is None:
        environment = get_environment()

    if environment in ["local", "development", "dev"]:
        return get_local_database_config()
    elif environment in ["sandbox", "staging", "stage"]:
        return get_sandbox_database_config()
    elif environment in ["production", "prod"]:
        return get_production_database_config()
    else:
        return get_local_database_config()


def configure_database(app, overrides=None):
    """Set SQLALCHEMY_* settings on the app config for the current environment.

    Args:
        app: Flask application instance
        overrides: Optional dict; a SQLALCHEMY_DATABASE_URI in it skips
                   environment lookup entirely (used by tests).
    """
    overrides = overrides or {}

    if "SQLALCHEMY_DATABASE_URI" in overrides:
        database_uri = overrides["SQLALCHEMY_DATABASE_URI"]
        engine_options = overrides.get("SQLALCHEMY_ENGINE_OPTIONS")
    else:
        database_uri, engine_options = get_database_config()

    app.config["SQLALCHEMY_DATABASE_URI"] = database_uri
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["SQLALCHEMY_ECHO"] = False

    if engine_options:
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options
