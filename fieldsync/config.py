import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Base configuration class with common settings."""
    # Central construction-PM server that replayed writes are sent to
    FIELD_API_BASE_URL = os.environ.get("FIELD_API_BASE_URL", "http://localhost:3000")
    FIELD_API_TOKEN = os.environ.get("FIELD_API_TOKEN")
    FIELD_API_TIMEOUT = float(os.environ.get("FIELD_API_TIMEOUT", "15"))

    # Connectivity probe (empty means the host pushes the flag via /offline/connectivity)
    CONNECTIVITY_PROBE_URL = os.environ.get("CONNECTIVITY_PROBE_URL")
    CONNECTIVITY_PROBE_TIMEOUT = float(os.environ.get("CONNECTIVITY_PROBE_TIMEOUT", "3"))

    # Replay driver
    REPLAY_MAX_RETRIES = int(os.environ.get("REPLAY_MAX_RETRIES", "5"))
    REPLAY_INTERVAL_SECONDS = int(os.environ.get("REPLAY_INTERVAL_SECONDS", "10"))
    SCHEDULER_ENABLED = _env_bool("SCHEDULER_ENABLED", True)

    # Batch sync endpoint
    SYNC_API_TOKEN = os.environ.get("SYNC_API_TOKEN")
    SYNC_RATE_LIMIT = int(os.environ.get("SYNC_RATE_LIMIT", "20"))
    SYNC_RATE_WINDOW_SECONDS = int(os.environ.get("SYNC_RATE_WINDOW_SECONDS", "60"))
    SYNC_MAX_BATCH_SIZE = int(os.environ.get("SYNC_MAX_BATCH_SIZE", "50"))

    # CORS configuration
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    DISPLAY_TIMEZONE = os.environ.get("DISPLAY_TIMEZONE", "America/Denver")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FILE = os.environ.get("LOG_FILE")


class LocalConfig(Config):
    """Configuration for local development."""
    ENV = "local"
    DEBUG = True


class SandboxConfig(Config):
    """Configuration for sandbox/staging environment."""
    ENV = "sandbox"
    DEBUG = False


class ProductionConfig(Config):
    """Configuration for production environment."""
    ENV = "production"
    DEBUG = False


def get_environment():
    """Return the normalized environment name from FLASK_ENV or ENVIRONMENT."""
    return (os.environ.get("FLASK_ENV") or os.environ.get("ENVIRONMENT", "local")).lower()


def get_config():
    """Get the appropriate configuration class based on environment variable.

    Environment is determined by FLASK_ENV or ENVIRONMENT variable:
    - 'local' or 'development' -> LocalConfig
    - 'sandbox' or 'staging' -> SandboxConfig
    - 'production' or 'prod' -> ProductionConfig

    Defaults to LocalConfig if not set.
    """
    env = get_environment()

    if env in ["local", "development", "dev"]:
        return LocalConfig
    elif env in ["sandbox", "staging", "stage"]:
        return SandboxConfig
    elif env in ["production", "prod"]:
        return ProductionConfig
    else:
        # Default to local for safety
        return LocalConfig
