import atexit
import os

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask, jsonify
from flask_cors import CORS

from fieldsync.api import api_bp, offline_bp
from fieldsync.logging_config import configure_logging, get_logger
from fieldsync.models import db
from fieldsync.offline.connectivity import ConnectivityMonitor
from fieldsync.offline.driver import ReplayDriver
from fieldsync.offline.errors import ReplayInProgressError
from fieldsync.offline.queue import MutationQueue
from fieldsync.offline.registry import ReplayRegistry
from fieldsync.offline.runtime import OfflineRuntime, init_runtime

# Configure logging
logger = configure_logging(
    log_level=os.environ.get("LOG_LEVEL", "INFO"),
    log_file=os.environ.get("LOG_FILE"),
)


def run_scheduled_replay(app):
    """Scheduler job: refresh connectivity, then replay if there is work."""
    runtime = app.extensions["fieldsync"]
    with app.app_context():
        online = runtime.connectivity.probe()
        if not online:
            return None
        if not MutationQueue.get_status(online)["pending"]:
            return None
        try:
            return runtime.driver.sync_all(trigger="scheduler")
        except ReplayInProgressError:
            logger.debug("Scheduled replay skipped, a pass is already running")
            return None


def init_scheduler(app):
    """Start the background replay job."""

    if not app.config.get("SCHEDULER_ENABLED", True):
        logger.info("Scheduler disabled by configuration")
        return None

    # Werkzeug's reloader imports the app twice; only the child should schedule
    if app.debug and os.environ.get("WERKZEUG_RUN_MAIN") != "true":
        logger.info("Skipping scheduler startup in reloader parent process")
        return None

    executors = {"default": ThreadPoolExecutor(2)}
    scheduler = BackgroundScheduler(executors=executors)

    scheduler.add_job(
        func=run_scheduled_replay,
        args=[app],
        trigger="interval",
        seconds=app.config.get("REPLAY_INTERVAL_SECONDS", 10),
        id="offline_replay",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    scheduler.start()
    atexit.register(lambda: scheduler.shutdown(wait=False))

    logger.info("Scheduler started", interval_seconds=app.config.get("REPLAY_INTERVAL_SECONDS", 10))
    return scheduler


def build_runtime(app, registry=None, connectivity=None, field_client=None):
    """Construct the registry, connectivity monitor and replay driver for app."""
    from fieldsync.field import FieldApiClient, register_field_handlers

    if registry is None:
        registry = ReplayRegistry()
        client = field_client or FieldApiClient(
            app.config["FIELD_API_BASE_URL"],
            api_token=app.config.get("FIELD_API_TOKEN"),
            timeout=app.config.get("FIELD_API_TIMEOUT", 15),
        )
        register_field_handlers(registry, client)

    if connectivity is None:
        connectivity = ConnectivityMonitor(
            probe_url=app.config.get("CONNECTIVITY_PROBE_URL"),
            timeout=app.config.get("CONNECTIVITY_PROBE_TIMEOUT", 3),
        )

    driver = ReplayDriver(registry, connectivity, max_retries=app.config.get("REPLAY_MAX_RETRIES", 5))
    return OfflineRuntime(registry=registry, connectivity=connectivity, driver=driver)


def create_app(config_overrides=None, registry=None, connectivity=None, field_client=None):
    """
    Application factory.

    Args:
        config_overrides: Dict applied over the environment's config class
        registry: Prebuilt ReplayRegistry; defaults to the field action catalog
        connectivity: Prebuilt ConnectivityMonitor
        field_client: FieldApiClient used when building the default registry
    """
    from fieldsync.config import get_config
    from fieldsync.db_config import configure_database

    config_class = get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)
    if config_overrides:
        app.config.update(config_overrides)

    configure_database(app, config_overrides)

    logger.info(f"Starting application in {config_class.ENV} environment")
    logger.info(f"Database URI: {app.config.get('SQLALCHEMY_DATABASE_URI', 'Not set')[:50]}...")

    allowed_origins = app.config.get("CORS_ORIGINS", "*")
    if allowed_origins != "*":
        allowed_origins = [origin.strip() for origin in allowed_origins.split(",")]

    CORS(app,
         resources={r"/*": {"origins": allowed_origins}},
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"])

    db.init_app(app)
    with app.app_context():
        # The queue must exist before the first offline write
        db.create_all()
        # Attempts cut off by the previous process go back in line
        MutationQueue.recover_in_flight()

    init_runtime(app, build_runtime(app, registry, connectivity, field_client))

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"}), 200

    app.register_blueprint(offline_bp, url_prefix="/offline")
    app.register_blueprint(api_bp, url_prefix="/api")

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Return every unhandled error as JSON."""
        if hasattr(e, 'code') and isinstance(e.code, int):
            status_code = e.code
        elif hasattr(e, 'status_code'):
            status_code = e.status_code
        else:
            status_code = 500

        if status_code >= 500:
            logger.error("Unhandled exception", error=str(e), exc_info=True)

        response = jsonify({
            "error": str(e),
            "message": "An error occurred processing your request"
        })
        response.status_code = status_code
        return response

    try:
        init_scheduler(app)
    except Exception as e:
        logger.error("Failed to start scheduler", error=str(e))

    return app
