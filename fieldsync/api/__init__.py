# Package
from flask import Blueprint

from fieldsync.logging_config import get_logger

logger = get_logger(__name__)

api_bp = Blueprint("api", __name__)
offline_bp = Blueprint("offline", __name__)

from fieldsync.api import offline_routes, sync_routes
