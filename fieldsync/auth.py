"""Bearer-token authentication for device-to-gateway endpoints."""
import hmac
from functools import wraps

from flask import current_app, jsonify, request

from fieldsync.logging_config import get_logger

logger = get_logger(__name__)


def get_bearer_token():
    """Return the token from the Authorization header, or None."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def token_required(f):
    """
    Decorator to require the SYNC_API_TOKEN bearer token for a route.

    Returns 401 Unauthorized if the token is missing, wrong, or no token is
    configured on this gateway.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get("SYNC_API_TOKEN")
        token = get_bearer_token()
        if not expected or not token or not hmac.compare_digest(token.encode(), expected.encode()):
            logger.warning("Rejected unauthenticated request", path=request.path)
            return jsonify({'error': 'Unauthorized'}), 401
        return f(*args, **kwargs)
    return decorated_function
