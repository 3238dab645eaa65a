import requests

from fieldsync.field.actions import FieldAction
from fieldsync.logging_config import get_logger
from fieldsync.offline.errors import TRANSIENT_STATUS_CODES, TransientError, PermanentError

logger = get_logger(__name__)


def _error_message(response):
    """Pull a readable message out of an error response body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason
    if isinstance(body, dict):
        return body.get("error") or body.get("message") or str(body)[:200]
    return str(body)[:200]


class FieldApiClient:
    """HTTP client for the central construction-PM server's write endpoints."""

    def __init__(self, base_url, api_token=None, timeout=15, session=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if api_token:
            self.session.headers.update({"Authorization": f"Bearer {api_token}"})

    def send(self, action: FieldAction, payload):
        """
        Perform one field write against the server.

        Args:
            action: Catalog entry describing the endpoint
            payload: Stored payload for the write

        Returns:
            Parsed JSON response, or None for empty responses

        Raises:
            PayloadValidationError: Payload doesn't fit the action
            TransientError: Server unreachable, timed out, or temporarily unavailable
            PermanentError: Server rejected the write
        """
        action.validate(payload)
        path = action.build_path(payload)
        return self._request(action.method, path, json=action.build_body(payload))

    def _request(self, method, path, json=None):
        url = f"{self.base_url}{path}"
        logger.debug("Field API request", method=method, path=path)

        try:
            response = self.session.request(method, url, json=json, timeout=self.timeout)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout,
                requests.exceptions.ChunkedEncodingError) as err:
            logger.warning("Field API unreachable", method=method, path=path, error=str(err))
            raise TransientError(f"{method} {path} failed: {err}") from err

        if response.status_code in TRANSIENT_STATUS_CODES:
            logger.warning("Field API temporarily unavailable", method=method, path=path,
                           status_code=response.status_code)
            raise TransientError(f"{method} {path} returned HTTP {response.status_code}")

        if response.status_code >= 400:
            message = _error_message(response)
            logger.error("Field API rejected request", method=method, path=path,
                         status_code=response.status_code, error=message)
            raise PermanentError(message, status_code=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text
