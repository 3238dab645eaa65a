import threading
from typing import Optional

import requests

from fieldsync.logging_config import get_logger

logger = get_logger(__name__)


class ConnectivityMonitor:
    """
    Holds the "is this device online" flag.

    The host either pushes the flag (set_online) or lets probe() check a
    health URL on the central server. The flag is only a hint: a True value
    can still be followed by a connection error, which the offline wrapper
    handles by queueing.
    """

    def __init__(self, probe_url: Optional[str] = None, timeout: float = 3.0,
                 session: Optional[requests.Session] = None, initial: bool = True):
        self.probe_url = probe_url
        self.timeout = timeout
        self._session = session or requests.Session()
        self._online = initial
        self._lock = threading.Lock()

    def is_online(self) -> bool:
        with self._lock:
            return self._online

    def set_online(self, value: bool) -> bool:
        """Set the flag; returns True if it changed."""
        value = bool(value)
        with self._lock:
            changed = value != self._online
            self._online = value
        if changed:
            logger.info("Connectivity changed", online=value)
        return changed

    def probe(self) -> bool:
        """Check the probe URL and update the flag. No URL means no change."""
        if not self.probe_url:
            return self.is_online()

        try:
            response = self._session.get(self.probe_url, timeout=self.timeout)
            online = response.status_code < 500
        except requests.exceptions.RequestException as e:
            logger.debug("Connectivity probe failed", url=self.probe_url, error=str(e))
            online = False

        self.set_online(online)
        return online

    def get_status(self) -> dict:
        return {
            "is_online": self.is_online(),
            "probe_url": self.probe_url,
        }
