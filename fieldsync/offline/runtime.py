from dataclasses import dataclass

from flask import current_app

from fieldsync.offline.connectivity import ConnectivityMonitor
from fieldsync.offline.driver import ReplayDriver
from fieldsync.offline.registry import ReplayRegistry

EXTENSION_KEY = "fieldsync"


@dataclass
class OfflineRuntime:
    """The constructed offline pieces one app instance works with."""
    registry: ReplayRegistry
    connectivity: ConnectivityMonitor
    driver: ReplayDriver


def init_runtime(app, runtime: OfflineRuntime) -> OfflineRuntime:
    app.extensions[EXTENSION_KEY] = runtime
    return runtime


def get_runtime() -> OfflineRuntime:
    """Runtime of the current app; must be called inside an app context."""
    return current_app.extensions[EXTENSION_KEY]
