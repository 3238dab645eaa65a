"""
Registers a replay handler for every field write in the catalog.

Each handler receives the payload saved when the write was queued and
sends it to the central server through the field API client.
"""
from fieldsync.field.actions import FIELD_ACTIONS
from fieldsync.logging_config import get_logger

logger = get_logger(__name__)


def _make_handler(client, action):
    def handler(payload):
        return client.send(action, payload)
    handler.__name__ = f"replay_{action.name}"
    return handler


def register_field_handlers(registry, client, actions=FIELD_ACTIONS):
    for action in actions:
        registry.register(action.name, _make_handler(client, action))
    logger.info("Field replay handlers registered", count=len(actions))
    return registry
