from fieldsync.field.actions import FIELD_ACTIONS, FIELD_ACTIONS_BY_NAME, FieldAction
from fieldsync.field.client import FieldApiClient
from fieldsync.field.handlers import register_field_handlers

__all__ = [
    "FIELD_ACTIONS",
    "FIELD_ACTIONS_BY_NAME",
    "FieldAction",
    "FieldApiClient",
    "register_field_handlers",
]
