"""Schema Package - JSON Schema Loading.

Available Schemas:
    NOTIFICATION_SCHEMA: JSON Schema (Draft 7) for accepted inbound
        webmentions. Records are validated against it before they are
        appended to the notification queue.

Usage:
    from jsonschema import validate
    from schema import NOTIFICATION_SCHEMA
    validate(instance=record, schema=NOTIFICATION_SCHEMA)
"""
from .schema import NOTIFICATION_SCHEMA, load_schema

__all__ = ["NOTIFICATION_SCHEMA", "load_schema"]
