from datetime import datetime
from typing import Any

from bson import ObjectId


def serialize_document(value: Any) -> Any:
    """Make a Mongo document JSON-safe (ObjectId -> str, datetime -> ISO 8601)."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: serialize_document(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [serialize_document(v) for v in value]
    return value
