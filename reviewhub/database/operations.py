from typing import Any, Dict, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument


def try_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def normalize_id(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is not None and "_id" in doc:
        doc["_id"] = str(doc["_id"])
    return doc


async def insert_if_absent(
    collection, query: Dict[str, Any], document: Dict[str, Any]
) -> Tuple[Dict[str, Any], bool]:
    """Atomically return the document matching ``query`` or insert ``document``.

    The new document's ``_id`` is generated here so the caller can tell
    whether the returned row is the one just inserted.
    """
    new_id = ObjectId()
    # equality fields of the query are copied onto the new document by the server
    on_insert = {
        k: v for k, v in document.items()
        if k not in query or isinstance(query[k], dict)
    }
    on_insert["_id"] = new_id
    doc = await collection.find_one_and_update(
        query,
        {"$setOnInsert": on_insert},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    created = doc["_id"] == new_id
    return normalize_id(doc), created
