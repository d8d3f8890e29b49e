"""
MongoDB access helpers.

The connection is opened once at import time from ``DATABASE_URL`` and
``DATABASE_NAME``. ``db`` stays ``None`` when no URL is configured; every
helper then raises ``DatabaseUnavailable``.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient

import settings
from errors import DatabaseUnavailable, NotFound

logger = logging.getLogger(__name__)

db = None

if settings.DATABASE_URL:
    try:
        _client = MongoClient(settings.DATABASE_URL, serverSelectionTimeoutMS=5000)
        db = _client[settings.DATABASE_NAME]
    except Exception as e:
        logger.error("Could not connect to MongoDB: %s", e)
        db = None


def collection(name: str):
    if db is None:
        raise DatabaseUnavailable()
    return db[name]


def now() -> datetime:
    return datetime.now(timezone.utc)


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document with timestamps and return its id as a string."""
    if isinstance(data, BaseModel):
        doc = data.model_dump(mode="json")
    else:
        doc = dict(data)
    doc["created_at"] = now()
    doc["updated_at"] = now()
    result = collection(collection_name).insert_one(doc)
    return str(result.inserted_id)


def oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise NotFound("Invalid id")


def serialize(doc: Optional[dict]) -> Optional[Dict[str, Any]]:
    """Turn a Mongo document into JSON-friendly output (``_id`` -> ``id``)."""
    if doc is None:
        return None
    out = {}
    for key, value in doc.items():
        if key == "_id":
            out["id"] = str(value)
        elif isinstance(value, ObjectId):
            out[key] = str(value)
        elif isinstance(value, dict):
            out[key] = serialize(value)
        elif isinstance(value, list):
            out[key] = [serialize(v) if isinstance(v, dict) else (str(v) if isinstance(v, ObjectId) else v) for v in value]
        else:
            out[key] = value
    return out


def ensure_indexes():
    if db is None:
        return
    try:
        db["category"].create_index("slug", unique=True)
        db["product"].create_index("slug", unique=True)
        db["product"].create_index("category_id")
        db["user"].create_index("auth_id", unique=True)
        db["cart"].create_index("user_id", unique=True)
        db["cartitem"].create_index(
            [("cart_id", ASCENDING), ("product_id", ASCENDING), ("size", ASCENDING)], unique=True
        )
        db["order"].create_index([("user_id", ASCENDING), ("created_at", -1)])
        db["order"].create_index("stripe_session_id")
        db["wishlistitem"].create_index([("user_id", ASCENDING), ("product_id", ASCENDING)], unique=True)
    except Exception as e:
        logger.warning("Unable to ensure indexes: %s", e)
