import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

import config
from errors import StoreUnavailable

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None


def get_db() -> Database:
    """Returns the process-wide database handle, connecting on first use.

    The unique per-user indexes are created before the handle is handed out.
    Cart and wishlist upserts depend on them to keep one document per user.
    """
    global _client
    if _client is None:
        if not config.DATABASE_URL:
            raise StoreUnavailable("DATABASE_URL is not set")
        client = MongoClient(config.DATABASE_URL)
        try:
            ensure_indexes(client[config.DATABASE_NAME])
        except StoreUnavailable:
            client.close()
            raise
        _client = client
        logger.info("MongoDB client initialized for database %s", config.DATABASE_NAME)
    return _client[config.DATABASE_NAME]


def close_db() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None
        logger.info("MongoDB client closed")


@contextmanager
def store_errors(operation: str):
    try:
        yield
    except PyMongoError as e:
        logger.exception("Store operation failed: %s", operation)
        raise StoreUnavailable(f"Store operation failed: {operation}") from e


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def oid(id_str: str) -> Optional[ObjectId]:
    return ObjectId(id_str) if ObjectId.is_valid(id_str) else None


def new_id() -> str:
    return str(ObjectId())


def public(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Copy of a raw document with `_id` renamed to a string `id`."""
    if doc is None:
        return None
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return doc


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude={"id"})
    else:
        data = {k: v for k, v in data.items() if k != "id"}
    now = utcnow()
    data["created_at"] = now
    data["updated_at"] = now
    with store_errors(f"insert into {collection_name}"):
        result = db[collection_name].insert_one(data)
    return str(result.inserted_id)


def get_documents(db: Database, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None) -> List[Dict[str, Any]]:
    with store_errors(f"find in {collection_name}"):
        cursor = db[collection_name].find(filter_dict or {})
        if limit:
            cursor = cursor.limit(limit)
        return [public(d) for d in cursor]


def ensure_indexes(db: Database) -> None:
    with store_errors("ensure indexes"):
        db["cart"].create_index([("user", ASCENDING)], unique=True)
        db["wishlist"].create_index([("user", ASCENDING)], unique=True)
        db["paymentintent"].create_index([("user_id", ASCENDING)])
