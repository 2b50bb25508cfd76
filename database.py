"""
MongoDB access helpers.

Collections are named after the lowercased schema class (Order -> "order").
Every write goes through ``guarded`` so driver failures reach callers as
PersistenceError.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from bson import Decimal128, ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from errors import PersistenceError
from settings import get_settings

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None


def get_database() -> Database:
    global _client
    settings = get_settings()
    if _client is None:
        _client = MongoClient(
            settings.database_url,
            serverSelectionTimeoutMS=settings.database_timeout_ms,
            tz_aware=True,
        )
    return _client[settings.database_name]


# Utility

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def oid(id_str: Union[str, ObjectId, None]) -> Optional[ObjectId]:
    """Parse a document id, returning None for anything that is not an ObjectId."""
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        return None


def to_bson(value: Any) -> Any:
    """Convert Decimals (at any depth) to Decimal128 so money keeps its exact value."""
    if isinstance(value, Decimal):
        return Decimal128(value)
    if isinstance(value, dict):
        return {k: to_bson(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_bson(v) for v in value]
    return value


@contextmanager
def guarded(action: str):
    try:
        yield
    except PyMongoError as e:
        logger.error("Database error while %s: %s", action, e)
        raise PersistenceError(f"Database unavailable while {action}") from e


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> Dict[str, Any]:
    """Insert a document, stamping created_at/updated_at. Returns the stored document."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(exclude={"id"})
    else:
        data_dict = dict(data)
        data_dict.pop("_id", None)

    now = utcnow()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now

    document = to_bson(data_dict)
    with guarded(f"creating {collection_name}"):
        result = database[collection_name].insert_one(document)
    document["_id"] = result.inserted_id
    return document


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[dict] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Newest first."""
    with guarded(f"reading {collection_name}"):
        cursor = database[collection_name].find(filter_dict or {}).sort("created_at", -1)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)
