"""
Database helpers

Connection settings come from the environment:
- DATABASE_URL: MongoDB connection string
- DATABASE_NAME: database to use
- DATABASE_TRANSACTIONS: "1"/"true" to wrap multi-document deletes in a transaction
"""
import os
from datetime import datetime, timezone
from typing import Any, Optional, Union

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

from errors import DatabaseNotConfiguredError, InvalidIdError

logger = structlog.get_logger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")
USE_TRANSACTIONS = os.getenv("DATABASE_TRANSACTIONS", "").lower() in ("1", "true", "yes")

client: Optional[MongoClient] = None
db: Optional[Database] = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]
else:
    logger.warning("database_not_configured", database_url_set=bool(DATABASE_URL), database_name_set=bool(DATABASE_NAME))


def get_db() -> Database:
    """FastAPI dependency returning the configured database handle."""
    if db is None:
        raise DatabaseNotConfiguredError()
    return db


def _now() -> datetime:
    return datetime.now(timezone.utc)


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document and return its id as a string.

    Pydantic models are dumped first. A ``created_at`` timestamp is added
    unless the caller supplied one.
    """
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    doc.setdefault("created_at", _now())
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(database: Database, collection_name: str, filter_dict: Optional[dict] = None,
                  limit: Optional[int] = None, sort: Optional[list] = None) -> list:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def parse_object_id(value: Any, kind: str = "document") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise InvalidIdError(kind, str(value))


def _serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return serialize_doc(value)
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    return value


def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    """Make a Mongo document JSON friendly.

    ``_id`` becomes ``id``, ObjectIds (also nested ones) become strings and
    store metadata fields are dropped.
    """
    if not doc:
        return doc
    d = {}
    for k, v in doc.items():
        if k == "__v":
            continue
        d["id" if k == "_id" else k] = _serialize_value(v)
    return d
