"""
MongoDB access for Feed the Future.

The connection is configured from DATABASE_URL and DATABASE_NAME (a `.env`
file is honoured). When either is missing `db` stays None and every request
that needs storage fails with Unavailable.
"""

import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from pymongo import MongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from errors import Unavailable

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

db = None
if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL, serverSelectionTimeoutMS=5000)
    db = client[DATABASE_NAME]


def get_db():
    """FastAPI dependency; tests override it with an in-memory database."""
    if db is None:
        raise Unavailable("Database is not configured")
    return db


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def create_document(database, collection_name: str, data: Dict[str, Any]) -> str:
    doc = dict(data)
    doc.pop("id", None)
    stamp = now_utc()
    doc.setdefault("createdAt", stamp)
    doc.setdefault("updatedAt", stamp)
    try:
        result = database[collection_name].insert_one(doc)
    except PyMongoError as e:
        logger.exception("insert into %s failed", collection_name)
        raise Unavailable(f"Could not save {collection_name}: {e}") from e
    return str(result.inserted_id)


def get_documents(
    database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort_field: Optional[str] = None,
) -> List[Dict[str, Any]]:
    try:
        cursor = database[collection_name].find(filter_dict or {})
        if sort_field:
            cursor = cursor.sort([(sort_field, -1), ("_id", -1)])
        return list(cursor)
    except PyMongoError as e:
        logger.exception("query on %s failed", collection_name)
        raise Unavailable(f"Could not read {collection_name}: {e}") from e


def next_sequence(database, name: str) -> int:
    try:
        counter = database["counter"].find_one_and_update(
            {"_id": name},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    except PyMongoError as e:
        logger.exception("sequence %s failed", name)
        raise Unavailable(f"Could not allocate sequence {name}: {e}") from e
    return counter["seq"]
