"""
Database Helper Functions with Fallback

Primary: MongoDB via environment variables DATABASE_URL and DATABASE_NAME
Fallback: Mongita (embedded, MongoDB-compatible client) when env vars are not
          provided. DATABASE_BACKEND=memory keeps it entirely in memory, which
          is what the test suite uses.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
import logging
import threading
from typing import Iterable, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel

import settings
from errors import ServiceUnavailable

logger = logging.getLogger("tech_mastery.database")

USERS = "users"
CHALLENGES = "challenges"

_client = None
db = None
backend = "none"


def _connect_mongita():
    global _client, db, backend
    if settings.DATABASE_BACKEND == "memory":
        from mongita import MongitaClientMemory  # type: ignore
        _client = MongitaClientMemory()
        backend = "mongita-memory"
    else:
        from mongita import MongitaClientDisk  # type: ignore
        _client = MongitaClientDisk()
        backend = "mongita-disk"
    db = _client[settings.FALLBACK_DATABASE_NAME]


try:
    if settings.DATABASE_URL and settings.DATABASE_NAME:
        from pymongo import MongoClient  # type: ignore
        _client = MongoClient(settings.DATABASE_URL)
        db = _client[settings.DATABASE_NAME]
        backend = "mongodb"
    else:
        _connect_mongita()
except Exception:
    logger.exception("Primary database unavailable, falling back to in-memory Mongita")
    # As an ultimate fallback, try Mongita in-memory so the API stays usable
    try:
        from mongita import MongitaClientMemory  # type: ignore
        _client = MongitaClientMemory()
        db = _client[f"{settings.FALLBACK_DATABASE_NAME}_runtime"]
        backend = "mongita-memory"
    except Exception:
        logger.exception("No database backend could be initialised")
        db = None
        backend = "none"


def collection(name: str):
    """Return a collection handle, or raise if no database is available."""
    if db is None:
        raise ServiceUnavailable(
            "Database not available. Ensure DATABASE_URL & DATABASE_NAME are set or fallback is working."
        )
    return db[name]


def is_connected() -> bool:
    if db is None:
        return False
    if backend != "mongodb":
        return True
    try:
        _client.admin.command("ping")
        return True
    except Exception:
        logger.warning("MongoDB ping failed", exc_info=True)
        return False


def ensure_indexes():
    """Unique login keys on MongoDB. Mongita has no unique indexes, so the
    keyed locks below are the only guard there.

    Both keys are only present on users that log in with them, so display
    nicknames shared by Google users never collide."""
    if backend != "mongodb":
        return
    users = collection(USERS)
    users.create_index("login_nickname", unique=True, sparse=True)
    users.create_index("google_id", unique=True, sparse=True)
    collection(CHALLENGES).create_index([("difficulty", 1), ("category", 1), ("order", 1)])


# Keyed locks: serialise read-then-write sequences that share a key
# (a login key, a user id, the seed) within this process.

_locks = {}
_locks_guard = threading.Lock()


@contextmanager
def key_lock(key: str):
    with _locks_guard:
        entry = _locks.get(key)
        if entry is None:
            entry = _locks[key] = [threading.Lock(), 0]
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _locks_guard:
            entry[1] -= 1
            if entry[1] == 0:
                _locks.pop(key, None)


# Helper functions for common database operations

def now() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value) -> Optional[ObjectId]:
    """Parse a string id; None when it is not a valid ObjectId."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def sanitize(doc: Optional[dict]):
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def _prepare(data: Union[BaseModel, dict], timestamp: datetime) -> dict:
    # Convert Pydantic model to dict if needed
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        # Copy to avoid mutating caller's data
        data_dict = dict(data)
    data_dict.setdefault("created_at", timestamp)
    data_dict["updated_at"] = timestamp
    return data_dict


def create_document(collection_name: str, data: Union[BaseModel, dict]):
    """Insert a single document with timestamps. Returns inserted id (str)."""
    result = collection(collection_name).insert_one(_prepare(data, now()))
    inserted_id = getattr(result, "inserted_id", None)
    return str(inserted_id) if inserted_id is not None else None


def create_documents(collection_name: str, items: Iterable[Union[BaseModel, dict]]) -> int:
    """Bulk insert with timestamps. Returns the number of documents inserted."""
    timestamp = now()
    docs = [_prepare(item, timestamp) for item in items]
    if not docs:
        return 0
    result = collection(collection_name).insert_many(docs)
    return len(getattr(result, "inserted_ids", docs))


def get_documents(
    collection_name: str,
    filter_dict: Optional[dict] = None,
    limit: Optional[int] = None,
    sort: Optional[str] = None,
):
    """Get documents from collection as a list."""
    cursor = collection(collection_name).find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort, 1)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def get_document(collection_name: str, document_id) -> Optional[dict]:
    """Find one document by its string id; None for malformed or unknown ids."""
    oid = to_object_id(document_id)
    if oid is None:
        return None
    return collection(collection_name).find_one({"_id": oid})


def count_documents(collection_name: str, filter_dict: Optional[dict] = None) -> int:
    return collection(collection_name).count_documents(filter_dict or {})


def update_document(collection_name: str, document_id, fields: dict):
    fields = dict(fields)
    fields["updated_at"] = now()
    collection(collection_name).update_one({"_id": to_object_id(document_id)}, {"$set": fields})
