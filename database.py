import logging
import math
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, GEOSPHERE, MongoClient
from pymongo.database import Database

import config
from errors import ValidationError

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None


def get_database() -> Database:
    global _client
    if _client is None:
        _client = MongoClient(config.DATABASE_URL)
        logger.info("MongoDB client created for database '%s'", config.DATABASE_NAME)
    return _client[config.DATABASE_NAME]


def ensure_indexes(db: Database) -> None:
    db["users"].create_index("email", unique=True)
    db["services"].create_index("name", unique=True)
    db["services"].create_index("category")
    db["tokens"].create_index("token", unique=True)
    db["tokens"].create_index("expiresAt", expireAfterSeconds=0)
    db["tokens"].create_index([("userId", ASCENDING), ("type", ASCENDING), ("isValid", ASCENDING)])
    db["mechanics"].create_index([("location.coordinates", GEOSPHERE)])
    db["appointments"].create_index([("mechanicId", ASCENDING), ("startTime", ASCENDING)])
    db["reviews"].create_index([("appointmentId", ASCENDING), ("clientId", ASCENDING)], unique=True)
    logger.info("Database indexes ensured")


def utcnow() -> datetime:
    # MongoDB hands datetimes back naive, so keep everything naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def start_of_day(value) -> datetime:
    if isinstance(value, datetime):
        value = to_naive_utc(value).date()
    return datetime(value.year, value.month, value.day)


def to_object_id(id_str: Any, field: str = "id") -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise ValidationError("Invalid ID format", errors=[{"field": field, "message": "Invalid ID format"}])


def create_document(db: Database, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
    now = utcnow()
    doc = dict(data)
    doc.setdefault("createdAt", now)
    doc["updatedAt"] = now
    doc["_id"] = db[collection].insert_one(doc).inserted_id
    return doc


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def serialize(value: Any) -> Any:
    """Make a Mongo document JSON friendly: ``_id`` becomes ``id``, ObjectIds become strings."""
    if isinstance(value, list):
        return [serialize(v) for v in value]
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            if k == "_id":
                out["id"] = serialize(v)
            else:
                out[k] = serialize(v)
        return out
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.replace(tzinfo=timezone.utc).isoformat() if value.tzinfo is None else value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


def serialize_many(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [serialize(d) for d in docs]
