"""
Database helpers

MongoDB connection plus the small document helpers shared by the API routes.
Collection names are the lowercase model name:
- Customer -> "customer" collection
- Order -> "order" collection

MongoDB keeps datetimes as UTC, so every datetime is normalized with
``to_storage_datetime`` before it is written or used in a filter, and
rendered with ``to_api_datetime`` (UTC, trailing "Z") on the way out.
"""

import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from bson import ObjectId
from fastapi import Depends
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from config import get_settings
from errors import InternalError

CUSTOMERS = "customer"
ORDERS = "order"

Clock = Callable[[], datetime]

settings = get_settings()

_client: Optional[MongoClient] = None
db: Optional[Database] = None

if settings.DATABASE_URL and settings.DATABASE_NAME:
    _client = MongoClient(settings.DATABASE_URL, tz_aware=True)
    db = _client[settings.DATABASE_NAME]


def get_database() -> Optional[Database]:
    return db


def get_db(database: Optional[Database] = Depends(get_database)) -> Database:
    if database is None:
        raise InternalError("Database not configured")
    return database


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def get_clock() -> Clock:
    return utc_now


def to_storage_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_api_datetime(value: datetime) -> str:
    """ISO 8601 in UTC with a trailing Z; naive values are already UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat() + "Z"


def ensure_indexes(database: Database) -> None:
    customers = database[CUSTOMERS]
    customers.create_index("email", unique=True)
    customers.create_index("customerName")
    customers.create_index("status")

    orders = database[ORDERS]
    orders.create_index("trackingId", unique=True)
    orders.create_index("orderDate")


def to_object_id(value: str) -> Optional[ObjectId]:
    if not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = to_api_datetime(v)
    return doc


def create_document(database: Database, collection_name: str, data: Dict[str, Any], now: datetime) -> str:
    """Insert a document stamped with createdAt/updatedAt and return its id."""
    data_dict = {
        k: to_storage_datetime(v) if isinstance(v, datetime) else v
        for k, v in data.items()
    }
    stamp = to_storage_datetime(now)
    data_dict["createdAt"] = stamp
    data_dict["updatedAt"] = stamp
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def update_document(collection: Collection, object_id: ObjectId, changes: Dict[str, Any], now: datetime) -> Optional[Dict[str, Any]]:
    """Apply a $set of the given fields and return the updated document."""
    fields = {
        k: to_storage_datetime(v) if isinstance(v, datetime) else v
        for k, v in changes.items()
    }
    fields["updatedAt"] = to_storage_datetime(now)
    collection.update_one({"_id": object_id}, {"$set": fields})
    return collection.find_one({"_id": object_id})


def get_documents(
    collection: Collection,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[List[tuple]] = None,
    skip: int = 0,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    cursor = collection.find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def find_page(
    collection: Collection,
    filter_dict: Dict[str, Any],
    sort_by: str,
    sort_order: str,
    page: int,
    limit: int,
) -> Dict[str, Any]:
    """Run one paginated query and build the list envelope."""
    direction = DESCENDING if sort_order == "desc" else ASCENDING
    # _id as tie-breaker keeps pages stable when sort values repeat
    sort = [(sort_by, direction), ("_id", direction)]
    docs = get_documents(collection, filter_dict, sort, skip=(page - 1) * limit, limit=limit)
    total = collection.count_documents(filter_dict)
    return {
        "success": True,
        "count": len(docs),
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit),
        "data": [serialize_doc(d) for d in docs],
    }
