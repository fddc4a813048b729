"""
MongoDB access for the storefront

Holds the shared client, the small document helpers used by the API, and
the collection validators and indexes applied by `init_database`.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, TEXT, MongoClient

from config import DATABASE_NAME, DATABASE_URL

logger = logging.getLogger(__name__)

client = MongoClient(DATABASE_URL) if DATABASE_URL else None
db = client[DATABASE_NAME] if client is not None else None


USERS = "users"
PRODUCTS = "products"
CATEGORIES = "categories"
CARTS = "carts"
ORDERS = "orders"
SESSIONS = "sessions"

EMAIL_PATTERN = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

COLLECTION_VALIDATORS: Dict[str, Dict[str, Any]] = {
    USERS: {
        "$jsonSchema": {
            "bsonType": "object",
            "required": ["email", "password", "firstName", "lastName", "username"],
            "properties": {
                "email": {"bsonType": "string", "pattern": EMAIL_PATTERN},
                "username": {"bsonType": "string", "minLength": 3},
                "firstName": {"bsonType": "string", "minLength": 1},
                "lastName": {"bsonType": "string", "minLength": 1},
            },
        }
    },
    PRODUCTS: {
        "$jsonSchema": {
            "bsonType": "object",
            "required": ["name", "price", "category"],
            "properties": {
                "name": {"bsonType": "string", "minLength": 1},
                "price": {"bsonType": ["double", "int", "long", "decimal"]},
                "category": {"bsonType": "string", "minLength": 1},
            },
        }
    },
}

# (keys, options) per collection
COLLECTION_INDEXES: Dict[str, List[tuple]] = {
    USERS: [
        ([("email", ASCENDING)], {"unique": True}),
        ([("username", ASCENDING)], {"unique": True}),
    ],
    PRODUCTS: [
        ([("name", TEXT), ("description", TEXT)], {}),
        ([("category", ASCENDING)], {}),
        ([("brand", ASCENDING)], {}),
        ([("price", ASCENDING)], {}),
        ([("sku", ASCENDING)], {"unique": True, "sparse": True}),
    ],
    CATEGORIES: [
        ([("name", ASCENDING)], {"unique": True}),
        ([("parentCategoryId", ASCENDING)], {}),
    ],
    CARTS: [
        ([("userId", ASCENDING)], {"unique": True}),
    ],
    ORDERS: [
        ([("userId", ASCENDING)], {}),
        ([("orderNumber", ASCENDING)], {"unique": True}),
        ([("status", ASCENDING)], {}),
        ([("createdAt", DESCENDING)], {}),
    ],
    SESSIONS: [
        ([("jti", ASCENDING)], {"unique": True}),
        ([("userId", ASCENDING)], {}),
    ],
}


def get_db():
    """FastAPI dependency for the configured database."""
    if db is None:
        raise HTTPException(500, "Database not configured")
    return db


def _now() -> datetime:
    return datetime.now(timezone.utc)


def create_document(collection_name: str, data: Any) -> str:
    """Insert a document with created/updated stamps and return its id."""
    if db is None:
        raise RuntimeError("Database not configured")
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True, exclude_none=True)
    doc = dict(data)
    doc.setdefault("createdAt", _now())
    doc["updatedAt"] = _now()
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    doc["id"] = str(doc.pop("_id"))
    return doc


def init_database(database) -> None:
    """Create the storefront collections, validators and indexes.

    Safe to run repeatedly: existing collections get their validator
    refreshed with collMod and index creation is a no-op when the index
    already exists.
    """
    existing = set(database.list_collection_names())
    for name in (USERS, PRODUCTS, CATEGORIES, CARTS, ORDERS, SESSIONS):
        validator = COLLECTION_VALIDATORS.get(name)
        if name not in existing:
            if validator:
                database.create_collection(name, validator=validator)
            else:
                database.create_collection(name)
            logger.info("Created collection %s", name)
        elif validator:
            database.command("collMod", name, validator=validator)
            logger.info("Updated validator on %s", name)

    for name, indexes in COLLECTION_INDEXES.items():
        for keys, options in indexes:
            database[name].create_index(keys, **options)
    logger.info("Database initialization completed")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    if db is None:
        raise SystemExit("DATABASE_URL is not set")
    init_database(db)
