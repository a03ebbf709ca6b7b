"""
Document Store Adapter

One ``Database`` object owns the MongoDB client for the lifetime of the
application. It is created by the app (or a test) and handed to every service;
nothing in the project reaches for a module-level connection.

Collections:
- users, products, orders, order_items, addresses, cart, categories
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.client_session import ClientSession

from errors import ValidationError
from log import get_logger

logger = get_logger(__name__)

DEFAULT_CATEGORIES = [
    {"name": "T-Shirts", "description": "Comfortable t-shirts in various colors and styles"},
    {"name": "Shirts", "description": "Formal and casual shirts for all occasions"},
    {"name": "Jeans", "description": "Denim jeans in different fits and styles"},
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_id(value: Any, label: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {label}")


def to_str_id(doc: Any) -> Any:
    """Make a stored document JSON friendly: ``_id`` becomes ``id`` and every
    ObjectId becomes its hex string."""
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, list):
        return [to_str_id(v) for v in doc]
    if isinstance(doc, dict):
        out = {}
        for key, value in doc.items():
            out["id" if key == "_id" else key] = to_str_id(value)
        return out
    return doc


class Database:
    def __init__(
        self,
        url: str = "mongodb://localhost:27017",
        name: str = "clothing_store",
        client: Optional[MongoClient] = None,
        transactions: bool = False,
    ):
        self.url = url
        self.name = name
        self.client = client
        self.transactions = transactions
        self.db = None

    @classmethod
    def from_settings(cls, settings) -> "Database":
        return cls(
            url=settings.database_url,
            name=settings.database_name,
            transactions=settings.database_transactions,
        )

    @property
    def connected(self) -> bool:
        return self.db is not None

    def connect(self) -> "Database":
        if self.client is None:
            self.client = MongoClient(
                self.url,
                serverSelectionTimeoutMS=5000,
                socketTimeoutMS=45000,
            )
        self.db = self.client[self.name]
        self.initialize()
        logger.info("database_connected", database=self.name)
        return self

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
        self.db = None
        logger.info("database_closed", database=self.name)

    def __getitem__(self, collection: str):
        if self.db is None:
            raise RuntimeError("Database is not connected")
        return self.db[collection]

    def initialize(self) -> None:
        """Create indexes and the default categories. Safe to run repeatedly."""
        self["users"].create_index([("email", ASCENDING)], unique=True)
        self["products"].create_index([("category", ASCENDING)])
        self["products"].create_index([("createdAt", DESCENDING)])
        self["orders"].create_index([("userId", ASCENDING)])
        self["orders"].create_index([("createdAt", DESCENDING)])
        self["order_items"].create_index([("orderId", ASCENDING)])
        self["cart"].create_index(
            [("userId", ASCENDING), ("productName", ASCENDING), ("size", ASCENDING)],
            unique=True,
        )
        self["addresses"].create_index([("userId", ASCENDING)])
        self["addresses"].create_index([("isDefault", DESCENDING), ("createdAt", DESCENDING)])

        if self["categories"].count_documents({}) == 0:
            now = utcnow()
            self["categories"].insert_many(
                [{**c, "createdAt": now, "createdBy": "system"} for c in DEFAULT_CATEGORIES]
            )
            logger.info("default_categories_created", count=len(DEFAULT_CATEGORIES))

    @contextmanager
    def transaction(self) -> Iterator[Optional[ClientSession]]:
        """Multi-document transaction scope.

        Yields a session bound to a transaction when the deployment supports
        them, otherwise ``None`` and the writes inside run independently.
        """
        if not self.transactions:
            yield None
            return
        with self.client.start_session() as session:
            with session.start_transaction():
                yield session

    def create_document(self, collection: str, data: Any, session: Optional[ClientSession] = None) -> str:
        if isinstance(data, BaseModel):
            data = data.model_dump(by_alias=True)
        now = utcnow()
        doc = {**data, "createdAt": now, "updatedAt": now}
        result = self[collection].insert_one(doc, session=session)
        return str(result.inserted_id)

    def get_documents(self, collection: str, filter_dict: Optional[dict] = None, sort=None, limit: int = 0) -> list:
        cursor = self[collection].find(filter_dict or {})
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

