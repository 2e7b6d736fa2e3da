"""
Storage backends for the storefront.

Every backend implements the same capability set (``list_products``,
``create_product``, ``update_order`` ...) on top of five primitives, and hands
records back as plain dicts with snake_case keys, ``Decimal`` money and
``datetime`` timestamps. Records always carry their id as a string.

Backends:
- sqlite: relational tables, file based (``:memory:`` for a throwaway db)
- memory: dicts owned by the store instance, gone on restart
- mongo: one collection per entity, features embedded in the product document
"""

import copy
import logging
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import uuid4

from bson import ObjectId
from bson.decimal128 import Decimal128
from pymongo import MongoClient, ReturnDocument

import config

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

PRODUCTS = "products"
ORDERS = "orders"
BANNERS = "banners"
REVIEWS = "reviews"
KINDS = (PRODUCTS, ORDERS, BANNERS, REVIEWS)

# writable columns per entity
COLUMNS = {
    PRODUCTS: ("title", "description", "price", "discount", "image", "created_at"),
    ORDERS: (
        "id", "customer_name", "email", "phone", "address", "product_id",
        "product_title", "quantity", "total_price", "status", "created_at",
    ),
    BANNERS: ("title", "description", "price", "discount", "link", "image", "created_at"),
    REVIEWS: ("customer_name", "rating", "comment", "created_at", "updated_at"),
}
DECIMAL_FIELDS = ("price", "total_price")
DATETIME_FIELDS = ("created_at", "updated_at")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_order_id() -> str:
    return f"ORD{int(time.time() * 1000)}{uuid4().hex[:6].upper()}"


class Store(ABC):
    name = "abstract"

    # -------------------------
    # Primitives
    # -------------------------

    @abstractmethod
    def _insert(self, kind: str, data: Record) -> Record:
        ...

    @abstractmethod
    def _get(self, kind: str, id: str) -> Optional[Record]:
        ...

    @abstractmethod
    def _all(self, kind: str) -> List[Record]:
        """All records of a kind, newest first."""

    @abstractmethod
    def _update(self, kind: str, id: str, changes: Record) -> Optional[Record]:
        ...

    @abstractmethod
    def _delete(self, kind: str, id: str) -> Optional[Record]:
        ...

    @abstractmethod
    def count(self, kind: str) -> int:
        ...

    def close(self):
        pass

    def _create(self, kind: str, data: Record) -> Record:
        return self._insert(kind, {**data, "created_at": utcnow()})

    # -------------------------
    # Products
    # -------------------------

    def list_products(self) -> List[Record]:
        return self._all(PRODUCTS)

    def get_product(self, product_id: str) -> Optional[Record]:
        return self._get(PRODUCTS, product_id)

    def create_product(self, data: Record) -> Record:
        return self._create(PRODUCTS, {"discount": 0, "features": [], **data})

    def update_product(self, product_id: str, changes: Record) -> Optional[Record]:
        """Write only the supplied fields. A ``features`` key replaces the whole list."""
        return self._update(PRODUCTS, product_id, changes)

    def delete_product(self, product_id: str) -> Optional[Record]:
        return self._delete(PRODUCTS, product_id)

    # -------------------------
    # Orders
    # -------------------------

    def list_orders(self) -> List[Record]:
        return self._all(ORDERS)

    def get_order(self, order_id: str) -> Optional[Record]:
        return self._get(ORDERS, order_id)

    def create_order(self, data: Record) -> Record:
        return self._create(ORDERS, {"id": new_order_id(), "status": "Pending", **data})

    def update_order(self, order_id: str, changes: Record) -> Optional[Record]:
        return self._update(ORDERS, order_id, changes)

    def delete_order(self, order_id: str) -> Optional[Record]:
        return self._delete(ORDERS, order_id)

    # -------------------------
    # Banners
    # -------------------------

    def list_banners(self) -> List[Record]:
        return self._all(BANNERS)

    def get_banner(self, banner_id: str) -> Optional[Record]:
        return self._get(BANNERS, banner_id)

    def create_banner(self, data: Record) -> Record:
        return self._create(BANNERS, {"price": Decimal(0), "discount": 0, **data})

    def update_banner(self, banner_id: str, changes: Record) -> Optional[Record]:
        return self._update(BANNERS, banner_id, changes)

    def delete_banner(self, banner_id: str) -> Optional[Record]:
        return self._delete(BANNERS, banner_id)

    # -------------------------
    # Reviews
    # -------------------------

    def list_reviews(self) -> List[Record]:
        return self._all(REVIEWS)

    def get_review(self, review_id: str) -> Optional[Record]:
        return self._get(REVIEWS, review_id)

    def create_review(self, data: Record) -> Record:
        return self._create(REVIEWS, {"updated_at": None, **data})

    def update_review(self, review_id: str, changes: Record) -> Optional[Record]:
        return self._update(REVIEWS, review_id, {**changes, "updated_at": utcnow()})

    def delete_review(self, review_id: str) -> Optional[Record]:
        return self._delete(REVIEWS, review_id)


# -------------------------
# SQLite
# -------------------------

SCHEMA = """
CREATE TABLE IF NOT EXISTS products (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    description TEXT,
    price TEXT NOT NULL,
    discount INTEGER NOT NULL DEFAULT 0 CHECK (discount >= 0 AND discount <= 100),
    image TEXT,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS product_features (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id INTEGER NOT NULL REFERENCES products (id) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    feature TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS orders (
    id TEXT PRIMARY KEY,
    customer_name TEXT NOT NULL,
    email TEXT,
    phone TEXT NOT NULL,
    address TEXT NOT NULL,
    product_id TEXT NOT NULL,
    product_title TEXT,
    quantity INTEGER NOT NULL CHECK (quantity > 0),
    total_price TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'Pending',
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS banners (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    description TEXT,
    price TEXT NOT NULL DEFAULT '0',
    discount INTEGER NOT NULL DEFAULT 0 CHECK (discount >= 0 AND discount <= 100),
    link TEXT,
    image TEXT,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS reviews (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_name TEXT NOT NULL,
    rating INTEGER NOT NULL CHECK (rating >= 1 AND rating <= 5),
    comment TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT
);
"""


def _to_column(value):
    # money is kept as exact decimal text, timestamps as ISO-8601
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat(timespec="microseconds")
    return value


class SQLiteStore(Store):
    name = "sqlite"

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self.conn = sqlite3.connect(db_path, timeout=10, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self.conn.execute("PRAGMA foreign_keys=ON")
        if db_path != ":memory:":
            self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.executescript(SCHEMA)
        self.conn.commit()
        logger.info("Connected to SQLite database at %s", db_path)

    def close(self):
        self.conn.close()

    def query(self, sql: str, params=()) -> List[sqlite3.Row]:
        with self._lock:
            return self.conn.execute(sql, params).fetchall()

    def _record(self, kind: str, row: Optional[sqlite3.Row]) -> Optional[Record]:
        if row is None:
            return None
        record = dict(row)
        record["id"] = str(record["id"])
        if "product_id" in record:
            record["product_id"] = str(record["product_id"])
        for key in DECIMAL_FIELDS:
            if record.get(key) is not None:
                record[key] = Decimal(record[key])
        for key in DATETIME_FIELDS:
            if record.get(key):
                record[key] = datetime.fromisoformat(record[key])
        return record

    def _insert(self, kind, data):
        columns = [c for c in COLUMNS[kind] if c in data]
        placeholders = ", ".join("?" for _ in columns)
        with self._lock, self.conn:
            cur = self.conn.execute(
                f"INSERT INTO {kind} ({', '.join(columns)}) VALUES ({placeholders})",
                [_to_column(data[c]) for c in columns],
            )
            new_id = data.get("id") or cur.lastrowid
        return self._get(kind, str(new_id))

    def _get(self, kind, id):
        rows = self.query(f"SELECT * FROM {kind} WHERE id = ?", (id,))
        return self._record(kind, rows[0] if rows else None)

    def _all(self, kind):
        rows = self.query(f"SELECT * FROM {kind} ORDER BY created_at DESC, rowid DESC")
        return [self._record(kind, row) for row in rows]

    def _set(self, kind, id, changes) -> int:
        columns = [c for c in COLUMNS[kind] if c in changes and c not in ("id", "created_at")]
        if not columns:
            return 0
        assignments = ", ".join(f"{c} = ?" for c in columns)
        cur = self.conn.execute(
            f"UPDATE {kind} SET {assignments} WHERE id = ?",
            [_to_column(changes[c]) for c in columns] + [id],
        )
        return cur.rowcount

    def _update(self, kind, id, changes):
        with self._lock, self.conn:
            if not self.query(f"SELECT 1 FROM {kind} WHERE id = ?", (id,)):
                return None
            self._set(kind, id, changes)
        return self._get(kind, id)

    def _delete(self, kind, id):
        with self._lock, self.conn:
            record = self._get(kind, id)
            if record is None:
                return None
            self.conn.execute(f"DELETE FROM {kind} WHERE id = ?", (id,))
        return record

    def count(self, kind):
        return self.query(f"SELECT COUNT(*) FROM {kind}")[0][0]

    # products keep their features in a child table

    def _features(self, product_ids: List[str]) -> Dict[str, List[str]]:
        features: Dict[str, List[str]] = {pid: [] for pid in product_ids}
        if not product_ids:
            return features
        marks = ", ".join("?" for _ in product_ids)
        rows = self.query(
            f"SELECT product_id, feature FROM product_features WHERE product_id IN ({marks}) "
            "ORDER BY product_id, position",
            product_ids,
        )
        for row in rows:
            features[str(row["product_id"])].append(row["feature"])
        return features

    def _write_features(self, product_id, features: List[str]):
        self.conn.execute("DELETE FROM product_features WHERE product_id = ?", (product_id,))
        self.conn.executemany(
            "INSERT INTO product_features (product_id, position, feature) VALUES (?, ?, ?)",
            [(product_id, pos, feature) for pos, feature in enumerate(features)],
        )

    def get_product(self, product_id):
        product = self._get(PRODUCTS, product_id)
        if product is not None:
            product["features"] = self._features([product["id"]])[product["id"]]
        return product

    def list_products(self):
        products = self._all(PRODUCTS)
        features = self._features([p["id"] for p in products])
        for product in products:
            product["features"] = features[product["id"]]
        return products

    def create_product(self, data):
        data = {"discount": 0, **data, "created_at": utcnow()}
        columns = [c for c in COLUMNS[PRODUCTS] if c in data]
        with self._lock, self.conn:
            cur = self.conn.execute(
                f"INSERT INTO products ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
                [_to_column(data[c]) for c in columns],
            )
            product_id = cur.lastrowid
            self._write_features(product_id, data.get("features") or [])
        return self.get_product(str(product_id))

    def update_product(self, product_id, changes):
        # one transaction: the old feature set survives any failure
        with self._lock, self.conn:
            if not self.query("SELECT 1 FROM products WHERE id = ?", (product_id,)):
                return None
            self._set(PRODUCTS, product_id, changes)
            if changes.get("features") is not None:
                self._write_features(product_id, changes["features"])
        return self.get_product(product_id)


# -------------------------
# In-memory
# -------------------------

class MemoryStore(Store):
    """Process-owned store. Each instance starts empty and is independent."""

    name = "memory"

    def __init__(self):
        self._tables: Dict[str, Dict[str, Record]] = {kind: {} for kind in KINDS}
        self._next_id = {kind: 1 for kind in KINDS}
        self._lock = threading.RLock()

    def _insert(self, kind, data):
        with self._lock:
            record = copy.deepcopy(data)
            if not record.get("id"):
                record["id"] = str(self._next_id[kind])
                self._next_id[kind] += 1
            self._tables[kind][record["id"]] = record
            return copy.deepcopy(record)

    def _get(self, kind, id):
        record = self._tables[kind].get(str(id))
        return copy.deepcopy(record) if record is not None else None

    def _all(self, kind):
        with self._lock:
            # reversed() first so equal timestamps still come out newest first
            records = sorted(
                reversed(list(self._tables[kind].values())),
                key=lambda r: r["created_at"],
                reverse=True,
            )
            return copy.deepcopy(records)

    def _update(self, kind, id, changes):
        with self._lock:
            current = self._tables[kind].get(str(id))
            if current is None:
                return None
            updated = {**current, **copy.deepcopy(changes), "id": current["id"]}
            self._tables[kind][current["id"]] = updated
            return copy.deepcopy(updated)

    def _delete(self, kind, id):
        with self._lock:
            return self._tables[kind].pop(str(id), None)

    def count(self, kind):
        return len(self._tables[kind])


# -------------------------
# MongoDB
# -------------------------

class MongoStore(Store):
    name = "mongo"

    collections = {PRODUCTS: "product", ORDERS: "order", BANNERS: "banner", REVIEWS: "review"}

    def __init__(self, db, owns_client: bool = False):
        self.db = db
        self.owns_client = owns_client

    @classmethod
    def from_url(cls, database_url: str, database_name: str) -> "MongoStore":
        if not database_url or not database_name:
            raise ValueError("DATABASE_URL and DATABASE_NAME must be set for the mongo backend")
        # stored datetimes are read back as UTC aware values
        client = MongoClient(database_url, tz_aware=True)
        logger.info("Connected to MongoDB database %s", database_name)
        return cls(client[database_name], owns_client=True)

    def close(self):
        if self.owns_client:
            self.db.client.close()

    @staticmethod
    def _key(kind, id):
        if kind == ORDERS:
            return id
        if not ObjectId.is_valid(id):
            return None
        return ObjectId(id)

    @staticmethod
    def _to_doc(data: Record) -> Record:
        return {
            k: Decimal128(str(v)) if isinstance(v, Decimal) else v
            for k, v in data.items()
        }

    @staticmethod
    def _from_doc(doc: Optional[Record]) -> Optional[Record]:
        if not doc:
            return None
        doc = dict(doc)
        doc["id"] = str(doc.pop("_id"))
        for k, v in list(doc.items()):
            if isinstance(v, Decimal128):
                doc[k] = v.to_decimal()
        return doc

    def _insert(self, kind, data):
        doc = self._to_doc(data)
        if "id" in doc:
            doc["_id"] = doc.pop("id")
        result = self.db[self.collections[kind]].insert_one(doc)
        return self._get(kind, str(result.inserted_id))

    def _get(self, kind, id):
        key = self._key(kind, id)
        if key is None:
            return None
        return self._from_doc(self.db[self.collections[kind]].find_one({"_id": key}))

    def _all(self, kind):
        cursor = self.db[self.collections[kind]].find({}).sort([("created_at", -1), ("_id", -1)])
        return [self._from_doc(doc) for doc in cursor]

    def _update(self, kind, id, changes):
        key = self._key(kind, id)
        if key is None:
            return None
        changes = {k: v for k, v in changes.items() if k not in ("id", "_id", "created_at")}
        if not changes:
            return self._get(kind, id)
        # single document write, so a features replacement is all or nothing
        doc = self.db[self.collections[kind]].find_one_and_update(
            {"_id": key}, {"$set": self._to_doc(changes)}, return_document=ReturnDocument.AFTER
        )
        return self._from_doc(doc)

    def _delete(self, kind, id):
        key = self._key(kind, id)
        if key is None:
            return None
        return self._from_doc(self.db[self.collections[kind]].find_one_and_delete({"_id": key}))

    def count(self, kind):
        return self.db[self.collections[kind]].count_documents({})


def create_store(backend: Optional[str] = None) -> Store:
    backend = (backend or config.STORAGE_BACKEND).lower()
    if backend == "sqlite":
        return SQLiteStore(config.DATABASE_PATH)
    if backend == "memory":
        return MemoryStore()
    if backend == "mongo":
        return MongoStore.from_url(config.DATABASE_URL, config.DATABASE_NAME)
    raise ValueError(f"Unknown storage backend: {backend}")
