"""
Collection datastore: in-memory, flat JSON file and SQL implementations.

Every implementation stores schemaless items (JSON objects carrying an
``id``) grouped by collection name. Each call is atomic on its own; there
are no multi-call transactions, so concurrent writes to one item are
last-write-wins.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Dict, Optional, Protocol

from sqlalchemy import JSON, Column, Float, String, create_engine, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from lovenest.config import Settings

logger = logging.getLogger(__name__)


class DatastoreError(Exception):
    """Raised when the backing store fails to serve a call."""


class DuplicateIdError(DatastoreError):
    """Raised by ``create`` when the collection already holds the id."""


class Datastore(Protocol):
    """Interface for collection access."""

    def all(self, collection: str) -> list[dict]:
        ...

    def find(self, collection: str, item_id: str) -> Optional[dict]:
        ...

    def create(self, collection: str, item: dict) -> dict:
        ...

    def update(self, collection: str, item_id: str, patch: dict) -> Optional[dict]:
        ...

    def remove(self, collection: str, item_id: str) -> bool:
        ...


def _require_id(item: dict) -> str:
    item_id = item.get("id")
    if not item_id:
        raise DatastoreError("Items must carry an id")
    return str(item_id)


class InMemoryDatastore:
    """Simple in-memory datastore for development and tests."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = {}
        self._lock = threading.RLock()

    def all(self, collection: str) -> list[dict]:
        with self._lock:
            items = self.collections.get(collection, {})
            return [copy.deepcopy(item) for item in items.values()]

    def find(self, collection: str, item_id: str) -> Optional[dict]:
        with self._lock:
            item = self.collections.get(collection, {}).get(item_id)
            return copy.deepcopy(item) if item is not None else None

    def create(self, collection: str, item: dict) -> dict:
        item_id = _require_id(item)
        with self._lock:
            items = self.collections.setdefault(collection, {})
            if item_id in items:
                raise DuplicateIdError(f"Duplicate id {item_id} in {collection}")
            items[item_id] = copy.deepcopy(item)
            return copy.deepcopy(item)

    def update(self, collection: str, item_id: str, patch: dict) -> Optional[dict]:
        with self._lock:
            item = self.collections.get(collection, {}).get(item_id)
            if item is None:
                return None
            item.update(copy.deepcopy(patch))
            return copy.deepcopy(item)

    def remove(self, collection: str, item_id: str) -> bool:
        with self._lock:
            return self.collections.get(collection, {}).pop(item_id, None) is not None

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.collections.clear()


class JsonFileDatastore:
    """
    Flat JSON document store: ``{"<collection>": [item, ...], ...}``.

    The whole document is rewritten through a temp file and ``os.replace`` on
    every write, so a write is on disk once the call returns.
    """

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self._lock = threading.RLock()

    def _load(self) -> Dict[str, list[dict]]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            raise DatastoreError(f"Cannot read {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise DatastoreError(f"{self.path} does not hold a JSON object")
        for collection, items in data.items():
            if not isinstance(items, list) or not all(
                isinstance(item, dict) for item in items
            ):
                raise DatastoreError(
                    f"{self.path}: collection {collection!r} is not a list of objects"
                )
        return data

    def _save(self, data: Dict[str, list[dict]]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", dir=str(self.path.parent)
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False, indent=2, default=str)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except (OSError, TypeError, ValueError) as exc:
            raise DatastoreError(f"Cannot write {self.path}: {exc}") from exc

    def all(self, collection: str) -> list[dict]:
        with self._lock:
            return self._load().get(collection, [])

    def find(self, collection: str, item_id: str) -> Optional[dict]:
        with self._lock:
            for item in self._load().get(collection, []):
                if item.get("id") == item_id:
                    return item
            return None

    def create(self, collection: str, item: dict) -> dict:
        item_id = _require_id(item)
        with self._lock:
            data = self._load()
            items = data.setdefault(collection, [])
            if any(existing.get("id") == item_id for existing in items):
                raise DuplicateIdError(f"Duplicate id {item_id} in {collection}")
            items.append(copy.deepcopy(item))
            self._save(data)
            return copy.deepcopy(item)

    def update(self, collection: str, item_id: str, patch: dict) -> Optional[dict]:
        with self._lock:
            data = self._load()
            for item in data.get(collection, []):
                if item.get("id") == item_id:
                    item.update(copy.deepcopy(patch))
                    self._save(data)
                    return item
            return None

    def remove(self, collection: str, item_id: str) -> bool:
        with self._lock:
            data = self._load()
            items = data.get(collection, [])
            kept = [item for item in items if item.get("id") != item_id]
            if len(kept) == len(items):
                return False
            data[collection] = kept
            self._save(data)
            return True


Base = declarative_base()


class ItemRow(Base):
    __tablename__ = "resource_items"

    collection = Column(String, primary_key=True)
    id = Column(String, primary_key=True)
    data = Column(JSON, nullable=False)
    created_at = Column(Float, nullable=False, index=True)


class SqlDatastore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDatastore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def all(self, collection: str) -> list[dict]:
        try:
            with self.Session() as session:
                stmt = (
                    select(ItemRow)
                    .where(ItemRow.collection == collection)
                    .order_by(ItemRow.created_at.asc())
                )
                return [dict(row.data) for row in session.execute(stmt).scalars()]
        except SQLAlchemyError as exc:
            raise DatastoreError(str(exc)) from exc

    def find(self, collection: str, item_id: str) -> Optional[dict]:
        try:
            with self.Session() as session:
                row = session.get(ItemRow, (collection, item_id))
                return dict(row.data) if row else None
        except SQLAlchemyError as exc:
            raise DatastoreError(str(exc)) from exc

    def create(self, collection: str, item: dict) -> dict:
        item_id = _require_id(item)
        try:
            with self.Session() as session:
                if session.get(ItemRow, (collection, item_id)) is not None:
                    raise DuplicateIdError(f"Duplicate id {item_id} in {collection}")
                session.add(
                    ItemRow(
                        collection=collection,
                        id=item_id,
                        data=copy.deepcopy(item),
                        created_at=time.time(),
                    )
                )
                session.commit()
                return copy.deepcopy(item)
        except IntegrityError as exc:
            raise DuplicateIdError(f"Duplicate id {item_id} in {collection}") from exc
        except SQLAlchemyError as exc:
            raise DatastoreError(str(exc)) from exc

    def update(self, collection: str, item_id: str, patch: dict) -> Optional[dict]:
        try:
            with self.Session() as session:
                row = session.get(ItemRow, (collection, item_id))
                if not row:
                    return None
                # Reassign so the JSON column is flagged dirty.
                merged = {**row.data, **copy.deepcopy(patch)}
                row.data = merged
                session.commit()
                return dict(merged)
        except SQLAlchemyError as exc:
            raise DatastoreError(str(exc)) from exc

    def remove(self, collection: str, item_id: str) -> bool:
        try:
            with self.Session() as session:
                row = session.get(ItemRow, (collection, item_id))
                if not row:
                    return False
                session.delete(row)
                session.commit()
                return True
        except SQLAlchemyError as exc:
            raise DatastoreError(str(exc)) from exc


def build_datastore(settings: Settings) -> Datastore:
    """Construct the datastore selected by ``settings.datastore_backend``."""
    backend = settings.datastore_backend
    if backend == "sql":
        if not settings.database_url:
            raise ValueError("DATABASE_URL is required when LOVENEST_DATASTORE=sql")
        store: Datastore = SqlDatastore(settings.database_url)
    elif backend == "json":
        store = JsonFileDatastore(settings.data_file)
    else:
        store = InMemoryDatastore()
    logger.info("Using datastore: %s", store.__class__.__name__)
    return store
