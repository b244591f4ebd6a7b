"""
Generic CRUD routers for the app's resource collections.

Every collection is declared once in a registry of ``ResourceDefinition``
entries and served by the same router implementation. Items in user-owned
collections are only visible to the user who created them; an item owned by
someone else answers exactly like a missing one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException

from lovenest.auth import (
    SESSIONS_COLLECTION,
    USER_NAMES_COLLECTION,
    USERS_COLLECTION,
    CurrentUser,
    require_auth,
)
from lovenest.datastore import Datastore
from lovenest.dependencies import get_datastore
from lovenest.schemas import OkResponse
from lovenest.utils import new_id, now_ms

logger = logging.getLogger(__name__)

USER_OWNED_RESOURCES = (
    "loveNotes",
    "buckets",
    "timeline",
    "memoryBox",
    "mood",
    "analytics",
    "healing",
    "playtime",
    "couples",
)

RESERVED_COLLECTIONS = frozenset(
    {USERS_COLLECTION, SESSIONS_COLLECTION, USER_NAMES_COLLECTION}
)

# Ownership and bookkeeping fields are always assigned by the server.
CREATE_PROTECTED_FIELDS = frozenset({"id", "userId", "createdBy", "createdAt", "updatedAt"})
UPDATE_PROTECTED_FIELDS = frozenset({"id", "userId", "createdBy", "createdAt"})


@dataclass(frozen=True)
class ResourceDefinition:
    name: str
    user_owned: bool = True


def build_registry(public_collections: Iterable[str] = ()) -> dict[str, ResourceDefinition]:
    """
    Return every mounted resource keyed by collection name.

    All of ``USER_OWNED_RESOURCES`` are included; ``public_collections`` adds
    collections listable without signing in.
    """
    registry = {name: ResourceDefinition(name, user_owned=True) for name in USER_OWNED_RESOURCES}
    for name in public_collections:
        if name in RESERVED_COLLECTIONS:
            raise ValueError(f"Collection {name!r} is reserved")
        if name in registry:
            raise ValueError(f"Collection {name!r} is already registered")
        registry[name] = ResourceDefinition(name, user_owned=False)
    return registry


def _strip(payload: Optional[dict], fields: frozenset[str]) -> dict:
    return {k: v for k, v in (payload or {}).items() if k not in fields}


def create_resource_router(definition: ResourceDefinition) -> APIRouter:
    """Build list/get/create/update/delete handlers for one collection."""
    if definition.name in RESERVED_COLLECTIONS:
        raise ValueError(f"Collection {definition.name!r} is reserved")

    router = APIRouter()
    collection = definition.name

    def owned_item(db: Datastore, item_id: str, user: CurrentUser) -> dict:
        item = db.find(collection, item_id)
        if item is None or (definition.user_owned and item.get("userId") != user.id):
            raise HTTPException(status_code=404, detail="Not found")
        return item

    if definition.user_owned:

        @router.get("")
        def list_items(
            user: CurrentUser = Depends(require_auth),
            db: Datastore = Depends(get_datastore),
        ) -> list[dict[str, Any]]:
            items = db.all(collection)
            filtered = [item for item in items if item.get("userId") == user.id]
            logger.info(
                "[%s] userId: %s | total: %d | filtered: %d",
                collection,
                user.id,
                len(items),
                len(filtered),
            )
            return filtered

    else:

        @router.get("")
        def list_items(db: Datastore = Depends(get_datastore)) -> list[dict[str, Any]]:
            items = db.all(collection)
            logger.info("[%s] public list | total: %d", collection, len(items))
            return items

    @router.get("/{item_id}")
    def get_item(
        item_id: str,
        user: CurrentUser = Depends(require_auth),
        db: Datastore = Depends(get_datastore),
    ) -> dict[str, Any]:
        return owned_item(db, item_id, user)

    @router.post("", status_code=201)
    def create_item(
        payload: Optional[dict[str, Any]] = Body(default=None),
        user: CurrentUser = Depends(require_auth),
        db: Datastore = Depends(get_datastore),
    ) -> dict[str, Any]:
        item = {
            "id": new_id(),
            **_strip(payload, CREATE_PROTECTED_FIELDS),
            "createdAt": now_ms(),
            "userId": user.id,
        }
        return db.create(collection, item)

    @router.put("/{item_id}")
    def update_item(
        item_id: str,
        payload: Optional[dict[str, Any]] = Body(default=None),
        user: CurrentUser = Depends(require_auth),
        db: Datastore = Depends(get_datastore),
    ) -> dict[str, Any]:
        owned_item(db, item_id, user)
        patch = {**_strip(payload, UPDATE_PROTECTED_FIELDS), "updatedAt": now_ms()}
        updated = db.update(collection, item_id, patch)
        if updated is None:
            raise HTTPException(status_code=404, detail="Not found")
        return updated

    @router.delete("/{item_id}", response_model=OkResponse)
    def delete_item(
        item_id: str,
        user: CurrentUser = Depends(require_auth),
        db: Datastore = Depends(get_datastore),
    ):
        owned_item(db, item_id, user)
        if not db.remove(collection, item_id):
            raise HTTPException(status_code=404, detail="Not found")
        return OkResponse()

    return router


def register_resources(
    app: FastAPI, registry: dict[str, ResourceDefinition], prefix: str = ""
) -> None:
    for name, definition in registry.items():
        app.include_router(
            create_resource_router(definition),
            prefix=f"{prefix}/{name}",
            tags=[name],
        )
