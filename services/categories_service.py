"""Service layer for owner-scoped categories."""
import logging
import time
from typing import Any, Dict, List, Mapping

from bson import ObjectId
from pydantic import ValidationError

from models.category import CategoryInput, serialize_category
from services.store import RecordStore
from utils.errors import InputError, NotFoundError, StoreError

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Category not found"
MAX_ID_ATTEMPTS = 5


def _parse_name(payload: Mapping[str, Any]) -> str:
    try:
        return CategoryInput.model_validate(payload).name
    except ValidationError:
        raise InputError("Please add a category name (1-50 characters)")


async def _next_id(store: RecordStore, owner_id: ObjectId) -> int:
    """Creation time in ms, bumped past the owner's latest id when the clock lags."""
    candidate = int(time.time() * 1000)
    latest = await store.find_one({"ownerId": owner_id}, sort=[("id", -1)])
    if latest is not None and latest["id"] >= candidate:
        candidate = latest["id"] + 1
    return candidate


async def list_categories(store: RecordStore, owner_id: ObjectId) -> List[Dict[str, Any]]:
    docs = await store.find({"ownerId": owner_id}, sort=[("id", 1)])
    return [serialize_category(doc) for doc in docs]


async def get_category(store: RecordStore, category_id: int, owner_id: ObjectId) -> Dict[str, Any]:
    doc = await store.find_one({"id": category_id, "ownerId": owner_id})
    if doc is None:
        raise NotFoundError(NOT_FOUND_MESSAGE)
    return serialize_category(doc)


async def create_category(store: RecordStore, payload: Mapping[str, Any], owner_id: ObjectId) -> Dict[str, Any]:
    name = _parse_name(payload)
    for attempt in range(1, MAX_ID_ATTEMPTS + 1):
        category_id = await _next_id(store, owner_id)
        try:
            doc = await store.create({"id": category_id, "name": name, "ownerId": owner_id})
            break
        except StoreError as e:
            # A concurrent create took the id; the unique (ownerId, id) index rejects the copy
            if e.kind != "duplicate_key" or attempt == MAX_ID_ATTEMPTS:
                raise
            logger.warning(f"Category id {category_id} already taken for owner {owner_id}, retrying.")
    logger.info(f"Created category {doc['id']} ('{name}') for owner {owner_id}.")
    return serialize_category(doc)


async def update_category(
    store: RecordStore, category_id: int, payload: Mapping[str, Any], owner_id: ObjectId
) -> Dict[str, Any]:
    name = _parse_name(payload)
    doc = await store.update_one({"id": category_id, "ownerId": owner_id}, {"$set": {"name": name}})
    if doc is None:
        raise NotFoundError(NOT_FOUND_MESSAGE)
    return serialize_category(doc)


async def delete_category(store: RecordStore, category_id: int, owner_id: ObjectId) -> Dict[str, Any]:
    doc = await store.delete_one({"id": category_id, "ownerId": owner_id})
    if doc is None:
        raise NotFoundError(NOT_FOUND_MESSAGE)
    logger.info(f"Deleted category {category_id} for owner {owner_id}.")
    return serialize_category(doc)
