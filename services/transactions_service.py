"""Service layer for single transaction records."""
import logging
import math
import re
from typing import Any, Dict, Mapping, Optional

from bson import ObjectId

from models.transaction import TransactionType, serialize_transaction, utcnow
from services.store import RecordStore
from services.validation import validate_transaction, validate_transaction_update
from utils.dates import build_date_filter
from utils.errors import InputError, NotFoundError, TransactionValidationError
from utils.object_ids import parse_object_id

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Transaction not found"


def _owned(transaction_id: str, owner_id: ObjectId) -> Dict[str, Any]:
    """Filter for one of the owner's transactions; malformed ids resolve to not found."""
    object_id = parse_object_id(transaction_id)
    if object_id is None:
        raise NotFoundError(NOT_FOUND_MESSAGE)
    return {"_id": object_id, "ownerId": owner_id}


async def list_transactions(
    store: RecordStore,
    owner_id: ObjectId,
    page: int = 1,
    limit: int = 10,
    transaction_type: Optional[str] = None,
    category: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> Dict[str, Any]:
    """One page of the owner's transactions, newest first, with pagination info."""
    query: Dict[str, Any] = {"ownerId": owner_id}
    if transaction_type:
        try:
            query["type"] = TransactionType(transaction_type).value
        except ValueError:
            raise InputError("Type must be either income or expense")
    if category:
        query["category"] = {"$regex": re.escape(category), "$options": "i"}
    query.update(build_date_filter(start_date, end_date))

    skip = (page - 1) * limit
    docs = await store.find(query, sort=[("date", -1)], skip=skip, limit=limit)
    total = await store.count_documents(query)
    logger.info(f"Fetched {len(docs)} of {total} transactions for owner {owner_id} (page {page}).")
    return {
        "data": [serialize_transaction(doc) for doc in docs],
        "count": len(docs),
        "total": total,
        "pagination": {"page": page, "limit": limit, "pages": math.ceil(total / limit)},
    }


async def get_transaction(store: RecordStore, transaction_id: str, owner_id: ObjectId) -> Dict[str, Any]:
    doc = await store.find_one(_owned(transaction_id, owner_id))
    if doc is None:
        raise NotFoundError(NOT_FOUND_MESSAGE)
    return serialize_transaction(doc)


async def create_transaction(store: RecordStore, payload: Mapping[str, Any], owner_id: ObjectId) -> Dict[str, Any]:
    outcome = validate_transaction(payload, owner_id)
    if not outcome.ok:
        logger.warning(f"Rejected transaction for owner {owner_id}: {outcome.messages}")
        raise TransactionValidationError(outcome.messages)
    doc = await store.create(outcome.record)
    logger.info(f"Created transaction {doc['_id']} for owner {owner_id}.")
    return serialize_transaction(doc)


async def update_transaction(
    store: RecordStore, transaction_id: str, payload: Mapping[str, Any], owner_id: ObjectId
) -> Dict[str, Any]:
    """Applies the supplied fields; the owner of a transaction never changes."""
    query = _owned(transaction_id, owner_id)
    outcome = validate_transaction_update(payload)
    if not outcome.ok:
        raise TransactionValidationError(outcome.messages)
    doc = await store.update_one(query, {"$set": {**outcome.record, "updatedAt": utcnow()}})
    if doc is None:
        raise NotFoundError(NOT_FOUND_MESSAGE)
    return serialize_transaction(doc)


async def delete_transaction(store: RecordStore, transaction_id: str, owner_id: ObjectId) -> None:
    doc = await store.delete_one(_owned(transaction_id, owner_id))
    if doc is None:
        raise NotFoundError(NOT_FOUND_MESSAGE)
    logger.info(f"Deleted transaction {transaction_id} for owner {owner_id}.")
