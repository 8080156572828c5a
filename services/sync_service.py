"""Service layer for offline-client sync: bulk create/update, sync flags and status."""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from bson import ObjectId
from pymongo import UpdateOne

from models.results import Err, PartialFailure
from models.transaction import serialize_transaction, utcnow
from services.store import RecordStore
from services.validation import validate_transaction, validate_transaction_update
from utils.errors import InputError, StoreError
from utils.object_ids import parse_object_id, valid_object_ids

logger = logging.getLogger(__name__)

INVALID_BATCH_MESSAGE = "Please provide an array of transactions"
NOT_AN_OBJECT_MESSAGE = "Transaction must be an object"
INVALID_ID_MESSAGE = "Transaction id is missing or invalid"


def _require_batch(batch: Any) -> List[Any]:
    if not isinstance(batch, list) or not batch:
        raise InputError(INVALID_BATCH_MESSAGE)
    return batch


def _failure(index: int, error: str) -> Dict[str, Any]:
    return {"index": index, "error": error}


def _status(failures: List[Dict[str, Any]]) -> str:
    return "partial_success" if failures else "success"


async def bulk_create_transactions(store: RecordStore, batch: Any, owner_id: ObjectId) -> Dict[str, Any]:
    """
    Validates every element independently and inserts the valid ones as one
    unordered batch. Invalid elements and store-rejected elements are reported
    as ``{index, error}`` with the index into ``batch``.
    """
    batch = _require_batch(batch)
    logger.info(f"Bulk create of {len(batch)} transactions for owner {owner_id}.")

    failures: List[Dict[str, Any]] = []
    records: List[Dict[str, Any]] = []
    positions: List[int] = []  # positions[i] is the batch index of records[i]
    for index, item in enumerate(batch):
        if not isinstance(item, dict):
            failures.append(_failure(index, NOT_AN_OBJECT_MESSAGE))
            continue
        outcome = validate_transaction({**item, "isSynced": True}, owner_id)
        if not outcome.ok:
            logger.debug(f"Item #{index} rejected: {outcome.messages}")
            failures.append(_failure(index, "; ".join(outcome.messages)))
            continue
        records.append(outcome.record)
        positions.append(index)

    result = await store.insert_many(records)
    if isinstance(result, Err):
        raise StoreError(result.kind, result.message)
    if isinstance(result, PartialFailure):
        for failure in result.failures:
            batch_index = positions[failure.index] if 0 <= failure.index < len(positions) else failure.index
            failures.append(_failure(batch_index, failure.reason))

    failures.sort(key=lambda failure: failure["index"])
    inserted = [serialize_transaction(record) for record in result.records]
    if failures:
        logger.warning(f"Bulk create partially failed: {len(inserted)} inserted, {len(failures)} failed.")
    else:
        logger.info(f"Bulk create inserted all {len(inserted)} transactions.")
    return {
        "status": _status(failures),
        "inserted_count": len(inserted),
        "inserted": inserted,
        "failures": failures,
    }


def _build_update(item: Any, owner_id: ObjectId, now: datetime) -> Tuple[Any, str]:
    """Returns ``(UpdateOne, "")`` for a usable element or ``(None, reason)``."""
    if not isinstance(item, dict):
        return None, NOT_AN_OBJECT_MESSAGE
    transaction_id = parse_object_id(item.get("_id", item.get("id")))
    if transaction_id is None:
        return None, INVALID_ID_MESSAGE
    outcome = validate_transaction_update(item)
    if not outcome.ok:
        return None, "; ".join(outcome.messages)
    changes = {**outcome.record, "isSynced": True, "updatedAt": now}
    return UpdateOne({"_id": transaction_id, "ownerId": owner_id}, {"$set": changes}, upsert=False), ""


async def bulk_update_transactions(store: RecordStore, batch: Any, owner_id: ObjectId) -> Dict[str, Any]:
    """
    Applies each element as an update matched on ``(id, owner)``. Records of
    other owners simply do not match; every element is attempted.
    """
    batch = _require_batch(batch)
    logger.info(f"Bulk update of {len(batch)} transactions for owner {owner_id}.")

    now = utcnow()
    failures: List[Dict[str, Any]] = []
    operations: List[UpdateOne] = []
    positions: List[int] = []
    for index, item in enumerate(batch):
        operation, reason = _build_update(item, owner_id, now)
        if operation is None:
            failures.append(_failure(index, reason))
            continue
        operations.append(operation)
        positions.append(index)

    result = await store.bulk_write(operations)
    if isinstance(result, Err):
        raise StoreError(result.kind, result.message)
    if isinstance(result, PartialFailure):
        for failure in result.failures:
            batch_index = positions[failure.index] if 0 <= failure.index < len(positions) else failure.index
            failures.append(_failure(batch_index, failure.reason))

    failures.sort(key=lambda failure: failure["index"])
    logger.info(
        f"Bulk update finished: matched {result.matched_count}, modified {result.modified_count}, "
        f"failed {len(failures)}."
    )
    return {
        "status": _status(failures),
        "matched_count": result.matched_count,
        "modified_count": result.modified_count,
        "failures": failures,
    }


async def mark_transactions_synced(store: RecordStore, transaction_ids: Any, owner_id: ObjectId) -> Dict[str, Any]:
    """
    Sets ``isSynced`` on the owner's transactions among ``transaction_ids``.
    Malformed ids are dropped without error; only an input with no usable id
    at all is rejected.
    """
    if not isinstance(transaction_ids, list) or not transaction_ids:
        raise InputError("Please provide an array of transaction IDs")
    ids = valid_object_ids(transaction_ids)
    if not ids:
        raise InputError("No valid transaction IDs provided")
    dropped = len(transaction_ids) - len(ids)
    if dropped:
        logger.info(f"Ignoring {dropped} malformed transaction id(s) in mark-synced request.")

    result = await store.update_many(
        {"_id": {"$in": ids}, "ownerId": owner_id},
        {"$set": {"isSynced": True, "updatedAt": utcnow()}},
    )
    return {
        "matched_count": result.matched_count,
        "modified_count": result.modified_count,
        "invalid_ids": dropped,
    }


async def get_unsynced_transactions(store: RecordStore, owner_id: ObjectId) -> List[Dict[str, Any]]:
    """The owner's unsynced transactions, most recently created first."""
    docs = await store.find({"ownerId": owner_id, "isSynced": False}, sort=[("createdAt", -1)])
    return [serialize_transaction(doc) for doc in docs]


async def get_sync_status(store: RecordStore, owner_id: ObjectId) -> Dict[str, Any]:
    total, synced, unsynced = await asyncio.gather(
        store.count_documents({"ownerId": owner_id}),
        store.count_documents({"ownerId": owner_id, "isSynced": True}),
        store.count_documents({"ownerId": owner_id, "isSynced": False}),
    )
    percentage = (synced / total) * 100 if total > 0 else 100
    return {
        "totalTransactions": total,
        "syncedTransactions": synced,
        "unsyncedTransactions": unsynced,
        "syncPercentage": round(percentage, 2),
        "lastSyncAt": datetime.now(timezone.utc).isoformat(),
    }
