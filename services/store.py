"""Record store adapter over a Motor collection.

Single-document calls raise StoreError when the driver fails. Bulk calls never
raise for driver failures: they return ``Ok``, ``PartialFailure`` or ``Err``
from models.results so callers can report partial success.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument
from pymongo.errors import BulkWriteError, ConnectionFailure, DuplicateKeyError, PyMongoError

from models.results import Err, Ok, PartialFailure, StoreResult, WriteFailure
from utils.errors import StoreError

logger = logging.getLogger(__name__)

Sort = Sequence[Tuple[str, int]]


def _error_kind(exc: Exception) -> str:
    if isinstance(exc, ConnectionFailure):
        return "store_unavailable"
    if isinstance(exc, DuplicateKeyError):
        return "duplicate_key"
    return "store_error"


def _write_failures(exc: BulkWriteError) -> List[WriteFailure]:
    return [
        WriteFailure(index=err.get("index", -1), reason=err.get("errmsg", "Write error"))
        for err in exc.details.get("writeErrors", [])
    ]


class RecordStore:
    """Thin async wrapper around one document collection."""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    @property
    def name(self) -> str:
        return self.collection.name

    async def find(
        self,
        filter: Dict[str, Any],
        sort: Optional[Sort] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        try:
            cursor = self.collection.find(filter, sort=list(sort) if sort else None, skip=skip, limit=limit)
            return await cursor.to_list(length=None)
        except PyMongoError as e:
            logger.error(f"Database error in find on '{self.name}': {e}")
            raise StoreError(_error_kind(e), str(e))

    async def find_one(self, filter: Dict[str, Any], sort: Optional[Sort] = None) -> Optional[Dict[str, Any]]:
        try:
            return await self.collection.find_one(filter, sort=list(sort) if sort else None)
        except PyMongoError as e:
            logger.error(f"Database error in find_one on '{self.name}': {e}")
            raise StoreError(_error_kind(e), str(e))

    async def create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Inserts one record and returns it with its generated ``_id``."""
        try:
            result = await self.collection.insert_one(record)
        except PyMongoError as e:
            logger.error(f"Database error in insert_one on '{self.name}': {e}")
            raise StoreError(_error_kind(e), str(e))
        record["_id"] = result.inserted_id
        return record

    async def insert_many(self, records: List[Dict[str, Any]]) -> StoreResult:
        """
        Unordered bulk insert. Failure indices refer to positions in ``records``.
        """
        if not records:
            return Ok(records=[])
        # Ids are assigned up front so the inserted subset is known on partial failure
        for record in records:
            record.setdefault("_id", ObjectId())
        try:
            await self.collection.insert_many(records, ordered=False)
        except BulkWriteError as e:
            failures = _write_failures(e)
            failed = {failure.index for failure in failures}
            inserted = [record for index, record in enumerate(records) if index not in failed]
            logger.warning(
                f"Bulk insert on '{self.name}' partially failed: "
                f"{e.details.get('nInserted', len(inserted))} inserted, {len(failures)} failed."
            )
            return PartialFailure(records=inserted, failures=failures)
        except PyMongoError as e:
            logger.error(f"Database error during bulk insert on '{self.name}': {e}")
            return Err(kind=_error_kind(e), message=str(e))
        return Ok(records=records)

    async def bulk_write(self, operations: List[Any]) -> StoreResult:
        """Unordered bulk write of update operations; reports matched/modified counts."""
        if not operations:
            return Ok()
        try:
            result = await self.collection.bulk_write(operations, ordered=False)
        except BulkWriteError as e:
            failures = _write_failures(e)
            logger.warning(f"Bulk write on '{self.name}' partially failed: {len(failures)} operation(s) rejected.")
            return PartialFailure(
                failures=failures,
                matched_count=e.details.get("nMatched", 0),
                modified_count=e.details.get("nModified", 0),
            )
        except PyMongoError as e:
            logger.error(f"Database error during bulk write on '{self.name}': {e}")
            return Err(kind=_error_kind(e), message=str(e))
        return Ok(matched_count=result.matched_count, modified_count=result.modified_count)

    async def update_many(self, filter: Dict[str, Any], update: Dict[str, Any]) -> Ok:
        try:
            result = await self.collection.update_many(filter, update)
        except PyMongoError as e:
            logger.error(f"Database error in update_many on '{self.name}': {e}")
            raise StoreError(_error_kind(e), str(e))
        return Ok(matched_count=result.matched_count, modified_count=result.modified_count)

    async def update_one(self, filter: Dict[str, Any], update: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Updates the first match and returns the updated document, or None when nothing matched."""
        try:
            return await self.collection.find_one_and_update(
                filter, update, return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            logger.error(f"Database error in find_one_and_update on '{self.name}': {e}")
            raise StoreError(_error_kind(e), str(e))

    async def delete_one(self, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Deletes the first match and returns it, or None when nothing matched."""
        try:
            return await self.collection.find_one_and_delete(filter)
        except PyMongoError as e:
            logger.error(f"Database error in find_one_and_delete on '{self.name}': {e}")
            raise StoreError(_error_kind(e), str(e))

    async def count_documents(self, filter: Dict[str, Any]) -> int:
        try:
            return await self.collection.count_documents(filter)
        except PyMongoError as e:
            logger.error(f"Database error in count_documents on '{self.name}': {e}")
            raise StoreError(_error_kind(e), str(e))

    async def aggregate(self, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        try:
            return await self.collection.aggregate(pipeline).to_list(length=None)
        except PyMongoError as e:
            logger.error(f"Database error in aggregate on '{self.name}': {e}")
            raise StoreError(_error_kind(e), str(e))
