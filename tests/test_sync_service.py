"""Tests for the sync reconciler."""
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pymongo.errors import AutoReconnect, BulkWriteError

from services import sync_service
from services.store import RecordStore
from utils.errors import InputError, StoreError

COFFEE = {"description": "Coffee", "amount": 4.5, "category": "Food", "type": "expense", "date": "2024-01-05"}
BROKEN = {"description": "", "amount": -1, "category": "", "type": "bogus"}


class TestBulkCreate:

    async def test_valid_subset_is_inserted_and_failures_reported(self, transactions_store, owner_id):
        result = await sync_service.bulk_create_transactions(transactions_store, [COFFEE, BROKEN], owner_id)

        assert result["status"] == "partial_success"
        assert result["inserted_count"] == 1
        assert result["inserted"][0]["description"] == "Coffee"
        assert [failure["index"] for failure in result["failures"]] == [1]
        assert "Please add a description" in result["failures"][0]["error"]
        assert await transactions_store.count_documents({"ownerId": owner_id}) == 1

    async def test_records_are_stamped_with_owner_and_synced(self, transactions_store, owner_id):
        batch = [
            {**COFFEE, "isSynced": False, "ownerId": str(ObjectId())},
            {**COFFEE, "description": "Salary", "type": "income", "amount": 1000},
        ]
        result = await sync_service.bulk_create_transactions(transactions_store, batch, owner_id)

        assert result["status"] == "success"
        assert result["failures"] == []
        stored = await transactions_store.find({})
        assert len(stored) == 2
        assert all(doc["ownerId"] == owner_id and doc["isSynced"] is True for doc in stored)
        assert all(item["ownerId"] == str(owner_id) for item in result["inserted"])

    @pytest.mark.parametrize("batch", [None, [], {"description": "x"}, "transactions"])
    async def test_malformed_batch_is_rejected_before_writing(self, transactions_store, owner_id, batch):
        with pytest.raises(InputError):
            await sync_service.bulk_create_transactions(transactions_store, batch, owner_id)
        assert await transactions_store.count_documents({}) == 0

    async def test_non_object_elements_fail_individually(self, transactions_store, owner_id):
        result = await sync_service.bulk_create_transactions(transactions_store, ["oops", COFFEE, 7], owner_id)
        assert result["inserted_count"] == 1
        assert result["failures"] == [
            {"index": 0, "error": "Transaction must be an object"},
            {"index": 2, "error": "Transaction must be an object"},
        ]

    async def test_store_write_errors_map_back_to_batch_indices(self, owner_id):
        # Records sent to the store are batch items 1 and 2; the store rejects its second one
        error = BulkWriteError({"writeErrors": [{"index": 1, "errmsg": "duplicate key"}], "nInserted": 1})
        collection = MagicMock()
        collection.insert_many = AsyncMock(side_effect=error)
        store = RecordStore(collection)

        result = await sync_service.bulk_create_transactions(store, [BROKEN, COFFEE, COFFEE], owner_id)

        assert result["inserted_count"] == 1
        assert [failure["index"] for failure in result["failures"]] == [0, 2]
        assert result["failures"][1]["error"] == "duplicate key"

    async def test_store_outage_is_a_hard_failure(self, owner_id):
        collection = MagicMock()
        collection.insert_many = AsyncMock(side_effect=AutoReconnect("gone"))
        with pytest.raises(StoreError):
            await sync_service.bulk_create_transactions(RecordStore(collection), [COFFEE], owner_id)

    async def test_all_invalid_is_still_partial_success(self, transactions_store, owner_id):
        result = await sync_service.bulk_create_transactions(transactions_store, [BROKEN, BROKEN], owner_id)
        assert result["status"] == "partial_success"
        assert result["inserted_count"] == 0
        assert len(result["failures"]) == 2


class TestBulkUpdate:

    async def test_updates_matched_records_and_forces_synced(self, transactions_store, seed, owner_id):
        docs = await seed(owner_id, {"isSynced": False}, {"isSynced": False})
        batch = [
            {"_id": str(docs[0]["_id"]), "amount": 99},
            {"id": str(docs[1]["_id"]), "description": "Dinner"},
        ]

        result = await sync_service.bulk_update_transactions(transactions_store, batch, owner_id)

        assert result["status"] == "success"
        assert result["matched_count"] == 2
        assert result["modified_count"] == 2
        first = await transactions_store.find_one({"_id": docs[0]["_id"]})
        second = await transactions_store.find_one({"_id": docs[1]["_id"]})
        assert first["amount"] == 99
        assert first["isSynced"] is True
        assert second["description"] == "Dinner"
        assert second["isSynced"] is True

    async def test_other_owners_records_are_never_modified(
        self, transactions_store, seed, owner_id, other_owner_id
    ):
        theirs = await seed(other_owner_id, {"amount": 10})

        result = await sync_service.bulk_update_transactions(
            transactions_store, [{"_id": str(theirs[0]["_id"]), "amount": 1}], owner_id
        )

        assert result["status"] == "success"
        assert result["matched_count"] == 0
        assert result["modified_count"] == 0
        untouched = await transactions_store.find_one({"_id": theirs[0]["_id"]})
        assert untouched["amount"] == 10
        assert untouched["ownerId"] == other_owner_id

    async def test_owner_cannot_be_reassigned(self, transactions_store, seed, owner_id, other_owner_id):
        docs = await seed(owner_id)
        await sync_service.bulk_update_transactions(
            transactions_store, [{"_id": str(docs[0]["_id"]), "ownerId": str(other_owner_id)}], owner_id
        )
        stored = await transactions_store.find_one({"_id": docs[0]["_id"]})
        assert stored["ownerId"] == owner_id

    async def test_every_element_is_attempted(self, transactions_store, seed, owner_id):
        docs = await seed(owner_id, {}, {})
        batch = [
            {"description": "no id"},
            {"_id": str(docs[0]["_id"]), "amount": -5},
            {"_id": "not-an-id", "amount": 3},
            {"_id": str(docs[1]["_id"]), "amount": 42},
        ]

        result = await sync_service.bulk_update_transactions(transactions_store, batch, owner_id)

        assert result["status"] == "partial_success"
        assert [failure["index"] for failure in result["failures"]] == [0, 1, 2]
        assert result["failures"][0]["error"] == sync_service.INVALID_ID_MESSAGE
        assert result["failures"][1]["error"] == "Amount must be greater than 0"
        assert result["matched_count"] == 1
        assert (await transactions_store.find_one({"_id": docs[1]["_id"]}))["amount"] == 42

    async def test_store_write_errors_map_back_to_update_indices(self, owner_id):
        # Operations sent to the store are batch items 1 and 2; the store rejects its second one
        error = BulkWriteError({
            "writeErrors": [{"index": 1, "errmsg": "document failed validation"}],
            "nMatched": 1,
            "nModified": 1,
        })
        collection = MagicMock()
        collection.bulk_write = AsyncMock(side_effect=error)
        batch = [
            {"_id": "not-an-id", "amount": 3},
            {"_id": str(ObjectId()), "amount": 10},
            {"_id": str(ObjectId()), "amount": 20},
        ]

        result = await sync_service.bulk_update_transactions(RecordStore(collection), batch, owner_id)

        assert result["status"] == "partial_success"
        assert result["matched_count"] == 1
        assert result["modified_count"] == 1
        assert result["failures"] == [
            {"index": 0, "error": sync_service.INVALID_ID_MESSAGE},
            {"index": 2, "error": "document failed validation"},
        ]
        operations = collection.bulk_write.await_args.args[0]
        assert len(operations) == 2

    async def test_malformed_batch_is_rejected(self, transactions_store, owner_id):
        with pytest.raises(InputError):
            await sync_service.bulk_update_transactions(transactions_store, [], owner_id)


class TestMarkSynced:

    async def test_only_valid_owned_ids_are_updated(self, transactions_store, seed, owner_id, other_owner_id):
        mine = await seed(owner_id, {"isSynced": False}, {"isSynced": False})
        theirs = await seed(other_owner_id, {"isSynced": False})
        ids = [str(mine[0]["_id"]), "garbage", 12345, str(theirs[0]["_id"])]

        result = await sync_service.mark_transactions_synced(transactions_store, ids, owner_id)

        assert result == {"matched_count": 1, "modified_count": 1, "invalid_ids": 2}
        assert (await transactions_store.find_one({"_id": mine[0]["_id"]}))["isSynced"] is True
        assert (await transactions_store.find_one({"_id": mine[1]["_id"]}))["isSynced"] is False
        assert (await transactions_store.find_one({"_id": theirs[0]["_id"]}))["isSynced"] is False

    @pytest.mark.parametrize("ids,message", [
        ([], "Please provide an array of transaction IDs"),
        (None, "Please provide an array of transaction IDs"),
        (["nope", "123"], "No valid transaction IDs provided"),
    ])
    async def test_unusable_id_lists_are_input_errors(self, transactions_store, owner_id, ids, message):
        with pytest.raises(InputError) as excinfo:
            await sync_service.mark_transactions_synced(transactions_store, ids, owner_id)
        assert excinfo.value.error == message


class TestPullAndStatus:

    async def test_unsynced_newest_first(self, transactions_store, seed, owner_id, other_owner_id):
        await seed(
            owner_id,
            {"description": "old", "isSynced": False, "createdAt": datetime(2024, 1, 1)},
            {"description": "new", "isSynced": False, "createdAt": datetime(2024, 3, 1)},
            {"description": "synced", "isSynced": True},
        )
        await seed(other_owner_id, {"description": "foreign", "isSynced": False})

        data = await sync_service.get_unsynced_transactions(transactions_store, owner_id)

        assert [item["description"] for item in data] == ["new", "old"]

    async def test_status_without_transactions_is_fully_synced(self, transactions_store, owner_id):
        status = await sync_service.get_sync_status(transactions_store, owner_id)
        assert status["totalTransactions"] == 0
        assert status["syncPercentage"] == 100
        assert "lastSyncAt" in status

    async def test_status_percentage_is_rounded(self, transactions_store, seed, owner_id):
        await seed(owner_id, {}, {}, {"isSynced": False})
        status = await sync_service.get_sync_status(transactions_store, owner_id)
        assert status["totalTransactions"] == 3
        assert status["syncedTransactions"] == 2
        assert status["unsyncedTransactions"] == 1
        assert status["syncPercentage"] == 66.67
