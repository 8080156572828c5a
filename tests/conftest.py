"""Pytest configuration and fixtures.

Store-backed tests run against an in-memory mongomock-motor database, one per
test. HTTP tests drive the FastAPI app in-process through httpx.
"""
import os

# Before the app modules read their settings
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("JWT_SECRET", "test-secret")

from datetime import datetime
from types import SimpleNamespace

import httpx
import pytest
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient

import main
from services.store import RecordStore
from utils.security import create_access_token, hash_password

COLLECTIONS = ("transactions", "categories", "users")


async def _apply_updates_one_by_one(collection, operations, ordered=False):
    """Applies UpdateOne operations sequentially; stands in for mongomock's bulk_write."""
    matched = modified = 0
    for operation in operations:
        result = await collection.update_one(operation._filter, operation._doc, upsert=operation._upsert)
        matched += result.matched_count
        modified += result.modified_count
    return SimpleNamespace(matched_count=matched, modified_count=modified)


@pytest.fixture()
def db():
    return AsyncMongoMockClient()[f"expense_tracker_test_{ObjectId()}"]


@pytest.fixture()
def collections(db) -> dict:
    """One collection object per name, shared by stores and the app state."""
    named = {name: db[name] for name in COLLECTIONS}
    transactions = named["transactions"]

    async def bulk_write(operations, ordered=True):
        return await _apply_updates_one_by_one(transactions, operations, ordered)

    transactions.bulk_write = bulk_write
    return named


@pytest.fixture()
def transactions_store(collections) -> RecordStore:
    return RecordStore(collections["transactions"])


@pytest.fixture()
def categories_store(collections) -> RecordStore:
    return RecordStore(collections["categories"])


@pytest.fixture()
def users_store(collections) -> RecordStore:
    return RecordStore(collections["users"])


@pytest.fixture()
def owner_id() -> ObjectId:
    return ObjectId()


@pytest.fixture()
def other_owner_id() -> ObjectId:
    return ObjectId()


@pytest.fixture()
def make_transaction():
    """Builds a stored transaction document; keyword arguments override defaults."""
    def _make(owner_id, **overrides):
        now = datetime(2024, 1, 1, 12, 0, 0)
        doc = {
            "description": "Groceries",
            "amount": 25.5,
            "category": "Food",
            "type": "expense",
            "date": datetime(2024, 1, 15),
            "ownerId": owner_id,
            "isSynced": True,
            "createdAt": now,
            "updatedAt": now,
        }
        doc.update(overrides)
        return doc
    return _make


@pytest.fixture()
def seed(collections, make_transaction):
    """Inserts transactions for an owner and returns the stored documents with their ids."""
    async def _seed(owner_id, *overrides_list):
        overrides_list = overrides_list or ({},)
        docs = [make_transaction(owner_id, **overrides) for overrides in overrides_list]
        if docs:
            result = await collections["transactions"].insert_many(docs)
            for doc, inserted_id in zip(docs, result.inserted_ids):
                doc["_id"] = inserted_id
        return docs
    return _seed


@pytest.fixture()
def app_state(db, collections):
    saved = dict(main.app_state)
    main.app_state.clear()
    main.app_state.update({"db_client": None, "db": db})
    for name in COLLECTIONS:
        main.app_state[f"{name}_collection"] = collections[name]
    yield main.app_state
    main.app_state.clear()
    main.app_state.update(saved)


@pytest.fixture()
async def client(app_state):
    transport = httpx.ASGITransport(app=main.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client


async def _create_user(db, email: str) -> dict:
    now = datetime(2024, 1, 1)
    user = {
        "name": email.split("@")[0],
        "email": email,
        "password": hash_password("secret123"),
        "createdAt": now,
        "updatedAt": now,
    }
    result = await db["users"].insert_one(user)
    user["_id"] = result.inserted_id
    return user


@pytest.fixture()
async def user(db) -> dict:
    return await _create_user(db, "alice@example.com")


@pytest.fixture()
async def other_user(db) -> dict:
    return await _create_user(db, "bob@example.com")


@pytest.fixture()
def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(str(user['_id']))}"}


@pytest.fixture()
def other_auth_headers(other_user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(str(other_user['_id']))}"}
