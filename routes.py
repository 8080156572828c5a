"""API Routes for auth, transactions, sync, analytics and categories"""
from typing import Annotated, Any, Dict, Optional

from bson import ObjectId
from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import logging

from models.transaction import utcnow
from models.user import serialize_user
from services import (
    analytics_service,
    auth_service,
    categories_service,
    sync_service,
    transactions_service,
)
from services.store import RecordStore
from utils.errors import ServiceUnavailable
from utils.rate_limit import AUTH_RATE_LIMIT, limiter

router = APIRouter()
logger = logging.getLogger(__name__)
bearer_scheme = HTTPBearer(auto_error=False)


# --- Dependency Functions ---

def _store_from_state(request: Request, attribute: str) -> RecordStore:
    collection = getattr(request.state, attribute, None)
    if collection is None:
        logger.error(f"'{attribute}' not found in application state. Check MongoDB connection.")
        raise ServiceUnavailable("Database service not available.")
    return RecordStore(collection)


def get_transactions_store(request: Request) -> RecordStore:
    """Dependency to get the transactions store from the request state."""
    return _store_from_state(request, "transactions_collection")


def get_categories_store(request: Request) -> RecordStore:
    return _store_from_state(request, "categories_collection")


def get_users_store(request: Request) -> RecordStore:
    return _store_from_state(request, "users_collection")


TransactionsStoreDep = Annotated[RecordStore, Depends(get_transactions_store)]
CategoriesStoreDep = Annotated[RecordStore, Depends(get_categories_store)]
UsersStoreDep = Annotated[RecordStore, Depends(get_users_store)]


async def get_current_user(
    users: UsersStoreDep,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> Dict[str, Any]:
    """Resolves the bearer token to the user document; 401 otherwise."""
    token = credentials.credentials if credentials else None
    return await auth_service.resolve_owner(users, token)


async def get_current_owner(user: Annotated[Dict[str, Any], Depends(get_current_user)]) -> ObjectId:
    return user["_id"]


CurrentUserDep = Annotated[Dict[str, Any], Depends(get_current_user)]
OwnerDep = Annotated[ObjectId, Depends(get_current_owner)]


def envelope(status_code: int = 200, **fields: Any) -> JSONResponse:
    """Builds the ``{success: true, ...}`` response body used by every route."""
    return JSONResponse(status_code=status_code, content={"success": True, **fields})


def _body_field(payload: Any, name: str) -> Any:
    return payload.get(name) if isinstance(payload, dict) else None


# --- Health ---

@router.get("/health", summary="Health Check", description="Reports whether the database answers a ping.")
async def health(request: Request):
    client = getattr(request.state, "db_client", None)
    if client is None:
        raise ServiceUnavailable("Database service not available.")
    await client.admin.command("ping")
    return envelope(data={"database": "ok"})


# --- Auth Routes ---

@router.post("/auth/register", summary="Register User")
@limiter.limit(AUTH_RATE_LIMIT)
async def register(request: Request, users: UsersStoreDep, payload: Annotated[Any, Body()] = None):
    logger.info("POST /auth/register endpoint called.")
    result = await auth_service.register_user(users, payload if isinstance(payload, dict) else {})
    return envelope(201, token=result["token"], data=result["data"])


@router.post("/auth/login", summary="Login User")
@limiter.limit(AUTH_RATE_LIMIT)
async def login(request: Request, users: UsersStoreDep, payload: Annotated[Any, Body()] = None):
    logger.info("POST /auth/login endpoint called.")
    result = await auth_service.login_user(users, payload if isinstance(payload, dict) else {})
    return envelope(token=result["token"], data=result["data"])


@router.get("/auth/me", summary="Current User")
async def me(user: CurrentUserDep):
    return envelope(data=serialize_user(user))


# --- Transaction Routes ---

@router.get("/transactions", summary="List Transactions", description="Paginated list of the user's transactions, newest first.")
async def list_transactions(
    store: TransactionsStoreDep,
    owner_id: OwnerDep,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    transaction_type: Optional[str] = Query(None, alias="type", description="income or expense"),
    category: Optional[str] = Query(None, description="Case-insensitive substring of the category."),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
):
    logger.info(f"GET /transactions endpoint called. Page {page}, limit {limit}.")
    result = await transactions_service.list_transactions(
        store, owner_id, page=page, limit=limit, transaction_type=transaction_type,
        category=category, start_date=start_date, end_date=end_date,
    )
    return envelope(**result)


@router.get("/transactions/{transaction_id}", summary="Get Transaction")
async def get_transaction(transaction_id: str, store: TransactionsStoreDep, owner_id: OwnerDep):
    return envelope(data=await transactions_service.get_transaction(store, transaction_id, owner_id))


@router.post("/transactions", summary="Create Transaction")
async def create_transaction(
    store: TransactionsStoreDep, owner_id: OwnerDep, payload: Annotated[Any, Body()] = None
):
    logger.info("POST /transactions endpoint called.")
    data = await transactions_service.create_transaction(store, payload if isinstance(payload, dict) else {}, owner_id)
    return envelope(201, data=data)


@router.put("/transactions/{transaction_id}", summary="Update Transaction")
async def update_transaction(
    transaction_id: str, store: TransactionsStoreDep, owner_id: OwnerDep, payload: Annotated[Any, Body()] = None
):
    logger.info(f"PUT /transactions/{transaction_id} endpoint called.")
    data = await transactions_service.update_transaction(
        store, transaction_id, payload if isinstance(payload, dict) else {}, owner_id
    )
    return envelope(data=data)


@router.delete("/transactions/{transaction_id}", summary="Delete Transaction")
async def delete_transaction(transaction_id: str, store: TransactionsStoreDep, owner_id: OwnerDep):
    logger.info(f"DELETE /transactions/{transaction_id} endpoint called.")
    await transactions_service.delete_transaction(store, transaction_id, owner_id)
    return envelope(data={})


# --- Sync Routes ---

@router.post("/sync/transactions", summary="Bulk Create Transactions", description="Inserts a batch from an offline client. 207 when some elements fail.")
async def bulk_create_transactions(
    store: TransactionsStoreDep, owner_id: OwnerDep, payload: Annotated[Any, Body()] = None
):
    batch = _body_field(payload, "transactions")
    logger.info(f"POST /sync/transactions endpoint called with {len(batch) if isinstance(batch, list) else 0} items.")
    result = await sync_service.bulk_create_transactions(store, batch, owner_id)
    if result["status"] == "partial_success":
        return envelope(
            207,
            message="Partial success",
            count=result["inserted_count"],
            data=result["inserted"],
            errors=result["failures"],
        )
    return envelope(201, count=result["inserted_count"], data=result["inserted"])


@router.put("/sync/transactions", summary="Bulk Update Transactions", description="Updates a batch matched on id and owner. 207 when some elements fail.")
async def bulk_update_transactions(
    store: TransactionsStoreDep, owner_id: OwnerDep, payload: Annotated[Any, Body()] = None
):
    batch = _body_field(payload, "transactions")
    logger.info(f"PUT /sync/transactions endpoint called with {len(batch) if isinstance(batch, list) else 0} items.")
    result = await sync_service.bulk_update_transactions(store, batch, owner_id)
    counts = {"matchedCount": result["matched_count"], "modifiedCount": result["modified_count"]}
    if result["status"] == "partial_success":
        return envelope(207, message="Partial success", errors=result["failures"], **counts)
    return envelope(**counts)


@router.get("/sync/unsynced", summary="Get Unsynced Transactions")
async def get_unsynced_transactions(store: TransactionsStoreDep, owner_id: OwnerDep):
    data = await sync_service.get_unsynced_transactions(store, owner_id)
    return envelope(count=len(data), data=data)


@router.patch("/sync/mark-synced", summary="Mark Transactions Synced")
async def mark_transactions_synced(
    store: TransactionsStoreDep, owner_id: OwnerDep, payload: Annotated[Any, Body()] = None
):
    logger.info("PATCH /sync/mark-synced endpoint called.")
    result = await sync_service.mark_transactions_synced(store, _body_field(payload, "transactionIds"), owner_id)
    return envelope(
        matchedCount=result["matched_count"],
        modifiedCount=result["modified_count"],
        invalidIds=result["invalid_ids"],
    )


@router.get("/sync/status", summary="Sync Status")
async def get_sync_status(store: TransactionsStoreDep, owner_id: OwnerDep):
    return envelope(data=await sync_service.get_sync_status(store, owner_id))


# --- Analytics Routes ---

@router.get("/analytics/summary", summary="Financial Summary")
async def get_summary(
    store: TransactionsStoreDep,
    owner_id: OwnerDep,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
):
    data = await analytics_service.get_summary(store, owner_id, start_date=start_date, end_date=end_date)
    return envelope(data=data)


@router.get("/analytics/categories", summary="Category Breakdown")
async def get_category_breakdown(
    store: TransactionsStoreDep,
    owner_id: OwnerDep,
    transaction_type: str = Query("expense", alias="type", description="income or expense"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
):
    data = await analytics_service.get_category_breakdown(
        store, owner_id, transaction_type=transaction_type, start_date=start_date, end_date=end_date
    )
    return envelope(data=data)


@router.get("/analytics/trends", summary="Monthly Trends")
async def get_monthly_trends(
    store: TransactionsStoreDep,
    owner_id: OwnerDep,
    year: Optional[int] = Query(None, ge=1, le=9999, description="Defaults to the current year."),
):
    year = year or utcnow().year
    return envelope(data=await analytics_service.get_monthly_trends(store, owner_id, year))


# --- Category Routes ---

@router.get("/categories", summary="List Categories")
async def list_categories(store: CategoriesStoreDep, owner_id: OwnerDep):
    data = await categories_service.list_categories(store, owner_id)
    return envelope(count=len(data), data=data)


@router.get("/categories/{category_id}", summary="Get Category")
async def get_category(category_id: int, store: CategoriesStoreDep, owner_id: OwnerDep):
    return envelope(data=await categories_service.get_category(store, category_id, owner_id))


@router.post("/categories", summary="Create Category")
async def create_category(store: CategoriesStoreDep, owner_id: OwnerDep, payload: Annotated[Any, Body()] = None):
    data = await categories_service.create_category(store, payload if isinstance(payload, dict) else {}, owner_id)
    return envelope(201, data=data)


@router.put("/categories/{category_id}", summary="Update Category")
async def update_category(
    category_id: int, store: CategoriesStoreDep, owner_id: OwnerDep, payload: Annotated[Any, Body()] = None
):
    data = await categories_service.update_category(
        store, category_id, payload if isinstance(payload, dict) else {}, owner_id
    )
    return envelope(data=data)


@router.delete("/categories/{category_id}", summary="Delete Category")
async def delete_category(category_id: int, store: CategoriesStoreDep, owner_id: OwnerDep):
    logger.info(f"DELETE /categories/{category_id} endpoint called.")
    return envelope(data=await categories_service.delete_category(store, category_id, owner_id))
