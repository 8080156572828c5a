"""Main FastAPI application"""
import os
import logging
import logging.config
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError
from routes import router as api_router
from starlette.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from utils.errors import ApiError, StoreError
from utils.rate_limit import limiter

# --- Unified Logging Configuration with Rich ---
LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            # RichHandler renders time and level itself
            "format": "%(name)s - %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "default": {
            "class": "rich.logging.RichHandler",
            "formatter": "default",
            "level": "DEBUG",
            "rich_tracebacks": True,
            "show_time": True,
            "show_path": False,
            "log_time_format": "%Y-%m-%d %H:%M:%S",
            "markup": False
        },
    },
    "loggers": {
        "uvicorn": {
             "handlers": ["default"],
             "level": "INFO",
             "propagate": False,
        },
        "uvicorn.error": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "uvicorn.access": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "": { # Root logger for our application
            "handlers": ["default"],
            "level": os.getenv("LOG_LEVEL", "INFO").upper(),
            "propagate": False,
        },
    },
}

logging.config.dictConfig(LOGGING_CONFIG)

logger = logging.getLogger(__name__)

load_dotenv()

MONGODB_URI = os.getenv("MONGODB_URI")
DB_NAME = os.getenv("DB_NAME", "expense_tracker")
MAX_SYNC_PAYLOAD_SIZE = int(os.getenv("MAX_SYNC_PAYLOAD_SIZE", str(5 * 1024 * 1024)))  # 5MB limit
SYNC_PATH_PREFIX = "/api/v1/sync"
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:3001,http://localhost:8080").split(",")
    if origin.strip()
]

if not MONGODB_URI:
    logger.error("MONGODB_URI environment variable not set! Database connection will fail.")

# Application state to hold the database client and collections
app_state = {}


def _error_body(error) -> dict:
    return {"success": False, "error": error}


# --- Middleware for Sync Payload Size Limit ---
class LimitSyncPayloadMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Bulk sync bodies are the only large payloads this API accepts
        if request.url.path.startswith(SYNC_PATH_PREFIX):
            content_length_header = request.headers.get("content-length")
            if content_length_header:
                try:
                    content_length = int(content_length_header)
                    if content_length > MAX_SYNC_PAYLOAD_SIZE:
                        logger.warning(f"Sync request rejected: body size {content_length} exceeds limit {MAX_SYNC_PAYLOAD_SIZE}.")
                        return JSONResponse(
                            status_code=413,
                            content=_error_body(f"Maximum sync payload size ({MAX_SYNC_PAYLOAD_SIZE / (1024*1024):.1f} MB) exceeded."),
                        )
                except ValueError:
                    logger.warning("Sync request rejected: Invalid Content-Length header.")
                    return JSONResponse(status_code=400, content=_error_body("Invalid Content-Length header."))

        response = await call_next(request)
        return response


async def ensure_indexes(db) -> None:
    """Indexes backing the owner-scoped queries."""
    transactions = db.get_collection("transactions")
    await transactions.create_index([("ownerId", ASCENDING), ("date", DESCENDING)])
    await transactions.create_index([("ownerId", ASCENDING), ("type", ASCENDING)])
    await transactions.create_index([("ownerId", ASCENDING), ("category", ASCENDING)])
    await transactions.create_index([("ownerId", ASCENDING), ("isSynced", ASCENDING)])
    await db.get_collection("categories").create_index([("ownerId", ASCENDING), ("id", ASCENDING)], unique=True)
    await db.get_collection("users").create_index("email", unique=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Connect to MongoDB
    logger.info(f"Connecting to MongoDB database '{DB_NAME}'...")
    try:
        app_state["db_client"] = AsyncIOMotorClient(MONGODB_URI)
        app_state["db"] = app_state["db_client"][DB_NAME]
        app_state["transactions_collection"] = app_state["db"].get_collection("transactions")
        app_state["categories_collection"] = app_state["db"].get_collection("categories")
        app_state["users_collection"] = app_state["db"].get_collection("users")
        await app_state["db_client"].admin.command('ping')
        logger.info("MongoDB ping successful.")
        await ensure_indexes(app_state["db"])
        logger.info(f"Successfully connected to MongoDB database: {DB_NAME}")
    except PyMongoError as e:
        logger.error(f"Failed to connect to MongoDB: {e}")
        if app_state.get("db_client"):
            app_state["db_client"].close()
        for key in ("db_client", "db", "transactions_collection", "categories_collection", "users_collection"):
            app_state[key] = None

    yield # Application runs here

    # Shutdown: Close MongoDB connection
    if app_state.get("db_client"):
        logger.info("Closing MongoDB connection...")
        app_state["db_client"].close()
        logger.info("MongoDB connection closed.")

app = FastAPI(
    title="Expense Sync API",
    description="Expense tracking API with bulk sync for offline-first clients and analytics.",
    version="1.0.0",
    lifespan=lifespan
)

app.state.limiter = limiter


def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """slowapi's 429 response, re-wrapped in the error envelope with its rate limit headers kept."""
    limited = _rate_limit_exceeded_handler(request, exc)
    headers = {
        name: value for name, value in limited.headers.items()
        if name.lower() not in ("content-length", "content-type")
    }
    return JSONResponse(
        status_code=limited.status_code,
        content=_error_body(f"Rate limit exceeded: {exc.detail}"),
        headers=headers,
    )


app.add_exception_handler(RateLimitExceeded, rate_limit_handler)


# --- Exception Handlers ---
@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    if isinstance(exc, StoreError):
        # Store details stay in the log
        logger.error(f"Store error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=exc.status_code, content=_error_body("Server Error"))
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.error))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.detail), headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = [
        f"{'.'.join(str(part) for part in error['loc'] if part not in ('query', 'path', 'body'))}: {error['msg']}"
        for error in exc.errors()
    ]
    return JSONResponse(status_code=422, content=_error_body(messages))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unexpected error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content=_error_body("Server Error"))


# --- Add Middleware (Order Matters) ---
# 1. Rate Limiter Middleware (default limit for every route)
app.add_middleware(SlowAPIMiddleware)
# 2. CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
# 3. Sync Payload Size Limit Middleware
app.add_middleware(LimitSyncPayloadMiddleware)

app.include_router(api_router, prefix="/api/v1")

# Make app state accessible via middleware
@app.middleware("http")
async def add_app_config_to_request(request: Request, call_next):
    """Adds database connection and collections to the request state."""
    request.state.db_client = app_state.get("db_client")
    request.state.db = app_state.get("db")
    request.state.transactions_collection = app_state.get("transactions_collection")
    request.state.categories_collection = app_state.get("categories_collection")
    request.state.users_collection = app_state.get("users_collection")
    response = await call_next(request)
    return response

if __name__ == "__main__":
    import uvicorn
    # Our application logs use the RichHandler configured above
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "false").lower() == "true"
    )
