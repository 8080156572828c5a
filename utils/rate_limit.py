"""Shared slowapi limiter, importable by both main.py and routes.py."""
import os

from dotenv import load_dotenv
from slowapi import Limiter
from slowapi.util import get_remote_address

load_dotenv()

RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
DEFAULT_RATE_LIMIT = os.getenv("RATE_LIMIT_DEFAULT", "100 per 15 minutes")
AUTH_RATE_LIMIT = os.getenv("RATE_LIMIT_AUTH", "50 per 15 minutes")

# In-memory storage: limits are per process
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[DEFAULT_RATE_LIMIT],
    enabled=RATE_LIMIT_ENABLED,
)
