"""Password hashing and access tokens for the auth routes."""
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from dotenv import load_dotenv

from models.user import MAX_PASSWORD_BYTES

logger = logging.getLogger(__name__)

load_dotenv()

JWT_SECRET = os.getenv("JWT_SECRET", "change-me-in-production")
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "1440"))

if JWT_SECRET == "change-me-in-production":
    logger.warning("JWT_SECRET not set in environment. Using an insecure development secret.")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    encoded = password.encode("utf-8")
    # No stored hash can match a password bcrypt refuses to hash
    if len(encoded) > MAX_PASSWORD_BYTES:
        return False
    return bcrypt.checkpw(encoded, hashed_password.encode("utf-8"))


def create_access_token(user_id: str, expires_minutes: Optional[int] = None) -> str:
    """Signs a token whose ``id`` claim identifies the user."""
    minutes = JWT_EXPIRE_MINUTES if expires_minutes is None else expires_minutes
    expires = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    return jwt.encode({"id": user_id, "exp": expires}, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[str]:
    """Returns the user id carried by a valid token, None for anything else."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        logger.debug(f"Rejected access token: {e}")
        return None
    user_id = payload.get("id")
    return user_id if isinstance(user_id, str) else None
