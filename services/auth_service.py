"""Service layer for user accounts: registration, login and token resolution."""
import logging
from typing import Any, Dict, Mapping, Optional

from bson import ObjectId
from pydantic import ValidationError

from models.transaction import utcnow
from models.user import MAX_PASSWORD_BYTES, MIN_PASSWORD_LENGTH, LoginInput, RegisterInput, serialize_user
from services.store import RecordStore
from utils.errors import AuthError, InputError
from utils.object_ids import parse_object_id
from utils.security import create_access_token, decode_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)

REGISTER_FIELD_MESSAGES = {
    "name": "Please add a name (up to 50 characters)",
    "email": "Please add a valid email",
    "password": f"Password must be {MIN_PASSWORD_LENGTH} to {MAX_PASSWORD_BYTES} characters",
}


async def register_user(store: RecordStore, payload: Mapping[str, Any]) -> Dict[str, Any]:
    try:
        data = RegisterInput.model_validate(payload)
    except ValidationError as e:
        fields = []
        for detail in e.errors():
            name = str(detail["loc"][0]) if detail.get("loc") else ""
            if name not in fields:
                fields.append(name)
        raise InputError([REGISTER_FIELD_MESSAGES.get(name, f"{name} is invalid") for name in fields])

    if await store.find_one({"email": data.email}) is not None:
        raise InputError("User already exists with this email")

    now = utcnow()
    user = await store.create({
        "name": data.name,
        "email": data.email,
        "password": hash_password(data.password),
        "createdAt": now,
        "updatedAt": now,
    })
    logger.info(f"Registered user {user['_id']}.")
    return {"token": create_access_token(str(user["_id"])), "data": serialize_user(user)}


async def login_user(store: RecordStore, payload: Mapping[str, Any]) -> Dict[str, Any]:
    try:
        data = LoginInput.model_validate(payload)
    except ValidationError:
        data = LoginInput()
    if not data.email or not data.password:
        raise InputError("Please provide an email and password")

    user = await store.find_one({"email": data.email.strip().lower()})
    if user is None or not verify_password(data.password, user["password"]):
        logger.warning("Failed login attempt.")
        raise AuthError("Invalid credentials")
    return {"token": create_access_token(str(user["_id"])), "data": serialize_user(user)}


async def resolve_owner(store: RecordStore, token: Optional[str]) -> Dict[str, Any]:
    """Maps a bearer token to its user document, raising AuthError when it does not resolve."""
    if not token:
        raise AuthError()
    user_id: Optional[ObjectId] = parse_object_id(decode_access_token(token))
    if user_id is None:
        raise AuthError()
    user = await store.find_one({"_id": user_id})
    if user is None:
        raise AuthError()
    return user
