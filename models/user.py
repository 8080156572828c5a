"""Pydantic models for user accounts"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

MIN_PASSWORD_LENGTH = 6
# bcrypt only accepts up to 72 bytes
MAX_PASSWORD_BYTES = 72


class RegisterInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=50)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password cannot be longer than {MAX_PASSWORD_BYTES} bytes")
        return value


class LoginInput(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class User(BaseModel):
    """Public view of a user; the password hash is never part of it."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    name: str
    email: str
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


def serialize_user(doc: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(doc)
    data["_id"] = str(data["_id"])
    data.pop("password", None)
    return User(**data).model_dump(mode="json", by_alias=True)
