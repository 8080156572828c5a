"""Pydantic models for Transaction data"""
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator

DESCRIPTION_MAX_LENGTH = 200
CATEGORY_MAX_LENGTH = 50
MIN_AMOUNT = 0.01

# Keys a client may never set directly on a stored transaction
PROTECTED_FIELDS = ("_id", "id", "ownerId", "userId", "owner_id", "createdAt", "updatedAt")


def utcnow() -> datetime:
    """Naive UTC timestamp, the form MongoDB hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Any) -> Any:
    """Normalizes ISO strings, dates and aware datetimes to naive UTC datetimes."""
    if isinstance(value, str):
        text = value.strip()
        if len(text) == 10:
            value = date.fromisoformat(text)
        else:
            value = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    return value


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class TransactionFields(BaseModel):
    """
    Client-editable fields of a transaction, with their constraints.
    Ownership, sync flag and timestamps are stamped by the server.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    description: str = Field(..., min_length=1, max_length=DESCRIPTION_MAX_LENGTH)
    amount: float = Field(..., ge=MIN_AMOUNT, allow_inf_nan=False)
    category: str = Field(..., min_length=1, max_length=CATEGORY_MAX_LENGTH)
    type: TransactionType
    date: datetime = Field(default_factory=utcnow)

    @field_validator("date", mode="before")
    @classmethod
    def normalize_date(cls, value: Any) -> Any:
        if value is None:
            return utcnow()
        try:
            return to_naive_utc(value)
        except ValueError:
            # Let pydantic report the field as an invalid datetime
            return value


class TransactionPatch(BaseModel):
    """Same constraints as TransactionFields, every field optional."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    description: Optional[str] = Field(None, min_length=1, max_length=DESCRIPTION_MAX_LENGTH)
    amount: Optional[float] = Field(None, ge=MIN_AMOUNT, allow_inf_nan=False)
    category: Optional[str] = Field(None, min_length=1, max_length=CATEGORY_MAX_LENGTH)
    type: Optional[TransactionType] = None
    date: Optional[datetime] = None

    @field_validator("date", mode="before")
    @classmethod
    def normalize_date(cls, value: Any) -> Any:
        try:
            return to_naive_utc(value)
        except ValueError:
            return value


class Transaction(BaseModel):
    """
    Represents a stored income or expense transaction as returned by the API.
    """
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: str
    description: str
    amount: float
    category: str
    type: TransactionType
    date: datetime
    owner_id: str = Field(..., alias="ownerId")
    is_synced: bool = Field(True, alias="isSynced")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


def serialize_transaction(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Converts a stored document into its JSON-ready API shape."""
    data = dict(doc)
    if "_id" in data:
        data["id"] = str(data.pop("_id"))
    if isinstance(data.get("ownerId"), ObjectId):
        data["ownerId"] = str(data["ownerId"])
    return Transaction(**data).model_dump(mode="json", by_alias=True)
