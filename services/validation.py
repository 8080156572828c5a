"""Field validation shared by the single-record and bulk transaction paths.

Every violated field yields exactly one message and all fields are checked,
so a payload with several problems reports all of them at once.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from bson import ObjectId
from pydantic import ValidationError

from models.transaction import (
    CATEGORY_MAX_LENGTH,
    DESCRIPTION_MAX_LENGTH,
    PROTECTED_FIELDS,
    TransactionFields,
    TransactionPatch,
    utcnow,
)

FIELD_ORDER = ("description", "amount", "category", "type", "date", "ownerId")

REQUIRED_MESSAGES = {
    "description": "Please add a description",
    "amount": "Please add an amount",
    "category": "Please add a category",
    "type": "Please specify transaction type",
    "date": "Please add a valid date",
    "ownerId": "User ID is required",
}

TOO_LONG_MESSAGES = {
    "description": f"Description cannot be more than {DESCRIPTION_MAX_LENGTH} characters",
    "category": f"Category cannot be more than {CATEGORY_MAX_LENGTH} characters",
}

# pydantic error types that mean "nothing usable was supplied"
MISSING_TYPES = {"missing", "string_too_short", "string_type", "none_required"}


@dataclass
class ValidationOutcome:
    """Either a normalized ``record`` or a field -> message mapping in ``errors``."""
    record: Optional[Dict[str, Any]] = None
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def messages(self) -> List[str]:
        names = [name for name in FIELD_ORDER if name in self.errors]
        names += [name for name in self.errors if name not in FIELD_ORDER]
        return [self.errors[name] for name in names]


def _message_for(name: str, error_type: str, value: Any) -> str:
    if name == "amount":
        if error_type == "missing" or value is None:
            return REQUIRED_MESSAGES["amount"]
        if error_type in ("greater_than_equal", "finite_number"):
            return "Amount must be greater than 0"
        return "Amount must be a number"
    if name == "type":
        if error_type == "missing" or value is None or value == "":
            return REQUIRED_MESSAGES["type"]
        return "Type must be either income or expense"
    if error_type == "string_too_long":
        return TOO_LONG_MESSAGES.get(name, f"{name} is too long")
    if error_type in MISSING_TYPES:
        return REQUIRED_MESSAGES.get(name, f"{name} is required")
    return REQUIRED_MESSAGES.get(name, f"{name} is invalid")


def _collect(exc: ValidationError, errors: Dict[str, str]) -> None:
    for detail in exc.errors():
        name = str(detail["loc"][0]) if detail.get("loc") else "__root__"
        if name in errors:
            continue
        errors[name] = _message_for(name, detail["type"], detail.get("input"))


def _client_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in payload.items() if key not in PROTECTED_FIELDS}


def validate_transaction(payload: Mapping[str, Any], owner_id: Optional[ObjectId]) -> ValidationOutcome:
    """
    Validates a new transaction and returns the document ready for insertion:
    trimmed fields, ``ownerId`` from the authenticated identity, ``isSynced``
    (defaulting to True) and creation timestamps.
    """
    errors: Dict[str, str] = {}
    fields = _client_fields(payload)
    model = None
    try:
        model = TransactionFields.model_validate(fields)
    except ValidationError as e:
        _collect(e, errors)
    if owner_id is None:
        errors["ownerId"] = REQUIRED_MESSAGES["ownerId"]
    if errors:
        return ValidationOutcome(errors=errors)

    now = utcnow()
    record = model.model_dump()
    record["type"] = model.type.value
    record["ownerId"] = owner_id
    record["isSynced"] = payload.get("isSynced", True) is not False
    record["createdAt"] = now
    record["updatedAt"] = now
    return ValidationOutcome(record=record)


def validate_transaction_update(payload: Mapping[str, Any]) -> ValidationOutcome:
    """
    Validates the fields present in an update payload. The returned record only
    holds those fields; ownership and ids are never part of it.
    """
    errors: Dict[str, str] = {}
    fields = _client_fields(payload)
    for name in ("description", "amount", "category", "type", "date"):
        if name in fields and fields[name] is None:
            errors[name] = REQUIRED_MESSAGES[name]
            del fields[name]
    model = None
    try:
        model = TransactionPatch.model_validate(fields)
    except ValidationError as e:
        _collect(e, errors)
    if errors:
        return ValidationOutcome(errors=errors)

    record = model.model_dump(exclude_unset=True)
    if "type" in record:
        record["type"] = model.type.value
    if "isSynced" in fields:
        record["isSynced"] = fields["isSynced"] is not False
    return ValidationOutcome(record=record)
