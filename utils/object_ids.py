"""Helpers for working with MongoDB ObjectIds coming from client input"""
from typing import Any, Iterable, List, Optional

from bson import ObjectId


def is_valid_object_id(value: Any) -> bool:
    if isinstance(value, ObjectId):
        return True
    return isinstance(value, str) and ObjectId.is_valid(value)


def parse_object_id(value: Any) -> Optional[ObjectId]:
    """Returns the ObjectId for ``value`` or None when it is malformed."""
    if isinstance(value, ObjectId):
        return value
    if is_valid_object_id(value):
        return ObjectId(value)
    return None


def valid_object_ids(values: Iterable[Any]) -> List[ObjectId]:
    """Keeps only the structurally valid ids, in their original order."""
    return [ObjectId(value) if not isinstance(value, ObjectId) else value
            for value in values if is_valid_object_id(value)]
