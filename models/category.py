"""Pydantic models for Category data"""
from typing import Any, Dict

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field

CATEGORY_NAME_MAX_LENGTH = 50


class CategoryInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    name: str = Field(..., min_length=1, max_length=CATEGORY_NAME_MAX_LENGTH)


class Category(BaseModel):
    """
    A user-defined category label. ``id`` is derived from the creation time in
    milliseconds and only ever grows within one owner's categories.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    owner_id: str = Field(..., alias="ownerId")


def serialize_category(doc: Dict[str, Any]) -> Dict[str, Any]:
    data = {key: value for key, value in doc.items() if key != "_id"}
    if isinstance(data.get("ownerId"), ObjectId):
        data["ownerId"] = str(data["ownerId"])
    return Category(**data).model_dump(mode="json", by_alias=True)
