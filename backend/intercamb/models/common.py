"""Common Pydantic models and serialization helpers for responses."""
from typing import Any, List, Optional

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from ..database import Document


class CursorPageResponse(BaseModel):
    """A page of a cursor-paginated listing."""

    data: List[dict] = Field(default_factory=list)
    next_cursor: Optional[str] = Field(
        None, description="Pass as `last` to fetch the next page; null when the page was not full"
    )


class CountResponse(BaseModel):
    count: int


def serialize(value: Any) -> Any:
    """Convert documents to JSON-ready dicts, exposing ``_id`` as ``id``."""
    if isinstance(value, Document):
        value = value.to_dict()
    if isinstance(value, dict):
        return {("id" if k == "_id" else k): serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize(v) for v in value]
    return jsonable_encoder(value)
