from typing import Any, ClassVar, Dict, FrozenSet, Optional

from pydantic import BaseModel, Field


class APIMessage(BaseModel):
    message: str = Field(..., description="Human readable message")


class HealthStatus(BaseModel):
    status: str = Field("ok", description="Service status")


class PartialUpdate(BaseModel):
    """
    Base for PUT bodies.

    Only fields present in the request are written. A `null` clears a column
    only when the column is listed in `nullable_fields`; otherwise the stored
    value is kept.
    """

    nullable_fields: ClassVar[FrozenSet[str]] = frozenset()

    def changes(self) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for name in type(self).model_fields:
            if name not in self.model_fields_set:
                continue
            value = getattr(self, name)
            if value is None and name not in self.nullable_fields:
                continue
            values[name] = value
        return values


class ListUpdate(PartialUpdate):
    title: Optional[str] = None


class CardUpdate(PartialUpdate):
    nullable_fields: ClassVar[FrozenSet[str]] = frozenset({"description", "due_date"})

    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[str] = Field(None, description="Due date (ISO 8601); null clears it")
    archived: Optional[bool] = Field(None, description="Archived cards are hidden from board and search views")


class ChecklistItemUpdate(PartialUpdate):
    title: Optional[str] = None
    is_complete: Optional[bool] = None
    position: Optional[int] = None
