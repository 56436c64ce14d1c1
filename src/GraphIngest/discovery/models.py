"""Pydantic models for IIIF Change Discovery 1.0 documents.

Only the members the page algorithm relies on are modelled; everything else
in a collection or page (``@context``, ``summary``, ``actor``, ...) is
ignored. Documents are validated once, when they come off the wire.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, ClassVar, List, Literal, Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "Reference",
    "AddActivity",
    "CreateUpdateDeleteActivity",
    "MoveActivity",
    "RefreshActivity",
    "RemoveActivity",
    "Activity",
    "Collection",
    "Page",
]


class _Document(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(extra="ignore", populate_by_name=True)


class Reference(_Document):
    """``{"id": "<url>"}`` as used by ``last``, ``prev``, ``object``, ``target`` and ``origin``."""

    id: str

    @field_validator("id")
    @classmethod
    def validate_url(cls, v: str) -> str:
        parsed = urlparse(v)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"not an absolute URL: {v!r}")
        return v


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class _TimedActivity(_Document):
    object: Reference
    end_time: datetime = Field(alias="endTime")

    @field_validator("end_time")
    @classmethod
    def validate_end_time(cls, v: datetime) -> datetime:
        return _as_utc(v)


class AddActivity(_TimedActivity):
    type: Literal["Add"]
    target: Reference


class CreateUpdateDeleteActivity(_TimedActivity):
    type: Literal["Create", "Update", "Delete"]


class MoveActivity(_TimedActivity):
    type: Literal["Move"]
    target: Reference


class RemoveActivity(_TimedActivity):
    type: Literal["Remove"]
    origin: Reference


class RefreshActivity(_Document):
    type: Literal["Refresh"]
    start_time: datetime = Field(alias="startTime")

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, v: datetime) -> datetime:
        return _as_utc(v)


Activity = Annotated[
    Union[
        AddActivity,
        CreateUpdateDeleteActivity,
        MoveActivity,
        RefreshActivity,
        RemoveActivity,
    ],
    Field(discriminator="type"),
]


class Collection(_Document):
    last: Reference


class Page(_Document):
    prev: Optional[Reference] = None
    ordered_items: List[Activity] = Field(alias="orderedItems")
