"""Base model and timestamp helpers shared by every pysightings model.

Canonical records are immutable once constructed, so every model is
``frozen``. Provider payload models inherit the same config and ignore
fields they do not map.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict


def ensure_aware(value: Any) -> Any:
    """Attach UTC to naive datetimes; other values pass through untouched."""
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


AwareDatetime = Annotated[datetime, AfterValidator(ensure_aware)]
"""A datetime that is always timezone-aware (naive input is taken as UTC)."""


class SightingsBaseModel(BaseModel):
    """Base for canonical records and provider payloads."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )
