"""Shared helpers for the source adapter modules.

This module centralizes the patterns every adapter repeats:
- validating a provider envelope and mapping failures to one error type
- validating individual records without failing the whole response
- rendering a time window as provider-local calendar dates
"""

from __future__ import annotations

import logging
from datetime import date, tzinfo
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from pysightings.exceptions import SightingsPayloadError
from pysightings.models.query import TimeWindow

_logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def parse_envelope(model: type[M], payload: Any, *, source: str) -> M:
    """Validate a whole response; a mismatch fails the adapter for this cycle."""
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise SightingsPayloadError(
            f"Unexpected {source} response: {exc.error_count()} validation error(s)",
            source=source,
        ) from exc


def parse_records(model: type[M], records: list[Any], *, source: str) -> list[M]:
    """Validate records one by one, dropping (and logging) the malformed ones."""
    parsed: list[M] = []
    for record in records:
        try:
            parsed.append(model.model_validate(record))
        except ValidationError as exc:
            record_id = record.get("id") if isinstance(record, dict) else None
            _logger.warning("Dropping malformed %s record %r: %s", source, record_id, exc.errors()[0]["msg"])
    return parsed


def local_dates(window: TimeWindow, zone: tzinfo) -> tuple[date, date]:
    """Calendar dates in *zone* covering the window, as providers take them."""
    return window.start.astimezone(zone).date(), window.end.astimezone(zone).date()
