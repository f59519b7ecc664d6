"""Custom exception hierarchy for pysightings."""

from __future__ import annotations


class SightingsError(Exception):
    """Base exception for all pysightings errors."""


class SightingsConfigError(SightingsError):
    """Invalid or missing configuration."""


class SightingsTransportError(SightingsError):
    """HTTP-level failure (network, non-200, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class SightingsPayloadError(SightingsError):
    """A provider response did not have the expected envelope."""

    def __init__(self, message: str, *, source: str = "") -> None:
        self.source = source
        super().__init__(message)


class TaxonomyError(SightingsError):
    """The static taxonomy table is not a single acyclic tree."""


class QueryValueError(SightingsError, ValueError):
    """A query value (instant, duration or taxon) could not be parsed.

    Also a :class:`ValueError` so deep-link handlers can treat it like
    any other malformed input.
    """
