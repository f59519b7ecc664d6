"""Regional sightings network adapter (Maplify search-all-sightings)."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, tzinfo
from typing import Any

from pydantic import ValidationError, field_validator

from pysightings._transport import Transport
from pysightings.config import SightingsConfig
from pysightings.heuristics import ecotype_taxon, extract_tags
from pysightings.models._base import SightingsBaseModel
from pysightings.models.observation import (
    Ecotype,
    Observation,
    ObservationSource,
    ObservationTags,
    observation_id,
)
from pysightings.models.query import FetchRequest, QueryField, TaxonFilter
from pysightings.sources._common import local_dates, parse_envelope, parse_records
from pysightings.taxonomy import TaxonRegistry, species

_logger = logging.getLogger(__name__)

SOURCE = ObservationSource.MAPLIFY


class _Result(SightingsBaseModel):
    id: int
    name: str | None = None
    scientific_name: str | None = None
    latitude: float
    longitude: float
    number_sighted: int | None = None
    created: str | None = None
    """Local time without offset, e.g. ``"2025-01-21 17:50:00"``."""
    photo_url: str | None = None
    comments: str | None = None
    source: str | None = None

    @field_validator("number_sighted", mode="before")
    @classmethod
    def _coerce_count(cls, value: Any) -> int | None:
        if value in (None, ""):
            return None
        try:
            count = int(float(value))
        except (TypeError, ValueError):
            return None
        return count if count >= 0 else None


class _Response(SightingsBaseModel):
    count: int | str | None = None
    """Sent as a string by the provider."""
    results: list[Any]


def parse_local_timestamp(value: str | None, zone: tzinfo) -> datetime | None:
    """Interpret a zone-less provider timestamp in *zone* and return it in UTC."""
    if not value:
        return None
    try:
        naive = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if naive.tzinfo is None:
        naive = naive.replace(tzinfo=zone)
    return naive.astimezone(UTC)


class MaplifyAdapter:
    """Fetch every sighting in the extent and window, filter taxa locally.

    The provider has no taxon parameter, so species names are normalized
    and tested against the taxon filter's descendant-closure here.
    """

    name = SOURCE.value
    depends_on: frozenset[QueryField] = frozenset(
        {QueryField.FOCUS, QueryField.TIME_SCALE, QueryField.TAXON, QueryField.EXTENT}
    )

    def __init__(self, config: SightingsConfig, transport: Transport, registry: TaxonRegistry) -> None:
        self._config = config
        self._transport = transport
        self._registry = registry

    def build_params(self, request: FetchRequest) -> dict[str, Any] | None:
        extent = request.extent.clamped()
        if request.window is None or extent is None:
            return None
        earliest, latest = local_dates(request.window, self._config.local_zone)
        return {
            "start": earliest.isoformat(),
            "end": latest.isoformat(),
            "BBOX": f"{extent.min_lon:.3f},{extent.min_lat:.3f},{extent.max_lon:.3f},{extent.max_lat:.3f}",
        }

    async def fetch(self, request: FetchRequest) -> list[Observation]:
        params = self.build_params(request)
        if params is None:
            _logger.debug("No focus or empty extent; skipping %s", self.name)
            return []
        payload = await self._transport.get_json(self._config.maplify_url, params)
        response = parse_envelope(_Response, payload, source=self.name)
        return self.parse_results(response.results, request.taxon_filter)

    def parse_results(self, results: list[Any], taxon_filter: TaxonFilter) -> list[Observation]:
        parsed: list[Observation] = []
        for result in parse_records(_Result, results, source=self.name):
            tags = extract_tags(result.comments)
            taxon = self._resolve_taxon(result, tags.ecotype)
            if taxon not in taxon_filter.names:
                continue
            observation = self._to_observation(result, taxon, tags)
            if observation is not None:
                parsed.append(observation)
        return parsed

    def _resolve_taxon(self, result: _Result, ecotype: Ecotype | None) -> str:
        taxon = ""
        # The scientific name may carry a subspecies the common name cannot.
        for candidate in (result.scientific_name, result.name):
            if not candidate:
                continue
            taxon = self._registry.normalize(candidate)
            if self._registry.is_resolved(taxon):
                break

        # Reports often name the ecotype only in the comments.
        subspecies = ecotype_taxon(ecotype)
        if subspecies is not None and taxon == species(subspecies):
            taxon = subspecies
        return taxon

    def _to_observation(self, result: _Result, taxon: str, tags: ObservationTags) -> Observation | None:
        observed_at = parse_local_timestamp(result.created, self._config.regional_zone)
        if observed_at is None:
            _logger.warning("%s sighting %s has unparseable time %r; keeping it untimed", self.name, result.id, result.created)
        try:
            return Observation(
                id=observation_id(self.name, result.id),
                source=SOURCE,
                taxon=taxon,
                coordinates=(result.longitude, result.latitude),
                observed_at=observed_at,
                count=result.number_sighted,
                body=result.comments,
                tags=tags,
                photos=(result.photo_url,) if result.photo_url else (),
                network=result.source,
            )
        except ValidationError as exc:
            _logger.warning("Dropping %s sighting %s: %s", self.name, result.id, exc.errors()[0]["msg"])
            return None
