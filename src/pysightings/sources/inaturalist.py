"""Citizen-science observation adapter (iNaturalist API v2)."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from urllib.parse import urlencode

from pydantic import Field, TypeAdapter, ValidationError

from pysightings._constants import INATURALIST_FIELDSPEC, INATURALIST_SPECIES_COUNTS_FIELDSPEC
from pysightings._transport import Transport
from pysightings.config import SightingsConfig
from pysightings.heuristics import extract_tags
from pysightings.models._base import SightingsBaseModel, ensure_aware
from pysightings.models.observation import Observation, ObservationSource, observation_id
from pysightings.models.query import FetchRequest, QueryField
from pysightings.models.taxon import TaxonNode
from pysightings.sources._common import local_dates, parse_envelope, parse_records
from pysightings.taxonomy import TaxonRegistry

_logger = logging.getLogger(__name__)

_DATETIME = TypeAdapter(datetime)

SOURCE = ObservationSource.INATURALIST


class _Point(SightingsBaseModel):
    type: str = "Point"
    coordinates: tuple[float, float]


class _Taxon(SightingsBaseModel):
    id: int | None = None
    name: str
    preferred_common_name: str | None = None


class _Photo(SightingsBaseModel):
    url: str


class _Observation(SightingsBaseModel):
    id: int
    description: str | None = None
    geojson: _Point | None = None
    geoprivacy: str | None = None
    taxon: _Taxon | None = None
    taxon_geoprivacy: str | None = None
    time_observed_at: str | None = None
    uri: str | None = None
    photos: list[_Photo] = Field(default_factory=list)


class _ResultPage(SightingsBaseModel):
    total_results: int
    page: int
    per_page: int
    results: list[Any]


class _SpeciesCountTaxon(SightingsBaseModel):
    id: int
    name: str
    parent_id: int | None = None
    preferred_common_name: str | None = None
    ancestors: list[_SpeciesCountTaxon] = Field(default_factory=list)


class _SpeciesCount(SightingsBaseModel):
    count: int = 0
    taxon: _SpeciesCountTaxon


def _parse_observed_at(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return ensure_aware(_DATETIME.validate_python(value))
    except ValidationError:
        return None


class INaturalistAdapter:
    """Query observations by taxon id, date range and bounding box.

    The query only asks for observations that carry a time, so a result
    without a parseable ``time_observed_at`` is a provider defect: it is
    dropped and logged rather than kept without a time.
    """

    name = SOURCE.value
    depends_on: frozenset[QueryField] = frozenset(
        {QueryField.FOCUS, QueryField.TIME_SCALE, QueryField.TAXON, QueryField.EXTENT}
    )

    def __init__(self, config: SightingsConfig, transport: Transport, registry: TaxonRegistry) -> None:
        self._config = config
        self._transport = transport
        self._registry = registry

    def build_params(self, request: FetchRequest, *, page: int = 1) -> dict[str, Any] | None:
        """Query parameters for *request*, or ``None`` when there is nothing to ask for."""
        window = request.window
        taxon = request.taxon_filter.root
        extent = request.extent.clamped()
        if window is None or taxon is None or extent is None:
            return None

        earliest, latest = local_dates(window, self._config.local_zone)
        return {
            "taxon_id": taxon.id,
            "d1": earliest.isoformat(),
            "d2": latest.isoformat(),
            "nelat": f"{extent.max_lat:.6f}",
            "nelng": f"{extent.max_lon:.6f}",
            "swlat": f"{extent.min_lat:.6f}",
            "swlng": f"{extent.min_lon:.6f}",
            "geoprivacy": "open",
            "taxon_geoprivacy": "open",
            "fields": INATURALIST_FIELDSPEC,
            "per_page": self._config.page_size,
            "page": page,
        }

    async def fetch(self, request: FetchRequest) -> list[Observation]:
        if self.build_params(request) is None:
            _logger.debug("Nothing to ask %s for (no focus, taxon or extent)", self.name)
            return []

        observations: list[Observation] = []
        for page_number in range(1, self._config.inaturalist_max_pages + 1):
            params = self.build_params(request, page=page_number)
            payload = await self._transport.get_json(self._config.inaturalist_url, params)
            page = parse_envelope(_ResultPage, payload, source=self.name)
            observations.extend(self.parse_results(page.results))
            if page.page * page.per_page >= page.total_results or not page.results:
                break
        else:
            _logger.debug("%s results truncated at %d pages", self.name, self._config.inaturalist_max_pages)
        return observations

    def parse_results(self, results: list[Any]) -> list[Observation]:
        parsed: list[Observation] = []
        for result in parse_records(_Observation, results, source=self.name):
            observation = self._to_observation(result)
            if observation is not None:
                parsed.append(observation)
        return parsed

    def _to_observation(self, result: _Observation) -> Observation | None:
        observed_at = _parse_observed_at(result.time_observed_at)
        if observed_at is None:
            _logger.warning(
                "Dropping %s observation %s: unparseable time %r",
                self.name,
                result.id,
                result.time_observed_at,
            )
            return None
        if result.geojson is None:
            _logger.warning("Dropping %s observation %s: no geometry", self.name, result.id)
            return None

        taxon = self._registry.normalize(result.taxon.name) if result.taxon is not None else None
        try:
            return Observation(
                id=observation_id(self.name, result.id),
                source=SOURCE,
                taxon=taxon,
                coordinates=result.geojson.coordinates,
                observed_at=observed_at,
                body=result.description,
                tags=extract_tags(result.description),
                url=result.uri,
                photos=tuple(photo.url for photo in result.photos),
                obscured="obscured" in (result.geoprivacy, result.taxon_geoprivacy),
            )
        except ValidationError as exc:
            _logger.warning("Dropping %s observation %s: %s", self.name, result.id, exc.errors()[0]["msg"])
            return None

    async def fetch_species_present(self, taxon_id: int, place_id: int) -> list[TaxonNode]:
        """Taxa (with their ancestors) observed under *taxon_id* in *place_id*.

        The result can seed a :class:`~pysightings.taxonomy.TaxonRegistry`
        for a region the packaged table does not cover.
        """
        params = {
            "fields": INATURALIST_SPECIES_COUNTS_FIELDSPEC,
            "include_ancestors": "true",
            "locale": "en-US",
            "place_id": place_id,
            "preferred_place_id": 1,
            "quality_grade": "research",
            "taxon_id": taxon_id,
        }
        payload = await self._transport.get_json(self._config.inaturalist_species_counts_url, params)
        page = parse_envelope(_ResultPage, payload, source=self.name)

        by_id: dict[int, TaxonNode] = {}
        for count in parse_records(_SpeciesCount, page.results, source=self.name):
            for taxon in (count.taxon, *count.taxon.ancestors):
                by_id[taxon.id] = TaxonNode(
                    id=taxon.id,
                    scientific_name=taxon.name,
                    common_name=taxon.preferred_common_name,
                    parent_id=taxon.parent_id,
                )
        return list(by_id.values())

    def tile_url(self, z: int, x: int, y: int, taxon: TaxonNode) -> str:
        """URL of the observation-density grid tile for *taxon*."""
        base = self._config.inaturalist_tiles_url.format(z=z, x=x, y=y)
        query = urlencode({"geoprivacy": "open", "acc_below": 500, "tile_size": 256, "taxon_id": taxon.id})
        return f"{base}?{query}"
