"""High-level async client for the sightings aggregator."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timedelta
from typing import Any

import aiohttp

from pysightings._transport import HttpTransport, Transport
from pysightings.config import SightingsConfig
from pysightings.exceptions import SightingsError
from pysightings.models.observation import Observation
from pysightings.models.query import WORLD, Extent, QueryField
from pysightings.models.taxon import TaxonNode
from pysightings.models.travel import Travel
from pysightings.pipeline import AggregationPipeline
from pysightings.query import QueryState
from pysightings.reactive import Unsubscribe
from pysightings.sources import SourceAdapter, build_default_adapters
from pysightings.sources.inaturalist import INaturalistAdapter
from pysightings.sources.local import KeyValueStore, LocalStorageAdapter, MemoryStore
from pysightings.taxonomy import TaxonRegistry, default_registry

_logger = logging.getLogger(__name__)


class SightingsClient:
    """Async client wiring query state, source adapters and the pipeline.

    Usage::

        async with SightingsClient(config) as client:
            client.subscribe(lambda: print(len(client.observations)))
            client.set_focus("2025-01-21T17:50")
            client.set_taxon("Orcinus orca")
            await client.wait_idle()
    """

    def __init__(
        self,
        config: SightingsConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        registry: TaxonRegistry | None = None,
        store: KeyValueStore | None = None,
        adapters: Sequence[SourceAdapter] | None = None,
        extent: Extent = WORLD,
        params: Mapping[str, Any] | None = None,
    ) -> None:
        self._config = (config or SightingsConfig()).validate()
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._registry = registry or default_registry()
        self._store: KeyValueStore = store if store is not None else MemoryStore()
        self._adapters = list(adapters) if adapters is not None else None
        self._extent = extent
        self._query = QueryState(self._registry, self._config)
        if params:
            self._query.apply_params(params)
        self._pipeline: AggregationPipeline | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SightingsClient:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpTransport(self._http_session)
        if self._adapters is None:
            self._adapters = build_default_adapters(self._config, self._transport, self._registry, self._store)

        self._pipeline = AggregationPipeline(
            self._query,
            self._adapters,
            config=self._config,
            extent=self._extent,
        )
        self._pipeline.start()
        await self._pipeline.refresh()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._pipeline is not None:
            await self._pipeline.stop()
            self._pipeline = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> SightingsConfig:
        return self._config

    @property
    def query(self) -> QueryState:
        return self._query

    @property
    def registry(self) -> TaxonRegistry:
        return self._registry

    @property
    def pipeline(self) -> AggregationPipeline:
        return self._require_pipeline()

    @property
    def observations(self) -> tuple[Observation, ...]:
        return self._require_pipeline().observations.value

    @property
    def travels(self) -> tuple[Travel, ...]:
        return self._require_pipeline().travels.value

    def observations_in_extent(self, extent: Extent) -> list[Observation]:
        return self._require_pipeline().observations_in_extent(extent)

    def subscribe(self, callback: Callable[[], None]) -> Unsubscribe:
        """Call *callback* whenever the published observation collection changes."""
        return self._require_pipeline().subscribe_observations(callback)

    def subscribe_travels(self, callback: Callable[[], None]) -> Unsubscribe:
        return self._require_pipeline().subscribe_travels(callback)

    def subscribe_query(self, callback: Callable[[QueryField], None]) -> Unsubscribe:
        return self._query.subscribe(callback)

    def deep_link_params(self) -> dict[str, str]:
        return self._query.to_params()

    # ------------------------------------------------------------------
    # Query setters
    # ------------------------------------------------------------------

    def set_focus(self, value: datetime | str | None) -> bool:
        return self._query.set_focus(value)

    def set_time_scale(self, value: timedelta | str | None) -> bool:
        return self._query.set_time_scale(value)

    def set_taxon(self, value: TaxonNode | str) -> bool:
        return self._query.set_taxon(value)

    def set_extent(self, extent: Extent) -> None:
        self._extent = extent
        self._require_pipeline().set_extent(extent)

    async def wait_idle(self) -> None:
        await self._require_pipeline().wait_idle()

    async def refresh(self) -> int:
        """Refetch every adapter, including those no query change affects."""
        return await self._require_pipeline().refresh()

    # ------------------------------------------------------------------
    # Locally entered observations
    # ------------------------------------------------------------------

    async def add_observation(self, observation: Observation) -> None:
        """Store *observation* on this device and merge it into the collection."""
        local = self._require_local()
        local.add(observation)
        await self._require_pipeline().refresh((), only={local.name})

    async def remove_observation(self, obs_id: str) -> bool:
        local = self._require_local()
        removed = local.remove(obs_id)
        if removed:
            await self._require_pipeline().refresh((), only={local.name})
        return removed

    # ------------------------------------------------------------------
    # Provider helpers
    # ------------------------------------------------------------------

    async def species_present(self, taxon_id: int, place_id: int) -> list[TaxonNode]:
        """Taxa recorded under *taxon_id* in *place_id* by the citizen-science provider."""
        return await self._require_inaturalist().fetch_species_present(taxon_id, place_id)

    def tile_url(self, z: int, x: int, y: int) -> str | None:
        """Density tile URL for the current taxon, if it resolved."""
        node = self._query.taxon.value.node
        if node is None:
            return None
        return self._require_inaturalist().tile_url(z, x, y, node)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_pipeline(self) -> AggregationPipeline:
        if self._pipeline is None:
            raise SightingsError("Client not initialized. Use 'async with SightingsClient(...) as client:'")
        return self._pipeline

    def _require_adapter(self, kind: type[Any]) -> Any:
        for adapter in self._adapters or ():
            if isinstance(adapter, kind):
                return adapter
        raise SightingsError(f"No {kind.__name__} configured")

    def _require_local(self) -> LocalStorageAdapter:
        adapter: LocalStorageAdapter = self._require_adapter(LocalStorageAdapter)
        return adapter

    def _require_inaturalist(self) -> INaturalistAdapter:
        adapter: INaturalistAdapter = self._require_adapter(INaturalistAdapter)
        return adapter
