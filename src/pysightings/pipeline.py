"""Aggregation pipeline: concurrent adapter fetches merged by generation.

Every query change starts a new *generation*. Adapters run concurrently
as asyncio tasks tagged with the generation they were started for; a
result is merged only if its generation is still the latest when it
arrives, which is the only synchronization the shared collection needs.
Stale fetches may still be running when a newer generation starts; they
are cancelled when ``cancel_stale_fetches`` is set, and their results
are discarded either way.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from pysightings.config import SightingsConfig
from pysightings.exceptions import SightingsError
from pysightings.models.observation import Observation
from pysightings.models.query import ALL_FIELDS, WORLD, Extent, FetchRequest, QueryField
from pysightings.models.travel import Travel
from pysightings.query import QueryState
from pysightings.reactive import ReactiveValue, Unsubscribe
from pysightings.sources import SourceAdapter
from pysightings.travel import TravelCorrelator

_logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Cycle:
    """One refresh: its generation, the request and the adapters to run."""

    generation: int
    request: FetchRequest
    adapters: list[SourceAdapter]


class AggregationPipeline:
    """Owns the canonical observation collection and keeps it current.

    Usage::

        pipeline = AggregationPipeline(query, adapters, config=config)
        pipeline.subscribe_observations(lambda: render(pipeline.observations.value))
        pipeline.start()
        await pipeline.refresh()
        query.set_taxon("Orcinus orca")  # schedules the next generation
        await pipeline.wait_idle()
    """

    def __init__(
        self,
        query: QueryState,
        adapters: Sequence[SourceAdapter],
        *,
        config: SightingsConfig | None = None,
        extent: Extent = WORLD,
        correlator: TravelCorrelator | None = None,
    ) -> None:
        names = [adapter.name for adapter in adapters]
        if len(set(names)) != len(names):
            raise ValueError(f"adapter names must be unique, got {names}")

        self._query = query
        self._adapters = list(adapters)
        self._config = config or SightingsConfig()
        self._correlator = correlator or TravelCorrelator.from_config(self._config)
        self._extent = extent

        self._generation = 0
        self._contributions: dict[str, dict[str, Observation]] = {}
        self._failed: set[str] = set()
        self._pending: set[str] = set()
        self._inflight: dict[str, tuple[int, asyncio.Task[None]]] = {}
        self._collection: dict[str, Observation] = {}
        self._refreshes: set[asyncio.Task[int]] = set()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._unsubscribe: Unsubscribe | None = None

        self.observations: ReactiveValue[tuple[Observation, ...]] = ReactiveValue(())
        """Merged observations passing the taxon and time filters."""
        self.travels: ReactiveValue[tuple[Travel, ...]] = ReactiveValue(())
        """Links inferred from the full merged collection of the last settled generation."""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Refresh automatically on query changes. Must run inside the event loop."""
        if self._unsubscribe is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._unsubscribe = self._query.subscribe(self._on_query_changed)

    async def stop(self) -> None:
        """Stop reacting to query changes and cancel all outstanding work."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        pending: list[asyncio.Task] = [task for _, task in self._inflight.values()]
        pending.extend(self._refreshes)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._inflight.clear()
        self._loop = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def extent(self) -> Extent:
        return self._extent

    @property
    def collection(self) -> dict[str, Observation]:
        """The full merged collection, before taxon and time filtering."""
        return dict(self._collection)

    @property
    def failed_sources(self) -> frozenset[str]:
        """Adapters whose latest fetch failed and contribute nothing this cycle."""
        return frozenset(self._failed)

    def subscribe_observations(self, callback: Callable[[], None]) -> Unsubscribe:
        return self.observations.subscribe(callback)

    def subscribe_travels(self, callback: Callable[[], None]) -> Unsubscribe:
        return self.travels.subscribe(callback)

    def observations_in_extent(self, extent: Extent) -> list[Observation]:
        return [obs for obs in self.observations.value if extent.contains(obs.longitude, obs.latitude)]

    def set_extent(self, extent: Extent) -> None:
        if extent == self._extent:
            return
        self._extent = extent
        self._on_query_changed(QueryField.EXTENT)

    async def refresh(
        self,
        changed: Iterable[QueryField] | None = None,
        *,
        only: Iterable[str] | None = None,
    ) -> int:
        """Start a generation and wait until its adapters have settled.

        Parameters
        ----------
        changed
            Query fields that changed. Adapters that depend on none of them
            and already hold a settled result are not refetched. ``None``
            refetches every adapter.
        only
            Adapter names to refetch regardless of ``changed``.

        Returns
        -------
        int
            The generation this call started.
        """
        cycle = self._begin(changed, only)
        await self._run(cycle)
        return cycle.generation

    async def wait_idle(self) -> None:
        """Wait until every scheduled refresh has finished."""
        while self._refreshes:
            await asyncio.gather(*list(self._refreshes), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_query_changed(self, field: QueryField) -> None:
        if self._loop is None:
            _logger.debug("Pipeline not started; ignoring %s change", field)
            return
        cycle = self._begin({field}, None)
        task = self._loop.create_task(self._run_scheduled(cycle))
        self._refreshes.add(task)
        task.add_done_callback(self._refreshes.discard)

    async def _run_scheduled(self, cycle: _Cycle) -> int:
        await self._run(cycle)
        return cycle.generation

    def _select(self, changed: frozenset[QueryField], only: frozenset[str]) -> list[SourceAdapter]:
        selected: list[SourceAdapter] = []
        for adapter in self._adapters:
            if (
                adapter.name in only
                or adapter.depends_on & changed
                or adapter.name not in self._contributions
                or adapter.name in self._failed
                or adapter.name in self._pending
            ):
                selected.append(adapter)
        return selected

    def _begin(self, changed: Iterable[QueryField] | None, only: Iterable[str] | None) -> _Cycle:
        self._generation += 1
        generation = self._generation

        changed_fields = ALL_FIELDS if changed is None else frozenset(changed)
        adapters = self._select(changed_fields, frozenset(only or ()))
        self._pending.update(adapter.name for adapter in adapters)

        if self._config.cancel_stale_fetches:
            for name, (task_generation, task) in list(self._inflight.items()):
                if task_generation < generation:
                    _logger.debug("Cancelling %s fetch from generation %d", name, task_generation)
                    task.cancel()
                    del self._inflight[name]

        request = FetchRequest(
            extent=self._extent,
            window=self._query.time_window(),
            taxon_filter=self._query.taxon_filter(),
        )
        _logger.debug(
            "Generation %d: fetching %s",
            generation,
            ", ".join(adapter.name for adapter in adapters) or "nothing",
        )
        # The filters may have changed even if nothing is refetched.
        self._publish()
        return _Cycle(generation=generation, request=request, adapters=adapters)

    async def _run(self, cycle: _Cycle) -> None:
        if cycle.generation != self._generation:
            _logger.debug("Generation %d superseded before it started", cycle.generation)
            return
        tasks: list[asyncio.Task[None]] = []
        for adapter in cycle.adapters:
            task = asyncio.create_task(self._fetch_one(adapter, cycle), name=f"{adapter.name}:{cycle.generation}")
            self._inflight[adapter.name] = (cycle.generation, task)
            tasks.append(task)

        await asyncio.gather(*tasks, return_exceptions=True)

        if cycle.generation != self._generation:
            _logger.debug("Generation %d superseded before it settled", cycle.generation)
            return
        self.travels.set(tuple(self._correlator.correlate(self._collection.values())))

    async def _fetch_one(self, adapter: SourceAdapter, cycle: _Cycle) -> None:
        results: list[Observation] | None
        try:
            results = await asyncio.wait_for(adapter.fetch(cycle.request), self._config.adapter_timeout)
        except asyncio.CancelledError:
            _logger.debug("%s fetch for generation %d cancelled", adapter.name, cycle.generation)
            raise
        except TimeoutError:
            _logger.warning("%s timed out after %.1fs", adapter.name, self._config.adapter_timeout)
            results = None
        except SightingsError as exc:
            _logger.warning("%s failed: %s", adapter.name, exc)
            results = None
        except Exception:
            _logger.exception("%s failed unexpectedly", adapter.name)
            results = None
        self._merge(adapter.name, cycle.generation, results)

    def _merge(self, name: str, generation: int, results: list[Observation] | None) -> None:
        if generation != self._generation:
            _logger.debug(
                "Discarding %s result from generation %d (current %d)",
                name,
                generation,
                self._generation,
            )
            return

        self._pending.discard(name)
        inflight = self._inflight.get(name)
        if inflight is not None and inflight[0] == generation:
            del self._inflight[name]

        if results is None:
            self._failed.add(name)
            self._contributions[name] = {}
        else:
            self._failed.discard(name)
            self._contributions[name] = {obs.id: obs for obs in results}

        collection: dict[str, Observation] = {}
        for adapter in self._adapters:
            collection.update(self._contributions.get(adapter.name, {}))
        self._collection = collection
        self._publish()

    def _publish(self) -> None:
        window = self._query.time_window()
        taxon_filter = self._query.taxon_filter()
        visible = tuple(
            obs
            for obs in self._collection.values()
            if taxon_filter.matches(obs)
            and (window is None or obs.observed_at is None or window.contains(obs.observed_at))
        )
        self.observations.set(visible)
