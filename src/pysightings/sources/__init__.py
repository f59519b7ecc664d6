"""Source adapters.

Each adapter turns one provider's payloads into canonical
:class:`~pysightings.models.Observation` records. Adapters share an
interface, not a base class: each is a function of its inputs plus I/O.
"""

from __future__ import annotations

from typing import Protocol

from pysightings._transport import Transport
from pysightings.config import SightingsConfig
from pysightings.models.observation import Observation
from pysightings.models.query import FetchRequest, QueryField
from pysightings.sources.inaturalist import INaturalistAdapter
from pysightings.sources.local import KeyValueStore, LocalStorageAdapter, MemoryStore
from pysightings.sources.maplify import MaplifyAdapter
from pysightings.sources.wsf import FerryAdapter
from pysightings.taxonomy import TaxonRegistry


class SourceAdapter(Protocol):
    """Structural interface the pipeline drives.

    ``depends_on`` names the query fields whose change makes a refetch
    necessary; an adapter that depends on nothing keeps its last result
    until an explicit refresh.
    """

    name: str
    depends_on: frozenset[QueryField]

    async def fetch(self, request: FetchRequest) -> list[Observation]:
        ...


def build_default_adapters(
    config: SightingsConfig,
    transport: Transport,
    registry: TaxonRegistry,
    store: KeyValueStore,
) -> list[SourceAdapter]:
    """All adapters the configuration allows, in merge order."""
    adapters: list[SourceAdapter] = [
        INaturalistAdapter(config, transport, registry),
        MaplifyAdapter(config, transport, registry),
    ]
    if config.wsf_access_code:
        adapters.append(FerryAdapter(config, transport))
    adapters.append(LocalStorageAdapter(config, store, registry))
    return adapters


__all__ = [
    "FerryAdapter",
    "INaturalistAdapter",
    "KeyValueStore",
    "LocalStorageAdapter",
    "MaplifyAdapter",
    "MemoryStore",
    "SourceAdapter",
    "build_default_adapters",
]
