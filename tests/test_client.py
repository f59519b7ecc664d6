from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import pytest

from pysightings import SightingsClient, SightingsConfig, SightingsError
from pysightings.models.observation import Observation, ObservationSource
from pysightings.sources.local import MemoryStore


class _FakeTransport:
    def __init__(self, responses: Mapping[str, Any]) -> None:
        self._responses = dict(responses)
        self.urls: list[str] = []

    async def get_json(self, url: str, params: Mapping[str, Any] | None = None) -> Any:
        self.urls.append(url)
        return self._responses[url]


def _transport(config: SightingsConfig) -> _FakeTransport:
    return _FakeTransport(
        {
            config.inaturalist_url: {
                "total_results": 1,
                "page": 1,
                "per_page": 200,
                "results": [
                    {
                        "id": 101,
                        "geojson": {"type": "Point", "coordinates": [-123.15, 48.51]},
                        "taxon": {"id": 41521, "name": "Orcinus orca"},
                        "time_observed_at": "2025-01-21T10:00:00-08:00",
                    }
                ],
            },
            config.maplify_url: {
                "count": "1",
                "results": [
                    {
                        "id": 9001,
                        "name": "Killer Whale",
                        "latitude": 48.51,
                        "longitude": -123.15,
                        "created": "2025-01-21 19:30:00",
                        "comments": "J pod",
                    }
                ],
            },
        }
    )


@pytest.mark.asyncio
async def test_client_aggregates_on_enter_and_links_travel() -> None:
    config = SightingsConfig()
    transport = _transport(config)
    params = {"t": "2025-01-21T12:00", "d": "PT12H", "q": "Orcinus orca"}

    async with SightingsClient(config, transport=transport, store=MemoryStore(), params=params) as client:
        ids = {obs.id for obs in client.observations}
        assert ids == {"inaturalist:101", "maplify:9001"}
        assert [(t.from_id, t.to_id) for t in client.travels] == [("inaturalist:101", "maplify:9001")]
        assert client.deep_link_params() == params


@pytest.mark.asyncio
async def test_add_observation_refreshes_local_only() -> None:
    config = SightingsConfig()
    transport = _transport(config)
    store = MemoryStore()

    async with SightingsClient(config, transport=transport, store=store) as client:
        # No focus: the time-based providers are skipped entirely.
        assert transport.urls == []
        changes: list[int] = []
        client.subscribe(lambda: changes.append(len(client.observations)))

        await client.add_observation(
            Observation(
                id="local:mine",
                source=ObservationSource.LOCAL,
                taxon="Orcinus orca",
                coordinates=(-123.0, 48.5),
                observed_at=datetime(2025, 1, 21, 18, 0, tzinfo=UTC),
            )
        )
        assert [obs.id for obs in client.observations] == ["local:mine"]
        assert changes == [1]
        assert store.get("observations") is not None

        assert await client.remove_observation("local:mine") is True
        assert client.observations == ()


@pytest.mark.asyncio
async def test_setters_schedule_a_refresh() -> None:
    config = SightingsConfig()
    transport = _transport(config)

    async with SightingsClient(config, transport=transport) as client:
        client.set_taxon("Orcinus orca")
        client.set_focus("2025-01-21T12:00")
        await client.wait_idle()
        assert "inaturalist:101" in {obs.id for obs in client.observations}
        assert client.tile_url(1, 0, 0) is not None


def test_client_requires_context_manager() -> None:
    client = SightingsClient(SightingsConfig(), transport=_FakeTransport({}))
    with pytest.raises(SightingsError, match="not initialized"):
        _ = client.observations
