from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from pysightings.config import SightingsConfig
from pysightings.exceptions import SightingsPayloadError
from pysightings.heuristics import extract_tags
from pysightings.models.observation import (
    Ecotype,
    Heading,
    Observation,
    ObservationKind,
    ObservationSource,
)
from pysightings.models.query import Extent, FetchRequest, TimeWindow
from pysightings.sources import build_default_adapters
from pysightings.sources.inaturalist import INaturalistAdapter
from pysightings.sources.local import LocalStorageAdapter, MemoryStore
from pysightings.sources.maplify import MaplifyAdapter, parse_local_timestamp
from pysightings.sources.wsf import FerryAdapter, parse_vessel_timestamp
from pysightings.taxonomy import default_registry

SALISH_SEA = Extent(min_lon=-125.0, min_lat=47.0, max_lon=-122.0, max_lat=49.5)
WINDOW = TimeWindow(
    start=datetime(2025, 1, 21, 12, 0, tzinfo=UTC),
    end=datetime(2025, 1, 22, 12, 0, tzinfo=UTC),
)


class _FakeTransport:
    def __init__(self, responses: Mapping[str, Any]) -> None:
        self._responses = dict(responses)
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def get_json(self, url: str, params: Mapping[str, Any] | None = None) -> Any:
        self.calls.append((url, dict(params or {})))
        return self._responses[url]


def _request(taxon: str | None = "Orcinus orca", window: TimeWindow | None = WINDOW) -> FetchRequest:
    registry = default_registry()
    node = registry.lookup(taxon) if taxon else None
    return FetchRequest(extent=SALISH_SEA, window=window, taxon_filter=registry.taxon_filter(node))


# ----------------------------------------------------------------------
# Citizen-science provider
# ----------------------------------------------------------------------


def _inat_page(results: list[dict[str, Any]]) -> dict[str, Any]:
    return {"total_results": len(results), "page": 1, "per_page": 200, "results": results}


def test_inaturalist_params_cover_taxon_dates_and_extent() -> None:
    config = SightingsConfig()
    adapter = INaturalistAdapter(config, _FakeTransport({}), default_registry())

    params = adapter.build_params(_request())
    assert params is not None
    assert params["taxon_id"] == 41521
    # 12:00Z is 04:00 Pacific on the 21st and 22nd.
    assert params["d1"] == "2025-01-21"
    assert params["d2"] == "2025-01-22"
    assert params["nelat"] == "49.500000"
    assert params["swlng"] == "-125.000000"
    assert params["per_page"] == 200


def test_inaturalist_skips_without_focus_or_resolved_taxon() -> None:
    adapter = INaturalistAdapter(SightingsConfig(), _FakeTransport({}), default_registry())
    assert adapter.build_params(_request(window=None)) is None
    assert adapter.build_params(_request(taxon=None)) is None


@pytest.mark.asyncio
async def test_inaturalist_skips_extent_outside_the_globe() -> None:
    config = SightingsConfig()
    transport = _FakeTransport({})
    adapter = INaturalistAdapter(config, transport, default_registry())
    offworld = Extent(min_lon=-125.0, min_lat=91.0, max_lon=-122.0, max_lat=95.0)

    assert await adapter.fetch(_request().model_copy(update={"extent": offworld})) == []
    assert transport.calls == []


def test_extent_clamped_keeps_the_overlap() -> None:
    wide = Extent(min_lon=-200.0, min_lat=-95.0, max_lon=-100.0, max_lat=10.0)
    assert wide.clamped() == Extent(min_lon=-180.0, min_lat=-90.0, max_lon=-100.0, max_lat=10.0)
    assert Extent(min_lon=181.0, min_lat=0.0, max_lon=182.0, max_lat=1.0).clamped() is None


class _PagedTransport:
    def __init__(self, pages: list[dict[str, Any]]) -> None:
        self._pages = pages
        self.calls: list[dict[str, Any]] = []

    async def get_json(self, url: str, params: Mapping[str, Any] | None = None) -> Any:
        query = dict(params or {})
        self.calls.append(query)
        return self._pages[query["page"] - 1]


def _inat_record(obs_id: int) -> dict[str, Any]:
    return {
        "id": obs_id,
        "geojson": {"type": "Point", "coordinates": [-123.0, 48.5]},
        "taxon": {"id": 41521, "name": "Orcinus orca"},
        "time_observed_at": "2025-01-21T10:00:00-08:00",
    }


@pytest.mark.asyncio
async def test_inaturalist_follows_pages_until_total_is_reached() -> None:
    config = SightingsConfig(page_size=2)
    pages = [
        {"total_results": 3, "page": 1, "per_page": 2, "results": [_inat_record(1), _inat_record(2)]},
        {"total_results": 3, "page": 2, "per_page": 2, "results": [_inat_record(3)]},
    ]
    transport = _PagedTransport(pages)
    adapter = INaturalistAdapter(config, transport, default_registry())

    observations = await adapter.fetch(_request())

    assert [call["page"] for call in transport.calls] == [1, 2]
    assert all(call["per_page"] == 2 for call in transport.calls)
    assert [obs.id for obs in observations] == ["inaturalist:1", "inaturalist:2", "inaturalist:3"]


@pytest.mark.asyncio
async def test_inaturalist_stops_at_page_cap(caplog: pytest.LogCaptureFixture) -> None:
    config = SightingsConfig(page_size=2, inaturalist_max_pages=2)
    pages = [
        {"total_results": 10, "page": page, "per_page": 2, "results": [_inat_record(2 * page - 1), _inat_record(2 * page)]}
        for page in range(1, 6)
    ]
    transport = _PagedTransport(pages)
    adapter = INaturalistAdapter(config, transport, default_registry())

    with caplog.at_level("DEBUG", logger="pysightings.sources.inaturalist"):
        observations = await adapter.fetch(_request())

    assert len(transport.calls) == 2
    assert len(observations) == 4
    assert "truncated at 2 pages" in caplog.text


@pytest.mark.asyncio
async def test_inaturalist_fetch_drops_records_without_time() -> None:
    config = SightingsConfig()
    payload = _inat_page(
        [
            {
                "id": 101,
                "description": "J pod heading north",
                "geojson": {"type": "Point", "coordinates": [-123.15, 48.51]},
                "taxon": {"id": 41521, "name": "Orcinus orca"},
                "time_observed_at": "2025-01-21T10:00:00-08:00",
                "uri": "https://www.inaturalist.org/observations/101",
                "photos": [{"url": "https://example.test/101.jpg"}],
            },
            {
                "id": 102,
                "geojson": {"type": "Point", "coordinates": [-123.0, 48.4]},
                "taxon": {"id": 41521, "name": "Orcinus orca"},
                "time_observed_at": None,
            },
        ]
    )
    transport = _FakeTransport({config.inaturalist_url: payload})
    adapter = INaturalistAdapter(config, transport, default_registry())

    observations = await adapter.fetch(_request())

    assert len(transport.calls) == 1
    assert [obs.id for obs in observations] == ["inaturalist:101"]
    obs = observations[0]
    assert obs.source == ObservationSource.INATURALIST
    assert obs.taxon == "Orcinus orca"
    assert obs.coordinates == (-123.15, 48.51)
    assert obs.observed_at == datetime(2025, 1, 21, 18, 0, tzinfo=UTC)
    assert obs.tags.pod == "J"
    assert obs.tags.heading == Heading.NORTH
    assert obs.photos == ("https://example.test/101.jpg",)


@pytest.mark.asyncio
async def test_inaturalist_bad_envelope_is_a_payload_error() -> None:
    config = SightingsConfig()
    adapter = INaturalistAdapter(config, _FakeTransport({config.inaturalist_url: {"error": "nope"}}), default_registry())
    with pytest.raises(SightingsPayloadError):
        await adapter.fetch(_request())


@pytest.mark.asyncio
async def test_inaturalist_species_present_flattens_ancestors() -> None:
    config = SightingsConfig()
    payload = {
        "total_results": 1,
        "page": 1,
        "per_page": 500,
        "results": [
            {
                "count": 12,
                "taxon": {
                    "id": 41521,
                    "name": "Orcinus orca",
                    "parent_id": 41520,
                    "preferred_common_name": "Killer Whale",
                    "ancestors": [{"id": 41520, "name": "Orcinus", "parent_id": 41479}],
                },
            }
        ],
    }
    transport = _FakeTransport({config.inaturalist_species_counts_url: payload})
    adapter = INaturalistAdapter(config, transport, default_registry())

    taxa = await adapter.fetch_species_present(152871, 10)
    assert {taxon.scientific_name for taxon in taxa} == {"Orcinus orca", "Orcinus"}
    assert transport.calls[0][1]["place_id"] == 10


def test_inaturalist_tile_url_carries_taxon() -> None:
    adapter = INaturalistAdapter(SightingsConfig(), _FakeTransport({}), default_registry())
    node = default_registry().lookup("Orcinus orca")
    assert node is not None
    url = adapter.tile_url(5, 4, 11, node)
    assert url.startswith("https://tiles.inaturalist.org/v2/grid/5/4/11.png?")
    assert "taxon_id=41521" in url


# ----------------------------------------------------------------------
# Regional sightings network
# ----------------------------------------------------------------------


def _maplify_results() -> list[dict[str, Any]]:
    return [
        {
            "id": 9001,
            "name": "Killer Whale",
            "latitude": 48.5,
            "longitude": -123.1,
            "number_sighted": "3",
            "created": "2025-01-21 17:50:00",
            "comments": "J pod southern residents northbound",
            "source": "whale_alert",
        },
        {
            "id": 9002,
            "name": "Humpback Whale",
            "latitude": 48.6,
            "longitude": -123.2,
            "created": "2025-01-21 18:10:00",
        },
    ]


def test_maplify_params_use_three_decimal_bbox() -> None:
    adapter = MaplifyAdapter(SightingsConfig(), _FakeTransport({}), default_registry())
    params = adapter.build_params(_request())
    assert params == {"start": "2025-01-21", "end": "2025-01-22", "BBOX": "-125.000,47.000,-122.000,49.500"}
    assert adapter.build_params(_request(window=None)) is None


@pytest.mark.asyncio
async def test_maplify_filters_by_taxon_closure_and_applies_ecotype() -> None:
    config = SightingsConfig()
    transport = _FakeTransport({config.maplify_url: {"count": "2", "results": _maplify_results()}})
    adapter = MaplifyAdapter(config, transport, default_registry())

    observations = await adapter.fetch(_request("Orcinus orca"))

    assert [obs.id for obs in observations] == ["maplify:9001"]
    obs = observations[0]
    assert obs.taxon == "Orcinus orca ater"
    assert obs.tags.ecotype == Ecotype.SRKW
    assert obs.tags.pod == "J"
    assert obs.count == 3
    assert obs.network == "whale_alert"
    assert obs.observed_at == datetime(2025, 1, 21, 17, 50, tzinfo=UTC)


def test_maplify_timestamps_follow_regional_zone() -> None:
    config = SightingsConfig(regional_time_zone="America/Los_Angeles")
    adapter = MaplifyAdapter(config, _FakeTransport({}), default_registry())
    observations = adapter.parse_results(_maplify_results(), _request("Cetacea").taxon_filter)

    by_id = {obs.id: obs for obs in observations}
    assert set(by_id) == {"maplify:9001", "maplify:9002"}
    assert by_id["maplify:9001"].observed_at == datetime(2025, 1, 22, 1, 50, tzinfo=UTC)


def test_maplify_scientific_name_wins_over_common_name() -> None:
    adapter = MaplifyAdapter(SightingsConfig(), _FakeTransport({}), default_registry())
    results = [
        {
            "id": 9003,
            "name": "Orca",
            "scientific_name": "Orcinus orca ater",
            "latitude": 48.5,
            "longitude": -123.1,
            "created": "2025-01-21 17:50:00",
        }
    ]

    observations = adapter.parse_results(results, _request("Orcinus orca ater").taxon_filter)
    assert [obs.taxon for obs in observations] == ["Orcinus orca ater"]


def test_maplify_ecotype_does_not_override_named_subspecies() -> None:
    adapter = MaplifyAdapter(SightingsConfig(), _FakeTransport({}), default_registry())
    results = [
        {
            "id": 9004,
            "name": "Killer Whale",
            "scientific_name": "Orcinus orca ater",
            "latitude": 48.5,
            "longitude": -123.1,
            "comments": "possibly transients?",
        }
    ]

    [obs] = adapter.parse_results(results, _request("Orcinus orca").taxon_filter)
    assert obs.taxon == "Orcinus orca ater"
    assert obs.tags.ecotype == Ecotype.BIGGS


def test_maplify_skips_extent_outside_the_globe() -> None:
    adapter = MaplifyAdapter(SightingsConfig(), _FakeTransport({}), default_registry())
    offworld = Extent(min_lon=190.0, min_lat=47.0, max_lon=200.0, max_lat=49.5)
    request = _request().model_copy(update={"extent": offworld})
    assert adapter.build_params(request) is None


def test_parse_local_timestamp_rejects_garbage() -> None:
    assert parse_local_timestamp("sometime", UTC) is None
    assert parse_local_timestamp(None, UTC) is None


def test_maplify_unparseable_time_is_kept_untimed() -> None:
    adapter = MaplifyAdapter(SightingsConfig(), _FakeTransport({}), default_registry())
    results = [{"id": 1, "name": "Minke", "latitude": 48.0, "longitude": -123.0, "created": "??"}]
    observations = adapter.parse_results(results, _request("Cetacea").taxon_filter)
    assert len(observations) == 1
    assert observations[0].observed_at is None
    assert observations[0].taxon == "Balaenoptera acutorostrata"


# ----------------------------------------------------------------------
# Vessel tracking
# ----------------------------------------------------------------------


def _vessels() -> list[dict[str, Any]]:
    return [
        {
            "VesselID": 2,
            "VesselName": "Chelan",
            "Latitude": 48.52,
            "Longitude": -122.95,
            "Heading": 10,
            "InService": True,
            "AtDock": False,
            "TimeStamp": "/Date(1736967000000-0800)/",
        },
        {
            "VesselID": 3,
            "VesselName": "Docked",
            "Latitude": 48.51,
            "Longitude": -122.68,
            "InService": True,
            "AtDock": True,
            "TimeStamp": "/Date(1736967000000-0800)/",
        },
        {
            "VesselID": 4,
            "VesselName": "Laid Up",
            "Latitude": 47.6,
            "Longitude": -122.3,
            "InService": False,
            "AtDock": False,
            "TimeStamp": "/Date(1736967000000-0800)/",
        },
    ]


def test_parse_vessel_timestamp() -> None:
    assert parse_vessel_timestamp("/Date(1736967000000-0800)/") == datetime(2025, 1, 15, 18, 50, tzinfo=UTC)
    assert parse_vessel_timestamp("2025-01-15") is None
    assert parse_vessel_timestamp(None) is None


@pytest.mark.asyncio
async def test_ferry_adapter_keeps_vessels_under_way() -> None:
    config = SightingsConfig(wsf_access_code="c0ffee")
    transport = _FakeTransport({config.wsf_url: _vessels()})
    adapter = FerryAdapter(config, transport)

    observations = await adapter.fetch(_request())

    assert transport.calls[0][1] == {"apiaccesscode": "c0ffee"}
    assert [obs.id for obs in observations] == ["wsf:2"]
    vessel = observations[0]
    assert vessel.kind == ObservationKind.FERRY
    assert vessel.taxon is None
    assert vessel.name == "Chelan"
    assert vessel.tags.heading == Heading.NORTH


@pytest.mark.asyncio
async def test_ferry_adapter_rejects_non_list_payload() -> None:
    config = SightingsConfig(wsf_access_code="c0ffee")
    adapter = FerryAdapter(config, _FakeTransport({config.wsf_url: {"Message": "bad code"}}))
    with pytest.raises(SightingsPayloadError):
        await adapter.fetch(_request())


# ----------------------------------------------------------------------
# Local storage
# ----------------------------------------------------------------------


def _local(store: MemoryStore | None = None) -> LocalStorageAdapter:
    return LocalStorageAdapter(SightingsConfig(), store or MemoryStore(), default_registry())


def test_local_round_trip_keeps_ids_and_times() -> None:
    adapter = _local()
    entered = Observation(
        id="local:abc",
        source=ObservationSource.LOCAL,
        taxon="Orcinus orca",
        coordinates=(-123.0, 48.5),
        observed_at=datetime(2025, 1, 21, 18, 0, tzinfo=UTC),
        body="T65As passing",
    )
    adapter.add(entered)

    [stored] = adapter.read()
    assert stored.id == "local:abc"
    assert stored.observed_at == entered.observed_at
    assert stored.tags.individuals == ("T65As",)


def test_local_replayed_provider_ids_are_kept() -> None:
    features = {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "id": "inaturalist:101",
                "geometry": {"type": "Point", "coordinates": [-123.15, 48.51]},
                "properties": {"source": "inaturalist", "taxon": "killer whale"},
            },
            {
                "type": "Feature",
                "id": "xyz",
                "geometry": {"type": "Point", "coordinates": [-123.0, 48.0]},
                "properties": {"observedAt": "2025-01-21T17:50"},
            },
        ],
    }
    adapter = _local(MemoryStore({"observations": json.dumps(features)}))

    by_id = {obs.id: obs for obs in adapter.read()}
    assert set(by_id) == {"inaturalist:101", "local:xyz"}
    assert by_id["inaturalist:101"].source == ObservationSource.INATURALIST
    assert by_id["inaturalist:101"].taxon == "Orcinus orca"
    # Entered times are local wall-clock (PST here).
    assert by_id["local:xyz"].observed_at == datetime(2025, 1, 21, 17, 50, tzinfo=UTC) + timedelta(hours=8)


def test_local_add_replaces_same_id_and_remove_clear() -> None:
    adapter = _local()
    first = Observation(id="local:1", source=ObservationSource.LOCAL, coordinates=(-123.0, 48.5), count=1)
    second = first.model_copy(update={"count": 4})
    adapter.add(first)
    adapter.add(second)
    assert [obs.count for obs in adapter.read()] == [4]

    assert adapter.remove("local:missing") is False
    assert adapter.remove("local:1") is True
    assert adapter.read() == []

    adapter.add(first)
    adapter.clear()
    assert adapter.read() == []


def test_local_writes_leave_other_features_untouched() -> None:
    observer = {
        "type": "Feature",
        "id": "observer-feature",
        "geometry": {"type": "Point", "coordinates": [-123.0, 48.0]},
        "properties": {"observedAt": "2025-01-21T17:50", "vantage": "Lime Kiln"},
    }
    bearing = {
        "type": "Feature",
        "id": "bearing-1",
        "geometry": {"type": "LineString", "coordinates": [[-123.0, 48.0], [-123.1, 48.1]]},
        "properties": {},
    }
    store = MemoryStore({"observations": json.dumps({"type": "FeatureCollection", "features": [observer, bearing]})})
    adapter = _local(store)

    adapter.add(Observation(id="local:new", source=ObservationSource.LOCAL, coordinates=(-123.2, 48.2)))

    features = json.loads(store.get("observations"))["features"]
    assert [feature["id"] for feature in features] == ["observer-feature", "bearing-1", "local:new"]
    assert features[:2] == [observer, bearing]

    assert adapter.remove("local:observer-feature") is True
    features = json.loads(store.get("observations"))["features"]
    assert [feature["id"] for feature in features] == ["bearing-1", "local:new"]


def test_local_replayed_provider_record_survives_storage() -> None:
    body = "J pod southern residents northbound"
    replayed = Observation(
        id="maplify:9001",
        source=ObservationSource.MAPLIFY,
        taxon="Orcinus orca ater",
        coordinates=(-123.1, 48.5),
        observed_at=datetime(2025, 1, 21, 17, 50, tzinfo=UTC),
        count=3,
        body=body,
        tags=extract_tags(body),
        photos=("https://example.test/9001.jpg",),
        network="whale_alert",
        obscured=True,
    )
    vessel = Observation(
        id="wsf:18",
        source=ObservationSource.WSF,
        kind=ObservationKind.FERRY,
        coordinates=(-122.9, 48.6),
        observed_at=datetime(2025, 1, 21, 18, 0, tzinfo=UTC),
        name="Samish",
    )
    adapter = _local()
    adapter.add(replayed)
    adapter.add(vessel)

    assert adapter.read() == [replayed, vessel]


def test_local_corrupt_store_is_a_payload_error() -> None:
    adapter = _local(MemoryStore({"observations": "{not json"}))
    with pytest.raises(SightingsPayloadError):
        adapter.read()


def test_default_adapters_skip_ferries_without_access_code() -> None:
    registry = default_registry()
    names = [adapter.name for adapter in build_default_adapters(SightingsConfig(), _FakeTransport({}), registry, MemoryStore())]
    assert names == ["inaturalist", "maplify", "local"]

    config = SightingsConfig(wsf_access_code="c0ffee")
    names = [adapter.name for adapter in build_default_adapters(config, _FakeTransport({}), registry, MemoryStore())]
    assert names == ["inaturalist", "maplify", "wsf", "local"]
