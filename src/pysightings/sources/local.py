"""User-entered observations kept in a scoped key/value store.

Observations are stored as a GeoJSON ``FeatureCollection`` string under a
fixed key. Where the store lives (browser storage, a file, memory) is up
to the caller; :class:`MemoryStore` is the in-process default.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Literal, Protocol

from pydantic import Field, ValidationError

from pysightings._constants import LOCAL_OBSERVATIONS_KEY
from pysightings.config import SightingsConfig
from pysightings.exceptions import QueryValueError, SightingsPayloadError
from pysightings.heuristics import extract_tags
from pysightings.models._base import SightingsBaseModel
from pysightings.models.observation import Observation, ObservationSource, ObservationTags, observation_id
from pysightings.models.query import FetchRequest, QueryField
from pysightings.query import parse_instant
from pysightings.sources._common import parse_envelope, parse_records
from pysightings.taxonomy import TaxonRegistry

_logger = logging.getLogger(__name__)

SOURCE = ObservationSource.LOCAL

# Properties copied onto the record as stored; the rest need normalizing.
_STORED_FIELDS = ("kind", "count", "url", "name", "network", "obscured")


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryStore:
    """Dict-backed :class:`KeyValueStore`."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class _Point(SightingsBaseModel):
    type: Literal["Point"] = "Point"
    coordinates: tuple[float, float]


class _Feature(SightingsBaseModel):
    type: Literal["Feature"] = "Feature"
    id: str | int
    geometry: _Point
    properties: dict[str, Any] = Field(default_factory=dict)


class _FeatureCollection(SightingsBaseModel):
    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: list[Any] = Field(default_factory=list)


def to_feature(observation: Observation) -> dict[str, Any]:
    """GeoJSON feature for *observation*; the canonical id is kept verbatim.

    All model fields are written, so a replayed provider record reads back
    unchanged.
    """
    exclude = {"id", "coordinates", "observed_at"}
    if observation.tags == ObservationTags():
        # Untagged records get tags derived from the body on read.
        exclude.add("tags")
    properties = observation.model_dump(mode="json", exclude=exclude, exclude_none=True)
    if observation.observed_at is not None:
        properties["observedAt"] = observation.observed_at.isoformat()
    return {
        "type": "Feature",
        "id": observation.id,
        "geometry": {"type": "Point", "coordinates": list(observation.coordinates)},
        "properties": properties,
    }


def _canonical_id(raw_id: str | int) -> str:
    raw_id = str(raw_id)
    return raw_id if ":" in raw_id else observation_id(SOURCE.value, raw_id)


def _feature_id(feature: Any) -> str | None:
    if isinstance(feature, dict) and isinstance(feature.get("id"), (str, int)):
        return _canonical_id(feature["id"])
    return None


class LocalStorageAdapter:
    """Reads (and writes) observations entered on this device. No network I/O.

    A feature id that is already namespaced (``inaturalist:123``) is a
    replayed provider observation and keeps that id, so it deduplicates
    against the provider's own record.

    Writes touch only the feature they target. Other entries, including
    ones :meth:`read` cannot turn into observations, stay as stored.
    """

    name = SOURCE.value
    depends_on: frozenset[QueryField] = frozenset()

    def __init__(
        self,
        config: SightingsConfig,
        store: KeyValueStore,
        registry: TaxonRegistry,
        *,
        key: str = LOCAL_OBSERVATIONS_KEY,
    ) -> None:
        self._config = config
        self._store = store
        self._registry = registry
        self._key = key

    async def fetch(self, request: FetchRequest) -> list[Observation]:
        return self.read()

    def read(self) -> list[Observation]:
        observations: list[Observation] = []
        for feature in parse_records(_Feature, self._load(), source=self.name):
            observation = self._to_observation(feature)
            if observation is not None:
                observations.append(observation)
        return observations

    def add(self, observation: Observation) -> None:
        """Store *observation*, replacing any stored feature with the same id."""
        features = self._load()
        feature = to_feature(observation)
        for index, stored in enumerate(features):
            if _feature_id(stored) == observation.id:
                features[index] = feature
                break
        else:
            features.append(feature)
        self._save(features)

    def remove(self, obs_id: str) -> bool:
        features = self._load()
        kept = [feature for feature in features if _feature_id(feature) != obs_id]
        if len(kept) == len(features):
            return False
        self._save(kept)
        return True

    def clear(self) -> None:
        self._save([])

    def _load(self) -> list[Any]:
        data = self._store.get(self._key)
        if not data:
            return []
        try:
            payload = json.loads(data)
        except json.JSONDecodeError as exc:
            raise SightingsPayloadError(f"Stored observations are not JSON: {exc}", source=self.name) from exc
        return list(parse_envelope(_FeatureCollection, payload, source=self.name).features)

    def _save(self, features: list[Any]) -> None:
        collection = {"type": "FeatureCollection", "features": features}
        self._store.set(self._key, json.dumps(collection, separators=(",", ":")))

    def _to_observation(self, feature: _Feature) -> Observation | None:
        props = feature.properties
        canonical_id = _canonical_id(feature.id)

        try:
            source = ObservationSource(props.get("source", SOURCE.value))
        except ValueError:
            source = SOURCE

        body = props.get("body") if isinstance(props.get("body"), str) else None
        taxon = props.get("taxon")
        record = {key: props[key] for key in _STORED_FIELDS if props.get(key) is not None}
        try:
            return Observation.model_validate(
                {
                    **record,
                    "id": canonical_id,
                    "source": source,
                    "taxon": self._registry.normalize(taxon) if isinstance(taxon, str) and taxon else None,
                    "coordinates": feature.geometry.coordinates,
                    "observed_at": self._parse_observed_at(props.get("observedAt"), canonical_id),
                    "body": body,
                    "tags": self._stored_tags(props.get("tags"), body, canonical_id),
                    "photos": tuple(props.get("photos") or ()),
                }
            )
        except ValidationError as exc:
            _logger.warning("Dropping stored observation %s: %s", canonical_id, exc.errors()[0]["msg"])
            return None

    def _stored_tags(self, value: Any, body: str | None, canonical_id: str) -> ObservationTags:
        # Hand-entered features carry no tags; derive them from the text.
        if value is None:
            return extract_tags(body)
        try:
            return ObservationTags.model_validate(value)
        except ValidationError:
            _logger.warning("Stored observation %s has invalid tags; re-deriving them", canonical_id)
            return extract_tags(body)

    def _parse_observed_at(self, value: Any, canonical_id: str) -> datetime | None:
        if not isinstance(value, str) or not value:
            return None
        try:
            # Entered times are naive local wall-clock times.
            return parse_instant(value, self._config.local_zone)
        except QueryValueError:
            _logger.warning("Stored observation %s has unparseable time %r; keeping it untimed", canonical_id, value)
            return None
