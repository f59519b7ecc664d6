"""Vessel-tracking adapter (Washington State Ferries vessel locations).

Vessels are not wildlife; they are carried through the canonical
observation shape only so they can be displayed next to sightings.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from typing import Any

from pydantic import Field, RootModel, ValidationError

from pysightings._transport import Transport
from pysightings.config import SightingsConfig
from pysightings.heuristics import heading_from_bearing
from pysightings.models._base import SightingsBaseModel
from pysightings.models.observation import (
    Observation,
    ObservationKind,
    ObservationSource,
    ObservationTags,
    observation_id,
)
from pysightings.models.query import FetchRequest, QueryField
from pysightings.sources._common import parse_envelope, parse_records

_logger = logging.getLogger(__name__)

SOURCE = ObservationSource.WSF

# e.g. "/Date(1736967000000-0800)/": epoch milliseconds, then a display offset.
_EPOCH_RE = re.compile(r"/Date\((?P<ms>-?\d+)(?:[+-]\d{4})?\)/")


class _VesselLocation(SightingsBaseModel):
    vessel_id: int = Field(validation_alias="VesselID")
    vessel_name: str = Field(validation_alias="VesselName")
    latitude: float = Field(validation_alias="Latitude")
    longitude: float = Field(validation_alias="Longitude")
    heading: float | None = Field(default=None, validation_alias="Heading")
    in_service: bool = Field(default=False, validation_alias="InService")
    at_dock: bool = Field(default=True, validation_alias="AtDock")
    timestamp: str | None = Field(default=None, validation_alias="TimeStamp")


class _Fleet(RootModel[list[Any]]):
    """The feed answers with a bare JSON array."""


def parse_vessel_timestamp(value: str | None) -> datetime | None:
    """Extract the epoch-millisecond instant embedded in a vendor timestamp token."""
    if not value:
        return None
    match = _EPOCH_RE.search(value)
    if match is None:
        return None
    try:
        return datetime.fromtimestamp(int(match.group("ms")) / 1000.0, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


class FerryAdapter:
    """Current positions of in-service vessels that are under way.

    The feed has no time or area parameters: it always reports "now" for
    the whole fleet, so no query change makes a refetch necessary.
    """

    name = SOURCE.value
    depends_on: frozenset[QueryField] = frozenset()

    def __init__(self, config: SightingsConfig, transport: Transport) -> None:
        self._config = config
        self._transport = transport

    async def fetch(self, request: FetchRequest) -> list[Observation]:
        params = {"apiaccesscode": self._config.wsf_access_code or ""}
        payload = await self._transport.get_json(self._config.wsf_url, params)
        fleet = parse_envelope(_Fleet, payload, source=self.name)
        return self.parse_locations(fleet.root)

    def parse_locations(self, payload: list[Any]) -> list[Observation]:
        parsed: list[Observation] = []
        for location in parse_records(_VesselLocation, payload, source=self.name):
            if not location.in_service or location.at_dock:
                continue
            observation = self._to_observation(location)
            if observation is not None:
                parsed.append(observation)
        return parsed

    def _to_observation(self, location: _VesselLocation) -> Observation | None:
        observed_at = parse_vessel_timestamp(location.timestamp)
        if observed_at is None:
            _logger.warning("%s vessel %s has unparseable time %r", self.name, location.vessel_name, location.timestamp)
        try:
            return Observation(
                id=observation_id(self.name, location.vessel_id),
                source=SOURCE,
                kind=ObservationKind.FERRY,
                coordinates=(location.longitude, location.latitude),
                observed_at=observed_at,
                tags=ObservationTags(heading=heading_from_bearing(location.heading)),
                name=location.vessel_name,
            )
        except ValidationError as exc:
            _logger.warning("Dropping %s vessel %s: %s", self.name, location.vessel_name, exc.errors()[0]["msg"])
            return None
