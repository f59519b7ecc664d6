"""Canonical observation record."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field, field_validator

from pysightings.models._base import AwareDatetime, SightingsBaseModel


class ObservationSource(StrEnum):
    INATURALIST = "inaturalist"
    MAPLIFY = "maplify"
    WSF = "wsf"
    LOCAL = "local"


class ObservationKind(StrEnum):
    SIGHTING = "sighting"
    FERRY = "ferry"


class Ecotype(StrEnum):
    SRKW = "SRKW"
    BIGGS = "Biggs"


class Heading(StrEnum):
    NORTH = "north"
    NORTHEAST = "northeast"
    EAST = "east"
    SOUTHEAST = "southeast"
    SOUTH = "south"
    SOUTHWEST = "southwest"
    WEST = "west"
    NORTHWEST = "northwest"


def observation_id(source: str, provider_id: str | int) -> str:
    """Build the namespaced canonical id ``<source>:<providerId>``."""
    return f"{source}:{provider_id}"


class ObservationTags(SightingsBaseModel):
    """Heuristic tags derived from a report's free text. All optional."""

    ecotype: Ecotype | None = None
    pod: str | None = None
    individuals: tuple[str, ...] = ()
    """Individual and matriline identifiers, sorted and deduplicated."""
    heading: Heading | None = None


class Observation(SightingsBaseModel):
    """A canonical sighting record.

    Created by a source adapter and never mutated afterwards; a refresh
    produces new records rather than updating old ones.
    """

    id: str
    """Globally unique ``<source>:<providerId>``, stable across refreshes."""
    source: ObservationSource
    kind: ObservationKind = ObservationKind.SIGHTING
    taxon: str | None = None
    """Canonical scientific name, or the raw provider string if unresolved.
    ``None`` for records to which taxonomy does not apply (vessels)."""
    coordinates: tuple[float, float]
    """``(longitude, latitude)`` in WGS84 degrees."""
    observed_at: AwareDatetime | None = None
    count: int | None = Field(default=None, ge=0)
    body: str | None = None
    tags: ObservationTags = Field(default_factory=ObservationTags)
    url: str | None = None
    photos: tuple[str, ...] = ()
    name: str | None = None
    """Display name for non-taxonomic records (vessel name)."""
    network: str | None = None
    """Upstream reporting network for aggregated providers."""
    obscured: bool = False
    """True when the provider reports a deliberately blurred position."""

    @field_validator("id")
    @classmethod
    def _check_namespaced(cls, value: str) -> str:
        source, sep, provider_id = value.partition(":")
        if not sep or not source or not provider_id:
            raise ValueError(f"observation id must be '<source>:<id>', got {value!r}")
        return value

    @field_validator("coordinates")
    @classmethod
    def _check_coordinates(cls, value: tuple[float, float]) -> tuple[float, float]:
        lon, lat = value
        if not -180.0 <= lon <= 180.0 or not -90.0 <= lat <= 90.0:
            raise ValueError(f"coordinates out of range: {value}")
        return value

    @property
    def longitude(self) -> float:
        return self.coordinates[0]

    @property
    def latitude(self) -> float:
        return self.coordinates[1]
