"""Request-side value types: extent, time window, taxon filter."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import Field, model_validator

from pysightings.models._base import AwareDatetime, SightingsBaseModel
from pysightings.models.observation import Observation, ObservationKind
from pysightings.models.taxon import TaxonNode


class QueryField(StrEnum):
    """The pieces of query state a refresh can be triggered by."""

    FOCUS = "focus"
    TIME_SCALE = "time_scale"
    TAXON = "taxon"
    EXTENT = "extent"


ALL_FIELDS: frozenset[QueryField] = frozenset(QueryField)


class Extent(SightingsBaseModel):
    """A geographic bounding box in WGS84 degrees."""

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    @model_validator(mode="after")
    def _check_order(self) -> Extent:
        if self.min_lon > self.max_lon or self.min_lat > self.max_lat:
            raise ValueError("extent minimum must not exceed maximum")
        return self

    @classmethod
    def from_bbox(cls, bbox: tuple[float, float, float, float]) -> Extent:
        min_lon, min_lat, max_lon, max_lat = bbox
        return cls(min_lon=min_lon, min_lat=min_lat, max_lon=max_lon, max_lat=max_lat)

    def clamped(self) -> Extent | None:
        """Clamp to the valid longitude/latitude range.

        Returns ``None`` when nothing of the extent lies inside that range.
        """
        min_lon, max_lon = max(self.min_lon, -180.0), min(self.max_lon, 180.0)
        min_lat, max_lat = max(self.min_lat, -90.0), min(self.max_lat, 90.0)
        if min_lon > max_lon or min_lat > max_lat:
            return None
        return Extent(min_lon=min_lon, min_lat=min_lat, max_lon=max_lon, max_lat=max_lat)

    def contains(self, lon: float, lat: float) -> bool:
        return self.min_lon <= lon <= self.max_lon and self.min_lat <= lat <= self.max_lat


WORLD = Extent(min_lon=-180.0, min_lat=-90.0, max_lon=180.0, max_lat=90.0)


class TimeWindow(SightingsBaseModel):
    """Closed interval ``[start, end]`` of absolute instants."""

    start: AwareDatetime
    end: AwareDatetime

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant <= self.end


class TaxonFilter(SightingsBaseModel):
    """Descendant-closure of the selected taxon, by scientific name."""

    root: TaxonNode | None = None
    names: frozenset[str] = frozenset()

    def matches(self, observation: Observation) -> bool:
        # Taxonomy does not apply to vessels and the like; they always pass.
        if observation.kind != ObservationKind.SIGHTING:
            return True
        return observation.taxon is not None and observation.taxon in self.names


class FetchRequest(SightingsBaseModel):
    """Everything an adapter needs to perform one fetch."""

    extent: Extent
    window: TimeWindow | None = None
    """``None`` when no focus instant is set."""
    taxon_filter: TaxonFilter = Field(default_factory=TaxonFilter)
