"""Movement inference between sequential sightings of the same species."""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable
from datetime import timedelta

from pysightings.config import SightingsConfig
from pysightings.models.observation import Observation, ObservationKind
from pysightings.models.travel import Travel
from pysightings.taxonomy import species

# Mean earth radius (IUGG), metres.
EARTH_RADIUS_M = 6_371_008.8

Coordinates = tuple[float, float]


def haversine_m(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance in metres between two ``(lon, lat)`` points."""
    lon1, lat1 = map(math.radians, a)
    lon2, lat2 = map(math.radians, b)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


class TravelCorrelator:
    """Greedy earliest-successor linking of observations.

    For each observation, the first later observation (by time) of the
    same binomial species that is within ``max_gap``, ``max_distance_m``
    and ``max_speed_m_per_h`` becomes its single outgoing link. All bounds
    are inclusive. The result depends only on the input set, so running
    it twice on the same snapshot yields the same links.
    """

    def __init__(
        self,
        *,
        max_gap: timedelta = timedelta(hours=12),
        max_distance_m: float = 10_000.0,
        max_speed_m_per_h: float = 10_000.0,
        distance: Callable[[Coordinates, Coordinates], float] = haversine_m,
    ) -> None:
        self.max_gap = max_gap
        self.max_distance_m = max_distance_m
        self.max_speed_m_per_h = max_speed_m_per_h
        self._distance = distance

    @classmethod
    def from_config(cls, config: SightingsConfig) -> TravelCorrelator:
        return cls(
            max_gap=config.travel_max_gap,
            max_distance_m=config.travel_max_distance_m,
            max_speed_m_per_h=config.travel_max_speed_m_per_h,
        )

    def correlate(self, observations: Iterable[Observation]) -> list[Travel]:
        # Untimed and non-taxonomic records cannot take part in a link.
        timeline = sorted(
            (
                obs
                for obs in observations
                if obs.observed_at is not None and obs.taxon and obs.kind == ObservationKind.SIGHTING
            ),
            key=lambda obs: (obs.observed_at, obs.id),
        )

        travels: list[Travel] = []
        for index, origin in enumerate(timeline):
            link = self._first_successor(origin, timeline[index + 1 :])
            if link is not None:
                travels.append(link)
        return travels

    def _first_successor(self, origin: Observation, later: list[Observation]) -> Travel | None:
        assert origin.observed_at is not None and origin.taxon is not None  # noqa: S101
        origin_species = species(origin.taxon)

        for candidate in later:
            assert candidate.observed_at is not None and candidate.taxon is not None  # noqa: S101
            elapsed = candidate.observed_at - origin.observed_at
            if elapsed <= timedelta(0):
                continue
            if elapsed > self.max_gap:
                # The timeline is sorted; nothing further can be close enough.
                return None
            if species(candidate.taxon) != origin_species:
                continue

            distance_m = self._distance(origin.coordinates, candidate.coordinates)
            if distance_m > self.max_distance_m:
                continue
            hours = elapsed.total_seconds() / 3600.0
            if distance_m / hours > self.max_speed_m_per_h:
                continue

            return Travel(
                from_id=origin.id,
                to_id=candidate.id,
                from_coordinates=origin.coordinates,
                to_coordinates=candidate.coordinates,
                distance_m=distance_m,
                elapsed=elapsed,
            )
        return None
