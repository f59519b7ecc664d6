"""Inferred movement link between two observations."""

from __future__ import annotations

from datetime import timedelta

from pysightings.models._base import SightingsBaseModel


class Travel(SightingsBaseModel):
    """A directed edge ``from_id -> to_id``; recomputed every cycle, never stored."""

    from_id: str
    to_id: str
    from_coordinates: tuple[float, float]
    to_coordinates: tuple[float, float]
    distance_m: float
    elapsed: timedelta

    @property
    def speed_m_per_h(self) -> float:
        hours = self.elapsed.total_seconds() / 3600.0
        return self.distance_m / hours if hours > 0 else 0.0
