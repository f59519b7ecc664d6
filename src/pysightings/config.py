"""Client configuration for pysightings."""

from __future__ import annotations

import dataclasses
import os
from datetime import timedelta
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pysightings._constants import (
    INATURALIST_OBSERVATIONS_URL,
    INATURALIST_SPECIES_COUNTS_URL,
    INATURALIST_TILES_URL,
    MAPLIFY_SIGHTINGS_URL,
    WSF_VESSEL_LOCATIONS_URL,
)
from pysightings.exceptions import SightingsConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class SightingsConfig:
    """Aggregator configuration.

    Parameters
    ----------
    inaturalist_url : str
        Observation search endpoint of the citizen-science provider.
    inaturalist_species_counts_url : str
        Species-count endpoint used to discover taxa present in a place.
    inaturalist_tiles_url : str
        Grid tile URL template (``{z}``, ``{x}``, ``{y}``).
    maplify_url : str
        Regional sightings network search endpoint.
    wsf_url : str
        Vessel location endpoint of the ferry tracking feed.
    wsf_access_code : str or None
        API access code for the ferry feed. The ferry adapter is not
        built without one.
    page_size : int
        ``per_page`` requested from the citizen-science provider.
    inaturalist_max_pages : int
        Most result pages fetched from the citizen-science provider per
        refresh.
    local_time_zone : str
        IANA zone used to interpret naive instants (deep links, user
        entered observations) and to render provider date parameters.
    regional_time_zone : str
        IANA zone assumed for the regional network's timestamps, which
        carry no offset. The provider does not document it.
    adapter_timeout : float
        Seconds a single adapter fetch may take before it is treated as
        failed for the current generation.
    cancel_stale_fetches : bool
        Cancel in-flight adapter fetches once a newer generation starts.
        Stale results are discarded either way.
    travel_max_gap : timedelta
        Longest time gap between two linked observations.
    travel_max_distance_m : float
        Longest great-circle distance between two linked observations.
    travel_max_speed_m_per_h : float
        Highest implied speed between two linked observations. Generous
        on purpose: citizen reports are imprecise in place and time.
    default_taxon : str
        Taxon query used when none is given.
    default_time_scale : timedelta
        Time-window radius used when none is given.
    """

    inaturalist_url: str = INATURALIST_OBSERVATIONS_URL
    inaturalist_species_counts_url: str = INATURALIST_SPECIES_COUNTS_URL
    inaturalist_tiles_url: str = INATURALIST_TILES_URL
    maplify_url: str = MAPLIFY_SIGHTINGS_URL
    wsf_url: str = WSF_VESSEL_LOCATIONS_URL
    wsf_access_code: str | None = None
    page_size: int = 200
    inaturalist_max_pages: int = 5
    local_time_zone: str = "America/Los_Angeles"
    regional_time_zone: str = "UTC"
    adapter_timeout: float = 30.0
    cancel_stale_fetches: bool = True
    travel_max_gap: timedelta = timedelta(hours=12)
    travel_max_distance_m: float = 10_000.0
    travel_max_speed_m_per_h: float = 10_000.0
    default_taxon: str = "Cetacea"
    default_time_scale: timedelta = timedelta(days=1)

    @property
    def local_zone(self) -> ZoneInfo:
        return _zone(self.local_time_zone)

    @property
    def regional_zone(self) -> ZoneInfo:
        return _zone(self.regional_time_zone)

    def validate(self) -> SightingsConfig:
        """Raise :class:`SightingsConfigError` if any value is unusable."""
        _zone(self.local_time_zone)
        _zone(self.regional_time_zone)
        if self.adapter_timeout <= 0:
            raise SightingsConfigError(f"adapter_timeout must be positive, got {self.adapter_timeout}")
        if self.page_size <= 0:
            raise SightingsConfigError(f"page_size must be positive, got {self.page_size}")
        if self.travel_max_gap <= timedelta(0):
            raise SightingsConfigError("travel_max_gap must be positive")
        return self

    @classmethod
    def from_env(cls, **overrides: Any) -> SightingsConfig:
        """Create configuration from ``SIGHTINGS_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "SIGHTINGS_INATURALIST_URL": "inaturalist_url",
            "SIGHTINGS_MAPLIFY_URL": "maplify_url",
            "SIGHTINGS_WSF_URL": "wsf_url",
            "SIGHTINGS_WSF_ACCESS_CODE": "wsf_access_code",
            "SIGHTINGS_LOCAL_TIME_ZONE": "local_time_zone",
            "SIGHTINGS_REGIONAL_TIME_ZONE": "regional_time_zone",
            "SIGHTINGS_DEFAULT_TAXON": "default_taxon",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        timeout_env = env.get("SIGHTINGS_ADAPTER_TIMEOUT")
        if timeout_env is not None and "adapter_timeout" not in overrides:
            config_kwargs["adapter_timeout"] = float(timeout_env)

        page_env = env.get("SIGHTINGS_PAGE_SIZE")
        if page_env is not None and "page_size" not in overrides:
            config_kwargs["page_size"] = int(page_env)

        speed_env = env.get("SIGHTINGS_TRAVEL_MAX_SPEED")
        if speed_env is not None and "travel_max_speed_m_per_h" not in overrides:
            config_kwargs["travel_max_speed_m_per_h"] = float(speed_env)

        if "cancel_stale_fetches" not in overrides:
            config_kwargs["cancel_stale_fetches"] = _env_bool(env.get("SIGHTINGS_CANCEL_STALE_FETCHES"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs).validate()


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise SightingsConfigError(f"Unknown time zone: {name!r}") from exc
