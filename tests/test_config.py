from __future__ import annotations

from datetime import timedelta

import pytest

from pysightings.config import SightingsConfig
from pysightings.exceptions import SightingsConfigError


def test_defaults_validate() -> None:
    config = SightingsConfig().validate()
    assert config.travel_max_gap == timedelta(hours=12)
    assert config.travel_max_distance_m == 10_000.0
    assert config.travel_max_speed_m_per_h == 10_000.0
    assert str(config.local_zone) == "America/Los_Angeles"


def test_unknown_time_zone_is_a_config_error() -> None:
    with pytest.raises(SightingsConfigError, match="Unknown time zone"):
        SightingsConfig(regional_time_zone="Mars/Olympus_Mons").validate()


def test_non_positive_timeout_is_rejected() -> None:
    with pytest.raises(SightingsConfigError, match="adapter_timeout"):
        SightingsConfig(adapter_timeout=0).validate()


def test_from_env_reads_prefixed_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SIGHTINGS_WSF_ACCESS_CODE", "c0ffee")
    monkeypatch.setenv("SIGHTINGS_ADAPTER_TIMEOUT", "5")
    monkeypatch.setenv("SIGHTINGS_CANCEL_STALE_FETCHES", "no")
    monkeypatch.setenv("SIGHTINGS_DEFAULT_TAXON", "Orcinus orca")

    config = SightingsConfig.from_env()
    assert config.wsf_access_code == "c0ffee"
    assert config.adapter_timeout == 5.0
    assert config.cancel_stale_fetches is False
    assert config.default_taxon == "Orcinus orca"


def test_from_env_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SIGHTINGS_ADAPTER_TIMEOUT", "5")
    monkeypatch.setenv("SIGHTINGS_LOCAL_TIME_ZONE", "Europe/Amsterdam")

    config = SightingsConfig.from_env(adapter_timeout=1.5, local_time_zone="UTC")
    assert config.adapter_timeout == 1.5
    assert config.local_time_zone == "UTC"
