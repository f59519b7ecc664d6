"""Data models for canonical observations and query values."""

from pysightings.models._base import AwareDatetime, SightingsBaseModel, ensure_aware
from pysightings.models.observation import (
    Ecotype,
    Heading,
    Observation,
    ObservationKind,
    ObservationSource,
    ObservationTags,
    observation_id,
)
from pysightings.models.query import (
    ALL_FIELDS,
    WORLD,
    Extent,
    FetchRequest,
    QueryField,
    TaxonFilter,
    TimeWindow,
)
from pysightings.models.taxon import TaxonNode
from pysightings.models.travel import Travel

__all__ = [
    "ALL_FIELDS",
    "AwareDatetime",
    "Ecotype",
    "Extent",
    "FetchRequest",
    "Heading",
    "Observation",
    "ObservationKind",
    "ObservationSource",
    "ObservationTags",
    "QueryField",
    "SightingsBaseModel",
    "TaxonFilter",
    "TaxonNode",
    "TimeWindow",
    "Travel",
    "WORLD",
    "ensure_aware",
    "observation_id",
]
