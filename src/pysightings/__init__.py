"""pysightings - Async aggregator for marine mammal sightings."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pysightings")
except PackageNotFoundError:
    __version__ = "0+local"
from pysightings.client import SightingsClient
from pysightings.config import SightingsConfig
from pysightings.exceptions import (
    QueryValueError,
    SightingsConfigError,
    SightingsError,
    SightingsPayloadError,
    SightingsTransportError,
    TaxonomyError,
)
from pysightings.models import (
    Ecotype,
    Extent,
    FetchRequest,
    Heading,
    Observation,
    ObservationKind,
    ObservationSource,
    ObservationTags,
    QueryField,
    TaxonFilter,
    TaxonNode,
    TimeWindow,
    Travel,
)
from pysightings.pipeline import AggregationPipeline
from pysightings.query import QueryState
from pysightings.reactive import ReactiveValue
from pysightings.taxonomy import TaxonRegistry, default_registry
from pysightings.travel import TravelCorrelator

__all__ = [
    "__version__",
    "AggregationPipeline",
    "Ecotype",
    "Extent",
    "FetchRequest",
    "Heading",
    "Observation",
    "ObservationKind",
    "ObservationSource",
    "ObservationTags",
    "QueryField",
    "QueryState",
    "QueryValueError",
    "ReactiveValue",
    "SightingsClient",
    "SightingsConfig",
    "SightingsConfigError",
    "SightingsError",
    "SightingsPayloadError",
    "SightingsTransportError",
    "TaxonFilter",
    "TaxonNode",
    "TaxonRegistry",
    "TaxonomyError",
    "TimeWindow",
    "Travel",
    "TravelCorrelator",
    "default_registry",
]
