"""Reactive query state: time focus, time-window radius and taxon.

Each value accepts either its typed form or its canonical string
encoding (ISO-8601 instant, ISO-8601 duration, taxon name), which is
what deep links carry.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta, tzinfo
from typing import Any

from pydantic import TypeAdapter, ValidationError

from pysightings.config import SightingsConfig
from pysightings.exceptions import QueryValueError
from pysightings.models._base import SightingsBaseModel
from pysightings.models.query import QueryField, TaxonFilter, TimeWindow
from pysightings.models.taxon import TaxonNode
from pysightings.reactive import ReactiveValue, Unsubscribe
from pysightings.taxonomy import TaxonRegistry, default_registry

_logger = logging.getLogger(__name__)

_DATETIME = TypeAdapter(datetime)
_DURATION = TypeAdapter(timedelta)

PARAM_FOCUS = "t"
PARAM_TIME_SCALE = "d"
PARAM_TAXON = "q"


class TaxonQuery(SightingsBaseModel):
    """The user's taxon query text and the node it resolved to, if any."""

    text: str
    node: TaxonNode | None = None


def same_taxon(a: TaxonQuery, b: TaxonQuery) -> bool:
    """Two queries are equal when they resolve to the same node.

    Unresolved queries compare by their case-folded text.
    """
    if a.node is not None or b.node is not None:
        return a.node == b.node
    return a.text.casefold() == b.text.casefold()


def parse_instant(value: datetime | str | None, zone: tzinfo) -> datetime | None:
    """Coerce *value* to an aware UTC instant.

    Naive values (``"2025-01-21T17:50"``) are interpreted in *zone*.
    ``None`` and blank strings clear the focus.
    """
    if value is None:
        return None
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            value = _DATETIME.validate_python(value.strip())
        except ValidationError as exc:
            raise QueryValueError(f"Not an ISO-8601 instant: {value!r}") from exc
    if not isinstance(value, datetime):
        raise QueryValueError(f"Not an instant: {value!r}")
    if value.tzinfo is None:
        value = value.replace(tzinfo=zone)
    return value.astimezone(UTC)


def parse_duration(value: timedelta | str) -> timedelta:
    """Coerce *value* (``timedelta`` or ISO-8601 ``"P1D"``) to a positive timedelta."""
    if isinstance(value, str):
        try:
            value = _DURATION.validate_python(value.strip())
        except ValidationError as exc:
            raise QueryValueError(f"Not an ISO-8601 duration: {value!r}") from exc
    if not isinstance(value, timedelta):
        raise QueryValueError(f"Not a duration: {value!r}")
    if value <= timedelta(0):
        raise QueryValueError(f"Duration must be positive, got {value}")
    return value


def format_duration(value: timedelta) -> str:
    return _DURATION.dump_python(value, mode="json")


class QueryState:
    """The three reactive values that together define the active filter.

    Usage::

        state = QueryState(config=config)
        state.subscribe(lambda field: print(field, "changed"))
        state.set_taxon("Orcinus orca")
        state.set_time_scale("PT12H")
    """

    def __init__(
        self,
        registry: TaxonRegistry | None = None,
        config: SightingsConfig | None = None,
        *,
        focus: datetime | str | None = None,
        time_scale: timedelta | str | None = None,
        taxon: str | None = None,
    ) -> None:
        self._config = config or SightingsConfig()
        self._registry = registry or default_registry()
        self._zone = self._config.local_zone

        self.focus: ReactiveValue[datetime | None] = ReactiveValue(
            parse_instant(focus, self._zone),
            coerce=lambda value: parse_instant(value, self._zone),
        )
        self.time_scale: ReactiveValue[timedelta] = ReactiveValue(
            parse_duration(time_scale or self._config.default_time_scale),
            coerce=parse_duration,
        )
        self.taxon: ReactiveValue[TaxonQuery] = ReactiveValue(
            self.resolve_taxon(taxon or self._config.default_taxon),
            equals=same_taxon,
            coerce=self.resolve_taxon,
        )

    @property
    def registry(self) -> TaxonRegistry:
        return self._registry

    def resolve_taxon(self, value: TaxonQuery | TaxonNode | str) -> TaxonQuery:
        if isinstance(value, TaxonQuery):
            return value
        if isinstance(value, TaxonNode):
            return TaxonQuery(text=value.scientific_name, node=value)
        text = " ".join(str(value).split())
        node = self._registry.lookup(text)
        if node is None:
            _logger.warning("Taxon query %r did not resolve", text)
        return TaxonQuery(text=text, node=node)

    # ------------------------------------------------------------------
    # Setters (typed value or canonical string encoding)
    # ------------------------------------------------------------------

    def set_focus(self, value: datetime | str | None) -> bool:
        return self.focus.set(value)

    def set_time_scale(self, value: timedelta | str | None) -> bool:
        # An empty duration leaves the current one in place.
        if value is None or (isinstance(value, str) and not value.strip()):
            return False
        return self.time_scale.set(value)

    def set_taxon(self, value: TaxonNode | str) -> bool:
        return self.taxon.set(value)

    def subscribe(self, callback: Callable[[QueryField], None]) -> Unsubscribe:
        """Call *callback* with the :class:`QueryField` of every change."""
        handles = [
            self.focus.subscribe(lambda: callback(QueryField.FOCUS)),
            self.time_scale.subscribe(lambda: callback(QueryField.TIME_SCALE)),
            self.taxon.subscribe(lambda: callback(QueryField.TAXON)),
        ]

        def unsubscribe() -> None:
            for handle in handles:
                handle()

        return unsubscribe

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def time_window(self) -> TimeWindow | None:
        focus = self.focus.value
        if focus is None:
            return None
        radius = self.time_scale.value
        return TimeWindow(start=focus - radius, end=focus + radius)

    def taxon_filter(self) -> TaxonFilter:
        return self._registry.taxon_filter(self.taxon.value.node)

    def focus_naive_iso(self) -> str | None:
        """Focus as a minute-precision local time without offset, as deep links carry it."""
        focus = self.focus.value
        if focus is None:
            return None
        return focus.astimezone(self._zone).replace(tzinfo=None).isoformat(timespec="minutes")

    def to_params(self) -> dict[str, str]:
        params = {
            PARAM_TIME_SCALE: format_duration(self.time_scale.value),
            PARAM_TAXON: self.taxon.value.text,
        }
        focus = self.focus_naive_iso()
        if focus is not None:
            params[PARAM_FOCUS] = focus
        return params

    def apply_params(self, params: Mapping[str, Any]) -> None:
        """Apply deep-link parameters; malformed values are logged and skipped."""
        setters: tuple[tuple[str, Callable[[Any], bool]], ...] = (
            (PARAM_FOCUS, self.set_focus),
            (PARAM_TIME_SCALE, self.set_time_scale),
            (PARAM_TAXON, self.set_taxon),
        )
        for key, setter in setters:
            if key not in params:
                continue
            try:
                setter(params[key])
            except QueryValueError as exc:
                _logger.warning("Ignoring query parameter %s=%r: %s", key, params[key], exc)
