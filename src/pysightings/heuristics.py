"""Best-effort tag extraction from free-text sighting reports.

Every function here is pure and total: ambiguous or unrecognised text
yields ``None`` (or an empty list), never an exception. The patterns and
the known-individuals table are module-level, loaded once and read-only.
"""

from __future__ import annotations

import functools
import importlib.resources
import json
import logging
import re

from pysightings.models.observation import Ecotype, Heading, ObservationTags

_logger = logging.getLogger(__name__)

_ECOTYPE_RE = re.compile(
    r"\b(?:(?P<srkw>srkws?|southern\s+residents?)|(?P<biggs>transients?|bigg['’]?s))\b",
    re.IGNORECASE,
)
_POD_RE = re.compile(
    r"\b(?P<pods>[JKL](?:\s*[+/&,]\s*[JKL]|\s+and\s+[JKL])*)\s*-?\s*pods?\b",
    re.IGNORECASE,
)
_IDENTIFIER_RE = re.compile(
    r"\b(?P<pod>[JKLTjklt])-?0*(?P<number>\d+)(?P<suffix>[A-Z]\d*)?(?P<matriline>s)?\b",
)
_HEADING_RE = re.compile(
    r"\b(?P<heading>north-?east|north-?west|south-?east|south-?west|north|south|east|west)(?:-?bound)?\b",
    re.IGNORECASE,
)

# Pod letter reported for Bigg's killer whales when no pod is named.
TRANSIENT_POD = "T"

_ECOTYPE_TAXA: dict[Ecotype, str] = {
    Ecotype.SRKW: "Orcinus orca ater",
    Ecotype.BIGGS: "Orcinus orca rectipinnus",
}

_COMPASS: tuple[Heading, ...] = (
    Heading.NORTH,
    Heading.NORTHEAST,
    Heading.EAST,
    Heading.SOUTHEAST,
    Heading.SOUTH,
    Heading.SOUTHWEST,
    Heading.WEST,
    Heading.NORTHWEST,
)


@functools.cache
def known_individuals() -> frozenset[str]:
    """Identifiers of catalogued individuals, from ``data/individuals.json``."""
    ref = importlib.resources.files("pysightings").joinpath("data/individuals.json")
    by_pod: dict[str, list[str]] = json.loads(ref.read_text(encoding="utf-8"))
    return frozenset(name for names in by_pod.values() for name in names)


def detect_ecotype(text: str | None) -> Ecotype | None:
    """Return the first ecotype named in *text*."""
    if not text:
        return None
    match = _ECOTYPE_RE.search(text)
    if match is None:
        return None
    return Ecotype.SRKW if match.group("srkw") else Ecotype.BIGGS


def ecotype_taxon(ecotype: Ecotype | None) -> str | None:
    """Scientific name of the subspecies an ecotype corresponds to."""
    if ecotype is None:
        return None
    return _ECOTYPE_TAXA[ecotype]


def _identifiers(text: str) -> list[tuple[str, tuple[str, int, str, bool]]]:
    """Accepted identifiers in order of appearance, with their sort keys."""
    known = known_individuals()
    found: list[tuple[str, tuple[str, int, str, bool]]] = []
    for match in _IDENTIFIER_RE.finditer(text):
        pod = match.group("pod").upper()
        number = int(match.group("number"))
        suffix = match.group("suffix") or ""
        matriline = match.group("matriline") is not None
        individual = f"{pod}{number}{suffix}"
        if matriline:
            found.append((f"{individual}s", (pod, number, suffix, True)))
        elif individual in known:
            found.append((individual, (pod, number, suffix, False)))
        else:
            _logger.warning("Ignoring unknown individual %r", individual)
    return found


def detect_pod(text: str | None, ecotype: Ecotype | None = None) -> str | None:
    """Return the pod letter a report is about.

    An explicit pod phrase ("J pod", "K+L pods") wins; otherwise the pod
    of the first identifier mentioned; otherwise ``"T"`` for Bigg's.
    """
    if not text:
        return None
    match = _POD_RE.search(text)
    if match is not None:
        return match.group("pods")[0].upper()

    identifiers = _identifiers(text)
    if identifiers:
        return identifiers[0][1][0]

    if ecotype is None:
        ecotype = detect_ecotype(text)
    if ecotype == Ecotype.BIGGS:
        return TRANSIENT_POD
    return None


def detect_individuals(text: str | None) -> list[str]:
    """Return individual and matriline identifiers named in *text*.

    ``J037`` is reported as ``J37``. Individuals missing from the
    catalogue are dropped; matriline tokens (``T65As``) are kept as-is.
    """
    if not text:
        return []
    unique = {name: key for name, key in _identifiers(text)}
    return sorted(unique, key=unique.__getitem__)


def detect_heading(text: str | None) -> Heading | None:
    """Return the first compass direction in *text* (``"northbound"`` counts)."""
    if not text:
        return None
    match = _HEADING_RE.search(text)
    if match is None:
        return None
    return Heading(match.group("heading").lower().replace("-", ""))


def heading_from_bearing(degrees: float | None) -> Heading | None:
    """Nearest of the eight compass points to a bearing in degrees."""
    if degrees is None:
        return None
    index = int(((degrees % 360.0) + 22.5) // 45.0) % len(_COMPASS)
    return _COMPASS[index]


def extract_tags(text: str | None) -> ObservationTags:
    """Run every detector over *text*."""
    ecotype = detect_ecotype(text)
    return ObservationTags(
        ecotype=ecotype,
        pod=detect_pod(text, ecotype),
        individuals=tuple(detect_individuals(text)),
        heading=detect_heading(text),
    )
