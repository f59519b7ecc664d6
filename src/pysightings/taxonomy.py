"""Static taxonomy tree: lookup, descendant-closure and name normalization.

The packaged table (``data/taxa.json``) is loaded once per process by
:func:`default_registry` and never mutated afterwards, so a registry can
be shared by concurrently running adapters without locking.
"""

from __future__ import annotations

import functools
import importlib.resources
import json
import logging
from collections import deque
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import TypeAdapter

from pysightings.exceptions import TaxonomyError
from pysightings.models.query import TaxonFilter
from pysightings.models.taxon import TaxonNode

_logger = logging.getLogger(__name__)

# Informal names checked by substring, in priority order: the more specific
# phrases must come before the generic ones they contain.
_INFORMAL_NAMES: tuple[tuple[str, str], ...] = (
    ("southern resident", "Orcinus orca ater"),
    ("resident killer whale", "Orcinus orca ater"),
    ("resident orca", "Orcinus orca ater"),
    ("srkw", "Orcinus orca ater"),
    ("bigg", "Orcinus orca rectipinnus"),
    ("transient", "Orcinus orca rectipinnus"),
    ("killer whale", "Orcinus orca"),
    ("orca", "Orcinus orca"),
    ("minke", "Balaenoptera acutorostrata"),
    ("finback", "Balaenoptera physalus"),
    ("fin whale", "Balaenoptera physalus"),
    ("humpback", "Megaptera novaeangliae"),
    ("gray whale", "Eschrichtius robustus"),
    ("grey whale", "Eschrichtius robustus"),
    ("dall", "Phocoenoides dalli"),
    ("harbor porpoise", "Phocoena phocoena"),
    ("harbour porpoise", "Phocoena phocoena"),
    ("risso", "Grampus griseus"),
    ("white-sided", "Lagenorhynchus obliquidens"),
    ("harbor seal", "Phoca vitulina"),
    ("harbour seal", "Phoca vitulina"),
    ("elephant seal", "Mirounga angustirostris"),
    ("steller", "Eumetopias jubatus"),
    ("california sea lion", "Zalophus californianus"),
    ("sea otter", "Enhydra lutris"),
)

_WHALE_SUFFIX = "whale"


def _fold(name: str) -> str:
    return " ".join(name.split()).lower()


def _strip_whale(name: str) -> str:
    folded = _fold(name)
    if folded.endswith(_WHALE_SUFFIX):
        folded = folded[: -len(_WHALE_SUFFIX)].strip()
    return folded


def species(name: str) -> str:
    """Reduce a taxon name to its binomial (genus + species).

    ``"Orcinus orca ater"`` and ``"Orcinus orca"`` both yield
    ``"Orcinus orca"``; names with fewer tokens are returned as-is.
    """
    return " ".join(name.split()[:2])


class TaxonRegistry:
    """Read-only taxonomy tree keyed by scientific name.

    Parameters
    ----------
    nodes : iterable of TaxonNode
        Every node of the tree. Exactly one node must have no parent,
        every ``parent_id`` must refer to a known node, and the parent
        links must not form a cycle.
    """

    def __init__(self, nodes: Iterable[TaxonNode]) -> None:
        self._by_id: dict[int, TaxonNode] = {}
        self._by_name: dict[str, TaxonNode] = {}
        self._by_common: dict[str, TaxonNode] = {}
        self._by_common_stem: dict[str, TaxonNode] = {}
        self._children: dict[int, list[TaxonNode]] = {}

        for node in nodes:
            if node.id in self._by_id:
                raise TaxonomyError(f"duplicate taxon id {node.id}")
            key = _fold(node.scientific_name)
            if key in self._by_name:
                raise TaxonomyError(f"duplicate scientific name {node.scientific_name!r}")
            self._by_id[node.id] = node
            self._by_name[key] = node
            if node.common_name:
                self._by_common.setdefault(_fold(node.common_name), node)
                self._by_common_stem.setdefault(_strip_whale(node.common_name), node)

        self._root = self._validate_tree()
        for node in self._by_id.values():
            if node.parent_id is not None:
                self._children.setdefault(node.parent_id, []).append(node)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> TaxonRegistry:
        """Build a registry from provider-shaped dicts (``name``, ``preferred_common_name``...)."""
        nodes = TypeAdapter(list[TaxonNode]).validate_python(list(records))
        return cls(nodes)

    def _validate_tree(self) -> TaxonNode:
        roots = [node for node in self._by_id.values() if node.parent_id is None]
        if len(roots) != 1:
            raise TaxonomyError(f"taxonomy must have exactly one root, found {len(roots)}")

        settled: set[int] = {roots[0].id}
        for node in self._by_id.values():
            path: list[int] = []
            current: TaxonNode | None = node
            while current is not None and current.id not in settled:
                if current.id in path:
                    raise TaxonomyError(f"cycle through taxon {current.scientific_name!r}")
                path.append(current.id)
                if current.parent_id is None:
                    break
                parent = self._by_id.get(current.parent_id)
                if parent is None:
                    raise TaxonomyError(
                        f"taxon {current.scientific_name!r} has unknown parent {current.parent_id}"
                    )
                current = parent
            settled.update(path)
        return roots[0]

    @property
    def root(self) -> TaxonNode:
        return self._root

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self):
        return iter(self._by_id.values())

    def get(self, taxon_id: int) -> TaxonNode | None:
        return self._by_id.get(taxon_id)

    def lookup(self, name: str) -> TaxonNode | None:
        """Resolve *name* case-insensitively.

        Scientific names are tried first, then common names, then common
        names with a trailing "whale" stripped from both sides, so
        ``"humpback"`` finds "Humpback Whale".
        """
        key = _fold(name)
        if not key:
            return None
        node = self._by_name.get(key)
        if node is not None:
            return node
        node = self._by_common.get(key)
        if node is not None:
            return node
        return self._by_common_stem.get(_strip_whale(key))

    def is_resolved(self, name: str | None) -> bool:
        return name is not None and _fold(name) in self._by_name

    def children(self, node: TaxonNode) -> list[TaxonNode]:
        return list(self._children.get(node.id, ()))

    def descendants(self, node: TaxonNode) -> frozenset[TaxonNode]:
        """Return *node* plus every node below it."""
        found: list[TaxonNode] = []
        queue: deque[TaxonNode] = deque([node])
        while queue:
            current = queue.popleft()
            found.append(current)
            queue.extend(self._children.get(current.id, ()))
        return frozenset(found)

    def taxon_filter(self, node: TaxonNode | None) -> TaxonFilter:
        """Build the filter set for a taxon query; unresolved queries match no taxon."""
        if node is None:
            return TaxonFilter()
        names = frozenset(taxon.scientific_name for taxon in self.descendants(node))
        return TaxonFilter(root=node, names=names)

    def normalize(self, text: str) -> str:
        """Best-effort resolution of free text to a canonical scientific name.

        Exact scientific/common name matches win, then the informal-name
        heuristics. Anything else is logged and returned unchanged; callers
        must tolerate an unresolved taxon string.
        """
        node = self.lookup(text)
        if node is not None:
            return node.scientific_name

        folded = _fold(text)
        for needle, scientific_name in _INFORMAL_NAMES:
            if needle in folded and scientific_name.lower() in self._by_name:
                return self._by_name[scientific_name.lower()].scientific_name

        _logger.warning("Could not resolve taxon name %r", text)
        return text


@functools.cache
def default_registry() -> TaxonRegistry:
    """The packaged taxonomy, loaded on first use and shared process-wide."""
    ref = importlib.resources.files("pysightings").joinpath("data/taxa.json")
    records = json.loads(ref.read_text(encoding="utf-8"))
    registry = TaxonRegistry.from_records(records)
    _logger.debug("Loaded %d taxa", len(registry))
    return registry
