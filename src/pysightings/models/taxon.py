"""Taxonomy node model."""

from __future__ import annotations

from pydantic import AliasChoices, Field, field_validator

from pysightings.models._base import SightingsBaseModel


class TaxonNode(SightingsBaseModel):
    """A node of the static taxonomy tree.

    The scientific name is the tree's primary key; ``id`` is the
    citizen-science provider's taxon id and is what that provider is
    queried with.
    """

    id: int
    """Provider-assigned taxon id."""
    scientific_name: str = Field(validation_alias=AliasChoices("scientific_name", "name"))
    """Canonical scientific name (e.g. ``"Orcinus orca"``)."""
    common_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("common_name", "preferred_common_name"),
    )
    """Preferred English common name."""
    parent_id: int | None = None
    """Id of the parent node; ``None`` only for the tree root."""
    rank: str | None = None
    """Taxonomic rank (``"species"``, ``"genus"``...), informational."""

    @field_validator("scientific_name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        name = " ".join(value.split())
        if not name:
            raise ValueError("scientific_name must be non-empty")
        return name
