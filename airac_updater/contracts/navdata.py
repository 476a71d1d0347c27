"""Navigation data projected from AIXM, the input of every sector file merge.

A ``NavigationDataSet`` is built once per run and shared read-only between
all per-file merges, so both the set and its elements are immutable.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from airac_updater.contracts.common import GeoPoint
from airac_updater.contracts.enums import ElementKind, NavaidType, RouteLevel

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_identifier(value: str) -> str:
    """Canonical form used to compare identifiers: trimmed, upper-case, single spaces."""
    return _WHITESPACE_RE.sub(" ", value.strip()).upper()


class ElementKey(NamedTuple):
    kind: ElementKind
    identifier: str
    # Set for navaids only; a VOR and an NDB may share a designator
    navaid_type: NavaidType | None = None


class NavElement(BaseModel):
    """One navaid, fix, aerodrome, airspace or airway.

    ``parts`` holds the geometry: a single one-point part for point
    features, the boundary ring of an airspace, or one two-point part per
    airway segment.
    """

    model_config = ConfigDict(frozen=True)

    kind: ElementKind
    identifier: str = Field(..., min_length=1)
    name: str | None = None
    parts: tuple[tuple[GeoPoint, ...], ...] = Field(..., min_length=1)
    navaid_type: NavaidType | None = None
    frequency: float | None = Field(default=None, gt=0)
    airspace_type: str | None = None
    route_level: RouteLevel | None = None

    @field_validator("identifier", mode="before")
    @classmethod
    def normalize(cls, v: str) -> str:
        return normalize_identifier(v)

    @property
    def key(self) -> ElementKey:
        return ElementKey(self.kind, self.identifier, self.navaid_type)

    @property
    def point(self) -> GeoPoint:
        """Position of a point feature."""
        return self.parts[0][0]


class NavigationDataSet(Mapping[ElementKey, NavElement]):
    """Read-only mapping of element key to element, in adapter order."""

    def __init__(self, cycle: str, elements: Iterable[NavElement] = ()):
        self._cycle = cycle
        index: dict[ElementKey, NavElement] = {}
        for element in elements:
            index.setdefault(element.key, element)
        self._elements = index

    @property
    def cycle(self) -> str:
        return self._cycle

    def __getitem__(self, key: ElementKey) -> NavElement:
        return self._elements[key]

    def __iter__(self) -> Iterator[ElementKey]:
        return iter(self._elements)

    def __len__(self) -> int:
        return len(self._elements)

    def of_kind(self, kind: ElementKind) -> list[NavElement]:
        return [e for e in self._elements.values() if e.kind == kind]

    def __repr__(self) -> str:
        return f"NavigationDataSet(cycle={self._cycle!r}, elements={len(self)})"
