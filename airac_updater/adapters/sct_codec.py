"""Sector file (.sct) codec.

A sector file is a preamble (``#define`` lines, comments) followed by
``[SECTION]`` blocks. Sections holding navigation data are split into
entries; everything else is kept as raw lines so rendering reproduces the
input exactly.

Entries written by the updater carry a trailing ``;@managed`` marker on each
line and the file starts with a header line::

    ;@airac-updater schema=1 cycle=2502
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from airac_updater.contracts.common import GeoPoint
from airac_updater.contracts.enums import ElementKind, NavaidType, RouteLevel
from airac_updater.contracts.navdata import NavElement, normalize_identifier
from airac_updater.errors import SectorParseError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
MANAGED_TAG = ";@managed"

_HEADER_RE = re.compile(r"^;\s*@airac-updater\s+schema=(\d+)(?:\s+cycle=(\d{4}))?\s*$")
_SECTION_RE = re.compile(r"^\s*\[([^\]]+)\]\s*(?:;.*)?$")

# Number of trailing coordinate tokens after the identifier, per section
POINT_SECTIONS = {"VOR": None, "NDB": None, "AIRPORT": None, "FIXES": 2}
SEGMENT_SECTIONS = ("ARTCC", "ARTCC HIGH", "ARTCC LOW", "HIGH AIRWAY", "LOW AIRWAY")
ENTRY_SECTIONS = (*POINT_SECTIONS, *SEGMENT_SECTIONS)

# Position of newly created sections
SECTION_ORDER = (
    "INFO",
    "VOR",
    "NDB",
    "AIRPORT",
    "RUNWAY",
    "FIXES",
    "ARTCC",
    "ARTCC HIGH",
    "ARTCC LOW",
    "SID",
    "STAR",
    "LOW AIRWAY",
    "HIGH AIRWAY",
    "GEO",
    "REGIONS",
    "LABELS",
)

FIR_TYPES = {"FIR", "FIR_P", "OCA", "OCA_P"}
UPPER_AIRSPACE_TYPES = {"UIR", "UIR_P", "UTA", "UTA_P", "OTA"}
LOWER_AIRSPACE_TYPES = {"CTA", "CTA_P", "TMA", "TMA_P", "CTR", "CTR_P"}


# ============ Model ============

@dataclass
class SectorLine:
    """A line kept verbatim: blank, comment, or content of a free-form section."""

    raw: str

    @property
    def is_blank(self) -> bool:
        return not self.raw.strip()


@dataclass
class SectorEntry:
    """One navigation element of a sector file, possibly spanning several lines."""

    section: str
    identifier: str
    raw_lines: list[str]
    managed: bool = False


@dataclass
class Section:
    name: str
    header: str
    items: list[SectorLine | SectorEntry] = field(default_factory=list)

    @property
    def entries(self) -> list[SectorEntry]:
        return [item for item in self.items if isinstance(item, SectorEntry)]


@dataclass
class SectorFile:
    preamble: list[str] = field(default_factory=list)
    sections: list[Section] = field(default_factory=list)
    schema_version: int | None = None
    cycle: str | None = None
    newline: str = "\n"
    trailing_newline: bool = True

    def section(self, name: str) -> Section | None:
        for section in self.sections:
            if section.name == name:
                return section
        return None

    def entries(self) -> list[SectorEntry]:
        return [entry for section in self.sections for entry in section.entries]

    def add_section(self, name: str) -> Section:
        """Create an empty section at its canonical position."""
        section = Section(name=name, header=f"[{name}]")
        rank = _section_rank(name)
        for i, existing in enumerate(self.sections):
            if _section_rank(existing.name) > rank:
                self.sections.insert(i, section)
                return section
        self.sections.append(section)
        return section


def _section_rank(name: str) -> int:
    try:
        return SECTION_ORDER.index(name)
    except ValueError:
        return len(SECTION_ORDER)


# ============ Line helpers ============

def strip_comment(line: str) -> str:
    return line.split(";", 1)[0]


def is_managed_line(line: str) -> bool:
    return line.rstrip().endswith(MANAGED_TAG)


def tag_managed(line: str) -> str:
    return f"{line} {MANAGED_TAG}"


def line_identifier(section: str, line: str) -> str:
    """Identifier carried by an entry line, ``""`` for coordinate-only lines."""
    tokens = strip_comment(line).split()
    if section in POINT_SECTIONS:
        trailing = POINT_SECTIONS[section]
        name_tokens = tokens[:1] if trailing is None else tokens[:-trailing]
    else:
        name_tokens = tokens[:-4]
    return normalize_identifier(" ".join(name_tokens))


# ============ Formatting ============

def format_coordinate(value: float, positive: str, negative: str) -> str:
    """``50.03305`` -> ``N050.01.58.980``."""
    hemisphere = positive if value >= 0 else negative
    millis = round(abs(value) * 3_600_000)
    degrees, millis = divmod(millis, 3_600_000)
    minutes, millis = divmod(millis, 60_000)
    seconds, millis = divmod(millis, 1000)
    return f"{hemisphere}{degrees:03d}.{minutes:02d}.{seconds:02d}.{millis:03d}"


def format_point(point: GeoPoint) -> str:
    return (
        f"{format_coordinate(point.latitude, 'N', 'S')} "
        f"{format_coordinate(point.longitude, 'E', 'W')}"
    )


def format_frequency(value: float | None) -> str:
    return f"{value:.3f}" if value else "000.000"


def section_for(element: NavElement) -> str | None:
    """Sector file section an element belongs in, ``None`` if none fits."""
    kind = ElementKind(element.kind)
    if kind == ElementKind.NAVAID:
        return NavaidType(element.navaid_type).value if element.navaid_type else None
    if kind == ElementKind.WAYPOINT:
        return "FIXES"
    if kind == ElementKind.AIRPORT:
        return "AIRPORT"
    if kind == ElementKind.AIRWAY:
        return "HIGH AIRWAY" if element.route_level == RouteLevel.UPPER else "LOW AIRWAY"

    airspace_type = (element.airspace_type or "").upper()
    if airspace_type in FIR_TYPES:
        return "ARTCC"
    if airspace_type in UPPER_AIRSPACE_TYPES:
        return "ARTCC HIGH"
    if airspace_type in LOWER_AIRSPACE_TYPES:
        return "ARTCC LOW"
    return None


def format_element(element: NavElement) -> list[str]:
    """Render an element as sector file lines (without the managed marker)."""
    section = section_for(element)
    ident = element.identifier
    if section in ("VOR", "NDB"):
        return [f"{ident} {format_frequency(element.frequency)} {format_point(element.point)}"]
    if section == "AIRPORT":
        return [f"{ident} 000.000 {format_point(element.point)} D"]
    if section == "FIXES":
        return [f"{ident} {format_point(element.point)}"]
    if section in ("ARTCC", "ARTCC HIGH", "ARTCC LOW"):
        ring = list(element.parts[0])
        if ring[0] != ring[-1]:
            ring.append(ring[0])
        return [
            f"{ident} {format_point(a)} {format_point(b)}"
            for a, b in zip(ring, ring[1:])
        ]
    if section in ("HIGH AIRWAY", "LOW AIRWAY"):
        return [
            f"{ident} {format_point(part[0])} {format_point(part[-1])}"
            for part in element.parts
        ]
    raise ValueError(f"{ElementKind(element.kind).value} {ident} has no sector file section")


def managed_entry(element: NavElement) -> SectorEntry:
    section = section_for(element)
    if section is None:
        raise ValueError(f"{ElementKind(element.kind).value} {element.identifier} has no sector file section")
    return SectorEntry(
        section=section,
        identifier=element.identifier,
        raw_lines=[tag_managed(line) for line in format_element(element)],
        managed=True,
    )


# ============ Codec ============

class SctCodec:
    """Default sector file codec."""

    def parse(self, text: str) -> SectorFile:
        model = SectorFile(
            newline="\r\n" if "\r\n" in text else "\n",
            trailing_newline=text.endswith(("\n", "\r")),
        )
        current: Section | None = None
        entry: SectorEntry | None = None

        for line in text.splitlines():
            match = _SECTION_RE.match(line)
            if match:
                current = Section(name=match.group(1).strip().upper(), header=line)
                model.sections.append(current)
                entry = None
                continue

            if current is None:
                header = _HEADER_RE.match(line.strip())
                if header and model.schema_version is None:
                    model.schema_version = int(header.group(1))
                    model.cycle = header.group(2)
                else:
                    model.preamble.append(line)
                continue

            if current.name not in ENTRY_SECTIONS or not strip_comment(line).strip():
                current.items.append(SectorLine(line))
                entry = None
                continue

            identifier = line_identifier(current.name, line)
            managed = is_managed_line(line)
            continues = entry is not None and entry.managed == managed and (
                identifier == entry.identifier
                or (current.name in SEGMENT_SECTIONS and (not identifier or line[:1].isspace()))
            )
            if continues:
                entry.raw_lines.append(line)
            elif identifier:
                entry = SectorEntry(current.name, identifier, [line], managed)
                current.items.append(entry)
            else:
                current.items.append(SectorLine(line))
                entry = None

        if not model.sections:
            raise SectorParseError("No [SECTION] header found")

        logger.debug(
            "Parsed sector file: %d sections, %d entries",
            len(model.sections),
            len(model.entries()),
        )
        return model

    def render(self, model: SectorFile) -> str:
        lines: list[str] = []
        if model.schema_version is not None:
            header = f";@airac-updater schema={model.schema_version}"
            if model.cycle:
                header += f" cycle={model.cycle}"
            lines.append(header)
        lines.extend(model.preamble)

        for section in model.sections:
            lines.append(section.header)
            for item in section.items:
                if isinstance(item, SectorEntry):
                    lines.extend(item.raw_lines)
                else:
                    lines.append(item.raw)

        text = model.newline.join(lines)
        if model.trailing_newline:
            text += model.newline
        return text
