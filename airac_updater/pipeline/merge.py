"""Sector file merge engine.

Managed entries follow the navigation data set; manual entries are never
touched. A manual entry that shares its (section, identifier) key with an
element of the data set shadows it, and the collision is reported as a
conflict.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass

from airac_updater.adapters.sct_codec import (
    SCHEMA_VERSION,
    Section,
    SectorEntry,
    SectorFile,
    managed_entry,
    section_for,
)
from airac_updater.contracts.navdata import NavigationDataSet
from airac_updater.contracts.outcome import ChangeSummary, Conflict
from airac_updater.errors import IncompatibleSchema

logger = logging.getLogger(__name__)

EntryKey = tuple[str, str]


@dataclass
class MergeResult:
    model: SectorFile
    summary: ChangeSummary


def is_publishable_fix(identifier: str) -> bool:
    """Five-letter name codes only; numeric and coded points are not added."""
    return len(identifier) == 5 and not identifier[0].isdigit()


def _desired_entries(new: NavigationDataSet) -> dict[EntryKey, SectorEntry]:
    desired: dict[EntryKey, SectorEntry] = {}
    for element in new.values():
        section = section_for(element)
        if section is None:
            continue
        desired.setdefault((section, element.identifier), managed_entry(element))
    return desired


def _append_position(section: Section) -> int:
    """Index after the last entry, or before the trailing blank lines."""
    for i in range(len(section.items) - 1, -1, -1):
        if isinstance(section.items[i], SectorEntry):
            return i + 1
    position = len(section.items)
    while position > 0 and not section.items[position - 1].raw.strip():
        position -= 1
    return position


def merge(existing: SectorFile, new: NavigationDataSet) -> MergeResult:
    """Merge *new* into a copy of *existing*.

    Raises:
        IncompatibleSchema: The file was written with an unknown schema version.
    """
    if existing.schema_version is not None and existing.schema_version != SCHEMA_VERSION:
        raise IncompatibleSchema(existing.schema_version)

    model = copy.deepcopy(existing)
    desired = _desired_entries(new)
    manual_keys = {
        (entry.section, entry.identifier)
        for entry in model.entries()
        if not entry.managed
    }

    added = updated = removed = 0
    conflicts: list[Conflict] = []
    seen: set[EntryKey] = set()

    for section in model.sections:
        kept: list = []
        for item in section.items:
            if not isinstance(item, SectorEntry):
                kept.append(item)
                continue

            key = (item.section, item.identifier)
            if not item.managed:
                if key in desired and key not in seen:
                    conflicts.append(Conflict(section=item.section, identifier=item.identifier))
                    logger.warning(
                        "Manual entry %s in [%s] shadows published data", item.identifier, item.section
                    )
                seen.add(key)
                kept.append(item)
                continue

            if key in seen or key in manual_keys or key not in desired:
                removed += 1
                logger.debug("Removing managed %s from [%s]", item.identifier, item.section)
                continue

            seen.add(key)
            replacement = desired[key]
            if replacement.raw_lines != item.raw_lines:
                updated += 1
                logger.debug("Updating managed %s in [%s]", item.identifier, item.section)
                item.raw_lines = list(replacement.raw_lines)
            kept.append(item)
        section.items = kept

    for key, entry in desired.items():
        if key in seen:
            continue
        section_name, identifier = key
        if section_name == "FIXES" and not is_publishable_fix(identifier):
            continue
        section = model.section(section_name) or model.add_section(section_name)
        section.items.insert(_append_position(section), copy.deepcopy(entry))
        added += 1
        logger.debug("Adding %s to [%s]", identifier, section_name)

    model.schema_version = SCHEMA_VERSION
    model.cycle = new.cycle

    summary = ChangeSummary(added=added, updated=updated, removed=removed, conflicts=conflicts)
    return MergeResult(model=model, summary=summary)
