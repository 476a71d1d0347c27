"""AIXM 5.1 XML parser: splits a basic message into features and time slices.

Only the structure shared by every feature is decoded here (identity,
temporal validity, versioning). Feature-specific properties stay on the
time slice element and are read by the adapter.

Tags are matched by local name so AIXM 5.1 and 5.1.1 documents both parse.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from airac_updater.errors import AixmParseError

logger = logging.getLogger(__name__)

GML_ID = "{http://www.opengis.net/gml/3.2}id"
XLINK_HREF = "{http://www.w3.org/1999/xlink}href"

EFFECTIVE_INTERPRETATIONS = ("BASELINE", "SNAPSHOT")


# ============ Element helpers ============

def local_name(tag: str) -> str:
    """Strip namespace prefix from an XML tag."""
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def child(element: ET.Element, name: str) -> ET.Element | None:
    """First direct child with local name *name*."""
    for sub in element:
        if local_name(sub.tag) == name:
            return sub
    return None


def find_path(element: ET.Element | None, *names: str) -> ET.Element | None:
    """Follow a chain of local names through direct children."""
    for name in names:
        if element is None:
            return None
        element = child(element, name)
    return element


def child_text(element: ET.Element, name: str) -> str | None:
    """Stripped text of a direct child, ``None`` if absent, empty or nil."""
    sub = child(element, name)
    if sub is None or sub.text is None:
        return None
    text = sub.text.strip()
    return text or None


def first_child_element(element: ET.Element) -> ET.Element | None:
    for sub in element:
        return sub
    return None


def href_target(href: str) -> str:
    """``urn:uuid:X``, ``#uuid.X`` and ``#X`` all refer to feature ``X``."""
    target = href.strip()
    for prefix in ("urn:uuid:", "#"):
        if target.startswith(prefix):
            target = target[len(prefix):]
    if target.startswith("uuid."):
        target = target[len("uuid."):]
    return target


# ============ Model ============

@dataclass
class AixmTimeSlice:
    """One version of a feature, valid over ``[valid_from, valid_to)``."""

    element: ET.Element
    interpretation: str = "BASELINE"
    valid_from: datetime | None = None
    valid_to: datetime | None = None
    sequence: int = 0
    correction: int = 0

    def is_effective(self, instant: datetime) -> bool:
        if self.interpretation not in EFFECTIVE_INTERPRETATIONS:
            return False
        if self.valid_from is not None and instant < self.valid_from:
            return False
        if self.valid_to is not None and instant >= self.valid_to:
            return False
        return True


@dataclass
class AixmFeature:
    feature_type: str
    uuid: str | None
    time_slices: list[AixmTimeSlice] = field(default_factory=list)

    def effective_slice(self, instant: datetime) -> AixmTimeSlice | None:
        """The latest version in effect at *instant*, if any."""
        candidates = [ts for ts in self.time_slices if ts.is_effective(instant)]
        if not candidates:
            return None
        return max(candidates, key=lambda ts: (ts.sequence, ts.correction))


@dataclass
class AixmDocument:
    features: list[AixmFeature] = field(default_factory=list)

    @classmethod
    def merge(cls, documents: Iterable[AixmDocument]) -> AixmDocument:
        """Concatenate documents, keeping each document's feature order."""
        merged = cls()
        for document in documents:
            merged.features.extend(document.features)
        return merged

    def count_by_type(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for feature in self.features:
            counts[feature.feature_type] = counts.get(feature.feature_type, 0) + 1
        return counts


# ============ Parser ============

class XmlAixmParser:
    """Default AIXM parser backed by ``xml.etree.ElementTree``."""

    def parse(self, data: bytes) -> AixmDocument:
        try:
            root = ET.fromstring(data)
        except ET.ParseError as e:
            raise AixmParseError(f"Invalid AIXM XML: {e}")

        document = AixmDocument()
        for member in root.iter():
            if local_name(member.tag) != "hasMember":
                continue
            feature_el = first_child_element(member)
            if feature_el is not None:
                document.features.append(_parse_feature(feature_el))

        if not document.features and local_name(root.tag) != "AIXMBasicMessage":
            raise AixmParseError(f"Not an AIXM basic message: <{local_name(root.tag)}>")

        logger.info("Parsed AIXM document: %d features", len(document.features))
        logger.debug("AIXM feature counts: %s", document.count_by_type())
        return document


def _parse_feature(element: ET.Element) -> AixmFeature:
    uuid = child_text(element, "identifier")
    if uuid is None and element.get(GML_ID):
        uuid = href_target(element.get(GML_ID, ""))

    feature = AixmFeature(feature_type=local_name(element.tag), uuid=uuid)
    for sub in element:
        if local_name(sub.tag) != "timeSlice":
            continue
        slice_el = first_child_element(sub)
        if slice_el is not None:
            feature.time_slices.append(_parse_time_slice(slice_el))
    return feature


def _parse_time_slice(element: ET.Element) -> AixmTimeSlice:
    valid_from = valid_to = None
    valid_time = child(element, "validTime")
    period = first_child_element(valid_time) if valid_time is not None else None
    if period is not None:
        if local_name(period.tag) == "TimePeriod":
            valid_from = _parse_time(child_text(period, "beginPosition"))
            valid_to = _parse_time(child_text(period, "endPosition"))
        elif local_name(period.tag) == "TimeInstant":
            valid_from = _parse_time(child_text(period, "timePosition"))

    return AixmTimeSlice(
        element=element,
        interpretation=(child_text(element, "interpretation") or "BASELINE").upper(),
        valid_from=valid_from,
        valid_to=valid_to,
        sequence=_parse_int(child_text(element, "sequenceNumber")),
        correction=_parse_int(child_text(element, "correctionNumber")),
    )


def _parse_time(text: str | None) -> datetime | None:
    """ISO 8601 instant, naive values taken as UTC. Indeterminate -> open."""
    if not text:
        return None
    try:
        value = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Ignoring unparsable AIXM time %r", text)
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _parse_int(text: str | None) -> int:
    try:
        return int(text) if text else 0
    except ValueError:
        return 0
