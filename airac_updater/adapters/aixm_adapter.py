"""AIXM → navigation data projection.

Keeps the feature types a sector file can show, flattens their time slices
to the version effective at the start of the target cycle, and converts
positions to WGS84 decimal degrees. Pure: no I/O, deterministic ordering
(document order).
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from collections import Counter
from dataclasses import dataclass

from pydantic import ValidationError

from airac_updater.adapters.aixm_parser import (
    XLINK_HREF,
    AixmDocument,
    AixmFeature,
    AixmTimeSlice,
    child,
    child_text,
    href_target,
    local_name,
)
from airac_updater.contracts.common import GeoPoint
from airac_updater.contracts.enums import ElementKind, NavaidType, RouteLevel
from airac_updater.contracts.navdata import NavElement, NavigationDataSet
from airac_updater.contracts.outcome import DatasetStats
from airac_updater.errors import MalformedGeometry, UnsupportedFeature
from airac_updater.services.airac_cycle import AiracCycle

logger = logging.getLogger(__name__)

# Features whose position can be the end of an airway segment
POINT_FEATURES = ("DesignatedPoint", "Navaid", "VOR", "NDB", "DME", "TACAN")
# Consumed while projecting other features, never reported as unsupported
LOOKUP_ONLY_FEATURES = ("Navaid", "RouteSegment")

UNSUPPORTED_BOUNDARIES = ("CircleByCenterPoint", "ArcByCenterPoint")

# 500159.00N, 0083412.5E
_DMS_RE = re.compile(r"^(\d{2,3})(\d{2})(\d{2}(?:\.\d+)?)([NSEW])$")

_HZ_PER_UNIT = {"HZ": 1.0, "KHZ": 1e3, "MHZ": 1e6, "GHZ": 1e9}


@dataclass
class AdapterResult:
    dataset: NavigationDataSet
    stats: DatasetStats


# ============ Geometry ============

def _dms_to_decimal(token: str) -> tuple[float, str]:
    match = _DMS_RE.match(token.upper())
    if not match:
        raise MalformedGeometry(f"Unrecognised coordinate '{token}'")
    degrees, minutes, seconds, hemisphere = match.groups()
    value = int(degrees) + int(minutes) / 60 + float(seconds) / 3600
    if hemisphere in ("S", "W"):
        value = -value
    return value, hemisphere


def _make_point(latitude: float, longitude: float) -> GeoPoint:
    try:
        return GeoPoint(latitude=latitude, longitude=longitude)
    except ValidationError:
        raise MalformedGeometry(f"Position out of range: {latitude}, {longitude}")


def parse_position(text: str, srs_name: str = "") -> GeoPoint:
    """Convert a ``gml:pos`` value to a point.

    EPSG:4326 order is ``lat lon``; CRS84 is ``lon lat``. Hemisphere-tagged
    DMS values (``500159N 0083412E``) may come in either order.
    """
    tokens = text.split()
    if len(tokens) != 2:
        raise MalformedGeometry(f"Expected 2 coordinates, got '{text}'")
    try:
        first, second = float(tokens[0]), float(tokens[1])
    except ValueError:
        values = dict((hemi, value) for value, hemi in map(_dms_to_decimal, tokens))
        lat = values.get("N", values.get("S"))
        lon = values.get("E", values.get("W"))
        if lat is None or lon is None:
            raise MalformedGeometry(f"Position needs one latitude and one longitude: '{text}'")
        return _make_point(lat, lon)

    if "CRS84" in srs_name.upper():
        return _make_point(second, first)
    return _make_point(first, second)


def parse_pos_list(text: str, srs_name: str = "") -> list[GeoPoint]:
    tokens = text.split()
    if len(tokens) % 2:
        raise MalformedGeometry(f"Odd number of values in posList ({len(tokens)})")
    return [
        parse_position(f"{tokens[i]} {tokens[i + 1]}", srs_name)
        for i in range(0, len(tokens), 2)
    ]


def _srs_name(scope: ET.Element) -> str:
    for el in scope.iter():
        if el.get("srsName"):
            return el.get("srsName", "")
    return ""


def _point_of(container: ET.Element | None, what: str) -> GeoPoint:
    """Position of the first ``pos`` below *container*."""
    if container is not None:
        for el in container.iter():
            if local_name(el.tag) == "pos" and el.text and el.text.strip():
                return parse_position(el.text, _srs_name(container))
    raise MalformedGeometry(f"{what} has no position")


def _ring_of(slice_el: ET.Element, what: str) -> tuple[GeoPoint, ...]:
    """Boundary of the first horizontal projection of an airspace."""
    scope = None
    for el in slice_el.iter():
        if local_name(el.tag) == "exterior":
            scope = el
            break
    if scope is None:
        scope = next((el for el in slice_el.iter() if local_name(el.tag) == "horizontalProjection"), None)
    if scope is None:
        raise MalformedGeometry(f"{what} has no horizontal projection")

    srs = _srs_name(slice_el)
    points: list[GeoPoint] = []
    for el in scope.iter():
        name = local_name(el.tag)
        if name in UNSUPPORTED_BOUNDARIES:
            raise MalformedGeometry(f"{what} uses an unsupported boundary ({name})")
        if not el.text or not el.text.strip():
            continue
        if name == "posList":
            points.extend(parse_pos_list(el.text, srs))
        elif name == "pos":
            points.append(parse_position(el.text, srs))

    if len(points) < 3:
        raise MalformedGeometry(f"{what} boundary has {len(points)} points")
    return tuple(points)


# ============ Attributes ============

def _frequency(slice_el: ET.Element, target_unit: str) -> float | None:
    sub = child(slice_el, "frequency")
    if sub is None or not sub.text or not sub.text.strip():
        return None
    try:
        value = float(sub.text.strip())
    except ValueError:
        logger.debug("Ignoring unparsable frequency %r", sub.text)
        return None
    unit = (sub.get("uom") or target_unit).upper()
    factor = _HZ_PER_UNIT.get(unit)
    if factor is None:
        return None
    return value * factor / _HZ_PER_UNIT[target_unit]


def _require(value: str | None, feature: AixmFeature) -> str:
    if not value:
        raise UnsupportedFeature(f"{feature.feature_type} {feature.uuid} has no designator")
    return value


# ============ Projection ============

class _Projector:
    """Projection state shared by all features of one document."""

    def __init__(self, effective: list[tuple[AixmFeature, AixmTimeSlice]], stats: Counter):
        self.stats = stats
        self.points: dict[str, GeoPoint] = {}
        self.segments: dict[str, list[ET.Element]] = {}

        for feature, ts in effective:
            if feature.feature_type in POINT_FEATURES and feature.uuid:
                location = child(ts.element, "location")
                try:
                    self.points[feature.uuid] = _point_of(location, feature.feature_type)
                except MalformedGeometry as e:
                    logger.debug("No segment endpoint for %s: %s", feature.uuid, e)
            elif feature.feature_type == "RouteSegment":
                route = child(ts.element, "routeFormed")
                if route is not None and route.get(XLINK_HREF):
                    self.segments.setdefault(href_target(route.get(XLINK_HREF, "")), []).append(ts.element)

    def project(self, feature: AixmFeature, ts: AixmTimeSlice) -> NavElement:
        handler = {
            "VOR": self._vor,
            "NDB": self._ndb,
            "DesignatedPoint": self._designated_point,
            "AirportHeliport": self._airport,
            "Airspace": self._airspace,
            "Route": self._route,
        }.get(feature.feature_type)
        if handler is None:
            raise UnsupportedFeature(f"AIXM feature {feature.feature_type} is not used in sector files")
        return handler(feature, ts.element)

    def _vor(self, feature: AixmFeature, el: ET.Element) -> NavElement:
        designator = _require(child_text(el, "designator"), feature)
        return NavElement(
            kind=ElementKind.NAVAID,
            identifier=designator,
            name=child_text(el, "name"),
            navaid_type=NavaidType.VOR,
            frequency=_frequency(el, "MHZ"),
            parts=((_point_of(child(el, "location"), f"VOR {designator}"),),),
        )

    def _ndb(self, feature: AixmFeature, el: ET.Element) -> NavElement:
        designator = _require(child_text(el, "designator"), feature)
        return NavElement(
            kind=ElementKind.NAVAID,
            identifier=designator,
            name=child_text(el, "name"),
            navaid_type=NavaidType.NDB,
            frequency=_frequency(el, "KHZ"),
            parts=((_point_of(child(el, "location"), f"NDB {designator}"),),),
        )

    def _designated_point(self, feature: AixmFeature, el: ET.Element) -> NavElement:
        designator = _require(child_text(el, "designator"), feature)
        return NavElement(
            kind=ElementKind.WAYPOINT,
            identifier=designator,
            name=child_text(el, "name"),
            parts=((_point_of(child(el, "location"), f"Designated point {designator}"),),),
        )

    def _airport(self, feature: AixmFeature, el: ET.Element) -> NavElement:
        designator = _require(
            child_text(el, "locationIndicatorICAO") or child_text(el, "designator"), feature
        )
        return NavElement(
            kind=ElementKind.AIRPORT,
            identifier=designator,
            name=child_text(el, "name"),
            parts=((_point_of(child(el, "ARP"), f"Aerodrome {designator}"),),),
        )

    def _airspace(self, feature: AixmFeature, el: ET.Element) -> NavElement:
        designator = _require(child_text(el, "designator") or child_text(el, "name"), feature)
        return NavElement(
            kind=ElementKind.AIRSPACE,
            identifier=designator,
            name=child_text(el, "name"),
            airspace_type=child_text(el, "type"),
            parts=(_ring_of(el, f"Airspace {designator}"),),
        )

    def _route(self, feature: AixmFeature, el: ET.Element) -> NavElement:
        designator = "".join(
            part for part in (
                child_text(el, "designatorPrefix"),
                child_text(el, "designatorSecondLetter"),
                child_text(el, "designatorNumber"),
                child_text(el, "multipleIdentifier"),
            ) if part
        ) or child_text(el, "name")
        designator = _require(designator, feature)

        parts: list[tuple[GeoPoint, GeoPoint]] = []
        levels: set[str] = set()
        for segment in self.segments.get(feature.uuid or "", []):
            try:
                start = self._segment_end(segment, "start")
                end = self._segment_end(segment, "end")
            except MalformedGeometry as e:
                self.stats["malformed"] += 1
                logger.debug("Skipping segment of airway %s: %s", designator, e)
                continue
            parts.append((start, end))
            levels.add((child_text(segment, "level") or RouteLevel.BOTH.value).upper())

        if not parts:
            raise MalformedGeometry(f"Airway {designator} has no usable segment")

        if levels == {RouteLevel.UPPER.value}:
            level = RouteLevel.UPPER
        elif RouteLevel.UPPER.value in levels or RouteLevel.BOTH.value in levels:
            level = RouteLevel.BOTH
        else:
            level = RouteLevel.LOWER

        return NavElement(
            kind=ElementKind.AIRWAY,
            identifier=designator,
            name=child_text(el, "name"),
            route_level=level,
            parts=tuple(parts),
        )

    def _segment_end(self, segment: ET.Element, which: str) -> GeoPoint:
        container = child(segment, which)
        if container is None:
            raise MalformedGeometry(f"Segment has no {which} point")
        for el in container.iter():
            href = el.get(XLINK_HREF)
            if href and local_name(el.tag).startswith("pointChoice"):
                target = href_target(href)
                if target in self.points:
                    return self.points[target]
                raise MalformedGeometry(f"Segment {which} refers to unknown point {target}")
        return _point_of(container, f"Segment {which}")


def build_navigation_data(document: AixmDocument, cycle: AiracCycle) -> AdapterResult:
    """Project an AIXM document onto the navigation data of *cycle*."""
    stats: Counter = Counter()
    effective: list[tuple[AixmFeature, AixmTimeSlice]] = []
    for feature in document.features:
        ts = feature.effective_slice(cycle.start)
        if ts is None:
            stats["not_effective"] += 1
            continue
        effective.append((feature, ts))

    projector = _Projector(effective, stats)
    elements: list[NavElement] = []
    for feature, ts in effective:
        if feature.feature_type in LOOKUP_ONLY_FEATURES:
            continue
        try:
            elements.append(projector.project(feature, ts))
        except UnsupportedFeature as e:
            stats["unsupported"] += 1
            logger.debug("Skipping feature: %s", e)
        except (MalformedGeometry, ValidationError) as e:
            stats["malformed"] += 1
            logger.debug("Skipping feature %s %s: %s", feature.feature_type, feature.uuid, e)

    dataset = NavigationDataSet(cycle.ident, elements)
    by_kind = Counter(ElementKind(e.kind).value for e in dataset.values())
    result = AdapterResult(
        dataset=dataset,
        stats=DatasetStats(
            elements=len(dataset),
            unsupported=stats["unsupported"],
            malformed=stats["malformed"],
            not_effective=stats["not_effective"],
            by_kind=dict(by_kind),
        ),
    )
    logger.info(
        "Navigation data for AIRAC %s: %d elements (%d unsupported, %d malformed, %d not effective)",
        cycle.ident,
        result.stats.elements,
        result.stats.unsupported,
        result.stats.malformed,
        result.stats.not_effective,
    )
    return result
