"""Shared AIXM, DFS index and sector file samples for the test suite."""

from __future__ import annotations

AIXM_NS = (
    'xmlns:message="http://www.aixm.aero/schema/5.1/message" '
    'xmlns:aixm="http://www.aixm.aero/schema/5.1" '
    'xmlns:gml="http://www.opengis.net/gml/3.2" '
    'xmlns:xlink="http://www.w3.org/1999/xlink"'
)
EPSG_4326 = "urn:ogc:def:crs:EPSG::4326"


# ============ AIXM builders ============

def time_slice(
    kind: str,
    body: str,
    *,
    begin: str = "2020-01-01T00:00:00Z",
    end: str | None = None,
    interpretation: str = "BASELINE",
    sequence: int = 1,
    correction: int = 0,
) -> str:
    end_el = (
        f"<gml:endPosition>{end}</gml:endPosition>"
        if end
        else '<gml:endPosition indeterminatePosition="unknown"/>'
    )
    return (
        f"<aixm:timeSlice><aixm:{kind}TimeSlice>"
        f"<gml:validTime><gml:TimePeriod>"
        f"<gml:beginPosition>{begin}</gml:beginPosition>{end_el}"
        f"</gml:TimePeriod></gml:validTime>"
        f"<aixm:interpretation>{interpretation}</aixm:interpretation>"
        f"<aixm:sequenceNumber>{sequence}</aixm:sequenceNumber>"
        f"<aixm:correctionNumber>{correction}</aixm:correctionNumber>"
        f"{body}"
        f"</aixm:{kind}TimeSlice></aixm:timeSlice>"
    )


def feature(kind: str, uuid: str, *slices: str) -> str:
    return (
        f'<message:hasMember><aixm:{kind} gml:id="uuid.{uuid}">'
        f'<gml:identifier codeSpace="urn:uuid:">{uuid}</gml:identifier>'
        f"{''.join(slices)}"
        f"</aixm:{kind}></message:hasMember>"
    )


def aixm_message(*members: str) -> bytes:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<message:AIXMBasicMessage {AIXM_NS} gml:id="msg">'
        f"{''.join(members)}"
        "</message:AIXMBasicMessage>"
    ).encode("utf-8")


def location(lat: float | str, lon: float | str, tag: str = "location", srs: str = EPSG_4326) -> str:
    return (
        f'<aixm:{tag}><aixm:ElevatedPoint srsName="{srs}">'
        f"<gml:pos>{lat} {lon}</gml:pos>"
        f"</aixm:ElevatedPoint></aixm:{tag}>"
    )


def vor(uuid: str, designator: str, lat, lon, frequency: float | None = 115.5, uom: str = "MHZ", **slice_kw) -> str:
    freq = f'<aixm:frequency uom="{uom}">{frequency}</aixm:frequency>' if frequency is not None else ""
    body = f"<aixm:designator>{designator}</aixm:designator><aixm:name>{designator} VOR</aixm:name>{freq}{location(lat, lon)}"
    return feature("VOR", uuid, time_slice("VOR", body, **slice_kw))


def ndb(uuid: str, designator: str, lat, lon, frequency: float = 350.0, uom: str = "KHZ") -> str:
    body = (
        f"<aixm:designator>{designator}</aixm:designator>"
        f'<aixm:frequency uom="{uom}">{frequency}</aixm:frequency>{location(lat, lon)}'
    )
    return feature("NDB", uuid, time_slice("NDB", body))


def designated_point(uuid: str, designator: str, lat, lon, **slice_kw) -> str:
    body = f"<aixm:designator>{designator}</aixm:designator><aixm:type>ICAO</aixm:type>{location(lat, lon)}"
    return feature("DesignatedPoint", uuid, time_slice("DesignatedPoint", body, **slice_kw))


def airport(uuid: str, icao: str, lat, lon, name: str = "TEST AIRPORT") -> str:
    body = (
        f"<aixm:designator>{icao}</aixm:designator><aixm:name>{name}</aixm:name>"
        f"<aixm:locationIndicatorICAO>{icao}</aixm:locationIndicatorICAO>"
        f"{location(lat, lon, tag='ARP')}"
    )
    return feature("AirportHeliport", uuid, time_slice("AirportHeliport", body))


def airspace(uuid: str, designator: str, airspace_type: str, ring: list[tuple[float, float]]) -> str:
    pos_list = " ".join(f"{lat} {lon}" for lat, lon in ring)
    body = (
        f"<aixm:type>{airspace_type}</aixm:type>"
        f"<aixm:designator>{designator}</aixm:designator><aixm:name>{designator}</aixm:name>"
        "<aixm:geometryComponent><aixm:AirspaceGeometryComponent><aixm:theAirspaceVolume>"
        "<aixm:AirspaceVolume><aixm:horizontalProjection>"
        f'<aixm:Surface srsName="{EPSG_4326}"><gml:patches><gml:PolygonPatch><gml:exterior>'
        f"<gml:LinearRing><gml:posList>{pos_list}</gml:posList></gml:LinearRing>"
        "</gml:exterior></gml:PolygonPatch></gml:patches></aixm:Surface>"
        "</aixm:horizontalProjection></aixm:AirspaceVolume>"
        "</aixm:theAirspaceVolume></aixm:AirspaceGeometryComponent></aixm:geometryComponent>"
    )
    return feature("Airspace", uuid, time_slice("Airspace", body))


def route(uuid: str, prefix: str, second_letter: str, number: str) -> str:
    body = (
        f"<aixm:designatorPrefix>{prefix}</aixm:designatorPrefix>"
        f"<aixm:designatorSecondLetter>{second_letter}</aixm:designatorSecondLetter>"
        f"<aixm:designatorNumber>{number}</aixm:designatorNumber>"
    )
    return feature("Route", uuid, time_slice("Route", body))


def route_segment(uuid: str, route_uuid: str, start_uuid: str, end_uuid: str, level: str = "UPPER") -> str:
    body = (
        f"<aixm:level>{level}</aixm:level>"
        "<aixm:start><aixm:EnRouteSegmentPoint>"
        f'<aixm:pointChoice_fixDesignatedPoint xlink:href="urn:uuid:{start_uuid}"/>'
        "</aixm:EnRouteSegmentPoint></aixm:start>"
        "<aixm:end><aixm:EnRouteSegmentPoint>"
        f'<aixm:pointChoice_fixDesignatedPoint xlink:href="urn:uuid:{end_uuid}"/>'
        "</aixm:EnRouteSegmentPoint></aixm:end>"
        f'<aixm:routeFormed xlink:href="urn:uuid:{route_uuid}"/>'
    )
    return feature("RouteSegment", uuid, time_slice("RouteSegment", body))


# ============ DFS index ============

def release_filename(dataset: str, start: str, end: str) -> str:
    return f"{dataset.replace(' ', '_')}_{start}_{end}_revision.xml"


def dfs_index(
    datasets: tuple[str, ...],
    start: str = "2025-02-20",
    end: str = "2025-03-20",
    amdt: int = 7,
) -> dict:
    leaves = [
        {
            "type": "leaf",
            "name": name,
            "releases": [
                {"type": "AIXM 5.1", "filename": release_filename(name, start, end)},
                {"type": "AIXM 4.5", "filename": release_filename(name, start, end).replace(".xml", "_45.xml")},
            ],
        }
        for name in datasets
    ]
    return {
        "Amdts": [
            {
                "Amdt": amdt,
                "Metadata": {"datasets": [{"type": "group", "name": "AIXM", "items": leaves}]},
            }
        ]
    }


# ============ Sector files ============

SAMPLE_SCT = """\
;Test sector file
#define COLOR_APP 16711680

[INFO]
Test Sector
TST_CTR
EDDF
N050.01.59.000
E008.34.12.000
60
39
0
1

[VOR]
ABC 114.500 N050.00.00.000 E008.00.00.000 ;@managed

[NDB]

[FIXES]
XYZ N049.00.00.000 E007.00.00.000

[GEO]
EDDF_RWY N050.00.00.000 E008.00.00.000 N050.01.00.000 E008.01.00.000 COLOR_APP
"""

# Navigation data matching SAMPLE_SCT: ABC retuned, DEF new, XYZ also published
NAVAIDS_2502 = aixm_message(
    vor("v-abc", "ABC", 50.0, 8.0, frequency=115.5),
    vor("v-def", "DEF", 51.0, 9.0, frequency=112.3),
)
WAYPOINTS_2502 = aixm_message(
    designated_point("p-xyz", "XYZ", 49.5, 7.5),
)
