"""Enumerations shared across all updater contracts."""

from enum import Enum


class ElementKind(str, Enum):
    """Kind of navigation element carried over from AIXM."""
    NAVAID = "navaid"
    WAYPOINT = "waypoint"
    AIRPORT = "airport"
    AIRSPACE = "airspace"
    AIRWAY = "airway"


class NavaidType(str, Enum):
    VOR = "VOR"
    NDB = "NDB"


class RouteLevel(str, Enum):
    """Vertical extent of an airway segment (AIXM CodeLevelType)."""
    UPPER = "UPPER"
    LOWER = "LOWER"
    BOTH = "BOTH"


class UpdateStatus(str, Enum):
    """Terminal status of one sector file in a run."""
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"
