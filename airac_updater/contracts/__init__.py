"""Updater data contracts: Pydantic v2 models shared by the pipeline.

Data authority
--------------

**AIXM datasets** (publisher, one release per AIRAC cycle, cached locally):
- ``NavElement`` / ``NavigationDataSet``: projected once per run, read-only

**Sector files** (user folder, source of truth for manual entries):
- managed entries are rewritten from the data set on every run
- manual entries are never modified

Reported (never persisted)
--------------------------
- ``ChangeSummary``: managed entry counts and conflicts of one merge
- ``UpdateOutcome``: terminal status of one file
- ``RunSummary``: aggregate of a run, returned by ``run_update``
"""

from airac_updater.contracts.enums import ElementKind, NavaidType, RouteLevel, UpdateStatus
from airac_updater.contracts.common import ContractModel, GeoPoint
from airac_updater.contracts.navdata import (
    ElementKey,
    NavElement,
    NavigationDataSet,
    normalize_identifier,
)
from airac_updater.contracts.outcome import (
    ChangeSummary,
    Conflict,
    DatasetStats,
    OutcomeError,
    RunSummary,
    UpdateOutcome,
)

__all__ = [
    # Enums
    "ElementKind",
    "NavaidType",
    "RouteLevel",
    "UpdateStatus",
    # Base
    "ContractModel",
    "GeoPoint",
    # Navigation data
    "ElementKey",
    "NavElement",
    "NavigationDataSet",
    "normalize_identifier",
    # Outcomes
    "ChangeSummary",
    "Conflict",
    "DatasetStats",
    "OutcomeError",
    "RunSummary",
    "UpdateOutcome",
]
