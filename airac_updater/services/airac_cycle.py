"""AIRAC cycle arithmetic.

AIRAC cycles are 28-day periods on a fixed grid. A cycle is identified by
the last two digits of the year its effective date falls in and its rank
among the cycles starting in that year (``2502`` is the second cycle
effective in 2025). Most years have 13 cycles, some have 14.

Usage:
    from airac_updater.services.airac_cycle import resolve_cycle

    cycle = resolve_cycle()          # cycle in effect now
    cycle.ident                      # "2610"
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any

from airac_updater.errors import InvalidCycleIdent, InvalidReferenceDate

# AIRAC 9801, the first cycle of 1998. Every cycle start lies on this grid.
AIRAC_EPOCH = datetime(1998, 1, 1, tzinfo=timezone.utc)
AIRAC_CYCLE_DAYS = 28
CYCLE_LENGTH = timedelta(days=AIRAC_CYCLE_DAYS)

_IDENT_RE = re.compile(r"^(\d{2})(\d{2})$")


@dataclass(frozen=True)
class AiracCycle:
    """One AIRAC cycle, effective over ``[start, end)``."""

    year: int
    number: int
    start: datetime
    end: datetime

    @property
    def ident(self) -> str:
        """Cycle identifier, e.g. ``"2502"``."""
        return f"{self.year % 100:02d}{self.number:02d}"

    @property
    def index(self) -> int:
        """Number of cycles since the epoch."""
        return (self.start - AIRAC_EPOCH) // CYCLE_LENGTH

    def contains(self, instant: datetime | date) -> bool:
        return self.start <= _as_utc(instant) < self.end

    def next(self) -> AiracCycle:
        return _cycle_at(self.index + 1)

    def previous(self) -> AiracCycle:
        if self.index == 0:
            raise InvalidReferenceDate(f"AIRAC {self.ident} is the first cycle of the epoch")
        return _cycle_at(self.index - 1)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "ident": self.ident,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
        }

    def __str__(self) -> str:
        last_day = self.end - timedelta(days=1)
        return f"AIRAC {self.ident} ({self.start.strftime('%d/%m/%Y')} - {last_day.strftime('%d/%m/%Y')})"


def _as_utc(instant: datetime | date) -> datetime:
    """Naive datetimes are taken as UTC, bare dates as 00:00Z."""
    if not isinstance(instant, datetime):
        return datetime(instant.year, instant.month, instant.day, tzinfo=timezone.utc)
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def _first_index_of_year(year: int) -> int:
    """Index of the first cycle starting on or after January 1st of *year*."""
    days = (datetime(year, 1, 1, tzinfo=timezone.utc) - AIRAC_EPOCH).days
    return -(-days // AIRAC_CYCLE_DAYS)


def _cycle_at(index: int) -> AiracCycle:
    start = AIRAC_EPOCH + index * CYCLE_LENGTH
    number = index - _first_index_of_year(start.year) + 1
    return AiracCycle(year=start.year, number=number, start=start, end=start + CYCLE_LENGTH)


def resolve_cycle(reference: datetime | date | None = None) -> AiracCycle:
    """Return the AIRAC cycle in effect at *reference* (default: now).

    Raises:
        InvalidReferenceDate: If *reference* predates the epoch.
    """
    if reference is None:
        reference = datetime.now(tz=timezone.utc)
    instant = _as_utc(reference)
    if instant < AIRAC_EPOCH:
        raise InvalidReferenceDate(
            f"{instant.isoformat()} predates the AIRAC epoch ({AIRAC_EPOCH.date().isoformat()})"
        )
    return _cycle_at((instant - AIRAC_EPOCH) // CYCLE_LENGTH)


def cycle_from_ident(ident: str) -> AiracCycle:
    """Parse a ``YYNN`` identifier back to its cycle.

    Raises:
        InvalidCycleIdent: Malformed identifier, or no such cycle in that year.
    """
    match = _IDENT_RE.match(ident.strip())
    if not match:
        raise InvalidCycleIdent(f"AIRAC identifier must be 4 digits (YYNN), got '{ident}'")

    yy, number = int(match.group(1)), int(match.group(2))
    year = 1900 + yy if yy >= AIRAC_EPOCH.year % 100 else 2000 + yy
    if number < 1:
        raise InvalidCycleIdent(f"AIRAC {ident}: cycle numbers start at 01")

    cycle = _cycle_at(_first_index_of_year(year) + number - 1)
    if cycle.year != year:
        raise InvalidCycleIdent(f"AIRAC {ident}: {year} has no cycle {number:02d}")
    return cycle
