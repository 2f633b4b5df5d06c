from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum

from gradesync.domain.logic.grading import GradingSystem

logger = logging.getLogger(__name__)

FIRST_SELECTABLE_YEAR = 2000
LAST_SELECTABLE_YEAR = 2099
SCHOOL_YEAR_START_MONTH = 8


class Semester(str, Enum):
    FIRST = "1. Halbjahr"
    SECOND = "2. Halbjahr"

    @property
    def display_name(self) -> str:
        return self.value

    @property
    def short_name(self) -> str:
        return "1. HJ" if self is Semester.FIRST else "2. HJ"

    @classmethod
    def from_raw(cls, raw: str | None) -> "Semester":
        try:
            return cls(raw)
        except ValueError:
            if raw is not None:
                logger.warning("Unknown semester tag %r, using first", raw)
            return cls.FIRST


@dataclass(frozen=True, order=True)
class SchoolYear:
    """A German school year such as 2024/2025, tagged with its grading system."""

    start_year: int
    grading_system: GradingSystem = field(default=GradingSystem.TRADITIONAL, compare=False)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SchoolYear):
            return NotImplemented
        return (self.start_year, self.grading_system) == (other.start_year, other.grading_system)

    def __hash__(self) -> int:
        return hash((self.start_year, self.grading_system))

    @property
    def end_year(self) -> int:
        return self.start_year + 1

    @property
    def display_name(self) -> str:
        return f"{self.start_year}/{self.end_year}"

    @property
    def is_selectable(self) -> bool:
        return FIRST_SELECTABLE_YEAR <= self.start_year <= LAST_SELECTABLE_YEAR

    @staticmethod
    def current_start_year(today: date | None = None) -> int:
        today = today or date.today()
        if today.month >= SCHOOL_YEAR_START_MONTH:
            return today.year
        return today.year - 1

    @classmethod
    def current(
        cls,
        today: date | None = None,
        grading_system: GradingSystem = GradingSystem.TRADITIONAL,
    ) -> "SchoolYear":
        return cls(cls.current_start_year(today), grading_system)

    @classmethod
    def selectable_years(cls) -> list["SchoolYear"]:
        return [cls(year) for year in range(FIRST_SELECTABLE_YEAR, LAST_SELECTABLE_YEAR + 1)]

    @classmethod
    def from_storage(
        cls,
        start_year: int | None,
        grading_system_raw: str | None,
        today: date | None = None,
    ) -> "SchoolYear":
        system = GradingSystem.from_raw(grading_system_raw)
        if not start_year or start_year <= 0:
            return cls.current(today, system)
        return cls(start_year, system)
