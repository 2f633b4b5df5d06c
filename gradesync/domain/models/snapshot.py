from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

from gradesync.domain.logic.grading import GradingSystem
from gradesync.domain.models.periods import SchoolYear, Semester


@dataclass(frozen=True)
class WidgetSnapshot:
    """Derived summary handed to the widget process."""

    overall_average: Optional[float]
    subject_count: int
    grade_count: int
    school_year: SchoolYear
    semester: Semester
    grading_system: GradingSystem
    last_update: Optional[datetime] = None

    @classmethod
    def empty(cls, today: date | None = None) -> "WidgetSnapshot":
        return cls(
            overall_average=None,
            subject_count=0,
            grade_count=0,
            school_year=SchoolYear.current(today),
            semester=Semester.FIRST,
            grading_system=GradingSystem.TRADITIONAL,
            last_update=None,
        )

    @property
    def has_data(self) -> bool:
        return self.last_update is not None

    def age_seconds(self, now: datetime | None = None) -> Optional[float]:
        if self.last_update is None:
            return None
        now = now or datetime.now(timezone.utc)
        return (now - self.last_update).total_seconds()
