from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from gradesync.domain.errors import InvalidGradeError
from gradesync.domain.logic.grading import GradingSystem
from gradesync.domain.models.periods import SchoolYear, Semester


@dataclass(frozen=True)
class GradeType:
    key: str
    name: str
    weight: float
    icon: str

    @classmethod
    def from_key(cls, key: str) -> "GradeType":
        try:
            return GRADE_TYPES[key]
        except KeyError as exc:
            raise InvalidGradeError(f"Unknown grade type: {key}") from exc


GRADE_TYPES: dict[str, GradeType] = {
    gt.key: gt
    for gt in (
        GradeType("major_exam", "Schulaufgabe", 3, "doc.text.fill"),
        GradeType("test", "Test", 2, "pencil"),
        GradeType("homework", "Hausaufgabe", 1, "house.fill"),
        GradeType("oral", "Mündlich", 1, "bubble.fill"),
    )
}


@dataclass
class Subject:
    id: int
    name: str
    color_hex: str
    icon: str


@dataclass
class Grade:
    id: int
    subject_id: int
    value: float
    type: GradeType
    school_year: SchoolYear
    semester: Semester
    date: date | None = None

    @property
    def weight(self) -> float:
        return self.type.weight


@dataclass
class FinalGrade:
    id: int
    subject_id: int
    value: float
    school_year: SchoolYear
    semester: Semester


@dataclass
class GradingSystemAssignment:
    start_year: int
    grading_system: GradingSystem
    is_explicit: bool
