from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class GradingSystem(str, Enum):
    """German grading scales.

    ``traditional`` runs from 0.7 ("1+", best) to 6.0 ("6", worst).
    ``points`` is the upper-school 0-15 scale where 15 is best.
    """

    TRADITIONAL = "traditional"
    POINTS = "points"

    @property
    def display_name(self) -> str:
        if self is GradingSystem.TRADITIONAL:
            return "Noten (1-6)"
        return "Punkte (0-15)"

    @property
    def min_value(self) -> float:
        return 0.7 if self is GradingSystem.TRADITIONAL else 0.0

    @property
    def max_value(self) -> float:
        return 6.0 if self is GradingSystem.TRADITIONAL else 15.0

    @classmethod
    def from_raw(cls, raw: str | None) -> "GradingSystem":
        try:
            return cls(raw)
        except ValueError:
            if raw is not None:
                logger.warning("Unknown grading system tag %r, using traditional", raw)
            return cls.TRADITIONAL


class GradeColor(str, Enum):
    GREEN = "green"
    BLUE = "blue"
    CYAN = "cyan"
    ORANGE = "orange"
    RED = "red"
    PINK = "pink"
    GRAY = "gray"


class PerformanceLevel(Enum):
    EXCELLENT = ("Sehr gut", "star.fill", GradeColor.GREEN)
    GOOD = ("Gut", "hand.thumbsup.fill", GradeColor.BLUE)
    SATISFACTORY = ("Befriedigend", "checkmark.circle.fill", GradeColor.CYAN)
    SUFFICIENT = ("Ausreichend", "minus.circle.fill", GradeColor.ORANGE)
    POOR = ("Mangelhaft", "exclamationmark.circle.fill", GradeColor.RED)
    INSUFFICIENT = ("Ungenügend", "xmark.circle.fill", GradeColor.PINK)
    NONE = ("Keine Noten", "questionmark.circle.fill", GradeColor.GRAY)

    def __init__(self, title: str, icon: str, color: GradeColor) -> None:
        self.title = title
        self.icon = icon
        self.color = color


TRADITIONAL_NOTATION: list[tuple[float, str]] = [
    (0.7, "1+"), (1.0, "1"), (1.3, "1-"),
    (1.7, "2+"), (2.0, "2"), (2.3, "2-"),
    (2.7, "3+"), (3.0, "3"), (3.3, "3-"),
    (3.7, "4+"), (4.0, "4"), (4.3, "4-"),
    (4.7, "5+"), (5.0, "5"), (5.3, "5-"),
    (5.7, "6+"), (6.0, "6"),
]

_NOTATION_BY_VALUE: dict[float, str] = dict(TRADITIONAL_NOTATION)

# (low, high, high_inclusive, level); low is always inclusive
TRADITIONAL_BANDS: list[tuple[float, float, bool, PerformanceLevel]] = [
    (0.7, 1.7, False, PerformanceLevel.EXCELLENT),
    (1.7, 2.7, False, PerformanceLevel.GOOD),
    (2.7, 3.7, False, PerformanceLevel.SATISFACTORY),
    (3.7, 4.7, False, PerformanceLevel.SUFFICIENT),
    (4.7, 5.7, False, PerformanceLevel.POOR),
    (5.7, 6.0, True, PerformanceLevel.INSUFFICIENT),
]

POINTS_BANDS: list[tuple[float, float, bool, PerformanceLevel]] = [
    (12.0, 15.0, True, PerformanceLevel.EXCELLENT),
    (9.0, 12.0, False, PerformanceLevel.GOOD),
    (6.0, 9.0, False, PerformanceLevel.SATISFACTORY),
    (3.0, 6.0, False, PerformanceLevel.SUFFICIENT),
    (0.001, 3.0, False, PerformanceLevel.POOR),
    (0.0, 0.0, True, PerformanceLevel.INSUFFICIENT),
]

TRADITIONAL_TO_POINTS: dict[float, float] = {
    value: float(points)
    for (value, _), points in zip(TRADITIONAL_NOTATION, range(15, -1, -1))
}
TRADITIONAL_TO_POINTS[6.0] = 0.0

POINTS_TO_TRADITIONAL: dict[int, float] = {
    int(points): value for value, points in TRADITIONAL_TO_POINTS.items() if value != 6.0
}
POINTS_TO_TRADITIONAL[0] = 6.0


@dataclass(frozen=True)
class GradeValue:
    value: float
    display: str
    color: GradeColor


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _bands_for(system: GradingSystem) -> list[tuple[float, float, bool, PerformanceLevel]]:
    return TRADITIONAL_BANDS if system is GradingSystem.TRADITIONAL else POINTS_BANDS


def _lookup_notation(value: float) -> str | None:
    # averages carry float noise, canonical entries are stored with one decimal
    return _NOTATION_BY_VALUE.get(round(value, 10))


def grade_display_text(value: float, system: GradingSystem, *, round_points: bool = True) -> str:
    if system is GradingSystem.TRADITIONAL:
        notation = _lookup_notation(value)
        return notation if notation is not None else f"{value:.1f}"
    if round_points:
        return f"{_round_half_up(value)} P"
    return f"{value:.1f} P"


def performance_level(average: float | None, system: GradingSystem) -> PerformanceLevel:
    if average is None:
        return PerformanceLevel.NONE
    for low, high, high_inclusive, level in _bands_for(system):
        if low <= average < high or (high_inclusive and average == high):
            return level
    return PerformanceLevel.NONE


def grade_color(value: float, system: GradingSystem) -> GradeColor:
    return performance_level(value, system).color


def is_valid_grade(value: float | None, system: GradingSystem) -> bool:
    if value is None:
        return False
    return system.min_value <= value <= system.max_value


def validation_description(system: GradingSystem) -> str:
    if system is GradingSystem.TRADITIONAL:
        return "Noten zwischen 1+ (0,7) und 6 (6,0)"
    return "Punkte zwischen 0 und 15"


def all_grade_values(system: GradingSystem) -> list[GradeValue]:
    if system is GradingSystem.TRADITIONAL:
        return [
            GradeValue(value, display, grade_color(value, system))
            for value, display in TRADITIONAL_NOTATION
        ]
    return [
        GradeValue(float(points), f"{points} P", grade_color(float(points), system))
        for points in range(0, 16)
    ]


def _traditional_to_points(value: float) -> float:
    exact = TRADITIONAL_TO_POINTS.get(round(value, 10))
    if exact is not None:
        return exact
    clamped = max(0.7, min(6.0, value))
    normalized = (clamped - 0.7) / (6.0 - 0.7)
    return max(0.0, min(15.0, float(_round_half_up(15.0 - normalized * 15.0))))


def _points_to_traditional(value: float) -> float:
    rounded = _round_half_up(value)
    if rounded in POINTS_TO_TRADITIONAL:
        return POINTS_TO_TRADITIONAL[rounded]
    clamped = max(0.0, min(15.0, value))
    normalized = (15.0 - clamped) / 15.0
    return max(0.7, min(6.0, 0.7 + normalized * (6.0 - 0.7)))


def convert_grade(value: float, source: GradingSystem, target: GradingSystem) -> float:
    if source is target:
        return value
    if source is GradingSystem.TRADITIONAL:
        return _traditional_to_points(value)
    return _points_to_traditional(value)


def conversion_preview(grade_count: int, source: GradingSystem, target: GradingSystem) -> str:
    if source is target:
        return f"Alle {grade_count} Noten bleiben unverändert."
    samples = (
        [0.7, 2.0, 3.0, 4.0, 6.0]
        if source is GradingSystem.TRADITIONAL
        else [15.0, 11.0, 8.0, 5.0, 0.0]
    )
    examples = ", ".join(
        f"{grade_display_text(v, source)} → {grade_display_text(convert_grade(v, source, target), target)}"
        for v in samples
    )
    return (
        f"Alle {grade_count} Noten werden von {source.display_name} zu "
        f"{target.display_name} konvertiert.\n\nBeispiele:\n{examples}"
    )
