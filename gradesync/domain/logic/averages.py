from __future__ import annotations

from typing import Iterable, Optional, Protocol


class Weighted(Protocol):
    value: float

    @property
    def weight(self) -> float: ...


def weighted_average(grades: Iterable[Weighted]) -> Optional[float]:
    """
    Σ(value * weight) / Σ(weight), or None for an empty grade set.
    """
    weighted_sum = 0.0
    total_weight = 0.0
    for grade in grades:
        weighted_sum += grade.value * grade.weight
        total_weight += grade.weight
    if total_weight <= 0:
        return None
    return weighted_sum / total_weight


def subject_average(grades: Iterable[Weighted], final_grade: Optional[float] = None) -> Optional[float]:
    # an entered final grade replaces the computed average, it is never blended
    if final_grade is not None:
        return final_grade
    return weighted_average(grades)


def overall_average(subject_averages: Iterable[Optional[float]]) -> Optional[float]:
    """Equal-weight mean over subjects that have an average; None entries are skipped."""
    present = [avg for avg in subject_averages if avg is not None]
    if not present:
        return None
    return sum(present) / len(present)
