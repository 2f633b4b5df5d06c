from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from gradesync.domain.logic.grading import GradeColor, grade_color, grade_display_text, performance_level
from gradesync.domain.models.snapshot import WidgetSnapshot

NO_GRADES_TEXT = "Keine Noten"


@dataclass(frozen=True)
class WidgetContent:
    headline: str
    color: GradeColor
    performance: str
    semester_label: str
    year_label: str
    counts_label: str
    updated_label: str


def _updated_label(snapshot: WidgetSnapshot, now: Optional[datetime]) -> str:
    age = snapshot.age_seconds(now)
    if age is None:
        return "Noch nicht aktualisiert"
    minutes = int(age // 60)
    if minutes < 1:
        return "Gerade aktualisiert"
    if minutes < 60:
        return f"Vor {minutes} Min. aktualisiert"
    return f"Vor {minutes // 60} Std. aktualisiert"


def widget_content(snapshot: WidgetSnapshot, *, round_points: bool = True, now: Optional[datetime] = None) -> WidgetContent:
    average = snapshot.overall_average
    system = snapshot.grading_system
    if average is None:
        headline = NO_GRADES_TEXT
        color = GradeColor.GRAY
    else:
        headline = f"⌀ {grade_display_text(average, system, round_points=round_points)}"
        color = grade_color(average, system)
    return WidgetContent(
        headline=headline,
        color=color,
        performance=performance_level(average, system).title,
        semester_label=snapshot.semester.short_name,
        year_label=snapshot.school_year.display_name,
        counts_label=f"{snapshot.subject_count} Fächer · {snapshot.grade_count} Noten",
        updated_label=_updated_label(snapshot, now),
    )
