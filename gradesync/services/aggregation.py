from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from gradesync.domain.logic.averages import overall_average, subject_average
from gradesync.domain.models.entities import Grade, Subject
from gradesync.domain.models.periods import SchoolYear, Semester
from gradesync.domain.models.snapshot import WidgetSnapshot
from gradesync.services.storage import GradebookStore, PeriodRecords, YearRef

logger = logging.getLogger(__name__)

SubjectRef = Subject | int


def _subject_id(subject: SubjectRef) -> int:
    return subject.id if isinstance(subject, Subject) else int(subject)


@dataclass(frozen=True)
class PeriodStatistics:
    overall_average: Optional[float]
    subject_count: int
    grade_count: int
    subjects_with_data: int


class GradeAggregator:
    """Computes averages on demand from the gradebook.

    Each call reads one consistent view of the store. Results are not cached,
    so callers recompute after every mutation.
    """

    def __init__(self, store: GradebookStore) -> None:
        self.store = store

    def grades_for(self, subject: SubjectRef, school_year: YearRef, semester: Semester) -> list[Grade]:
        return self.store.grades_for(_subject_id(subject), school_year, semester)

    @staticmethod
    def _subject_averages(records: PeriodRecords) -> dict[int, Optional[float]]:
        grades_by_subject: dict[int, list[Grade]] = {}
        for grade in records.grades:
            grades_by_subject.setdefault(grade.subject_id, []).append(grade)
        finals = {final.subject_id: final.value for final in records.final_grades}
        return {
            subject.id: subject_average(grades_by_subject.get(subject.id, []), finals.get(subject.id))
            for subject in records.subjects
        }

    def subject_averages(self, school_year: YearRef, semester: Semester) -> dict[int, Optional[float]]:
        return self._subject_averages(self.store.period_records(school_year, semester))

    def weighted_average(self, subject: SubjectRef, school_year: YearRef, semester: Semester) -> Optional[float]:
        subject_id = _subject_id(subject)
        average = self.subject_averages(school_year, semester).get(subject_id)
        logger.debug("Average for subject %s in %s %s: %s", subject_id, school_year, semester.short_name, average)
        return average

    def overall_average(self, school_year: YearRef, semester: Semester) -> Optional[float]:
        return overall_average(self.subject_averages(school_year, semester).values())

    def subjects_with_grades(self, school_year: YearRef, semester: Semester) -> list[Subject]:
        records = self.store.period_records(school_year, semester)
        averages = self._subject_averages(records)
        return [subject for subject in records.subjects if averages[subject.id] is not None]

    def statistics(self, school_year: YearRef, semester: Semester) -> PeriodStatistics:
        records = self.store.period_records(school_year, semester)
        averages = self._subject_averages(records)
        return PeriodStatistics(
            overall_average=overall_average(averages.values()),
            subject_count=len(records.subjects),
            grade_count=len(records.grades),
            subjects_with_data=sum(1 for avg in averages.values() if avg is not None),
        )

    def build_snapshot(self, school_year: YearRef, semester: Semester) -> WidgetSnapshot:
        start_year = school_year.start_year if isinstance(school_year, SchoolYear) else int(school_year)
        year = self.store.school_year(start_year)
        stats = self.statistics(year, semester)
        return WidgetSnapshot(
            overall_average=stats.overall_average,
            subject_count=stats.subject_count,
            grade_count=stats.grade_count,
            school_year=year,
            semester=semester,
            grading_system=year.grading_system,
        )
