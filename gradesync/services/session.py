from __future__ import annotations

from datetime import date
from typing import Optional

from gradesync.config.settings import Settings, settings
from gradesync.domain.errors import StorageError
from gradesync.domain.logic.grading import GradingSystem, grade_display_text
from gradesync.domain.models.entities import FinalGrade, Grade, Subject
from gradesync.domain.models.periods import SchoolYear, Semester
from gradesync.domain.models.snapshot import WidgetSnapshot
from gradesync.services.aggregation import PeriodStatistics
from gradesync.services.key_value import KeyValueStore
from gradesync.services.migration import GradingSystemMigrator, MigrationResult
from gradesync.services.storage import GradebookStore
from gradesync.services.widget_sync import (
    ROUND_POINT_AVERAGES_KEY,
    SharedSnapshotStore,
    WidgetSync,
    round_point_averages,
)


class GradebookSession:
    """Primary-process entry point: mutations go through here and refresh the widget."""

    def __init__(
        self,
        store: GradebookStore,
        preferences: KeyValueStore,
        shared: SharedSnapshotStore,
        *,
        start_year: Optional[int] = None,
        semester: Semester = Semester.FIRST,
    ) -> None:
        self.store = store
        self.preferences = preferences
        self.widget = WidgetSync(store, shared, preferences)
        self.start_year = start_year or SchoolYear.current_start_year()
        self.semester = semester

    @classmethod
    def open(cls, config: Settings = settings) -> "GradebookSession":
        """Open the stores and run startup work.

        Raises ``StorageError`` when the gradebook cannot be opened; the
        grading system migration is postponed to the next launch in that case.
        """
        preferences = KeyValueStore(config.preferences_path)
        try:
            store = GradebookStore(config.database_path)
        except StorageError:
            GradingSystemMigrator(preferences, None).migrate()
            preferences.close()
            raise
        session = cls(store, preferences, SharedSnapshotStore(config.shared_group_dir))
        session.start()
        return session

    def start(self) -> MigrationResult:
        result = GradingSystemMigrator(self.preferences, self.store).migrate()
        self.refresh_widget()
        return result

    def close(self) -> None:
        self.widget.shared.close()
        self.store.close()
        self.preferences.close()

    @property
    def school_year(self) -> SchoolYear:
        return self.store.school_year(self.start_year)

    @property
    def round_points(self) -> bool:
        return round_point_averages(self.preferences)

    def refresh_widget(self) -> Optional[WidgetSnapshot]:
        return self.widget.update_widget(self.start_year, self.semester)

    def select_period(self, start_year: int, semester: Semester) -> None:
        self.start_year = start_year
        self.semester = semester
        self.refresh_widget()

    def set_round_point_averages(self, enabled: bool) -> None:
        self.preferences.set(ROUND_POINT_AVERAGES_KEY, bool(enabled))
        self.refresh_widget()

    def set_grading_system(self, system: GradingSystem, *, convert_existing: bool = True) -> int:
        converted = self.store.set_grading_system(self.start_year, system, convert_existing=convert_existing)
        self.refresh_widget()
        return converted

    # Entities

    def add_subject(self, name: str, color_hex: str = "#007AFF", icon: str = "book.fill") -> Subject:
        subject = self.store.create_subject(name, color_hex, icon)
        self.refresh_widget()
        return subject

    def delete_subject(self, subject_id: int) -> None:
        self.store.delete_subject(subject_id)
        self.refresh_widget()

    def add_grade(self, subject_id: int, value: float, type_key: str, grade_date: date | None = None) -> Grade:
        grade = self.store.add_grade(subject_id, value, type_key, self.start_year, self.semester, grade_date)
        self.refresh_widget()
        return grade

    def delete_grade(self, grade_id: int) -> None:
        self.store.delete_grade(grade_id)
        self.refresh_widget()

    def set_final_grade(self, subject_id: int, value: float) -> FinalGrade:
        final = self.store.set_final_grade(subject_id, value, self.start_year, self.semester)
        self.refresh_widget()
        return final

    def clear_final_grade(self, subject_id: int) -> None:
        self.store.clear_final_grade(subject_id, self.start_year, self.semester)
        self.refresh_widget()

    # Reads

    def statistics(self) -> PeriodStatistics:
        return self.widget.aggregator.statistics(self.start_year, self.semester)

    def subject_average(self, subject_id: int) -> Optional[float]:
        return self.widget.aggregator.weighted_average(subject_id, self.start_year, self.semester)

    def display(self, value: Optional[float]) -> str:
        if value is None:
            return "—"
        return grade_display_text(value, self.school_year.grading_system, round_points=self.round_points)
