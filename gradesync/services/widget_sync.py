from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from gradesync.domain.errors import StorageError
from gradesync.domain.logic.grading import GradingSystem
from gradesync.domain.models.periods import SchoolYear, Semester
from gradesync.domain.models.snapshot import WidgetSnapshot
from gradesync.services.aggregation import GradeAggregator, PeriodStatistics
from gradesync.services.key_value import KeyValueStore
from gradesync.services.refresh_signal import RefreshSignal
from gradesync.services.storage import GradebookStore, YearRef

logger = logging.getLogger(__name__)

OVERALL_AVERAGE_KEY = "widget_overall_average"
SUBJECT_COUNT_KEY = "widget_subject_count"
GRADE_COUNT_KEY = "widget_grade_count"
SELECTED_SCHOOL_YEAR_KEY = "widget_selected_school_year"
SELECTED_SEMESTER_KEY = "widget_selected_semester"
GRADING_SYSTEM_KEY = "widget_grading_system"
LAST_UPDATE_KEY = "widget_last_update"
ROUND_POINT_AVERAGES_KEY = "roundPointAverages"
ACCESS_TEST_KEY = "widget_test_key"

SNAPSHOT_KEYS = [
    OVERALL_AVERAGE_KEY,
    SUBJECT_COUNT_KEY,
    GRADE_COUNT_KEY,
    SELECTED_SCHOOL_YEAR_KEY,
    SELECTED_SEMESTER_KEY,
    GRADING_SYSTEM_KEY,
    LAST_UPDATE_KEY,
]


class SyncState(str, Enum):
    UNINITIALIZED = "uninitialized"
    POPULATED = "populated"


def round_point_averages(preferences: Optional[KeyValueStore]) -> bool:
    if preferences is None:
        return True
    try:
        value = preferences.get_bool(ROUND_POINT_AVERAGES_KEY)
    except StorageError:
        return True
    return True if value is None else value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SharedSnapshotStore:
    """Publishes widget snapshots into the shared container and reads them back.

    The primary process is the only writer; the widget process opens the
    container with ``read_only=True``. ``read`` never raises: an unprovisioned
    container or a store that was never published yields ``WidgetSnapshot.empty()``.
    """

    def __init__(
        self,
        group_dir: str | Path,
        *,
        signal: Optional[Callable[[], None]] = None,
        clock: Callable[[], datetime] = _utcnow,
        read_only: bool = False,
    ) -> None:
        self.group_dir = Path(group_dir)
        self.read_only = read_only
        self._signal = signal or RefreshSignal(self.group_dir).reload_all_timelines
        self._clock = clock
        self._suite: Optional[KeyValueStore] = None

    def _defaults(self) -> Optional[KeyValueStore]:
        if self._suite is None:
            self._suite = KeyValueStore.open_suite(self.group_dir, read_only=self.read_only)
        return self._suite

    def close(self) -> None:
        if self._suite is not None:
            self._suite.close()
            self._suite = None

    def _notify(self) -> None:
        try:
            self._signal()
        except Exception:
            logger.exception("Widget refresh signal failed")

    def _read_timestamp(self, defaults: KeyValueStore) -> Optional[datetime]:
        raw = defaults.get_str(LAST_UPDATE_KEY)
        if raw is None:
            return None
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            logger.warning("Ignoring malformed widget timestamp %r", raw)
            return None

    def publish(self, snapshot: WidgetSnapshot, *, round_points: Optional[bool] = None) -> Optional[WidgetSnapshot]:
        defaults = self._defaults()
        if defaults is None:
            logger.warning("Widget data not saved, shared container %s unavailable", self.group_dir)
            return None
        try:
            now = self._clock()
            previous = self._read_timestamp(defaults)
            if previous is not None and now <= previous:
                now = previous + timedelta(microseconds=1)

            if snapshot.overall_average is None:
                defaults.remove(OVERALL_AVERAGE_KEY)
            else:
                defaults.set(OVERALL_AVERAGE_KEY, float(snapshot.overall_average))
            defaults.set(SUBJECT_COUNT_KEY, int(snapshot.subject_count))
            defaults.set(GRADE_COUNT_KEY, int(snapshot.grade_count))
            defaults.set(SELECTED_SCHOOL_YEAR_KEY, snapshot.school_year.start_year)
            defaults.set(SELECTED_SEMESTER_KEY, snapshot.semester.value)
            defaults.set(GRADING_SYSTEM_KEY, snapshot.grading_system.value)
            if round_points is not None:
                defaults.set(ROUND_POINT_AVERAGES_KEY, bool(round_points))
            defaults.set(LAST_UPDATE_KEY, now.isoformat())
        except StorageError as exc:
            logger.warning("Widget data not saved: %s", exc)
            return None

        logger.info(
            "Widget data saved - average: %s, subjects: %d, grades: %d",
            snapshot.overall_average,
            snapshot.subject_count,
            snapshot.grade_count,
        )
        self._notify()
        return replace(snapshot, last_update=now)

    def read(self, today: date | None = None) -> WidgetSnapshot:
        defaults = self._defaults()
        if defaults is None:
            return WidgetSnapshot.empty(today)
        try:
            last_update = self._read_timestamp(defaults)
            if last_update is None:
                logger.debug("No widget data in shared storage yet")
                return WidgetSnapshot.empty(today)
            grading_system = GradingSystem.from_raw(defaults.get_str(GRADING_SYSTEM_KEY))
            return WidgetSnapshot(
                overall_average=defaults.get_float(OVERALL_AVERAGE_KEY),
                subject_count=defaults.get_int(SUBJECT_COUNT_KEY) or 0,
                grade_count=defaults.get_int(GRADE_COUNT_KEY) or 0,
                school_year=SchoolYear.from_storage(
                    defaults.get_int(SELECTED_SCHOOL_YEAR_KEY), grading_system.value, today
                ),
                semester=Semester.from_raw(defaults.get_str(SELECTED_SEMESTER_KEY)),
                grading_system=grading_system,
                last_update=last_update,
            )
        except StorageError as exc:
            logger.warning("Widget data unreadable, showing empty state: %s", exc)
            return WidgetSnapshot.empty(today)

    def clear(self) -> None:
        defaults = self._defaults()
        if defaults is None:
            return
        try:
            defaults.remove_many(SNAPSHOT_KEYS)
        except StorageError as exc:
            logger.warning("Widget data not cleared: %s", exc)
            return
        logger.info("Widget data cleared")
        self._notify()

    def last_update(self) -> Optional[datetime]:
        defaults = self._defaults()
        if defaults is None:
            return None
        try:
            return self._read_timestamp(defaults)
        except StorageError:
            return None

    def staleness(self, now: Optional[datetime] = None) -> Optional[timedelta]:
        last = self.last_update()
        if last is None:
            return None
        return (now or self._clock()) - last

    @property
    def state(self) -> SyncState:
        return SyncState.UNINITIALIZED if self.last_update() is None else SyncState.POPULATED

    def round_point_averages(self) -> bool:
        return round_point_averages(self._defaults())

    def validate_access(self) -> bool:
        defaults = self._defaults()
        if defaults is None:
            logger.info("Shared container access test: FAILED (not provisioned)")
            return False
        test_value = "test_value"
        try:
            defaults.set(ACCESS_TEST_KEY, test_value)
            ok = defaults.get_str(ACCESS_TEST_KEY) == test_value
            defaults.remove(ACCESS_TEST_KEY)
        except StorageError as exc:
            logger.info("Shared container access test: FAILED (%s)", exc)
            return False
        logger.info("Shared container access test: %s", "SUCCESS" if ok else "FAILED")
        return ok


@dataclass
class WidgetStatus:
    has_access: bool
    school_year: SchoolYear
    semester: Semester
    current: PeriodStatistics
    published: WidgetSnapshot
    seconds_since_update: Optional[float]
    recommendations: list[str] = field(default_factory=list)


class WidgetSync:
    """Keeps the widget's shared snapshot in step with the gradebook."""

    def __init__(
        self,
        store: GradebookStore,
        shared: SharedSnapshotStore,
        preferences: Optional[KeyValueStore] = None,
    ) -> None:
        self.store = store
        self.shared = shared
        self.preferences = preferences
        self.aggregator = GradeAggregator(store)

    def update_widget(self, school_year: YearRef, semester: Semester) -> Optional[WidgetSnapshot]:
        snapshot = self.aggregator.build_snapshot(school_year, semester)
        return self.shared.publish(snapshot, round_points=round_point_averages(self.preferences))

    def clear_widget(self) -> None:
        self.shared.clear()

    def status(self, school_year: YearRef, semester: Semester) -> WidgetStatus:
        start_year = school_year.start_year if isinstance(school_year, SchoolYear) else int(school_year)
        year = self.store.school_year(start_year)
        has_access = self.shared.validate_access()
        current = self.aggregator.statistics(year, semester)
        published = self.shared.read()
        age = self.shared.staleness()

        recommendations: list[str] = []
        if not has_access:
            recommendations.append(f"Provision the shared container at {self.shared.group_dir}")
        elif current.grade_count == 0:
            recommendations.append("Add some grades to see them on the widget")
        elif not published.has_data:
            recommendations.append("Publish a snapshot with update_widget()")

        return WidgetStatus(
            has_access=has_access,
            school_year=year,
            semester=semester,
            current=current,
            published=published,
            seconds_since_update=age.total_seconds() if age is not None else None,
            recommendations=recommendations,
        )
