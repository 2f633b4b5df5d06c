from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Iterator

from gradesync.domain.errors import GradebookError, InvalidGradeError, StorageError, SubjectNotFoundError
from gradesync.domain.logic.grading import GradingSystem, convert_grade, is_valid_grade, validation_description
from gradesync.domain.models.entities import FinalGrade, Grade, GradeType, GradingSystemAssignment, Subject
from gradesync.domain.models.periods import SchoolYear, Semester

logger = logging.getLogger(__name__)

YearRef = SchoolYear | int


@dataclass
class PeriodRecords:
    subjects: list[Subject] = field(default_factory=list)
    grades: list[Grade] = field(default_factory=list)
    final_grades: list[FinalGrade] = field(default_factory=list)


def _start_year(year: YearRef) -> int:
    return year.start_year if isinstance(year, SchoolYear) else int(year)


class GradebookStore:
    """Durable entity store for subjects, grades, final grades and per-year grading systems.

    One instance owns one connection and is the single writer. Deleting a subject
    sweeps its grades and final grades in the same transaction.
    """

    def __init__(self, db_path: str = "data/gradesync.db") -> None:
        self.db_path = db_path
        self._lock = threading.RLock()
        try:
            if db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(db_path, check_same_thread=False)
            self.conn.execute("PRAGMA foreign_keys = ON")
        except (OSError, sqlite3.Error) as exc:
            raise StorageError(f"Cannot open gradebook at {db_path}: {exc}") from exc
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        with self._transaction() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS subjects (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  name TEXT UNIQUE NOT NULL,
                  color_hex TEXT NOT NULL,
                  icon TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS school_year_grading_systems (
                  start_year INTEGER PRIMARY KEY,
                  grading_system TEXT NOT NULL,
                  is_explicit INTEGER NOT NULL DEFAULT 0
                );

                CREATE TABLE IF NOT EXISTS grades (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  subject_id INTEGER NOT NULL,
                  value REAL NOT NULL,
                  type_key TEXT NOT NULL,
                  school_year_start INTEGER NOT NULL,
                  semester TEXT NOT NULL,
                  date TEXT,
                  FOREIGN KEY(subject_id) REFERENCES subjects(id)
                );

                CREATE TABLE IF NOT EXISTS final_grades (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  subject_id INTEGER NOT NULL,
                  value REAL NOT NULL,
                  school_year_start INTEGER NOT NULL,
                  semester TEXT NOT NULL,
                  UNIQUE(subject_id, school_year_start, semester),
                  FOREIGN KEY(subject_id) REFERENCES subjects(id)
                );

                CREATE INDEX IF NOT EXISTS idx_grades_period
                  ON grades(school_year_start, semester, subject_id);
                """
            )

    def close(self) -> None:
        self.conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                with self.conn:
                    yield self.conn
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc

    @contextmanager
    def _snapshot(self) -> Iterator[sqlite3.Connection]:
        # several SELECTs observing one state of the database
        with self._lock:
            try:
                self.conn.execute("BEGIN")
                try:
                    yield self.conn
                finally:
                    self.conn.commit()
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc

    # Rows

    @staticmethod
    def _subject_from_row(row: sqlite3.Row) -> Subject:
        return Subject(id=int(row["id"]), name=row["name"], color_hex=row["color_hex"], icon=row["icon"])

    @staticmethod
    def _grade_from_row(row: sqlite3.Row) -> Grade:
        system = GradingSystem.from_raw(row["grading_system"] or GradingSystem.TRADITIONAL.value)
        return Grade(
            id=int(row["id"]),
            subject_id=int(row["subject_id"]),
            value=float(row["value"]),
            type=GradeType.from_key(row["type_key"]),
            school_year=SchoolYear(int(row["school_year_start"]), system),
            semester=Semester.from_raw(row["semester"]),
            date=date.fromisoformat(row["date"]) if row["date"] else None,
        )

    @staticmethod
    def _final_grade_from_row(row: sqlite3.Row) -> FinalGrade:
        system = GradingSystem.from_raw(row["grading_system"] or GradingSystem.TRADITIONAL.value)
        return FinalGrade(
            id=int(row["id"]),
            subject_id=int(row["subject_id"]),
            value=float(row["value"]),
            school_year=SchoolYear(int(row["school_year_start"]), system),
            semester=Semester.from_raw(row["semester"]),
        )

    _GRADE_SELECT = """
        SELECT g.*, y.grading_system
        FROM grades g
        LEFT JOIN school_year_grading_systems y ON y.start_year = g.school_year_start
    """

    _FINAL_GRADE_SELECT = """
        SELECT f.*, y.grading_system
        FROM final_grades f
        LEFT JOIN school_year_grading_systems y ON y.start_year = f.school_year_start
    """

    # Subjects

    def create_subject(self, name: str, color_hex: str = "#007AFF", icon: str = "book.fill") -> Subject:
        name = name.strip()
        if not name:
            raise GradebookError("Subject name must not be empty")
        try:
            with self._transaction() as conn:
                cur = conn.execute(
                    "INSERT INTO subjects(name, color_hex, icon) VALUES(?,?,?)",
                    (name, color_hex, icon),
                )
                subject_id = int(cur.lastrowid)
        except StorageError as exc:
            if isinstance(exc.__cause__, sqlite3.IntegrityError):
                raise GradebookError(f"Subject '{name}' already exists") from exc
            raise
        logger.info("Subject '%s' created", name)
        return Subject(id=subject_id, name=name, color_hex=color_hex, icon=icon)

    def update_subject(self, subject_id: int, *, name: str | None = None, color_hex: str | None = None, icon: str | None = None) -> Subject:
        subject = self.get_subject(subject_id)
        if name is not None:
            if not name.strip():
                raise GradebookError("Subject name must not be empty")
            subject.name = name.strip()
        if color_hex is not None:
            subject.color_hex = color_hex
        if icon is not None:
            subject.icon = icon
        try:
            with self._transaction() as conn:
                conn.execute(
                    "UPDATE subjects SET name=?, color_hex=?, icon=? WHERE id=?",
                    (subject.name, subject.color_hex, subject.icon, subject_id),
                )
        except StorageError as exc:
            if isinstance(exc.__cause__, sqlite3.IntegrityError):
                raise GradebookError(f"Subject '{subject.name}' already exists") from exc
            raise
        return subject

    def get_subject(self, subject_id: int) -> Subject:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM subjects WHERE id=?", (subject_id,)).fetchone()
        if not row:
            raise SubjectNotFoundError(f"No subject with id {subject_id}")
        return self._subject_from_row(row)

    def list_subjects(self) -> list[Subject]:
        with self._transaction() as conn:
            rows = conn.execute("SELECT * FROM subjects ORDER BY name").fetchall()
        return [self._subject_from_row(row) for row in rows]

    def delete_subject(self, subject_id: int) -> None:
        with self._transaction() as conn:
            grades = conn.execute("DELETE FROM grades WHERE subject_id=?", (subject_id,)).rowcount
            finals = conn.execute("DELETE FROM final_grades WHERE subject_id=?", (subject_id,)).rowcount
            deleted = conn.execute("DELETE FROM subjects WHERE id=?", (subject_id,)).rowcount
        if not deleted:
            raise SubjectNotFoundError(f"No subject with id {subject_id}")
        logger.info("Subject %s deleted with %d grades and %d final grades", subject_id, grades, finals)

    # Grading system per school year

    def get_grading_assignment(self, start_year: int) -> GradingSystemAssignment | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM school_year_grading_systems WHERE start_year=?", (start_year,)
            ).fetchone()
        if not row:
            return None
        return GradingSystemAssignment(
            start_year=int(row["start_year"]),
            grading_system=GradingSystem.from_raw(row["grading_system"]),
            is_explicit=bool(row["is_explicit"]),
        )

    def upsert_grading_assignment(self, start_year: int, system: GradingSystem, *, explicit: bool = True) -> None:
        with self._transaction() as conn:
            conn.execute(
                """INSERT INTO school_year_grading_systems(start_year, grading_system, is_explicit)
                   VALUES(?,?,?)
                   ON CONFLICT(start_year) DO UPDATE SET
                       grading_system=excluded.grading_system,
                       is_explicit=excluded.is_explicit""",
                (start_year, system.value, 1 if explicit else 0),
            )

    def grading_system_for(self, year: YearRef) -> GradingSystem:
        start_year = _start_year(year)
        assignment = self.get_grading_assignment(start_year)
        if assignment is not None:
            return assignment.grading_system
        with self._transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO school_year_grading_systems(start_year, grading_system, is_explicit) VALUES(?,?,0)",
                (start_year, GradingSystem.TRADITIONAL.value),
            )
        return GradingSystem.TRADITIONAL

    def school_year(self, start_year: int) -> SchoolYear:
        return SchoolYear(start_year, self.grading_system_for(start_year))

    def set_grading_system(self, year: YearRef, system: GradingSystem, *, convert_existing: bool = True) -> int:
        """Explicitly change a year's grading system.

        With ``convert_existing`` the year's grades and final grades are converted
        in the same transaction. Without it every stored value must already be
        valid under ``system``, otherwise ``InvalidGradeError`` is raised and
        nothing changes. Returns the number of converted records.
        """
        start_year = _start_year(year)
        previous = self.grading_system_for(start_year)
        converted = 0
        with self._transaction() as conn:
            if previous is not system:
                for table in ("grades", "final_grades"):
                    rows = conn.execute(
                        f"SELECT id, value FROM {table} WHERE school_year_start=?", (start_year,)
                    ).fetchall()
                    if not convert_existing:
                        invalid = [float(row["value"]) for row in rows if not is_valid_grade(float(row["value"]), system)]
                        if invalid:
                            raise InvalidGradeError(
                                f"{len(invalid)} records of {start_year} are not valid grades: "
                                f"{validation_description(system)}"
                            )
                        continue
                    for row in rows:
                        conn.execute(
                            f"UPDATE {table} SET value=? WHERE id=?",
                            (convert_grade(float(row["value"]), previous, system), row["id"]),
                        )
                    converted += len(rows)
            conn.execute(
                """INSERT INTO school_year_grading_systems(start_year, grading_system, is_explicit)
                   VALUES(?,?,1)
                   ON CONFLICT(start_year) DO UPDATE SET grading_system=excluded.grading_system, is_explicit=1""",
                (start_year, system.value),
            )
        logger.info(
            "Grading system for %s set to %s (%d records converted)", start_year, system.value, converted
        )
        return converted

    # Grades

    def _validated_value(self, value: float, year: YearRef) -> tuple[int, GradingSystem]:
        start_year = _start_year(year)
        if not SchoolYear(start_year).is_selectable:
            raise InvalidGradeError(f"School year {start_year} is outside the supported range")
        system = self.grading_system_for(start_year)
        if not is_valid_grade(value, system):
            raise InvalidGradeError(f"{value} is not a valid grade: {validation_description(system)}")
        return start_year, system

    def add_grade(
        self,
        subject_id: int,
        value: float,
        type_key: str,
        year: YearRef,
        semester: Semester,
        grade_date: date | None = None,
    ) -> Grade:
        grade_type = GradeType.from_key(type_key)
        self.get_subject(subject_id)
        start_year, system = self._validated_value(value, year)
        with self._transaction() as conn:
            cur = conn.execute(
                """INSERT INTO grades(subject_id, value, type_key, school_year_start, semester, date)
                   VALUES(?,?,?,?,?,?)""",
                (
                    subject_id,
                    float(value),
                    grade_type.key,
                    start_year,
                    semester.value,
                    grade_date.isoformat() if grade_date else None,
                ),
            )
            grade_id = int(cur.lastrowid)
        logger.info("Grade %s added for subject %s in %s %s", value, subject_id, start_year, semester.short_name)
        return Grade(
            id=grade_id,
            subject_id=subject_id,
            value=float(value),
            type=grade_type,
            school_year=SchoolYear(start_year, system),
            semester=semester,
            date=grade_date,
        )

    def delete_grade(self, grade_id: int) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM grades WHERE id=?", (grade_id,))

    def list_grades(self, subject_id: int | None = None) -> list[Grade]:
        with self._transaction() as conn:
            if subject_id is None:
                rows = conn.execute(self._GRADE_SELECT + " ORDER BY g.date, g.id").fetchall()
            else:
                rows = conn.execute(
                    self._GRADE_SELECT + " WHERE g.subject_id=? ORDER BY g.date, g.id", (subject_id,)
                ).fetchall()
        return [self._grade_from_row(row) for row in rows]

    def grades_for(self, subject_id: int, year: YearRef, semester: Semester) -> list[Grade]:
        with self._transaction() as conn:
            rows = conn.execute(
                self._GRADE_SELECT
                + " WHERE g.subject_id=? AND g.school_year_start=? AND g.semester=? ORDER BY g.date, g.id",
                (subject_id, _start_year(year), semester.value),
            ).fetchall()
        return [self._grade_from_row(row) for row in rows]

    # Final grades

    def set_final_grade(self, subject_id: int, value: float, year: YearRef, semester: Semester) -> FinalGrade:
        self.get_subject(subject_id)
        start_year, system = self._validated_value(value, year)
        with self._transaction() as conn:
            conn.execute(
                """INSERT INTO final_grades(subject_id, value, school_year_start, semester)
                   VALUES(?,?,?,?)
                   ON CONFLICT(subject_id, school_year_start, semester) DO UPDATE SET
                       value=excluded.value""",
                (subject_id, float(value), start_year, semester.value),
            )
            row = conn.execute(
                "SELECT id FROM final_grades WHERE subject_id=? AND school_year_start=? AND semester=?",
                (subject_id, start_year, semester.value),
            ).fetchone()
        return FinalGrade(
            id=int(row["id"]),
            subject_id=subject_id,
            value=float(value),
            school_year=SchoolYear(start_year, system),
            semester=semester,
        )

    def get_final_grade(self, subject_id: int, year: YearRef, semester: Semester) -> FinalGrade | None:
        with self._transaction() as conn:
            row = conn.execute(
                self._FINAL_GRADE_SELECT
                + " WHERE f.subject_id=? AND f.school_year_start=? AND f.semester=?",
                (subject_id, _start_year(year), semester.value),
            ).fetchone()
        return self._final_grade_from_row(row) if row else None

    def clear_final_grade(self, subject_id: int, year: YearRef, semester: Semester) -> None:
        with self._transaction() as conn:
            conn.execute(
                "DELETE FROM final_grades WHERE subject_id=? AND school_year_start=? AND semester=?",
                (subject_id, _start_year(year), semester.value),
            )

    def list_final_grades(self, subject_id: int | None = None) -> list[FinalGrade]:
        with self._transaction() as conn:
            if subject_id is None:
                rows = conn.execute(self._FINAL_GRADE_SELECT).fetchall()
            else:
                rows = conn.execute(self._FINAL_GRADE_SELECT + " WHERE f.subject_id=?", (subject_id,)).fetchall()
        return [self._final_grade_from_row(row) for row in rows]

    # Aggregation reads

    def period_records(self, year: YearRef, semester: Semester) -> PeriodRecords:
        start_year = _start_year(year)
        with self._snapshot() as conn:
            subjects = conn.execute("SELECT * FROM subjects ORDER BY name").fetchall()
            grades = conn.execute(
                self._GRADE_SELECT + " WHERE g.school_year_start=? AND g.semester=? ORDER BY g.date, g.id",
                (start_year, semester.value),
            ).fetchall()
            finals = conn.execute(
                self._FINAL_GRADE_SELECT + " WHERE f.school_year_start=? AND f.semester=?",
                (start_year, semester.value),
            ).fetchall()
        return PeriodRecords(
            subjects=[self._subject_from_row(row) for row in subjects],
            grades=[self._grade_from_row(row) for row in grades],
            final_grades=[self._final_grade_from_row(row) for row in finals],
        )
