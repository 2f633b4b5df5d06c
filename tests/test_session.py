import tempfile
import unittest
from pathlib import Path

from gradesync.config.settings import Settings
from gradesync.domain.errors import StorageError
from gradesync.domain.logic.grading import GradingSystem
from gradesync.domain.models.periods import Semester
from gradesync.services.key_value import KeyValueStore
from gradesync.services.migration import MIGRATION_COMPLETED_KEY
from gradesync.services.session import GradebookSession
from gradesync.services.widget_sync import SharedSnapshotStore


class GradebookSessionTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        root = Path(self.tmp.name)
        (root / "group").mkdir()
        legacy = KeyValueStore(str(root / "data" / "preferences.db"))
        legacy.set("gradingSystem_2024", "points")
        legacy.close()

        config = Settings(data_dir=str(root / "data"), shared_group_dir=str(root / "group"))
        self.session = GradebookSession.open(config)
        self.session.select_period(2024, Semester.FIRST)
        self.widget = SharedSnapshotStore(config.shared_group_dir)

    def tearDown(self):
        self.widget.close()
        self.session.close()
        self.tmp.cleanup()

    def test_open_runs_migration(self):
        self.assertTrue(self.session.preferences.get_bool(MIGRATION_COMPLETED_KEY))
        self.assertIs(self.session.school_year.grading_system, GradingSystem.POINTS)

    def test_mutations_refresh_widget(self):
        math = self.session.add_subject("Mathe")
        self.session.add_grade(math.id, 11, "test")
        self.session.add_grade(math.id, 14, "homework")

        snapshot = self.widget.read()
        self.assertEqual(snapshot.overall_average, 12.0)
        self.assertEqual((snapshot.subject_count, snapshot.grade_count), (1, 2))
        self.assertIs(snapshot.grading_system, GradingSystem.POINTS)
        self.assertEqual(self.session.display(self.session.subject_average(math.id)), "12 P")

        self.session.delete_subject(math.id)

        snapshot = self.widget.read()
        self.assertIsNone(snapshot.overall_average)
        self.assertEqual((snapshot.subject_count, snapshot.grade_count), (0, 0))

    def test_final_grade_and_rounding_preference(self):
        art = self.session.add_subject("Kunst")
        self.session.add_grade(art.id, 9, "oral")
        self.session.set_final_grade(art.id, 13)
        self.assertEqual(self.widget.read().overall_average, 13.0)

        self.session.clear_final_grade(art.id)
        self.session.set_round_point_averages(False)
        self.assertEqual(self.widget.read().overall_average, 9.0)
        self.assertFalse(self.widget.round_point_averages())
        self.assertEqual(self.session.display(9.0), "9.0 P")

    def test_switching_grading_system_updates_widget(self):
        self.session.select_period(2025, Semester.SECOND)
        bio = self.session.add_subject("Bio")
        self.session.add_grade(bio.id, 2.0, "test")

        self.assertEqual(self.session.set_grading_system(GradingSystem.POINTS), 1)

        snapshot = self.widget.read()
        self.assertEqual(snapshot.overall_average, 11.0)
        self.assertEqual(snapshot.school_year.start_year, 2025)
        self.assertIs(snapshot.semester, Semester.SECOND)
        self.assertEqual(self.session.statistics().grade_count, 1)


class UnavailableGradebookTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        root = Path(self.tmp.name)
        self.config = Settings(data_dir=str(root / "data"), shared_group_dir=str(root / "group"))
        # a directory where the database file belongs cannot be opened by sqlite
        Path(self.config.database_path).mkdir(parents=True)
        legacy = KeyValueStore(self.config.preferences_path)
        legacy.set("gradingSystem_2024", "points")
        legacy.close()

    def tearDown(self):
        self.tmp.cleanup()

    def test_open_fails_and_postpones_migration(self):
        with self.assertRaises(StorageError):
            GradebookSession.open(self.config)

        preferences = KeyValueStore(self.config.preferences_path)
        self.addCleanup(preferences.close)
        self.assertIsNone(preferences.get_bool(MIGRATION_COMPLETED_KEY))
        self.assertEqual(preferences.get_str("gradingSystem_2024"), "points")


if __name__ == "__main__":
    unittest.main()
