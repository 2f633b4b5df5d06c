import unittest
from unittest import mock

from gradesync.domain.errors import StorageError
from gradesync.domain.logic.grading import GradingSystem
from gradesync.services.key_value import KeyValueStore
from gradesync.services.migration import (
    MIGRATION_COMPLETED_KEY,
    GradingSystemMigrator,
    MigrationState,
)
from gradesync.services.storage import GradebookStore


class GradingSystemMigratorTests(unittest.TestCase):
    def setUp(self):
        self.preferences = KeyValueStore(":memory:")
        self.store = GradebookStore(":memory:")

    def tearDown(self):
        self.preferences.close()
        self.store.close()

    def test_moves_legacy_values_into_gradebook(self):
        self.preferences.set("gradingSystem_2023", "points")
        self.preferences.set("gradingSystem_2024", "traditional")

        result = GradingSystemMigrator(self.preferences, self.store).migrate()

        self.assertTrue(result.completed)
        self.assertEqual(result.migrated, [2023, 2024])
        self.assertIs(self.store.grading_system_for(2023), GradingSystem.POINTS)
        self.assertTrue(self.store.get_grading_assignment(2024).is_explicit)
        self.assertTrue(self.preferences.get_bool(MIGRATION_COMPLETED_KEY))

    def test_never_overwrites_explicit_choice(self):
        self.store.set_grading_system(2024, GradingSystem.POINTS)
        self.store.grading_system_for(2022)  # lazily created default, not a user choice
        self.preferences.set("gradingSystem_2024", "traditional")
        self.preferences.set("gradingSystem_2022", "points")

        result = GradingSystemMigrator(self.preferences, self.store).migrate()

        self.assertEqual(result.migrated, [2022])
        self.assertEqual(result.skipped, ["gradingSystem_2024"])
        self.assertIs(self.store.grading_system_for(2024), GradingSystem.POINTS)
        self.assertIs(self.store.grading_system_for(2022), GradingSystem.POINTS)

    def test_second_run_writes_nothing(self):
        self.preferences.set("gradingSystem_2023", "points")
        migrator = GradingSystemMigrator(self.preferences, self.store)
        migrator.migrate()

        with mock.patch.object(self.store, "upsert_grading_assignment") as upsert, \
                mock.patch.object(self.preferences, "set") as set_pref:
            result = migrator.migrate()

        upsert.assert_not_called()
        set_pref.assert_not_called()
        self.assertTrue(result.completed)
        self.assertEqual(result.migrated, [])
        self.assertIs(self.store.grading_system_for(2023), GradingSystem.POINTS)

    def test_completes_without_legacy_entries(self):
        migrator = GradingSystemMigrator(self.preferences, self.store)
        self.assertIs(migrator.state, MigrationState.NOT_STARTED)
        self.assertTrue(migrator.migrate().completed)
        self.assertIs(migrator.state, MigrationState.COMPLETED)

    def test_unreadable_entries_are_skipped(self):
        self.preferences.set("gradingSystem_abc", "points")
        self.preferences.set("gradingSystem_2020", "percent")

        result = GradingSystemMigrator(self.preferences, self.store).migrate()

        self.assertTrue(result.completed)
        self.assertEqual(sorted(result.skipped), ["gradingSystem_2020", "gradingSystem_abc"])
        self.assertIsNone(self.store.get_grading_assignment(2020))

    def test_missing_gradebook_is_retried_later(self):
        self.preferences.set("gradingSystem_2023", "points")

        result = GradingSystemMigrator(self.preferences, None).migrate()

        self.assertFalse(result.completed)
        self.assertIsNone(self.preferences.get_bool(MIGRATION_COMPLETED_KEY))
        self.assertTrue(GradingSystemMigrator(self.preferences, self.store).migrate().completed)

    def test_storage_failure_leaves_flag_unset(self):
        self.preferences.set("gradingSystem_2023", "points")
        broken = mock.Mock(spec=GradebookStore)
        broken.get_grading_assignment.side_effect = StorageError("disk I/O error")

        migrator = GradingSystemMigrator(self.preferences, broken)
        result = migrator.migrate()

        self.assertFalse(result.completed)
        self.assertIs(migrator.state, MigrationState.NOT_STARTED)


    def test_unreadable_preferences_leave_migration_pending(self):
        self.preferences.set("gradingSystem_2023", "points")
        migrator = GradingSystemMigrator(self.preferences, self.store)

        with mock.patch.object(self.preferences, "get", side_effect=StorageError("disk I/O error")):
            result = migrator.migrate()

        self.assertFalse(result.completed)
        self.assertIsNone(self.store.get_grading_assignment(2023))
        self.assertIs(migrator.state, MigrationState.NOT_STARTED)
        self.assertTrue(migrator.migrate().completed)


if __name__ == "__main__":
    unittest.main()
