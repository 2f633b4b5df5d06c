import unittest
from datetime import date

from gradesync.domain.logic.grading import GradingSystem
from gradesync.domain.models.periods import SchoolYear, Semester


class SchoolYearTests(unittest.TestCase):
    def test_current_switches_in_august(self):
        self.assertEqual(SchoolYear.current(date(2025, 7, 31)).start_year, 2024)
        self.assertEqual(SchoolYear.current(date(2025, 8, 1)).start_year, 2025)
        self.assertEqual(SchoolYear.current(date(2025, 9, 15)).start_year, 2025)

    def test_display_name(self):
        year = SchoolYear(2024)
        self.assertEqual(year.end_year, 2025)
        self.assertEqual(year.display_name, "2024/2025")

    def test_identity_includes_grading_system(self):
        self.assertNotEqual(SchoolYear(2024), SchoolYear(2024, GradingSystem.POINTS))
        self.assertEqual(len({SchoolYear(2024), SchoolYear(2024), SchoolYear(2024, GradingSystem.POINTS)}), 2)

    def test_ordering_by_start_year(self):
        years = sorted([SchoolYear(2026), SchoolYear(2001, GradingSystem.POINTS), SchoolYear(2015)])
        self.assertEqual([y.start_year for y in years], [2001, 2015, 2026])

    def test_selectable_range(self):
        years = SchoolYear.selectable_years()
        self.assertEqual((years[0].start_year, years[-1].start_year), (2000, 2099))
        self.assertFalse(SchoolYear(1999).is_selectable)

    def test_from_storage_fallbacks(self):
        today = date(2025, 9, 1)
        self.assertEqual(SchoolYear.from_storage(0, "points", today), SchoolYear(2025, GradingSystem.POINTS))
        self.assertEqual(SchoolYear.from_storage(2023, "bogus", today), SchoolYear(2023))
        self.assertEqual(SchoolYear.from_storage(None, None, today), SchoolYear(2025))


class SemesterTests(unittest.TestCase):
    def test_names(self):
        self.assertEqual(Semester.FIRST.display_name, "1. Halbjahr")
        self.assertEqual(Semester.SECOND.short_name, "2. HJ")

    def test_unknown_tag_falls_back_to_first(self):
        self.assertIs(Semester.from_raw("3. Halbjahr"), Semester.FIRST)
        self.assertIs(Semester.from_raw("2. Halbjahr"), Semester.SECOND)


if __name__ == "__main__":
    unittest.main()
