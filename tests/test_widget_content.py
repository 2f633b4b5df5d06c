import unittest
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

from gradesync.domain.logic.grading import GradeColor, GradingSystem
from gradesync.domain.models.periods import SchoolYear, Semester
from gradesync.domain.models.snapshot import WidgetSnapshot
from gradesync.ui.widget_content import NO_GRADES_TEXT, widget_content

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


class WidgetContentTests(unittest.TestCase):
    def test_empty_snapshot(self):
        content = widget_content(WidgetSnapshot.empty(date(2025, 3, 10)), now=NOW)
        self.assertEqual(content.headline, NO_GRADES_TEXT)
        self.assertEqual(content.color, GradeColor.GRAY)
        self.assertEqual(content.year_label, "2024/2025")
        self.assertEqual(content.semester_label, "1. HJ")
        self.assertEqual(content.updated_label, "Noch nicht aktualisiert")

    def test_traditional_average(self):
        snapshot = WidgetSnapshot(10.4 / 6, 4, 9, SchoolYear(2024), Semester.SECOND,
                                  GradingSystem.TRADITIONAL, NOW - timedelta(minutes=5))
        content = widget_content(snapshot, now=NOW)
        self.assertEqual(content.headline, "⌀ 1.7")
        self.assertEqual(content.color, GradeColor.BLUE)
        self.assertEqual(content.performance, "Gut")
        self.assertEqual(content.counts_label, "4 Fächer · 9 Noten")
        self.assertEqual(content.updated_label, "Vor 5 Min. aktualisiert")

    def test_points_average_respects_rounding(self):
        snapshot = WidgetSnapshot(12.5, 2, 2, SchoolYear(2024, GradingSystem.POINTS), Semester.FIRST,
                                  GradingSystem.POINTS, NOW - timedelta(hours=3))
        self.assertEqual(widget_content(snapshot, now=NOW).headline, "⌀ 13 P")
        self.assertEqual(widget_content(snapshot, round_points=False, now=NOW).headline, "⌀ 12.5 P")
        self.assertEqual(widget_content(snapshot, now=NOW).updated_label, "Vor 3 Std. aktualisiert")
        self.assertEqual(widget_content(replace(snapshot, last_update=NOW), now=NOW).updated_label,
                         "Gerade aktualisiert")


if __name__ == "__main__":
    unittest.main()
