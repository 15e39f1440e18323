import itertools
import unittest
from datetime import date, timedelta

from congregation_admin.models import EventOccurrence, GatheringPattern
from congregation_admin.recurrence import (
    InvalidGatheringPattern,
    first_gathering,
    project_occurrences,
    sunday_based_weekday,
)


SUNDAY = date(2026, 10, 18)


def pattern(**kwargs):
    values = {"frequency_type": "weeks", "interval": 2, "day_of_week": 0, "start_date": SUNDAY}
    values.update(kwargs)
    return GatheringPattern(**values)


class TestRecurrenceProjection(unittest.TestCase):
    def test_sunday_is_zero(self):
        self.assertEqual(sunday_based_weekday(SUNDAY), 0)
        self.assertEqual(sunday_based_weekday(SUNDAY + timedelta(days=6)), 6)

    def test_biweekly_from_target_weekday(self):
        created = project_occurrences(pattern(), 3, title_override="Husgruppe")

        self.assertEqual([o.date for o in created], [date(2026, 10, 18), date(2026, 11, 1), date(2026, 11, 15)])
        self.assertTrue(all(o.status == "draft" for o in created))
        self.assertTrue(all(o.title_override == "Husgruppe" for o in created))
        self.assertTrue(all(o.template_id is None for o in created))

    def test_advances_to_target_weekday(self):
        start = SUNDAY + timedelta(days=1)
        self.assertEqual(first_gathering(pattern(start_date=start)), date(2026, 10, 25))
        self.assertEqual(first_gathering(pattern(start_date=start, day_of_week=1)), start)

    def test_skips_existing_date_and_title(self):
        existing = [
            EventOccurrence(id="x", date=date(2026, 11, 1), title_override="Husgruppe"),
            EventOccurrence(id="y", date=date(2026, 11, 15), title_override="Bønnemøte"),
        ]
        created = project_occurrences(pattern(), 3, existing, title_override="Husgruppe")
        self.assertEqual([o.date for o in created], [date(2026, 10, 18), date(2026, 11, 15)])

    def test_monthly_steps_use_calendar_months(self):
        start = date(2026, 1, 31)
        created = project_occurrences(
            pattern(frequency_type="months", interval=1, day_of_week=sunday_based_weekday(start), start_date=start),
            3,
        )
        self.assertEqual([o.date for o in created], [date(2026, 1, 31), date(2026, 2, 28), date(2026, 3, 28)])

    def test_ids_come_from_factory(self):
        counter = itertools.count(1)
        created = project_occurrences(pattern(), 2, id_factory=lambda: f"occ-{next(counter)}")
        self.assertEqual([o.id for o in created], ["occ-1", "occ-2"])

    def test_zero_count_projects_nothing(self):
        self.assertEqual(project_occurrences(pattern(), 0), [])

    def test_rejects_malformed_patterns(self):
        with self.assertRaises(InvalidGatheringPattern):
            project_occurrences(pattern(interval=0), 3)
        with self.assertRaises(InvalidGatheringPattern):
            project_occurrences(pattern(day_of_week=7), 3)
        with self.assertRaises(InvalidGatheringPattern):
            project_occurrences(pattern(frequency_type="days"), 3)
        with self.assertRaises(ValueError):
            project_occurrences(pattern(), -1)


if __name__ == "__main__":
    unittest.main(verbosity=2)
