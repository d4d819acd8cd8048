import unittest
from datetime import date

from classbook.core import kst
from classbook.services.recurrence_service import (
    build_weekly_rrule,
    expand_weekly,
    parse_weekly_rrule,
)


class RecurrenceTests(unittest.TestCase):
    def test_weekly_expansion_includes_until_date(self):
        first = kst.from_components(2025, 0, 6, 10, 0)
        starts = expand_weekly(first, date(2025, 1, 27))
        self.assertEqual([kst.date_key(start) for start in starts], ['2025-01-06', '2025-01-13', '2025-01-20', '2025-01-27'])
        for start in starts:
            parts = kst.to_components(start)
            self.assertEqual((parts.hour, parts.minute), (10, 0))

    def test_until_before_start_is_root_only(self):
        first = kst.from_components(2025, 0, 6, 10, 0)
        self.assertEqual(expand_weekly(first, date(2025, 1, 1)), [first])
        self.assertEqual(expand_weekly(first, date(2025, 1, 12)), [first])

    def test_expansion_across_year_boundary(self):
        first = kst.from_components(2024, 11, 30, 19, 0)
        starts = expand_weekly(first, date(2025, 1, 13))
        self.assertEqual([kst.date_key(start) for start in starts], ['2024-12-30', '2025-01-06', '2025-01-13'])

    def test_late_evening_start_keeps_kst_date(self):
        # 23:00 KST is 14:00 UTC on the same date; the until check is on the KST date.
        first = kst.from_components(2025, 2, 3, 23, 0)
        starts = expand_weekly(first, date(2025, 3, 10))
        self.assertEqual(len(starts), 2)

    def test_rrule_build_and_parse(self):
        rrule = build_weekly_rrule(date(2025, 3, 31))
        self.assertEqual(rrule, 'FREQ=WEEKLY;INTERVAL=1;UNTIL=20250331')
        self.assertEqual(parse_weekly_rrule(rrule), date(2025, 3, 31))

    def test_unsupported_rrule_rejected(self):
        for rrule in ('FREQ=DAILY;UNTIL=20250331', 'FREQ=WEEKLY;BYDAY=MO', '', 'FREQ=WEEKLY;INTERVAL=2;UNTIL=20250331'):
            with self.assertRaises(ValueError):
                parse_weekly_rrule(rrule)


if __name__ == '__main__':
    unittest.main()
