import unittest
from datetime import datetime, timezone

from correlate import group_activities_by_issue, sort_activities
from correlate.linker import id_sort_key, apply_cutoff
from normalize.models import Issue, Assigned, Closed

T = datetime(2025, 1, 1, tzinfo=timezone.utc)
LATER = datetime(2025, 1, 2, tzinfo=timezone.utc)


class TestLinker(unittest.TestCase):
    def test_id_sort_key_numeric_before_text(self):
        ids = ['b', '10', 9, 'a', '2']
        self.assertEqual(sorted(ids, key=id_sort_key), ['2', 9, '10', 'a', 'b'])

    def test_sort_by_time_then_id(self):
        records = [
            Closed('10', 'I1', None, T),
            Assigned('9', 'I1', None, T, 'u1'),
            Assigned('1', 'I1', None, LATER, 'u2'),
        ]
        self.assertEqual([r.record_id for r in sort_activities(records)], ['9', '10', '1'])

    def test_group_activities_by_issue(self):
        records = [
            Closed(2, 'I1', None, LATER),
            Assigned(1, 'I1', None, T, 'u1'),
            Assigned(3, 'I2', None, T, 'u2'),
            Closed(4, 'GONE', None, T),
        ]
        issues = [Issue('I1', 'C1'), Issue('I2', 'C1')]
        timelines, orphans = group_activities_by_issue(records, issues)
        self.assertEqual([r.record_id for r in timelines['I1']], [1, 2])
        self.assertEqual([r.record_id for r in timelines['I2']], [3])
        self.assertEqual([r.record_id for r in orphans], [4])

        everything, none = group_activities_by_issue(records)
        self.assertIn('GONE', everything)
        self.assertEqual(none, [])

    def test_apply_cutoff_is_inclusive(self):
        records = [Assigned(1, 'I1', None, T, 'u1'), Closed(2, 'I1', None, LATER)]
        self.assertEqual([r.record_id for r in apply_cutoff(records, T)], [1])
        self.assertEqual(len(apply_cutoff(records, None)), 2)


if __name__ == '__main__':
    unittest.main()
