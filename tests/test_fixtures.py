import json
import os
import tempfile
import unittest

from errors import NotFound
from ingest.fixtures import FixtureStore
from normalize.models import Assigned, Closed

DOC = {
    'copanies': ['c1', 'quiet'],
    'issues': [
        {'id': 1, 'copany_id': 'c1', 'title': 'first', 'level': 1},
        {'id': 2, 'copany_id': 'c1', 'title': 'second', 'level': 2},
        {'id': 3, 'copany_id': 'c2', 'title': 'elsewhere'},
    ],
    'activities': [
        {'id': 11, 'issue_id': 1, 'activity_type': 'closed', 'created_at': '2025-01-01T00:05:00Z'},
        {'id': 10, 'issue_id': 1, 'activity_type': 'assigned', 'new_value': 'u1', 'created_at': '2025-01-01T00:00:00Z'},
        {'id': 12, 'issue_id': 99, 'activity_type': 'closed', 'created_at': '2025-01-01T00:00:00Z'},
    ],
}


class TestFixtureStore(unittest.TestCase):
    def _write(self, obj):
        fd, path = tempfile.mkstemp(suffix='.json')
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(obj, f)
        self.addCleanup(os.remove, path)
        return path

    def test_issues_for_copany(self):
        store = FixtureStore.from_document(DOC)
        self.assertEqual(sorted(i.issue_id for i in store.list_issues_for_copany('c1')), ['1', '2'])
        self.assertEqual([i.issue_id for i in store.list_issues_for_copany('c2')], ['3'])

    def test_listed_copany_without_issues_is_empty(self):
        store = FixtureStore.from_document(DOC)
        self.assertEqual(store.list_issues_for_copany('quiet'), [])
        with self.assertRaises(NotFound):
            store.list_issues_for_copany('missing')

    def test_activity_log_is_ordered_and_limited(self):
        store = FixtureStore.from_document(DOC)
        log = store.list_activities_for_issue('1')
        self.assertIsInstance(log[0], Assigned)
        self.assertIsInstance(log[1], Closed)
        self.assertEqual(len(store.list_activities_for_issue('1', limit=1)), 1)
        self.assertEqual(store.list_activities_for_issue('2'), [])
        with self.assertRaises(NotFound):
            store.list_activities_for_issue('99')

    def test_from_single_document_file(self):
        store = FixtureStore.from_files(self._write(DOC))
        self.assertEqual(len(store.list_activities_for_issue(1)), 2)

    def test_from_separate_files(self):
        issues_path = self._write(DOC['issues'])
        activities_path = self._write(DOC['activities'])
        store = FixtureStore.from_files(issues_path, activities_path)
        self.assertEqual(len(store.list_issues_for_copany('c1')), 2)
        self.assertEqual(len(store.list_activities_for_issue('1')), 2)

    def test_array_without_activities_file_rejected(self):
        with self.assertRaises(ValueError):
            FixtureStore.from_files(self._write(DOC['issues']))


if __name__ == '__main__':
    unittest.main()
