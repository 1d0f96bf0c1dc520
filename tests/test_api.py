import unittest

from api import compute_contributions, handle_contributions_request, handle_contribution_records_request
from errors import MissingParameter, ComputationTimeout, ProviderError
from ingest.fixtures import FixtureStore
from scoring.weights import WeightModel

MODEL = WeightModel({0: 1, 1: 3, 2: 8}, {0: 1.0, 1: 1.5, 2: 2.0}, reviewer_share=0.2)

DOC = {
    'issues': [{'id': 'I1', 'copany_id': 'C1', 'title': 'Fix login', 'priority': 1, 'level': 2}],
    'activities': [
        {'id': 1, 'issue_id': 'I1', 'activity_type': 'assigned', 'new_value': 'U1', 'created_at': '2025-01-01T00:00:00Z'},
        {'id': 2, 'issue_id': 'I1', 'activity_type': 'reviewer_added', 'new_value': 'U2', 'created_at': '2025-01-01T00:01:00Z'},
        {'id': 3, 'issue_id': 'I1', 'activity_type': 'closed', 'created_at': '2025-01-03T00:00:00Z'},
    ],
}


class FailingStore:
    def __init__(self, exc):
        self.exc = exc

    def list_issues_for_copany(self, copany_id):
        raise self.exc


class TestContributionsHandler(unittest.TestCase):
    def setUp(self):
        self.store = FixtureStore.from_document(DOC)

    def test_missing_copany_is_client_error(self):
        self.assertEqual(handle_contributions_request({}, self.store, MODEL), (400, {'error': 'copanyId required'}))
        self.assertEqual(handle_contributions_request({'copanyId': ''}, self.store, MODEL)[0], 400)

    def test_success_body(self):
        status, body = handle_contributions_request({'copanyId': 'C1'}, self.store, MODEL)
        self.assertEqual(status, 200)
        self.assertEqual([c['user_id'] for c in body['contributions']], ['U1', 'U2'])
        self.assertEqual(body['contributions'][0]['credit_score'], 12.0)
        self.assertAlmostEqual(body['contributions'][1]['credit_score'], 2.4)

    def test_snake_case_parameter_and_until(self):
        status, body = handle_contributions_request({'copany_id': 'C1', 'until': '2025-01-02T00:00:00Z'}, self.store, MODEL)
        self.assertEqual((status, body), (200, {'contributions': []}))

    def test_unknown_copany_is_server_error(self):
        self.assertEqual(handle_contributions_request({'copanyId': 'nope'}, self.store, MODEL), (500, {'error': 'Failed'}))

    def test_timeout_is_retryable_server_error(self):
        status, body = handle_contributions_request({'copanyId': 'C1'}, FailingStore(ComputationTimeout('slow')), MODEL)
        self.assertEqual(status, 500)
        self.assertEqual(body, {'error': 'Failed', 'retryable': True})

    def test_provider_failure_is_server_error(self):
        status, body = handle_contributions_request({'copanyId': 'C1'}, FailingStore(ProviderError('down', 503)), MODEL)
        self.assertEqual((status, body), (500, {'error': 'Failed'}))

    def test_unexpected_error_is_server_error(self):
        with self.assertLogs('api', level='ERROR'):
            status, body = handle_contributions_request({'copanyId': 'C1'}, FailingStore(ValueError('bad preset')), MODEL)
        self.assertEqual((status, body), (500, {'error': 'Failed'}))
        with self.assertLogs('api', level='ERROR'):
            status, _ = handle_contribution_records_request({'copanyId': 'C1'}, FailingStore(KeyError('id')), MODEL)
        self.assertEqual(status, 500)

    def test_bad_until_is_server_error(self):
        self.assertEqual(handle_contributions_request({'copanyId': 'C1', 'until': 'soon'}, self.store, MODEL)[0], 500)

    def test_records_handler(self):
        status, body = handle_contribution_records_request({'copanyId': 'C1'}, self.store, MODEL)
        self.assertEqual(status, 200)
        first = body['contributions'][0]
        self.assertEqual((first['issue_id'], first['user_id'], first['role']), ('I1', 'U1', 'assignee'))
        self.assertEqual((first['year'], first['month'], first['day']), (2025, 1, 3))
        self.assertEqual(handle_contribution_records_request({}, self.store, MODEL)[0], 400)

    def test_compute_contributions_requires_copany(self):
        with self.assertRaises(MissingParameter):
            compute_contributions('', self.store, MODEL)


if __name__ == '__main__':
    unittest.main()
