import json

import pytest

from cli import main, build_parser, _handle_cache_actions
from storage.cache import Cache

DOC = {
    'copanies': ['c1'],
    'issues': [
        {'id': 1, 'copany_id': 'c1', 'title': 'Checkout flow', 'priority': 2, 'level': 2},
        {'id': 2, 'copany_id': 'c1', 'title': 'Typo', 'priority': 0, 'level': 1},
    ],
    'activities': [
        {'id': 1, 'issue_id': 1, 'activity_type': 'assigned', 'new_value': 'alice', 'created_at': '2025-01-01T00:00:00Z'},
        {'id': 2, 'issue_id': 1, 'activity_type': 'reviewer_added', 'new_value': 'bob', 'created_at': '2025-01-01T01:00:00Z'},
        {'id': 3, 'issue_id': 1, 'activity_type': 'closed', 'created_at': '2025-01-02T00:00:00Z'},
        {'id': 4, 'issue_id': 2, 'activity_type': 'assigned', 'new_value': 'bob', 'created_at': '2025-01-05T00:00:00Z'},
        {'id': 5, 'issue_id': 2, 'activity_type': 'closed', 'created_at': '2025-01-06T00:00:00Z'},
    ],
}

WEIGHTS = (
    "base: {0: 1, 1: 3, 2: 8}\n"
    "multiplier: {0: 1.0, 1: 1.5, 2: 2.0}\n"
    "reviewer_share: 0.2\n"
)


@pytest.fixture
def inputs(tmp_path, monkeypatch):
    monkeypatch.delenv('COPANY_REVIEWER_SHARE', raising=False)
    data = tmp_path / 'copany.json'
    data.write_text(json.dumps(DOC), encoding='utf-8')
    weights = tmp_path / 'weights.yaml'
    weights.write_text(WEIGHTS, encoding='utf-8')
    return ['--issues-file', str(data), '--weights', str(weights)]


def test_text_leaderboard_to_stdout(inputs, capsys):
    assert main(['--copany', 'c1'] + inputs) == 0
    out = capsys.readouterr().out
    lines = out.splitlines()
    # alice: 8 * 2.0 = 16; bob: 16 * 0.2 + 3 = 6.2
    assert 'alice' in lines[1] and '16.00' in lines[1]
    assert 'bob' in lines[2] and '6.20' in lines[2]


def test_json_to_stdout(inputs, capsys):
    assert main(['--copany', 'c1', '--output', 'json'] + inputs) == 0
    data = json.loads(capsys.readouterr().out)
    assert [row['user_id'] for row in data] == ['alice', 'bob']
    assert data[1]['credit_score'] == pytest.approx(6.2)


def test_until_limits_the_replay(inputs, capsys):
    assert main(['--copany', 'c1', '--output', 'json', '--until', '2025-01-03T00:00:00Z'] + inputs) == 0
    data = json.loads(capsys.readouterr().out)
    assert data[0] == {'user_id': 'alice', 'credit_score': 16.0}
    assert data[1]['credit_score'] == pytest.approx(3.2)


def test_records_written_to_files(inputs, tmp_path, capsys):
    base = str(tmp_path / 'out' / 'report')
    for fmt in ('csv', 'md', 'html', 'json'):
        assert main(['--copany', 'c1', '--records', '--output', fmt, '--out-file', base] + inputs) == 0
        path = tmp_path / 'out' / f'report.{fmt}'
        assert path.exists()
        assert 'Checkout flow' in path.read_text(encoding='utf-8')
    records = json.loads((tmp_path / 'out' / 'report.json').read_text(encoding='utf-8'))
    assert [(r['issue_id'], r['user_id'], r['role']) for r in records] == [
        ('1', 'alice', 'assignee'),
        ('1', 'bob', 'reviewer'),
        ('2', 'bob', 'assignee'),
    ]
    assert 'Wrote report to' in capsys.readouterr().out


def test_unknown_copany_fails(inputs, capsys):
    assert main(['--copany', 'nope'] + inputs) == 1
    assert 'copany not found' in capsys.readouterr().err


def test_missing_copany_is_usage_error(inputs):
    with pytest.raises(SystemExit):
        main(inputs)


def test_no_data_source_is_usage_error(monkeypatch):
    monkeypatch.delenv('SUPABASE_URL', raising=False)
    monkeypatch.delenv('SUPABASE_KEY', raising=False)
    with pytest.raises(SystemExit):
        main(['--copany', 'c1'])


def test_cache_actions(tmp_path, capsys):
    path = str(tmp_path / 'cache.db')
    with Cache(path) as cache:
        cache.set('supabase:issue:x', [{'id': 1}])
    args = build_parser().parse_args(['--cache', path, '--cache-info'])
    assert _handle_cache_actions(args) is True
    assert json.loads(capsys.readouterr().out)['count'] == 1

    args = build_parser().parse_args(['--cache', path, '--cache-remove', 'supabase:issue:x', '--force'])
    _handle_cache_actions(args)
    assert 'Removed 1 row(s)' in capsys.readouterr().out

    assert _handle_cache_actions(build_parser().parse_args(['--copany', 'c1'])) is False
