"""
Report renderer: leaderboards and per-closure contribution records as text, Markdown,
HTML (Jinja2 templates in report/templates), CSV or JSON.
"""

from typing import Optional, List, Dict, Any
import os
import json
import io
import csv

from jinja2 import Environment, FileSystemLoader, select_autoescape

from normalize.models import Contribution, ContributionRecord
from scoring.ranking import contribution_percentages

TEMPLATE_DIR = os.path.join(os.path.dirname(__file__), 'templates')

LEADERBOARD_COLUMNS = ['rank', 'user_id', 'credit_score', 'share_percent', 'issue_count']
RECORD_COLUMNS = ['closed_at', 'issue_id', 'issue_title', 'user_id', 'role', 'credit', 'issue_level', 'issue_priority']


def leaderboard_rows(contributions: List[Contribution]) -> List[Dict[str, Any]]:
    """Flatten ranked contributions into display rows (rank is 1-based, order preserved)."""
    shares = contribution_percentages(contributions)
    return [
        {
            'rank': idx,
            'user_id': c.user_id,
            'credit_score': c.credit_score,
            'share_percent': shares.get(c.user_id, 0.0),
            'issue_count': len(c.contributing_issue_ids),
        }
        for idx, c in enumerate(contributions, start=1)
    ]


def _environment() -> Environment:
    env = Environment(loader=FileSystemLoader(TEMPLATE_DIR), autoescape=select_autoescape(['html', 'xml', 'html.j2']))
    env.filters['credit'] = lambda v: f"{float(v):.2f}"
    return env


def render_text(rows: List[Dict[str, Any]]) -> str:
    """Plain aligned leaderboard."""
    if not rows:
        return 'No contributions.'
    width = max(len(r['user_id']) for r in rows)
    lines = [f"{'#':>3}  {'user':<{width}}  {'credit':>10}  {'share':>7}"]
    for r in rows:
        lines.append(f"{r['rank']:>3}  {r['user_id']:<{width}}  {r['credit_score']:>10.2f}  {r['share_percent']:>6.1f}%")
    return "\n".join(lines)


def render_csv(rows: List[Dict[str, Any]], columns: List[str]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(columns)
    for r in rows:
        writer.writerow([r.get(c, '') for c in columns])
    return output.getvalue()


def render_template(name: str, **context) -> str:
    return _environment().get_template(name).render(**context)


def render(
    contributions: Optional[List[Contribution]] = None,
    fmt: str = 'text',
    records: Optional[List[ContributionRecord]] = None,
    copany_id: Optional[str] = None,
    generated_at: Optional[str] = None,
    scope: Optional[str] = None,
) -> str:
    """Main render function.

    When `records` is given the per-closure records are rendered, otherwise the leaderboard.
    JSON output of a leaderboard is the transport shape [{user_id, credit_score}].
    """
    fmt_l = (fmt or 'text').lower()
    rows = leaderboard_rows(contributions or [])
    record_dicts = [r.to_dict() for r in records] if records is not None else None
    context = {
        'copany_id': copany_id,
        'rows': rows,
        'records': record_dicts,
        'generated_at': generated_at,
        'scope': scope,
    }
    if fmt_l in ('md', 'markdown'):
        return render_template('leaderboard.md.j2', **context)
    if fmt_l in ('html', 'htm'):
        return render_template('leaderboard.html.j2', **context)
    if fmt_l == 'csv':
        if record_dicts is not None:
            return render_csv(record_dicts, RECORD_COLUMNS)
        return render_csv(rows, LEADERBOARD_COLUMNS)
    if fmt_l in ('json', 'js'):
        if record_dicts is not None:
            return json.dumps(record_dicts, indent=2)
        return json.dumps([c.to_dict() for c in contributions or []], indent=2)
    if record_dicts is not None:
        return "\n".join(f"{r['closed_at']}  {r['issue_id']}  {r['user_id']} ({r['role']})  {r['credit']:.2f}" for r in record_dicts) or 'No contributions.'
    return render_text(rows)
