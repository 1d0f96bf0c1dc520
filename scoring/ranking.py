"""
Contributor ranking.
Fans out one replay per issue of a copany, sums the per-issue credit per user and
orders the result into a leaderboard.

Collaborators are duck-typed:
- issues provider:   list_issues_for_copany(copany_id) -> [Issue]
- activity reader:   list_activities_for_issue(issue_id, limit) -> [ActivityRecord]
"""
import logging
import os
from concurrent.futures import ThreadPoolExecutor, wait, FIRST_EXCEPTION
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from errors import NotFound, ComputationTimeout
from normalize.models import Issue, Contribution, ContributionRecord
from correlate.linker import id_sort_key
from correlate.models import IssueReplay
from .metrics import replay_issue, closure_records
from .utils import load_weights
from .weights import WeightModel

log = logging.getLogger(__name__)

# engine defaults, overridable per call (e.g. from the CLI)
DEFAULT_ACTIVITY_LIMIT = int(os.getenv('COPANY_ACTIVITY_LIMIT', '1000'))
DEFAULT_MAX_WORKERS = int(os.getenv('COPANY_MAX_WORKERS', '8'))
_env_timeout = os.getenv('COPANY_TIMEOUT')
DEFAULT_TIMEOUT = float(_env_timeout) if _env_timeout is not None and _env_timeout != '' else None


def _replay_one(issue: Issue, activities, model: WeightModel, until: Optional[datetime], limit: int) -> Optional[IssueReplay]:
    try:
        records = activities.list_activities_for_issue(issue.issue_id, limit)
    except NotFound as ex:
        log.info("issue %s contributes nothing: %s", issue.issue_id, ex)
        return None
    if limit and len(records) >= limit:
        log.warning("issue %s: activity log reached the read limit (%d); later records are not replayed", issue.issue_id, limit)
    return replay_issue(issue, records, model, until)


def replay_copany(
    copany_id: str,
    issues,
    activities,
    model: Optional[WeightModel] = None,
    until: Optional[datetime] = None,
    max_workers: Optional[int] = None,
    timeout: Optional[float] = None,
    limit: Optional[int] = None,
) -> List[Tuple[Issue, IssueReplay]]:
    """
    Replay every issue of a copany. Issues are independent and replayed on a thread pool.

    Returns (issue, replay) pairs ordered by issue id; issues whose log could not be found are left out.
    Raises ComputationTimeout when the overall deadline expires (no partial result).
    """
    model = model or load_weights()
    limit = DEFAULT_ACTIVITY_LIMIT if limit is None else limit
    timeout = DEFAULT_TIMEOUT if timeout is None else timeout
    workers = max_workers or DEFAULT_MAX_WORKERS

    ordered = sorted(issues.list_issues_for_copany(copany_id), key=lambda i: id_sort_key(i.issue_id))
    if not ordered:
        return []

    executor = ThreadPoolExecutor(max_workers=min(workers, len(ordered)))
    try:
        futures = [executor.submit(_replay_one, issue, activities, model, until, limit) for issue in ordered]
        done, not_done = wait(futures, timeout=timeout, return_when=FIRST_EXCEPTION)
        for fut in futures:
            if fut in done and fut.exception() is not None:
                raise fut.exception()
        if not_done:
            raise ComputationTimeout(f"copany {copany_id}: {len(not_done)} of {len(futures)} issues not replayed within {timeout}s")
        pairs = [(issue, fut.result()) for issue, fut in zip(ordered, futures)]
    finally:
        # nothing is written back, so unfinished replays can simply be dropped
        executor.shutdown(wait=False, cancel_futures=True)
    return [(issue, replay) for issue, replay in pairs if replay is not None]


def merge_contributions(copany_id: str, replays: List[Tuple[Issue, IssueReplay]]) -> List[Contribution]:
    """Sum per-issue credit per user and sort: credit descending, then user_id ascending."""
    by_user: Dict[str, Contribution] = {}
    for issue, replay in replays:
        for user_id, credit in replay.credit_by_user().items():
            contrib = by_user.setdefault(user_id, Contribution(copany_id, user_id))
            contrib.credit_score += credit
            contrib.contributing_issue_ids.add(issue.issue_id)
    ranked = [c for c in by_user.values() if c.credit_score > 0]
    ranked.sort(key=lambda c: (-c.credit_score, c.user_id))
    return ranked


def rank_contributors(copany_id: str, issues, activities, model: Optional[WeightModel] = None, until: Optional[datetime] = None, **options) -> List[Contribution]:
    """Leaderboard of a copany. `options` are forwarded to replay_copany (max_workers, timeout, limit)."""
    return merge_contributions(copany_id, replay_copany(copany_id, issues, activities, model, until, **options))


def contribution_records(copany_id: str, issues, activities, model: Optional[WeightModel] = None, until: Optional[datetime] = None, **options) -> List[ContributionRecord]:
    """One record per award, ordered by closure time, issue, role and user."""
    records: List[ContributionRecord] = []
    for issue, replay in replay_copany(copany_id, issues, activities, model, until, **options):
        records.extend(closure_records(issue, replay))
    records.sort(key=lambda r: (r.closed_at, id_sort_key(r.issue_id), r.role, r.user_id))
    return records


def contribution_percentages(contributions: List[Contribution]) -> Dict[str, float]:
    """Each user's share of the copany's total credit, in percent."""
    total = sum(c.credit_score for c in contributions)
    if total <= 0:
        return {c.user_id: 0.0 for c in contributions}
    return {c.user_id: c.credit_score / total * 100.0 for c in contributions}
