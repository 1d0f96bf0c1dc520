"""
Contribution aggregation.
Replays one issue's activity timeline against the weight model and attributes credit
to the users who completed (assignee) and reviewed (reviewers) each closure.
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from errors import InvalidAttribute
from normalize.models import (
    Issue,
    ActivityRecord,
    ContributionRecord,
    Created,
    Assigned,
    StateChanged,
    PriorityChanged,
    LevelChanged,
    ReviewerAdded,
    Closed,
    Reopened,
    DONE,
    CANCELLED,
)
from correlate.linker import sort_activities, apply_cutoff
from correlate.models import Award, Closure, IssueReplay, ReplayState
from .weights import WeightModel

log = logging.getLogger(__name__)

ROLE_ASSIGNEE = 'assignee'
ROLE_REVIEWER = 'reviewer'

CLOSED_STATES = (DONE, CANCELLED)


def _valid_or_zero(model: WeightModel, value: int, field: str, issue_id: str) -> int:
    try:
        if field == 'priority':
            return model.check_priority(value)
        return model.check_level(value)
    except InvalidAttribute as ex:
        log.warning("issue %s: snapshot %s; starting from 0", issue_id, ex)
        return 0


def _initial_state(issue: Issue, timeline: List[ActivityRecord], model: WeightModel) -> ReplayState:
    """Seed the replay from the first created record; fields it lacks come from the snapshot defaults."""
    state = ReplayState(
        priority=_valid_or_zero(model, issue.priority, 'priority', issue.issue_id),
        level=_valid_or_zero(model, issue.level, 'level', issue.issue_id),
    )
    created = next((r for r in timeline if isinstance(r, Created)), None)
    if created is None:
        return state
    if created.priority is not None:
        try:
            state.priority = model.check_priority(created.priority)
        except InvalidAttribute as ex:
            log.warning("issue %s: created record %s: %s", issue.issue_id, created.record_id, ex)
    if created.level is not None:
        try:
            state.level = model.check_level(created.level)
        except InvalidAttribute as ex:
            log.warning("issue %s: created record %s: %s", issue.issue_id, created.record_id, ex)
    if created.assignee is not None:
        state.assignee = created.assignee
    if created.state is not None:
        state.state = created.state
    return state


def _close(state: ReplayState, model: WeightModel, closed_at: datetime) -> Closure:
    """Award the current weight to the assignee and the reviewer share to the other reviewers."""
    w = model.weight(state.priority, state.level)
    awards: List[Award] = []
    if state.assignee is not None and w > 0:
        awards.append(Award(state.assignee, ROLE_ASSIGNEE, w))
    reviewers = sorted(r for r in state.reviewers if r != state.assignee)
    pool = w * model.reviewer_share
    if reviewers and pool > 0:
        each = pool / len(reviewers)
        awards.extend(Award(r, ROLE_REVIEWER, each) for r in reviewers)
    state.closed = True
    return Closure(closed_at, state.priority, state.level, w, awards)


def _apply(record: ActivityRecord, state: ReplayState, model: WeightModel) -> Optional[Closure]:
    """Apply one record to the state; returns a Closure when the record awarded credit."""
    if isinstance(record, Assigned):
        state.assignee = record.assignee
    elif isinstance(record, PriorityChanged):
        state.priority = model.check_priority(record.new_priority)
    elif isinstance(record, LevelChanged):
        state.level = model.check_level(record.new_level)
    elif isinstance(record, StateChanged):
        state.state = record.new_state
        # stored logs reopen by moving a closed issue back to an open state
        if state.closed and record.new_state not in CLOSED_STATES:
            state.closed = False
    elif isinstance(record, ReviewerAdded):
        state.reviewers.add(record.reviewer)
    elif isinstance(record, Closed):
        if state.closed:
            log.debug("issue %s: record %s closes an already closed issue", record.issue_id, record.record_id)
            return None
        return _close(state, model, record.created_at)
    elif isinstance(record, Reopened):
        state.closed = False
    # created records only seed the state; comments and anything else carry no credit
    return None


def replay_issue(issue: Issue, activities: Iterable[ActivityRecord], model: WeightModel, until: Optional[datetime] = None) -> IssueReplay:
    """
    Replay an issue's activity history in (created_at, id) order.

    Records that belong to another issue are ignored. Records with out-of-range ordinals are
    skipped and the last-known-good state is kept.
    """
    own = []
    for rec in activities or []:
        if rec.issue_id != issue.issue_id:
            log.warning("issue %s: ignoring record %s of issue %s", issue.issue_id, rec.record_id, rec.issue_id)
            continue
        own.append(rec)
    timeline = apply_cutoff(sort_activities(own), until)

    state = _initial_state(issue, timeline, model)
    closures: List[Closure] = []
    skipped = 0
    for rec in timeline:
        try:
            closure = _apply(rec, state, model)
        except InvalidAttribute as ex:
            skipped += 1
            log.warning("issue %s: skipping record %s: %s", issue.issue_id, rec.record_id, ex)
            continue
        if closure is not None:
            closures.append(closure)
    return IssueReplay(issue.issue_id, state, closures, skipped)


def compute_issue_credit(issue: Issue, activities: Iterable[ActivityRecord], model: WeightModel, until: Optional[datetime] = None) -> Dict[str, float]:
    """Return {user_id: credit} for one issue. Users without credit are absent."""
    return replay_issue(issue, activities, model, until).credit_by_user()


def closure_records(issue: Issue, replay: IssueReplay) -> List[ContributionRecord]:
    """Flatten a replay into one ContributionRecord per award."""
    records: List[ContributionRecord] = []
    for closure in replay.closures:
        for award in closure.awards:
            records.append(ContributionRecord(
                copany_id=issue.copany_id,
                issue_id=issue.issue_id,
                issue_title=issue.title,
                user_id=award.user_id,
                role=award.role,
                credit=award.credit,
                issue_level=closure.level,
                issue_priority=closure.priority,
                closed_at=closure.closed_at,
            ))
    return records
