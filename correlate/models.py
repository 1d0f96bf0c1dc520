"""
Replay state for one issue's timeline.
"""
from datetime import datetime
from typing import Dict, List, Optional, Set

from normalize.models import BACKLOG


class Award:
    """Credit granted to one user by one closure."""

    def __init__(self, user_id: str, role: str, credit: float):
        self.user_id = user_id
        self.role = role
        self.credit = credit

    def __repr__(self):
        return f"Award({self.user_id!r}, {self.role!r}, {self.credit!r})"


class Closure:
    """A completed closure and the attributes that were current when it happened."""

    def __init__(self, closed_at: datetime, priority: int, level: int, weight: float, awards: List[Award]):
        self.closed_at = closed_at
        self.priority = priority
        self.level = level
        self.weight = weight
        self.awards = awards


class ReplayState:
    """
    Mutable state machine for a single issue replay. Never shared across issues.
    """

    def __init__(self, priority: int = 0, level: int = 0, assignee: Optional[str] = None, state: str = BACKLOG):
        self.assignee = assignee
        self.priority = priority
        self.level = level
        self.state = state
        self.closed = False
        self.reviewers: Set[str] = set()


class IssueReplay:
    """Result of replaying one issue: final state plus every awarded closure, in order."""

    def __init__(self, issue_id: str, state: ReplayState, closures: List[Closure], skipped: int = 0):
        self.issue_id = issue_id
        self.state = state
        self.closures = closures
        self.skipped = skipped

    def credit_by_user(self) -> Dict[str, float]:
        credit: Dict[str, float] = {}
        for closure in self.closures:
            for award in closure.awards:
                credit[award.user_id] = credit.get(award.user_id, 0.0) + award.credit
        return {u: c for u, c in credit.items() if c != 0}
