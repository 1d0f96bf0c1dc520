"""
Unified data models for issue snapshots, activity records and derived contributions.
"""

from datetime import datetime
from typing import Optional, Dict, Any, Set

# issue states
BACKLOG = 'Backlog'
TODO = 'Todo'
IN_PROGRESS = 'InProgress'
DONE = 'Done'
CANCELLED = 'Cancelled'

ISSUE_STATES = (BACKLOG, TODO, IN_PROGRESS, DONE, CANCELLED)


class Issue:
    """
    Read-only snapshot of an issue as the persistence layer currently holds it.
    """
    def __init__(self, issue_id: str, copany_id: str, title: str = '', state: str = BACKLOG, priority: int = 0, level: int = 0, assignee: Optional[str] = None, created_at: Optional[datetime] = None, closed_at: Optional[datetime] = None):
        self.issue_id = issue_id
        self.copany_id = copany_id
        self.title = title
        self.state = state
        self.priority = priority
        self.level = level
        self.assignee = assignee
        self.created_at = created_at
        self.closed_at = closed_at

    def __repr__(self):
        return f"Issue({self.issue_id!r}, copany={self.copany_id!r}, state={self.state!r}, priority={self.priority}, level={self.level})"


class ActivityRecord:
    """
    Base of the activity variants. Each subclass carries only the fields its event kind needs.
    """
    activity_type = ''

    def __init__(self, record_id, issue_id: str, actor_user_id: Optional[str], created_at: datetime):
        self.record_id = record_id
        self.issue_id = issue_id
        self.actor_user_id = actor_user_id
        self.created_at = created_at

    def __repr__(self):
        return f"{type(self).__name__}(id={self.record_id!r}, issue={self.issue_id!r}, at={self.created_at.isoformat() if self.created_at else None})"


class Created(ActivityRecord):
    activity_type = 'created'

    def __init__(self, record_id, issue_id: str, actor_user_id: Optional[str], created_at: datetime, priority: Optional[int] = None, level: Optional[int] = None, assignee: Optional[str] = None, state: Optional[str] = None):
        super().__init__(record_id, issue_id, actor_user_id, created_at)
        self.priority = priority
        self.level = level
        self.assignee = assignee
        self.state = state


class Assigned(ActivityRecord):
    activity_type = 'assigned'

    def __init__(self, record_id, issue_id: str, actor_user_id: Optional[str], created_at: datetime, assignee: Optional[str]):
        super().__init__(record_id, issue_id, actor_user_id, created_at)
        self.assignee = assignee  # None means the issue was unassigned


class StateChanged(ActivityRecord):
    activity_type = 'state_changed'

    def __init__(self, record_id, issue_id: str, actor_user_id: Optional[str], created_at: datetime, new_state: str, old_state: Optional[str] = None):
        super().__init__(record_id, issue_id, actor_user_id, created_at)
        self.old_state = old_state
        self.new_state = new_state


class PriorityChanged(ActivityRecord):
    activity_type = 'priority_changed'

    def __init__(self, record_id, issue_id: str, actor_user_id: Optional[str], created_at: datetime, new_priority: int, old_priority: Optional[int] = None):
        super().__init__(record_id, issue_id, actor_user_id, created_at)
        self.old_priority = old_priority
        self.new_priority = new_priority


class LevelChanged(ActivityRecord):
    activity_type = 'level_changed'

    def __init__(self, record_id, issue_id: str, actor_user_id: Optional[str], created_at: datetime, new_level: int, old_level: Optional[int] = None):
        super().__init__(record_id, issue_id, actor_user_id, created_at)
        self.old_level = old_level
        self.new_level = new_level


class ReviewerAdded(ActivityRecord):
    activity_type = 'reviewer_added'

    def __init__(self, record_id, issue_id: str, actor_user_id: Optional[str], created_at: datetime, reviewer: str):
        super().__init__(record_id, issue_id, actor_user_id, created_at)
        self.reviewer = reviewer


class Closed(ActivityRecord):
    activity_type = 'closed'


class Reopened(ActivityRecord):
    activity_type = 'reopened'


class Commented(ActivityRecord):
    activity_type = 'commented'

    def __init__(self, record_id, issue_id: str, actor_user_id: Optional[str], created_at: datetime, body: Optional[str] = None):
        super().__init__(record_id, issue_id, actor_user_id, created_at)
        self.body = body


ACTIVITY_CLASSES = {cls.activity_type: cls for cls in (Created, Assigned, StateChanged, PriorityChanged, LevelChanged, ReviewerAdded, Closed, Reopened, Commented)}


class Contribution:
    """
    Derived per-user credit for one copany. Exists only for the duration of a computation.
    """
    def __init__(self, copany_id: str, user_id: str, credit_score: float = 0.0, contributing_issue_ids: Optional[Set[str]] = None):
        self.copany_id = copany_id
        self.user_id = user_id
        self.credit_score = credit_score
        self.contributing_issue_ids = contributing_issue_ids if contributing_issue_ids is not None else set()

    def to_dict(self) -> Dict[str, Any]:
        """Transport shape consumed by the request boundary."""
        return {'user_id': self.user_id, 'credit_score': self.credit_score}

    def __repr__(self):
        return f"Contribution({self.user_id!r}, {self.credit_score!r}, issues={sorted(self.contributing_issue_ids)})"


class ContributionRecord:
    """
    Credit awarded to one user by one closure of one issue.
    """
    def __init__(self, copany_id: str, issue_id: str, issue_title: str, user_id: str, role: str, credit: float, issue_level: int, issue_priority: int, closed_at: datetime):
        self.copany_id = copany_id
        self.issue_id = issue_id
        self.issue_title = issue_title
        self.user_id = user_id
        self.role = role  # assignee/reviewer
        self.credit = credit
        self.issue_level = issue_level
        self.issue_priority = issue_priority
        self.closed_at = closed_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            'copany_id': self.copany_id,
            'issue_id': self.issue_id,
            'issue_title': self.issue_title,
            'user_id': self.user_id,
            'role': self.role,
            'credit': self.credit,
            'issue_level': self.issue_level,
            'issue_priority': self.issue_priority,
            'closed_at': self.closed_at.isoformat() if self.closed_at else None,
            'year': self.closed_at.year if self.closed_at else None,
            'month': self.closed_at.month if self.closed_at else None,
            'day': self.closed_at.day if self.closed_at else None,
        }
