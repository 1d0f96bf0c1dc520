"""
In-memory persistence collaborator built from JSON documents.

Document shape:
    {
      "copanies": ["c1", ...],          # optional; otherwise derived from the issues
      "issues": [ {issue row}, ... ],
      "activities": [ {activity row}, ... ]
    }
Issues and activities may also be supplied as two separate JSON arrays (see from_files).
"""
import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from errors import NotFound
from normalize.models import Issue, ActivityRecord
from normalize.util import normalize_issue, normalize_activities
from correlate.linker import group_activities_by_issue

log = logging.getLogger(__name__)


class FixtureStore:
    """Serves issue snapshots and activity logs from memory. Read-only after construction."""

    def __init__(self, issues: Iterable[Issue], activities: Iterable[ActivityRecord], copanies: Optional[Iterable[str]] = None):
        self._issues: Dict[str, Issue] = {i.issue_id: i for i in issues}
        self._copanies = {str(c) for c in copanies} if copanies is not None else None
        timelines, orphans = group_activities_by_issue(activities, self._issues.values())
        for rec in orphans:
            log.warning("activity %s references unknown issue %s", rec.record_id, rec.issue_id)
        self._timelines = timelines

    @classmethod
    def from_rows(cls, issue_rows: List[Dict[str, Any]], activity_rows: List[Dict[str, Any]], copanies: Optional[Iterable[str]] = None) -> 'FixtureStore':
        return cls([normalize_issue(r) for r in issue_rows or []], normalize_activities(activity_rows), copanies)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> 'FixtureStore':
        return cls.from_rows(doc.get('issues') or [], doc.get('activities') or [], doc.get('copanies'))

    @classmethod
    def from_files(cls, issues_path: str, activities_path: Optional[str] = None) -> 'FixtureStore':
        """Load from one JSON document, or from an issues array file plus an activities array file."""
        with open(issues_path, 'r', encoding='utf-8') as f:
            first = json.load(f)
        if activities_path is None:
            if not isinstance(first, dict):
                raise ValueError(f"{issues_path}: expected a document with 'issues' and 'activities'")
            return cls.from_document(first)
        with open(activities_path, 'r', encoding='utf-8') as f:
            activity_rows = json.load(f)
        issue_rows = first.get('issues', []) if isinstance(first, dict) else first
        if isinstance(activity_rows, dict):
            activity_rows = activity_rows.get('activities', [])
        return cls.from_rows(issue_rows, activity_rows, first.get('copanies') if isinstance(first, dict) else None)

    def list_issues_for_copany(self, copany_id: str) -> List[Issue]:
        copany_id = str(copany_id)
        issues = [i for i in self._issues.values() if i.copany_id == copany_id]
        if not issues and (self._copanies is None or copany_id not in self._copanies):
            raise NotFound('copany', copany_id)
        return issues

    def list_activities_for_issue(self, issue_id: str, limit: Optional[int] = None) -> List[ActivityRecord]:
        issue_id = str(issue_id)
        if issue_id not in self._issues:
            raise NotFound('issue', issue_id)
        timeline = self._timelines.get(issue_id, [])
        return list(timeline[:limit] if limit else timeline)
