"""
Supabase (PostgREST) persistence reader.
Reads the issue, issue_activity and copany tables and normalizes the rows into engine models.
"""

import logging
from typing import List, Dict, Any, Optional

from errors import NotFound, ComputationTimeout, ProviderError, InvalidAttribute
from normalize.models import Issue, ActivityRecord
from normalize.util import normalize_issue, normalize_activities
from storage.cache import cached_get, Cache

log = logging.getLogger(__name__)

# stored priority codes (None, Urgent, High, Medium, Low) -> urgency ordinals
PRIORITY_CODES = {0: 0, 1: 4, 2: 3, 3: 2, 4: 1}


class SupabaseClient:
    """Minimal PostgREST client implementing the issue provider and activity reader interfaces."""

    def __init__(self, base_url: str, api_key: str, cache: Optional[Cache] = None, max_age: Optional[float] = None, page_size: int = 1000):
        self.rest_url = base_url.rstrip('/') + '/rest/v1'
        self.headers = {
            'apikey': api_key,
            'Authorization': f'Bearer {api_key}',
            'Accept': 'application/json',
        }
        self.cache = cache
        self.max_age = max_age
        self.page_size = page_size

    def _get(self, table: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        key = f"supabase:{table}:" + '&'.join(f"{k}={params[k]}" for k in sorted(params))
        res = cached_get(f"{self.rest_url}/{table}", headers=self.headers, params=params, cache=self.cache, cache_key=key, max_age=self.max_age)
        if res.get('timed_out'):
            raise ComputationTimeout(f"reading {table} timed out")
        status = res.get('status', 0)
        if status != 200:
            raise ProviderError(f"reading {table} failed with status {status}: {res.get('response')}", status)
        rows = res.get('response')
        if not isinstance(rows, list):
            raise ProviderError(f"reading {table} returned a non-list body", status)
        return rows

    def copany_exists(self, copany_id: str) -> bool:
        return bool(self._get('copany', {'select': 'id', 'id': f'eq.{copany_id}'}))

    def list_issues_for_copany(self, copany_id: str) -> List[Issue]:
        """Return current snapshots of every issue of the copany, paging through the table."""
        rows: List[Dict[str, Any]] = []
        offset = 0
        while True:
            params = {
                'select': '*',
                'copany_id': f'eq.{copany_id}',
                'order': 'created_at.asc,id.asc',
                'limit': self.page_size,
                'offset': offset,
            }
            page = self._get('issue', params)
            rows.extend(page)
            if len(page) < self.page_size:
                break
            offset += self.page_size
        if not rows and not self.copany_exists(copany_id):
            raise NotFound('copany', copany_id)

        issues: List[Issue] = []
        for row in rows:
            try:
                issues.append(normalize_issue(row, PRIORITY_CODES))
            except InvalidAttribute as ex:
                log.warning("skipping issue row: %s", ex)
        return issues

    def list_activities_for_issue(self, issue_id: str, limit: Optional[int] = None) -> List[ActivityRecord]:
        """Return the issue's activity log in (created_at, id) order."""
        params: Dict[str, Any] = {
            'select': '*',
            'issue_id': f'eq.{issue_id}',
            'order': 'created_at.asc,id.asc',
        }
        if limit:
            params['limit'] = limit
        return normalize_activities(self._get('issue_activity', params), PRIORITY_CODES)
