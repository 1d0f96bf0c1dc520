"""
Normalization utility helpers.
Turn raw persistence rows (plain dicts) into normalize.models entities.

Two row shapes are understood for activity records: the flat one
(activity_type/old_value/new_value/actor_user_id) and the stored one used by the
issue_activity table (type/payload/actor_id, with from_*/to_* payload keys).
"""
import logging
import re
from datetime import datetime, timezone
from typing import Dict, Any, Iterable, List, Optional

from errors import InvalidAttribute
from normalize.models import (
    Issue,
    ActivityRecord,
    Created,
    Assigned,
    StateChanged,
    PriorityChanged,
    LevelChanged,
    ReviewerAdded,
    Closed,
    Reopened,
    Commented,
    ISSUE_STATES,
    BACKLOG,
    TODO,
    IN_PROGRESS,
    DONE,
    CANCELLED,
)

log = logging.getLogger(__name__)

# integer codes used by the issue table
STATE_CODES = {
    1: BACKLOG,
    2: TODO,
    3: IN_PROGRESS,
    4: DONE,
    5: CANCELLED,
    6: CANCELLED,  # duplicate
    7: IN_PROGRESS,  # in review
}

_STATE_NAMES = {s.lower(): s for s in ISSUE_STATES}
_STATE_NAMES.update({'canceled': CANCELLED, 'duplicate': CANCELLED, 'inreview': IN_PROGRESS, 'in_progress': IN_PROGRESS, 'in_review': IN_PROGRESS})

# stored type names -> canonical activity_type
TYPE_ALIASES = {
    'issue_created': 'created',
    'assignee_changed': 'assigned',
    'issue_closed': 'closed',
    'review_requested': 'reviewer_added',
    'review_approved': 'reviewer_added',
    'comment_added': 'commented',
}

# stored types that never affect credit
UNTRACKED_TYPES = frozenset({
    'title_changed',
    'assignment_requested',
    'assignment_request_accepted',
    'assignment_request_refused',
})


# fromisoformat before 3.11 only takes 3 or 6 fraction digits; PostgREST trims trailing zeros
_FRACTION = re.compile(r'(\d{2}:\d{2}:\d{2})\.(\d+)')


def parse_timestamp(value: Any, field: str = 'created_at') -> datetime:
    """Return a timezone-aware UTC datetime for an ISO-8601 string, epoch number or datetime."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        dt = datetime.fromtimestamp(float(value), tz=timezone.utc)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith('Z') or text.endswith('z'):
            text = text[:-1] + '+00:00'
        text = _FRACTION.sub(lambda m: m.group(1) + '.' + (m.group(2) + '000000')[:6], text)
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            raise InvalidAttribute(field, value, 'not an ISO-8601 timestamp')
    else:
        raise InvalidAttribute(field, value, 'missing timestamp')
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_optional_timestamp(value: Any, field: str) -> Optional[datetime]:
    if value is None or value == '':
        return None
    return parse_timestamp(value, field)


def parse_ordinal(value: Any, field: str, code_map: Optional[Dict[int, int]] = None) -> int:
    """Parse a non-negative integer ordinal. None means 0.

    code_map translates stored codes into ordinals before validation (e.g. stored priority codes).
    """
    if value is None:
        ordinal = 0
    elif isinstance(value, bool):
        raise InvalidAttribute(field, value, 'not an integer')
    elif isinstance(value, int):
        ordinal = value
    elif isinstance(value, float) and value.is_integer():
        ordinal = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        ordinal = int(value.strip())
    else:
        raise InvalidAttribute(field, value, 'not an integer')
    if ordinal < 0:
        raise InvalidAttribute(field, value, 'negative ordinal')
    if code_map is not None:
        if ordinal not in code_map:
            raise InvalidAttribute(field, value, 'unknown code')
        ordinal = code_map[ordinal]
    return ordinal


def parse_state(value: Any, field: str = 'state') -> str:
    if isinstance(value, bool):
        raise InvalidAttribute(field, value)
    if isinstance(value, int) and value in STATE_CODES:
        return STATE_CODES[value]
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit() and int(text) in STATE_CODES:
            return STATE_CODES[int(text)]
        key = text.lower().replace(' ', '')
        if key in _STATE_NAMES:
            return _STATE_NAMES[key]
    raise InvalidAttribute(field, value, 'unknown state')


def _user_id(value: Any) -> Optional[str]:
    if value is None or value == '':
        return None
    return str(value)


def normalize_issue(raw: Dict[str, Any], priority_map: Optional[Dict[int, int]] = None) -> Issue:
    """Create an Issue snapshot from a raw issue row.

    Invalid ordinals or states are not fatal for a snapshot: they fall back to 0/Backlog
    because the activity history, not the snapshot, drives credit.
    """
    issue_id = raw.get('id') if raw.get('id') is not None else raw.get('issue_id')
    if issue_id is None or issue_id == '':
        raise InvalidAttribute('id', issue_id, 'issue without id')
    try:
        state = parse_state(raw.get('state', BACKLOG))
    except InvalidAttribute as ex:
        log.warning("issue %s: %s; using %s", issue_id, ex, BACKLOG)
        state = BACKLOG
    ordinals = {}
    for field, code_map in (('priority', priority_map), ('level', None)):
        try:
            ordinals[field] = parse_ordinal(raw.get(field), field, code_map)
        except InvalidAttribute as ex:
            log.warning("issue %s: %s; using 0", issue_id, ex)
            ordinals[field] = 0
    return Issue(
        issue_id=str(issue_id),
        copany_id=str(raw.get('copany_id') or ''),
        title=raw.get('title') or '',
        state=state,
        priority=ordinals['priority'],
        level=ordinals['level'],
        assignee=_user_id(raw.get('assignee')),
        created_at=parse_optional_timestamp(raw.get('created_at'), 'created_at'),
        closed_at=parse_optional_timestamp(raw.get('closed_at'), 'closed_at'),
    )


def _activity_type(raw: Dict[str, Any]) -> str:
    name = raw.get('activity_type') or raw.get('type') or ''
    name = str(name).strip().lower()
    return TYPE_ALIASES.get(name, name)


def _new_value(raw: Dict[str, Any], payload_keys: Iterable[str]):
    """Return the new value from new_value or from the first payload key present."""
    if raw.get('new_value') is not None:
        return raw.get('new_value')
    payload = raw.get('payload') or {}
    for key in payload_keys:
        if payload.get(key) is not None:
            return payload.get(key)
    return None


def _old_value(raw: Dict[str, Any], payload_key: str):
    if raw.get('old_value') is not None:
        return raw.get('old_value')
    return (raw.get('payload') or {}).get(payload_key)


def _created_fields(raw: Dict[str, Any], priority_map: Optional[Dict[int, int]]) -> Dict[str, Any]:
    """Collect the optional initial attributes carried by a created record.

    Malformed fields are dropped individually so the rest of the record stays usable.
    """
    source = raw.get('new_value') if isinstance(raw.get('new_value'), dict) else (raw.get('payload') or {})
    fields: Dict[str, Any] = {}
    candidates = (
        ('priority', ('priority', 'to_priority'), lambda v: parse_ordinal(v, 'priority', priority_map)),
        ('level', ('level', 'to_level'), lambda v: parse_ordinal(v, 'level')),
        ('state', ('state', 'to_state'), parse_state),
        ('assignee', ('assignee', 'to_user_id'), _user_id),
    )
    for name, keys, parse in candidates:
        value = next((source.get(k) for k in keys if source.get(k) is not None), None)
        if value is None:
            continue
        try:
            fields[name] = parse(value)
        except InvalidAttribute as ex:
            log.warning("activity %s: dropping %s from created record: %s", raw.get('id'), name, ex)
    return fields


def _require(value, field: str):
    if value is None:
        raise InvalidAttribute(field, value, 'missing value')
    return value


def normalize_activity(raw: Dict[str, Any], priority_map: Optional[Dict[int, int]] = None) -> ActivityRecord:
    """Create the typed ActivityRecord variant for a raw activity row.

    Raises InvalidAttribute for unknown types and malformed values.
    """
    atype = _activity_type(raw)
    record_id = raw.get('id')
    issue_id = raw.get('issue_id')
    if issue_id is None or issue_id == '':
        raise InvalidAttribute('issue_id', issue_id, 'activity without issue')
    issue_id = str(issue_id)
    actor = _user_id(raw.get('actor_user_id') if raw.get('actor_user_id') is not None else raw.get('actor_id'))
    created_at = parse_timestamp(raw.get('created_at'))
    head = (record_id, issue_id, actor, created_at)

    if atype == 'created':
        return Created(*head, **_created_fields(raw, priority_map))
    if atype == 'assigned':
        return Assigned(*head, assignee=_user_id(_new_value(raw, ('to_user_id', 'assignee'))))
    if atype == 'state_changed':
        new_state = parse_state(_require(_new_value(raw, ('to_state',)), 'state'))
        old = _old_value(raw, 'from_state')
        return StateChanged(*head, new_state=new_state, old_state=parse_state(old) if old is not None else None)
    if atype == 'priority_changed':
        new_priority = parse_ordinal(_require(_new_value(raw, ('to_priority',)), 'priority'), 'priority', priority_map)
        old = _old_value(raw, 'from_priority')
        return PriorityChanged(*head, new_priority=new_priority, old_priority=parse_ordinal(old, 'priority', priority_map) if old is not None else None)
    if atype == 'level_changed':
        new_level = parse_ordinal(_require(_new_value(raw, ('to_level',)), 'level'), 'level')
        old = _old_value(raw, 'from_level')
        return LevelChanged(*head, new_level=new_level, old_level=parse_ordinal(old, 'level') if old is not None else None)
    if atype == 'reviewer_added':
        reviewer = _user_id(_new_value(raw, ('reviewer_id',)))
        return ReviewerAdded(*head, reviewer=_require(reviewer, 'reviewer'))
    if atype == 'closed':
        return Closed(*head)
    if atype == 'reopened':
        return Reopened(*head)
    if atype == 'commented':
        body = _new_value(raw, ('body', 'content'))
        return Commented(*head, body=str(body) if body is not None else None)
    raise InvalidAttribute('activity_type', raw.get('activity_type') or raw.get('type'), 'unrecognized activity type')


def normalize_activities(rows: Iterable[Dict[str, Any]], priority_map: Optional[Dict[int, int]] = None) -> List[ActivityRecord]:
    """Normalize a batch of raw rows, skipping (and logging) rows that cannot be interpreted."""
    records: List[ActivityRecord] = []
    for raw in rows or []:
        if not isinstance(raw, dict):
            log.warning("skipping non-mapping activity row: %r", raw)
            continue
        if _activity_type(raw) in UNTRACKED_TYPES:
            log.debug("activity %s: type %s carries no credit information", raw.get('id'), raw.get('type'))
            continue
        try:
            records.append(normalize_activity(raw, priority_map))
        except InvalidAttribute as ex:
            log.warning("skipping activity %s: %s", raw.get('id'), ex)
    return records
