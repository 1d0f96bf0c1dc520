"""
Timeline helpers that correlate activity records with the issues they belong to.
- total ordering of an issue's records by (created_at, id)
- grouping a flat activity dump by issue, reporting records whose issue is unknown
- cutoff filtering for point-in-time computations
"""
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from normalize.models import ActivityRecord, Issue


def id_sort_key(record_id) -> Tuple[int, object]:
    # integer ids (or integer strings) compare numerically and sort before textual ids
    if isinstance(record_id, int) and not isinstance(record_id, bool):
        return (0, record_id)
    text = '' if record_id is None else str(record_id)
    if text.isdigit():
        return (0, int(text))
    return (1, text)


def ordering_key(record: ActivityRecord):
    """Total order of activity records: created_at first, id as the tie-break."""
    return (record.created_at, id_sort_key(record.record_id))


def sort_activities(records: Iterable[ActivityRecord]) -> List[ActivityRecord]:
    return sorted(records, key=ordering_key)


def apply_cutoff(records: Iterable[ActivityRecord], until: Optional[datetime]) -> List[ActivityRecord]:
    """Drop records created after `until` (inclusive cutoff)."""
    if until is None:
        return list(records)
    return [r for r in records if r.created_at <= until]


def group_activities_by_issue(records: Iterable[ActivityRecord], issues: Optional[Iterable[Issue]] = None) -> Tuple[Dict[str, List[ActivityRecord]], List[ActivityRecord]]:
    """
    Group records into per-issue timelines, each sorted by ordering_key.

    Parameters:
        records: activity records for any number of issues.
        issues: optional known issues; records for other issue ids are returned as orphans.

    Returns:
        (timelines keyed by issue id, orphan records)
    """
    known = {i.issue_id for i in issues} if issues is not None else None
    grouped: Dict[str, List[ActivityRecord]] = {}
    orphans: List[ActivityRecord] = []
    for rec in records:
        if known is not None and rec.issue_id not in known:
            orphans.append(rec)
            continue
        grouped.setdefault(rec.issue_id, []).append(rec)
    return {k: sort_activities(v) for k, v in grouped.items()}, orphans
