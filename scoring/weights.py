"""
Weight model: maps an issue's (priority, level) at closure time to a credit weight.

weight = base[level] * multiplier[priority]

Both tables are indexed by contiguous ordinals starting at 0 and must be
non-negative and non-decreasing, so raising either attribute never lowers the weight.
"""
from typing import Dict, List, Mapping, Sequence, Union

from errors import InvalidAttribute

Table = Union[Sequence[float], Mapping[int, float]]


def _as_list(table: Table, name: str) -> List[float]:
    """Convert a table given as a sequence or {ordinal: value} mapping into a validated list."""
    if isinstance(table, Mapping):
        try:
            keys = sorted(int(k) for k in table.keys())
        except (TypeError, ValueError):
            raise ValueError(f"{name}: ordinals must be integers")
        if keys != list(range(len(keys))):
            raise ValueError(f"{name}: ordinals must be contiguous from 0, got {keys}")
        values = [table[k] if k in table else table[str(k)] for k in keys]
    else:
        values = list(table)
    if not values:
        raise ValueError(f"{name}: table is empty")
    out = [float(v) for v in values]
    for i, v in enumerate(out):
        if v < 0:
            raise ValueError(f"{name}: negative value at ordinal {i}")
        if i and v < out[i - 1]:
            raise ValueError(f"{name}: table must be non-decreasing (ordinal {i})")
    return out


class WeightModel:
    """Pure lookup of credit weights plus the reviewer share applied at closure."""

    def __init__(self, base: Table, multiplier: Table, reviewer_share: float = 0.2):
        self.base = _as_list(base, 'base')
        self.multiplier = _as_list(multiplier, 'multiplier')
        share = float(reviewer_share)
        if not 0.0 <= share <= 1.0:
            raise ValueError(f"reviewer_share must be within [0, 1], got {reviewer_share}")
        self.reviewer_share = share

    @property
    def max_level(self) -> int:
        return len(self.base) - 1

    @property
    def max_priority(self) -> int:
        return len(self.multiplier) - 1

    def check_level(self, level) -> int:
        return _check_ordinal(level, len(self.base), 'level')

    def check_priority(self, priority) -> int:
        return _check_ordinal(priority, len(self.multiplier), 'priority')

    def weight(self, priority, level) -> float:
        """Return base(level) * multiplier(priority); InvalidAttribute for out-of-range ordinals."""
        return self.base[self.check_level(level)] * self.multiplier[self.check_priority(priority)]

    def to_dict(self) -> Dict[str, object]:
        return {
            'base': {i: v for i, v in enumerate(self.base)},
            'multiplier': {i: v for i, v in enumerate(self.multiplier)},
            'reviewer_share': self.reviewer_share,
        }

    def __repr__(self):
        return f"WeightModel(base={self.base}, multiplier={self.multiplier}, reviewer_share={self.reviewer_share})"


def _check_ordinal(value, size: int, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAttribute(field, value, 'not an integer')
    if value < 0 or value >= size:
        raise InvalidAttribute(field, value, f'expected 0..{size - 1}')
    return value
