"""
Correlate package: order activity records into per-issue timelines.
"""

from .linker import group_activities_by_issue, sort_activities

__all__ = ["group_activities_by_issue", "sort_activities"]
