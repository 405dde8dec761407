# trigger.py
from __future__ import annotations

from fnmatch import fnmatchcase
from typing import Iterable, List

from .model import Event, TriggerRule

_GLOB_CHARS = frozenset("*?[")


def branch_matches(pattern: str, branch: str) -> bool:
    """
    Literal branch names compare exactly; patterns with glob characters
    ("release/*") use case-sensitive fnmatch.
    """
    if not _GLOB_CHARS.intersection(pattern):
        return pattern == branch
    return fnmatchcase(branch, pattern)


def matching_rules(event: Event, rules: Iterable[TriggerRule]) -> List[TriggerRule]:
    return [
        r for r in rules
        if r.event_kind == event.kind and branch_matches(r.branch_pattern, event.target_branch)
    ]


def evaluate(event: Event, rules: Iterable[TriggerRule]) -> bool:
    """True if at least one rule approves the event. Unmatched events are not errors."""
    return bool(matching_rules(event, rules))
