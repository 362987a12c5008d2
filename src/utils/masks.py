"""Wildcard masks for backup file names and table names.

A mask is a plain string in which ``*`` stands for any run of characters
(including none). Everything else is matched literally and case-insensitively,
and the mask must cover the whole name.
"""

import re
from collections.abc import Iterable
from functools import lru_cache
from typing import Callable, Optional


@lru_cache(maxsize=256)
def mask_to_regex(mask: str) -> re.Pattern[str]:
    """Compile a wildcard mask into an anchored, case-insensitive regex.

    Args:
        mask: Wildcard mask such as ``backup_*.sql`` or ``logs_*``

    Returns:
        Compiled regular expression
    """
    escaped = re.escape(mask).replace(r"\*", ".*")
    return re.compile(f"^{escaped}$", re.IGNORECASE | re.DOTALL)


def compile_mask(mask: str) -> Callable[[str], bool]:
    """Return a predicate telling whether a name matches ``mask``."""
    regex = mask_to_regex(mask)
    return lambda name: regex.match(name) is not None


def matches(name: str, mask: str) -> bool:
    """Check a single name against a single mask."""
    return mask_to_regex(mask).match(name) is not None


def matches_any(name: str, masks: Iterable[str]) -> bool:
    """Check if the name matches at least one of the masks.

    Args:
        name: Candidate name (file name, table name)
        masks: Wildcard masks, e.g. ``["users", "log_*"]``

    Returns:
        True when any mask matches; False for an empty mask list
    """
    return any(matches(name, mask) for mask in masks)


def names_matching_any(names: Iterable[str], masks: Iterable[str]) -> list[str]:
    """Keep the names that match at least one mask, preserving their order."""
    masks = list(masks)
    return [name for name in names if matches_any(name, masks)]


def parse_mask_list(value: Optional[str]) -> list[str]:
    """Split a comma-separated option value into trimmed, non-empty masks.

    >>> parse_mask_list(" users, logs_* ,,")
    ['users', 'logs_*']
    """
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]
