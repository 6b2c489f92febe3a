"""core/paths.py -- Path-prefix exclusion rules for response encryption."""

from __future__ import annotations

from collections.abc import Sequence


def is_excluded(path: str, prefixes: Sequence[str]) -> bool:
    """Return True if path starts with any of the configured prefixes.

    Plain, case-sensitive string prefix match -- no wildcards, no path
    normalisation. "/admin" matches "/admin/x" and also "/adminx"; configure
    "/admin/" to exclude only the subtree. An empty prefix list excludes nothing.
    """
    for prefix in prefixes:
        if path.startswith(prefix):
            return True
    return False
