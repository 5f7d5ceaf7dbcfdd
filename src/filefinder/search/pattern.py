"""Wildcard search string translation."""

from __future__ import annotations

import re

WILDCARD = "*"


def translate_wildcards(search_string: str) -> str:
    """Translate a ``*`` wildcard string into an unanchored-substring regex.

    Literal segments are escaped, each ``*`` becomes ``.*`` and the whole
    expression is wrapped in ``.*`` on both sides, so a full match against a
    filename succeeds whenever the search string occurs anywhere in it.
    """
    translated = ".*".join(re.escape(part) for part in search_string.split(WILDCARD))
    return f".*{translated}.*"


def compile_pattern(
    search_string: str | None, *, case_sensitive: bool = True
) -> re.Pattern[str] | None:
    """Compile a search string, returning ``None`` when there is nothing to search for."""
    if not search_string:
        return None

    flags = re.DOTALL
    if not case_sensitive:
        flags |= re.IGNORECASE
    return re.compile(translate_wildcards(search_string), flags)
