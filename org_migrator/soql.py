"""Helpers for building SOQL query text."""

import re
from typing import Iterable, List, Optional

_TRAILING_CLAUSE = re.compile(r"\b(GROUP\s+BY|ORDER\s+BY|LIMIT|OFFSET|FOR\s+(?:VIEW|REFERENCE|UPDATE))\b", re.IGNORECASE)
_WHERE = re.compile(r"\bWHERE\b", re.IGNORECASE)


def escape_literal(value: object) -> str:
    """Escape a value for use inside a single-quoted SOQL string literal."""
    return str(value).replace("\\", "\\\\").replace("'", "\\'")


def quote_literal(value: object) -> str:
    return f"'{escape_literal(value)}'"


def format_id_list(ids: Iterable[object]) -> str:
    """
    Render ids as a comma-separated list of quoted literals.

    An empty input renders as ``''`` so that ``IN ('')`` stays valid and matches nothing.
    """
    quoted = [quote_literal(i) for i in ids]
    return ",".join(quoted) if quoted else "''"


def _top_level_match(pattern: "re.Pattern", query: str) -> Optional["re.Match"]:
    """First match of pattern that is not inside parentheses or a string literal."""
    for match in pattern.finditer(query):
        prefix = query[:match.start()]
        depth = prefix.count("(") - prefix.count(")")
        quotes = len(re.findall(r"(?<!\\)'", prefix))
        if depth == 0 and quotes % 2 == 0:
            return match
    return None


def add_in_filter(query: str, field: str, values: List[object]) -> str:
    """
    Constrain a query with ``field IN (...)``.

    The condition is ANDed onto an existing top-level WHERE clause, or inserted
    before any trailing GROUP BY / ORDER BY / LIMIT clause.

    Args:
        query: SOQL query text
        field: Field to filter on
        values: Values the field must be one of

    Returns:
        The constrained query
    """
    condition = f"{field} IN ({format_id_list(values)})"
    query = query.strip()

    tail_match = _top_level_match(_TRAILING_CLAUSE, query)
    head = query[:tail_match.start()].rstrip() if tail_match else query
    tail = " " + query[tail_match.start():] if tail_match else ""

    where_match = _top_level_match(_WHERE, head)
    if where_match:
        existing = head[where_match.end():].strip()
        head = f"{head[:where_match.start()]}WHERE ({existing}) AND {condition}"
    else:
        head = f"{head} WHERE {condition}"

    return head + tail
