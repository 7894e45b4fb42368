"""Trigram similarity compatible with PostgreSQL's pg_trgm.

A string is lowercased and split into words of alphanumeric characters.
Each word is padded with two leading spaces and one trailing space, and the
set of all 3-character windows over the padded words is its trigram set.
Similarity is the size of the intersection over the size of the union.

Registered on every SQLite connection as ``similarity(a, b)`` so fuzzy
search can filter and rank inside SQL.
"""

from __future__ import annotations

import re
from functools import lru_cache

_WORD_RE = re.compile(r"[^\W_]+")


@lru_cache(maxsize=65536)
def trigrams(value: str) -> frozenset[str]:
    """Return the pg_trgm trigram set of ``value``.

    Examples:
        trigrams("cat") -> {"  c", " ca", "cat", "at "}
        trigrams("") -> set()
    """
    grams: set[str] = set()
    for word in _WORD_RE.findall(value.lower()):
        padded = f"  {word} "
        grams.update(padded[i : i + 3] for i in range(len(padded) - 2))
    return frozenset(grams)


def similarity(left: str | None, right: str | None) -> float:
    """Jaccard similarity of the two trigram sets, in [0, 1].

    NULL on either side yields 0.0 (SQLite passes NULL as None).
    """
    if left is None or right is None:
        return 0.0
    a = trigrams(left)
    b = trigrams(right)
    if not a or not b:
        return 0.0
    shared = len(a & b)
    return shared / (len(a) + len(b) - shared)
