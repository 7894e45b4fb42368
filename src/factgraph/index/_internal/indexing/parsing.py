"""Row parsing for decoded extraction output.

Decoded output is CSV with a header row. Fields may be quoted, contain the
delimiter, and escape quotes by doubling them.
"""

from __future__ import annotations

import csv
import io
import re
from collections.abc import Iterator

# <entity>@<file>:<line>, optionally behind "unresolved:"
_ENTITY_REF = re.compile(r"^([^@]*)@")
_UNRESOLVED_PREFIX = "unresolved:"

Row = list[str | None]


def parse_rows(text: str) -> Iterator[Row]:
    """Yield data rows of decoded CSV, header skipped.

    Fields are whitespace-trimmed and empty fields become None. Blank lines
    are ignored.
    """
    reader = csv.reader(io.StringIO(text))
    next(reader, None)
    for raw in reader:
        if not raw or all(not field.strip() for field in raw):
            continue
        yield [field.strip() or None for field in raw]


def derive_callee_name(reference: str | None) -> str | None:
    """Human-readable callee name from a call edge's callee reference.

    Examples:
        "unresolved:save@src/db.py:10" -> "save"
        "save@src/db.py:10" -> "save"
        "save" -> "save"
        "unresolved:save" -> "save"
        "unresolved:@src/db.py:10" -> None
    """
    if not reference:
        return None
    if reference.startswith(_UNRESOLVED_PREFIX):
        reference = reference[len(_UNRESOLVED_PREFIX) :]
    match = _ENTITY_REF.match(reference)
    name = match.group(1) if match else reference
    return name.strip() or None


def coerce_int(value: str | None) -> int | None:
    """Parse an integer column. None stays None.

    Raises:
        ValueError: value is not an integer literal
    """
    if value is None:
        return None
    return int(value)
