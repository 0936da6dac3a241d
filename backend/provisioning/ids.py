"""Student / employee number suggestions (`STU` or `EMP` + year + 4-digit sequence)."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Optional
import re


PREFIX_BY_ROLE = {"student": "STU", "staff": "EMP"}


def next_identifier(prefix: str, existing: Iterable[str], year: Optional[int] = None) -> str:
    """Return the next free identifier for `prefix` and `year`.

    Identifiers that do not match `<prefix><year><digits>` are ignored. The
    sequence is one greater than the highest one in use, starting at 0001.
    """
    yr = int(year) if year is not None else datetime.now(timezone.utc).year
    head = f"{prefix}{yr:04d}"
    pattern = re.compile(rf"^{re.escape(head)}(\d+)$")
    highest = 0
    for value in existing or ():
        m = pattern.match(str(value or ""))
        if m:
            highest = max(highest, int(m.group(1)))
    return f"{head}{highest + 1:04d}"


def prefix_for_role(role: str) -> str:
    try:
        return PREFIX_BY_ROLE[(role or "").lower()]
    except KeyError:
        raise ValueError("invalid_role") from None


__all__ = ["PREFIX_BY_ROLE", "next_identifier", "prefix_for_role"]
