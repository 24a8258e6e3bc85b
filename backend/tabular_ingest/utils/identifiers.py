"""Turn arbitrary labels into safe SQL identifiers."""

from __future__ import annotations

import re
from collections.abc import Iterable

MAX_IDENTIFIER_LENGTH = 63  # PostgreSQL's limit, the strictest backend we target
_UNSAFE = re.compile(r"[^A-Za-z0-9_]")


def sanitize_identifier(raw: str, *, placeholder: str = "column") -> str:
    """Deterministically map ``raw`` to ``[A-Za-z0-9_]`` with no edge underscores.

    Idempotent: an already sanitized name comes back unchanged.
    """
    cleaned = _UNSAFE.sub("_", str(raw)).strip("_")
    cleaned = cleaned[:MAX_IDENTIFIER_LENGTH].rstrip("_")
    return cleaned or placeholder


def sanitize_columns(names: Iterable[str]) -> list[str]:
    """Sanitize a column list, keeping the resulting names distinct.

    Empty results become ``column_<position>``; a name already taken gets
    ``_2``, ``_3``... appended (trimmed to fit the length limit).
    """
    result: list[str] = []
    taken: set[str] = set()
    for position, name in enumerate(names, start=1):
        base = sanitize_identifier(name, placeholder=f"column_{position}")
        candidate = base
        counter = 2
        while candidate.lower() in taken:
            suffix = f"_{counter}"
            candidate = base[: MAX_IDENTIFIER_LENGTH - len(suffix)].rstrip("_") + suffix
            counter += 1
        taken.add(candidate.lower())
        result.append(candidate)
    return result
