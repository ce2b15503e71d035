from __future__ import annotations

import re

_PART_SUFFIX_RE = re.compile(r"\s*\[Part\s+\d+\s*/\s*\d+\]\s*$", re.IGNORECASE)


def part_label(label: str, index: int, count: int) -> str:
    return f"{label} [Part {index}/{count}]"


def strip_part_suffix(name: str) -> str:
    """'repo.git [Part 2/3]' -> 'repo.git'."""
    return _PART_SUFFIX_RE.sub("", name or "").strip()


def unique_label(label: str, taken: set[str]) -> str:
    candidate = label
    counter = 2
    while candidate in taken:
        candidate = f"{label} ({counter})"
        counter += 1
    taken.add(candidate)
    return candidate
