"""Name matching used to resolve accessory and attribute hints."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TypeVar

T = TypeVar("T")


def _compact(text: str) -> str:
    return "".join(text.split()).lower()


def match_score(hint: str, name: str) -> int:
    if hint == name:
        return 3
    compact_hint = _compact(hint)
    compact_name = _compact(name)
    if compact_hint and compact_hint == compact_name:
        return 2
    if compact_hint and compact_hint in compact_name:
        return 1
    return 0


def best_matches(hint: str, candidates: Mapping[str, T]) -> list[T]:
    """Return every candidate sharing the highest non-zero score."""
    best: list[T] = []
    best_score = 0
    for name, candidate in candidates.items():
        score = match_score(hint, name)
        if score > best_score:
            best = [candidate]
            best_score = score
        elif score and score == best_score:
            best.append(candidate)
    return best
