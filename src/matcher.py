"""Ticket identifier matching between the DFDS manifest and the TME table.

Two identifiers match when, once trimmed and non-blank, one contains the
other. The two systems pad their numbers differently, so equality is too
strict. Searches stop at the first candidate in iteration order.

Known limitation: short identifiers match any longer one that contains them
(``"1"`` matches ``"100099991"``).
"""
from __future__ import annotations

from typing import Callable, Iterable, Optional, TypeVar

from records import Cell, as_text

T = TypeVar("T")


def normalize_key(value: Cell) -> str:
    return as_text(value).strip()


def tickets_match(left: Cell, right: Cell) -> bool:
    a = normalize_key(left)
    b = normalize_key(right)
    if not a or not b:
        return False
    return a in b or b in a


def find_first(identifier: Cell, candidates: Iterable[T], key: Callable[[T], Cell]) -> Optional[T]:
    if not normalize_key(identifier):
        return None
    for candidate in candidates:
        if tickets_match(identifier, key(candidate)):
            return candidate
    return None
