from __future__ import annotations

from typing import Iterable

from .constants import ATTENTION_CHECK_SETS


def is_attention_check(words: Iterable[str]) -> bool:
    """Return True when ``words`` is exactly one of the control word sets.

    Order does not matter, but every word must match: a set sharing three of
    four words with a control set is an ordinary question.
    """
    seq = list(words)
    candidate = frozenset(seq)
    if len(candidate) != len(seq):
        return False
    return candidate in ATTENTION_CHECK_SETS
