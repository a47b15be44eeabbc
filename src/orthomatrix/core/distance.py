from __future__ import annotations

from itertools import combinations
from typing import Sequence

DEFAULT_MISSING_CHARS = "-?N"


def _missing_set(missing_chars: str) -> frozenset[str]:
    return frozenset(missing_chars.upper() + missing_chars.lower())


def p_distance(left: str, right: str, *, missing_chars: str = DEFAULT_MISSING_CHARS) -> float | None:
    """Proportion of mismatched columns among columns where neither row is missing.

    Columns holding a gap or ambiguity symbol (`missing_chars`) in either row are
    not comparable. Returns None when the two rows share no comparable column.
    """

    if len(left) != len(right):
        raise ValueError(f"Aligned sequences differ in length: {len(left)} != {len(right)}")

    missing = _missing_set(missing_chars)
    compared = 0
    mismatches = 0
    for a, b in zip(left.upper(), right.upper()):
        if a in missing or b in missing:
            continue
        compared += 1
        if a != b:
            mismatches += 1

    if compared == 0:
        return None
    return mismatches / float(compared)


def mean_distance_between(
    left_sequences: Sequence[str],
    right_sequences: Sequence[str],
    *,
    missing_chars: str = DEFAULT_MISSING_CHARS,
) -> float | None:
    """Average distance over all cross pairs of two groups (e.g. two species)."""

    distances = [
        distance
        for left in left_sequences
        for right in right_sequences
        if (distance := p_distance(left, right, missing_chars=missing_chars)) is not None
    ]
    if not distances:
        return None
    return sum(distances) / float(len(distances))


def mean_pairwise_distance(sequences: Sequence[str], *, missing_chars: str = DEFAULT_MISSING_CHARS) -> float:
    """Mean distance over all comparable pairs of rows in one alignment.

    An alignment with fewer than two rows, or no comparable pair, has distance 0.
    """

    distances = [
        distance
        for left, right in combinations(sequences, 2)
        if (distance := p_distance(left, right, missing_chars=missing_chars)) is not None
    ]
    if not distances:
        return 0.0
    return sum(distances) / float(len(distances))
