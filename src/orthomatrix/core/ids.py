from __future__ import annotations

from typing import Iterable


def natural_key(value: str) -> tuple[int, int, str]:
    """Sort key ordering digit-only ids numerically, everything else lexically."""

    stripped = value.strip()
    if stripped.isdigit():
        return (0, int(stripped), stripped)
    return (1, 0, stripped)


def natural_sorted(values: Iterable[str]) -> list[str]:
    return sorted(values, key=natural_key)


def canonical_key(members: Iterable[str]) -> str:
    """Order-independent identity for a set of ids, e.g. `12|345|6789`."""

    return "|".join(natural_sorted(set(members)))


def pair_key(left: str, right: str) -> tuple[str, str]:
    return (left, right) if natural_key(left) <= natural_key(right) else (right, left)


def assign_integer_ids(keys: Iterable[str], *, start: int = 1) -> dict[str, int]:
    """Assign deterministic integer ids to canonical keys in ascending order."""

    ordered = sorted(set(keys), key=lambda key: tuple(natural_key(part) for part in key.split("|")))
    return {key: idx for idx, key in enumerate(ordered, start=start)}
