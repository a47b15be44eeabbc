from __future__ import annotations

import pytest

from orthomatrix.core.distance import mean_distance_between, mean_pairwise_distance, p_distance


def test_p_distance_ignores_gap_and_missing_columns() -> None:
    # Columns 3 (gap) and 5 (N) are not comparable; 1 mismatch out of 4.
    assert p_distance("ACGTAC", "AC-TNG") == pytest.approx(0.25)


def test_p_distance_without_comparable_columns_is_none() -> None:
    assert p_distance("--??", "ACGT") is None


def test_p_distance_rejects_unaligned_rows() -> None:
    with pytest.raises(ValueError):
        p_distance("ACGT", "ACG")


def test_mean_distance_between_averages_sequence_pairs() -> None:
    distance = mean_distance_between(["AAAA", "AAAT"], ["AAAA"])
    assert distance == pytest.approx(0.125)


def test_mean_pairwise_distance_of_identical_rows_is_zero() -> None:
    assert mean_pairwise_distance(["ACGT", "ACGT", "ACGT"]) == 0.0
    assert mean_pairwise_distance(["ACGT"]) == 0.0
