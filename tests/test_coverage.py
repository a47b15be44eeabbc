from __future__ import annotations

import pytest

from orthomatrix.core.coverage import select_alignments
from orthomatrix.exceptions import CoverageInvariantError

TAXA_FOR_ALIGNMENT = {
    "x1": ["1", "2", "3"],
    "x2": ["1", "2"],
    "x3": ["3"],
    "x4": ["2", "3"],
    "x5": ["1"],
}
ALIGNMENTS_FOR_TAXON = {
    "1": ["x1", "x2", "x5"],
    "2": ["x1", "x2", "x4"],
    "3": ["x1", "x3", "x4"],
}


def test_greedy_selection_reaches_min_coverage() -> None:
    selection = select_alignments(["1", "2", "3"], ALIGNMENTS_FOR_TAXON, TAXA_FOR_ALIGNMENT, min_coverage=2)

    assert selection.alignments == ["x1", "x2", "x4"]
    for taxon_id in ("1", "2", "3"):
        covered = sum(1 for name in selection.alignments if taxon_id in TAXA_FOR_ALIGNMENT[name])
        assert covered >= 2
        assert selection.coverage[taxon_id] == covered


def test_rarest_exemplar_is_processed_first() -> None:
    alignments_for_taxon = {**ALIGNMENTS_FOR_TAXON, "3": ["x1", "x3"]}

    selection = select_alignments(["1", "2", "3"], alignments_for_taxon, TAXA_FOR_ALIGNMENT, min_coverage=2)

    assert selection.ordered_exemplars[0] == "3"


def test_exemplar_without_data_is_skipped() -> None:
    selection = select_alignments(["1", "9"], ALIGNMENTS_FOR_TAXON, TAXA_FOR_ALIGNMENT, min_coverage=1)

    assert selection.skipped_exemplars == ["9"]
    assert "9" not in selection.ordered_exemplars


def test_exhausted_exemplar_raises() -> None:
    with pytest.raises(CoverageInvariantError):
        select_alignments(["1", "2", "3"], ALIGNMENTS_FOR_TAXON, TAXA_FOR_ALIGNMENT, min_coverage=4)
