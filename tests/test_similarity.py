from __future__ import annotations

from pathlib import Path

import pytest

from orthomatrix.core.sequences import SequenceRecord
from orthomatrix.core.similarity import (
    Hsp,
    LocalSimilaritySearch,
    SimilarityHit,
    aggregate_hits,
    build_hit_graph,
    build_similarity_graph,
    parse_blast_tabular,
)
from orthomatrix.exceptions import EmptySimilarityReportError


class _DictStore:
    def __init__(self, sequences: dict[str, str]) -> None:
        self.sequences = sequences

    def get(self, seq_id: str) -> SequenceRecord | None:
        if seq_id not in self.sequences:
            return None
        return SequenceRecord(seq_id=seq_id, taxon_id=None, sequence=self.sequences[seq_id])


class _EmptySearch:
    def search(self, *, seeds_fasta: Path, sequences) -> list[Hsp]:  # type: ignore[no-untyped-def]
        return []


def _hit(query_covered: int, hit_covered: int) -> SimilarityHit:
    return SimilarityHit(
        query_id="1",
        hit_id="2",
        query_covered=query_covered,
        hit_covered=hit_covered,
        query_length=100,
        hit_length=100,
    )


def test_overlap_filter_is_strict_at_threshold() -> None:
    assert not _hit(50, 90).passes(0.5)
    assert _hit(51, 90).passes(0.5)
    assert not _hit(90, 50).passes(0.5)
    assert not _hit(49, 49).passes(0.5)


def test_aggregate_hits_sums_hsp_spans_per_pair() -> None:
    hsps = [
        Hsp(query_id="1", hit_id="2", query_span=30, hit_span=28),
        Hsp(query_id="1", hit_id="2", query_span=25, hit_span=25),
    ]

    (hit,) = aggregate_hits(hsps, {"1": 100, "2": 100})

    assert hit.query_covered == 55
    assert hit.hit_covered == 53
    assert hit.passes(0.51)


def test_parse_blast_tabular_handles_reverse_coordinates() -> None:
    stdout = "1\t2\t1\t60\t80\t21\t100\t100\n# comment\nbad line\n"

    (hsp,) = parse_blast_tabular(stdout)

    assert hsp.query_id == "1"
    assert hsp.hit_id == "2"
    assert hsp.query_span == 60
    assert hsp.hit_span == 60


def test_build_hit_graph_keeps_seeds_without_hits() -> None:
    graph = build_hit_graph([_hit(60, 60)], seed_ids=["1", "2", "3"], overlap_threshold=0.51)

    assert graph["1"] == frozenset({"2"})
    assert graph["3"] == frozenset()


def test_build_similarity_graph_with_local_search(tmp_path: Path) -> None:
    shared = "ACGTTGCAAGGCTTACCGATGCATCGGATCCTAGGCATCGA"
    store = _DictStore(
        {
            "10": shared,
            "20": shared[:-2] + "TT",
            "30": "TTTTTTTTTTGGGGGGGGGGCCCCCCCCCCAAAAAAAAAA",
        }
    )

    graph, missing = build_similarity_graph(
        ["10", "20", "30", "40"],
        store=store,
        search=LocalSimilaritySearch(word_size=11),
        seeds_fasta=tmp_path / "seeds.fa",
    )

    assert missing == ["40"]
    assert "20" in graph["10"]
    assert "10" in graph["20"]
    assert graph["30"] == frozenset({"30"})
    assert (tmp_path / "seeds.fa").exists()


def test_empty_similarity_report_is_fatal(tmp_path: Path) -> None:
    store = _DictStore({"1": "ACGTACGTACGT"})

    with pytest.raises(EmptySimilarityReportError):
        build_similarity_graph(["1"], store=store, search=_EmptySearch(), seeds_fasta=tmp_path / "seeds.fa")
