from __future__ import annotations

from pathlib import Path

from orthomatrix.core.adjacency import AdjacencyGraph, build_adjacency, candidate_pool
from orthomatrix.core.exemplars import (
    GenusCandidates,
    alignment_pair_distances,
    choose_exemplars,
    exemplar_taxa,
    select_exemplars,
)
from orthomatrix.core.fasta import read_alignment
from orthomatrix.core.taxa import parse_taxa_table
from orthomatrix.parallel import ThreadPoolService

DIVERGENT_ROWS = {
    "1": "AAAAAAAA",
    "2": "AAAAAAAT",
    "3": "AAAAAATT",
    "4": "TTTTTTTT",
}


def _write_alignment(path: Path, rows: dict[str, str]) -> Path:
    path.write_text(
        "".join(
            f">gi|{100 + int(taxon)}|seed_gi|1|taxon|{taxon}|mrca|1\n{sequence}\n"
            for taxon, sequence in rows.items()
        ),
        encoding="utf-8",
    )
    return path


def _taxa_table(tmp_path: Path) -> Path:
    path = tmp_path / "species.tsv"
    rows = [
        ("G1", "1"),
        ("G1", "2"),
        ("G1", "3"),
        ("G1", "4"),
        ("G2", "5"),
        ("G2", "6"),
        ("G3", "7"),
        ("G4", "8"),
    ]
    path.write_text(
        "genus\tspecies\tname\n" + "".join(f"{genus}\t{taxon}\tTaxon {taxon}\n" for genus, taxon in rows),
        encoding="utf-8",
    )
    return path


def _fixture(tmp_path: Path):  # type: ignore[no-untyped-def]
    full = {**DIVERGENT_ROWS, "5": "AAAAAAAA", "6": "AAAAAAAC", "7": "AAAAAAAG"}
    paths = [_write_alignment(tmp_path / f"{idx}-m.fa", full) for idx in (1, 2, 3)]
    paths.append(_write_alignment(tmp_path / "4-m.fa", {"1": "ACGT", "8": "ACGA"}))
    alignments = [read_alignment(path) for path in paths]

    table = parse_taxa_table(_taxa_table(tmp_path))
    graph = build_adjacency(alignments, known_taxa=table.records)
    working, components = candidate_pool(graph, 3)
    return table, working, components, alignments


def test_alignment_pair_distances_need_three_species(tmp_path: Path) -> None:
    two = read_alignment(_write_alignment(tmp_path / "1-a.fa", {"1": "ACGT", "2": "ACGA"}))
    three = read_alignment(_write_alignment(tmp_path / "2-a.fa", {"1": "ACGT", "2": "ACGA", "3": "TCGA"}))

    assert alignment_pair_distances(two, ["1", "2"]) is None
    distances = alignment_pair_distances(three, ["1", "2", "3"])
    assert distances is not None
    assert set(distances) == {("1", "2"), ("1", "3"), ("2", "3")}
    assert distances[("1", "3")] == 0.5


def test_select_exemplars_per_genus(tmp_path: Path) -> None:
    table, working, components, alignments = _fixture(tmp_path)

    exemplars = select_exemplars(table, working, components[0], alignments, service=ThreadPoolService(2))

    assert exemplars == {"G1": ["1", "4"], "G2": ["5", "6"], "G3": ["7"]}
    assert all(1 <= len(chosen) <= 2 for chosen in exemplars.values())
    assert exemplar_taxa(exemplars) == ["1", "4", "5", "6", "7"]


def test_fallback_without_distances_keeps_at_most_two() -> None:
    graph = AdjacencyGraph(
        edges={
            "1": {"2": 1, "3": 2},
            "2": {"1": 1, "3": 5},
            "3": {"1": 2, "2": 5},
        }
    )
    group = GenusCandidates(genus="G", candidates=("1", "2", "3"), connected=("1", "2", "3"))

    genus, chosen = choose_exemplars(group, alignments=[], graph=graph)

    assert genus == "G"
    assert chosen == ["2", "3"]


def test_genus_without_candidates_is_dropped() -> None:
    group = GenusCandidates(genus="G", candidates=(), connected=())

    assert choose_exemplars(group, alignments=[], graph=AdjacencyGraph()) == ("G", [])
