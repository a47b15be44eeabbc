from __future__ import annotations

from pathlib import Path

from orthomatrix.core.fasta import FastaRecord, alignment_from_records
from orthomatrix.core.sequences import AlignmentSequenceStore, ChainedSequenceStore, FastaSequenceStore


def _alignment(name: str, rows: list[tuple[str, str]]):
    return alignment_from_records(name, [FastaRecord(header=h, sequence=s) for h, s in rows])


def test_alignment_store_degaps_and_keeps_first_occurrence() -> None:
    first = _alignment(
        "a.fa",
        [
            ("gi|1|seed_gi|1|taxon|10|mrca|5", "AC-GT"),
            ("gi|2|seed_gi|1|taxon|20|mrca|5", "ACCGT"),
        ],
    )
    second = _alignment("b.fa", [("gi|1|seed_gi|7|taxon|10|mrca|5", "TTTT")])

    store = AlignmentSequenceStore([first, second])

    assert len(store) == 2
    record = store.get("1")
    assert record is not None
    assert record.sequence == "ACGT"
    assert record.taxon_id == "10"
    assert record.source == "a.fa"
    assert store.get("99") is None


def test_fasta_store_falls_back_to_first_header_token(tmp_path: Path) -> None:
    fasta = tmp_path / "seqs.fa"
    fasta.write_text(">gi|3|taxon|30\nAC-G\n>plain_id description\nttaa\n", encoding="utf-8")

    store = FastaSequenceStore(fasta)

    tagged = store.get("3")
    assert tagged is not None
    assert tagged.sequence == "ACG"
    assert tagged.taxon_id == "30"

    plain = store.get("plain_id")
    assert plain is not None
    assert plain.sequence == "TTAA"
    assert plain.taxon_id is None


def test_chained_store_prefers_earlier_stores(tmp_path: Path) -> None:
    fasta = tmp_path / "seqs.fa"
    fasta.write_text(">gi|1\nGGGG\n", encoding="utf-8")
    alignment = _alignment(
        "a.fa",
        [
            ("gi|1|taxon|10", "AAAA"),
            ("gi|2|taxon|20", "CCCC"),
        ],
    )

    store = ChainedSequenceStore(FastaSequenceStore(fasta), AlignmentSequenceStore([alignment]))

    assert store.get("1").sequence == "GGGG"  # type: ignore[union-attr]
    assert store.get("2").sequence == "CCCC"  # type: ignore[union-attr]
    assert store.get("3") is None
