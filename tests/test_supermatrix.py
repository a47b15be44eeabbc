from __future__ import annotations

from pathlib import Path

import pytest

from orthomatrix.core.fasta import read_alignment
from orthomatrix.core.supermatrix import (
    assemble_supermatrix,
    format_phylip,
    strip_missing_columns,
    write_marker_table,
    write_supermatrix,
)
from orthomatrix.exceptions import OrthoMatrixUsageError


def _write_alignment(path: Path, seed: str, rows: list[tuple[str, str, str]]) -> Path:
    path.write_text(
        "".join(f">gi|{seq_id}|seed_gi|{seed}|taxon|{taxon}|mrca|1\n{sequence}\n" for seq_id, taxon, sequence in rows),
        encoding="utf-8",
    )
    return path


def test_all_missing_column_is_removed_and_partial_kept() -> None:
    rows = {
        "1": "AC-GT",
        "2": "A?NGT",
        "3": "-C?GT",
    }

    stripped, removed = strip_missing_columns(rows)

    assert removed == 1
    assert stripped == {"1": "ACGT", "2": "A?GT", "3": "-CGT"}


def test_supermatrix_shape_and_fill(tmp_path: Path) -> None:
    first = read_alignment(
        _write_alignment(tmp_path / "10-a.fa", "10", [("1", "1", "ACGT"), ("2", "2", "ACGA"), ("3", "1", "TTTT")])
    )
    second = read_alignment(
        _write_alignment(tmp_path / "20-b.fa", "20", [("4", "2", "GG-"), ("5", "3", "GC-")])
    )

    matrix = assemble_supermatrix([second, first], ["1", "2", "3"])

    lengths = {len(row) for row in matrix.rows.values()}
    assert lengths == {first.ncol + second.ncol - matrix.removed_columns}
    assert matrix.removed_columns == 1
    assert matrix.rows["1"] == "ACGT??"
    assert matrix.rows["3"] == "????GC"
    assert [marker.seed_id for marker in matrix.markers] == ["10", "20"]
    assert matrix.markers[0].source_ids == {"1": "1", "2": "2"}


def test_writers_produce_phylip_and_markers_table(tmp_path: Path) -> None:
    alignment = read_alignment(
        _write_alignment(tmp_path / "10-a.fa", "10", [("1", "1", "ACGT"), ("2", "22", "ACGA")])
    )
    unused = read_alignment(_write_alignment(tmp_path / "30-c.fa", "30", [("9", "99", "AAAA")]))
    matrix = assemble_supermatrix([alignment, unused], ["1", "22"])

    assert format_phylip(matrix).splitlines() == ["2 4", "1  ACGT", "22 ACGA"]

    names = {"1": "Homo sapiens"}
    markers = write_marker_table(tmp_path / "markers.tsv", matrix, ["1", "22"], label_for=names.get)
    lines = markers.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "taxon\tmarker1"
    assert lines[1] == "Homo sapiens\t1"
    assert lines[2] == "taxon_22\t2"
    assert lines[-1] == "# marker1 cluster seed: 10, alignment: 10-a.fa"

    fasta = write_supermatrix(tmp_path / "matrix.fa", matrix, fmt="fasta")
    assert fasta.read_text(encoding="utf-8").startswith(">1\nACGT\n")

    with pytest.raises(OrthoMatrixUsageError):
        write_supermatrix(tmp_path / "matrix.nex", matrix, fmt="nexus")
