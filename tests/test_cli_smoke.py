from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from orthomatrix.cli import app

runner = CliRunner()

SHARED = "ACGTTGCAAGGCTTACCGATGCATCGGATCCTAGGCATCGA"
UNRELATED_C = "TTTTTTTTTTGGGGGGGGGGCCCCCCCCCCAAAAAAAAAAA"
UNRELATED_D = "GATCGATCGATCGATCGATCGATCGATCGATCGATCGATCG"


def _write_alignment(path: Path, seed: str, rows: list[tuple[str, str, str]]) -> Path:
    path.write_text(
        "".join(f">gi|{seq_id}|seed_gi|{seed}|taxon|{taxon}|mrca|9\n{sequence}\n" for seq_id, taxon, sequence in rows),
        encoding="utf-8",
    )
    return path


def _candidate_alignments(tmp_path: Path) -> Path:
    aln_dir = tmp_path / "alignments"
    aln_dir.mkdir()
    paths = [
        _write_alignment(aln_dir / "100-a.fa", "100", [("100", "1", SHARED), ("101", "2", SHARED), ("102", "3", SHARED)]),
        _write_alignment(aln_dir / "200-b.fa", "200", [("200", "4", SHARED), ("201", "5", SHARED)]),
        _write_alignment(aln_dir / "300-c.fa", "300", [("300", "6", UNRELATED_C), ("301", "7", UNRELATED_C)]),
        _write_alignment(
            aln_dir / "400-d.fa",
            "400",
            [("400", "6", UNRELATED_D), ("401", "7", UNRELATED_D), ("402", "8", UNRELATED_D)],
        ),
    ]
    listing = tmp_path / "aligned.txt"
    listing.write_text("".join(f"{path}\n" for path in paths), encoding="utf-8")
    return listing


def test_root_help_smoke() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "orthologize" in result.stdout
    assert "bbmerge" in result.stdout


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "OrthoMatrix" in result.stdout


def test_orthologize_dry_run_writes_manifest(tmp_path: Path) -> None:
    listing = _candidate_alignments(tmp_path)
    outdir = tmp_path / "run_dry"

    result = runner.invoke(
        app,
        ["orthologize", "--mock", "--infile", str(listing), "--outdir", str(outdir), "--dry-run"],
    )

    assert result.exit_code == 0
    manifest = json.loads((outdir / "orthomatrix_manifest.json").read_text(encoding="utf-8"))
    assert manifest["command"] == "orthologize"
    assert manifest["status"] == "dry-run"
    assert len(manifest["input_paths"]) == 5
    assert not (outdir / "clusters.tsv").exists()


def test_orthologize_requires_tools_without_mock(tmp_path: Path) -> None:
    listing = _candidate_alignments(tmp_path)

    result = runner.invoke(
        app,
        [
            "orthologize",
            "--infile",
            str(listing),
            "--outdir",
            str(tmp_path / "run_tools"),
            "--makeblastdb-bin",
            "orthomatrix-missing-makeblastdb",
        ],
    )

    assert result.exit_code == 2
    assert "--mock" in result.stdout


def test_end_to_end_mock_pipeline(tmp_path: Path) -> None:
    listing = _candidate_alignments(tmp_path)
    outdir = tmp_path / "run"

    result = runner.invoke(
        app,
        ["orthologize", "--mock", "--infile", str(listing), "--outdir", str(outdir), "--threads", "2"],
    )
    assert result.exit_code == 0, result.stdout

    merged = (outdir / "merged.txt").read_text(encoding="utf-8").split()
    assert [Path(path).name for path in merged] == ["cluster1.fa", "cluster3.fa"]
    assert not (outdir / "clusters" / "cluster2.fa").exists()

    cluster_rows = (outdir / "clusters.tsv").read_text(encoding="utf-8").splitlines()
    assert cluster_rows[0] == "cluster_id\tn_seeds\tseed_ids\tstatus\toutput"
    statuses = {row.split("\t")[0]: row.split("\t")[3] for row in cluster_rows[1:]}
    assert statuses == {"1": "merged", "2": "dropped", "3": "singleton"}
    assert cluster_rows[1].split("\t")[2] == "100,200"

    taxa = tmp_path / "species.tsv"
    taxa.write_text(
        "genus\tspecies\tname\n"
        "10\t1\tAlpha one\n10\t2\tAlpha two\n10\t3\tAlpha three\n"
        "20\t4\tBeta four\n20\t5\tBeta five\n"
        "30\t6\tGamma six\n",
        encoding="utf-8",
    )

    result = runner.invoke(
        app,
        [
            "bbmerge",
            "--alnfile",
            str(outdir / "merged.txt"),
            "--taxafile",
            str(taxa),
            "--outdir",
            str(outdir),
            "--min-coverage",
            "1",
        ],
    )
    assert result.exit_code == 0, result.stdout

    phylip = (outdir / "supermatrix.phy").read_text(encoding="utf-8").splitlines()
    assert phylip[0] == f"4 {len(SHARED)}"
    assert [line.split()[0] for line in phylip[1:]] == ["1", "2", "4", "5"]

    exemplars = (outdir / "exemplars.tsv").read_text(encoding="utf-8").splitlines()
    assert exemplars == ["genus\ttaxon_id", "10\t1", "10\t2", "20\t4", "20\t5"]

    markers = (outdir / "markers-backbone.tsv").read_text(encoding="utf-8").splitlines()
    assert markers[0] == "taxon\tmarker1"
    assert markers[1] == "Alpha one\t100"
    assert markers[-1].startswith("# marker1 cluster seed: 100")

    manifest = json.loads((outdir / "orthomatrix_manifest.json").read_text(encoding="utf-8"))
    assert manifest["command"] == "bbmerge"
    assert manifest["status"] == "completed"
    assert manifest["summary"]["exemplars"] == 4
