from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class OrthologizeLayout:
    root: Path
    workdir: Path
    seeds_fasta: Path
    clusters_tsv: Path
    manifest_list: Path


@dataclass(frozen=True, slots=True)
class BBMergeLayout:
    root: Path
    supermatrix: Path
    markers_tsv: Path
    exemplars_tsv: Path


def _under(root: Path, path: Path) -> Path:
    return path if path.is_absolute() else root / path


def create_orthologize_layout(
    outdir: Path,
    outfile: Path,
    *,
    workdir: Path | None = None,
    create: bool = True,
) -> OrthologizeLayout:
    root = outdir
    work = _under(root, workdir) if workdir is not None else root / "clusters"
    if create:
        for path in (root, work):
            path.mkdir(parents=True, exist_ok=True)

    return OrthologizeLayout(
        root=root,
        workdir=work,
        seeds_fasta=work / "seeds.fa",
        clusters_tsv=root / "clusters.tsv",
        manifest_list=_under(root, outfile),
    )


def create_bbmerge_layout(
    outdir: Path,
    *,
    outfile: Path,
    markersfile: Path,
    exemplars_file: Path,
    create: bool = True,
) -> BBMergeLayout:
    root = outdir
    if create:
        root.mkdir(parents=True, exist_ok=True)

    return BBMergeLayout(
        root=root,
        supermatrix=_under(root, outfile),
        markers_tsv=_under(root, markersfile),
        exemplars_tsv=_under(root, exemplars_file),
    )
