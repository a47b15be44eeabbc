from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Sequence

from orthomatrix.core.distance import DEFAULT_MISSING_CHARS
from orthomatrix.core.fasta import Alignment
from orthomatrix.core.ids import natural_key
from orthomatrix.exceptions import OrthoMatrixUsageError
from orthomatrix.logging import get_logger
from orthomatrix.utils.io import write_text, write_tsv
from orthomatrix.utils.validation import seed_id_from_filename

logger = get_logger(__name__)

MISSING_FILL = "?"
SUPERMATRIX_FORMATS = ("phylip", "fasta")


@dataclass(frozen=True, slots=True)
class MarkerColumn:
    """Provenance of one alignment in the supermatrix: source defline per taxon."""

    alignment: str
    seed_id: str | None
    deflines: dict[str, str]
    source_ids: dict[str, str]


@dataclass(slots=True)
class Supermatrix:
    rows: dict[str, str] = field(default_factory=dict)
    markers: list[MarkerColumn] = field(default_factory=list)
    removed_columns: int = 0

    @property
    def ntax(self) -> int:
        return len(self.rows)

    @property
    def nchar(self) -> int:
        return len(next(iter(self.rows.values()))) if self.rows else 0

    def used_markers(self) -> list[MarkerColumn]:
        """Markers that contribute data for at least one taxon."""

        return [marker for marker in self.markers if marker.deflines]


def _marker_seed(alignment: Alignment, deflines: dict[str, str]) -> str | None:
    for record in alignment:
        if record.defline in deflines.values() and record.meta.seed_id is not None:
            return record.meta.seed_id
    seed_id = alignment.seed_id()
    if seed_id is None and alignment.path is not None:
        seed_id = seed_id_from_filename(alignment.path)
    return seed_id


def concatenate(alignments: Sequence[Alignment], taxa: Sequence[str]) -> tuple[dict[str, str], list[MarkerColumn]]:
    """Concatenate one row per taxon across `alignments`, filling absent taxa with `?`."""

    parts: dict[str, list[str]] = {taxon_id: [] for taxon_id in taxa}
    markers: list[MarkerColumn] = []

    for alignment in alignments:
        ncol = alignment.ncol
        deflines: dict[str, str] = {}
        source_ids: dict[str, str] = {}
        for taxon_id in taxa:
            records = alignment.records_for_taxon(taxon_id)
            if len(records) > 1:
                logger.warning(
                    "Found %d sequences for taxon %s in %s, using first sequence",
                    len(records),
                    taxon_id,
                    alignment.name,
                )
            if records:
                first = records[0]
                parts[taxon_id].append(first.sequence)
                deflines[taxon_id] = first.defline
                source_ids[taxon_id] = first.meta.seq_id or first.defline
            else:
                parts[taxon_id].append(MISSING_FILL * ncol)

        markers.append(
            MarkerColumn(
                alignment=alignment.name,
                seed_id=_marker_seed(alignment, deflines),
                deflines=deflines,
                source_ids=source_ids,
            )
        )

    return {taxon_id: "".join(chunks) for taxon_id, chunks in parts.items()}, markers


def strip_missing_columns(
    rows: dict[str, str],
    *,
    missing_chars: str = DEFAULT_MISSING_CHARS,
) -> tuple[dict[str, str], int]:
    """Delete columns in which every row holds a gap or missing symbol."""

    if not rows:
        return rows, 0

    missing = frozenset(missing_chars.upper() + missing_chars.lower() + MISSING_FILL)
    sequences = list(rows.values())
    nchar = len(sequences[0])
    keep = [
        idx
        for idx in range(nchar)
        if not all(sequence[idx] in missing for sequence in sequences)
    ]
    stripped = {taxon_id: "".join(sequence[idx] for idx in keep) for taxon_id, sequence in rows.items()}
    return stripped, nchar - len(keep)


def assemble_supermatrix(
    alignments: Iterable[Alignment],
    exemplars: Sequence[str],
    *,
    missing_chars: str = DEFAULT_MISSING_CHARS,
) -> Supermatrix:
    """Concatenate the selected alignments for the exemplar taxa.

    Alignments are concatenated in natural order of their names. All rows of
    the result have the same length.
    """

    ordered = sorted(alignments, key=lambda alignment: natural_key(alignment.name))
    rows, markers = concatenate(ordered, exemplars)
    rows, removed = strip_missing_columns(rows, missing_chars=missing_chars)
    logger.info("Removed %d gap-only columns from supermatrix", removed)

    matrix = Supermatrix(rows=rows, markers=markers, removed_columns=removed)
    logger.info(
        "Assembled supermatrix of %d taxa x %d characters from %d alignments",
        matrix.ntax,
        matrix.nchar,
        len(markers),
    )
    return matrix


def format_phylip(matrix: Supermatrix) -> str:
    """Relaxed PHYLIP: taxon labels padded to the longest label."""

    width = max((len(taxon_id) for taxon_id in matrix.rows), default=0) + 1
    lines = [f"{matrix.ntax} {matrix.nchar}"]
    lines.extend(f"{taxon_id.ljust(width)}{sequence}" for taxon_id, sequence in matrix.rows.items())
    return "\n".join(lines) + "\n"


def format_fasta(matrix: Supermatrix) -> str:
    return "".join(f">{taxon_id}\n{sequence}\n" for taxon_id, sequence in matrix.rows.items())


_FORMATTERS: dict[str, Callable[[Supermatrix], str]] = {
    "phylip": format_phylip,
    "fasta": format_fasta,
}


def write_supermatrix(path: Path, matrix: Supermatrix, *, fmt: str = "phylip", force: bool = False) -> Path:
    try:
        formatter = _FORMATTERS[fmt]
    except KeyError as exc:
        raise OrthoMatrixUsageError(
            f"Unsupported supermatrix format {fmt!r}; choose one of {', '.join(SUPERMATRIX_FORMATS)}"
        ) from exc
    return write_text(path, formatter(matrix), force=force)


def marker_table(
    matrix: Supermatrix,
    taxa: Sequence[str],
    *,
    label_for: Callable[[str], str | None] | None = None,
) -> tuple[list[str], list[list[str]], list[str]]:
    """Header, rows and trailing comments of the markers table.

    Markers used by no exemplar are dropped. A taxon without a resolvable
    label is written as `taxon_<id>`.
    """

    markers = matrix.used_markers()
    header = ["taxon"] + [f"marker{idx}" for idx in range(1, len(markers) + 1)]

    rows: list[list[str]] = []
    for taxon_id in taxa:
        label = label_for(taxon_id) if label_for is not None else taxon_id
        if not label:
            logger.warning("Could not resolve a name for taxon %s, writing placeholder", taxon_id)
            label = f"taxon_{taxon_id}"
        rows.append([label] + [marker.source_ids.get(taxon_id, "") for marker in markers])

    trailer = [
        f"# marker{idx} cluster seed: {marker.seed_id or 'unknown'}, alignment: {Path(marker.alignment).name}"
        for idx, marker in enumerate(markers, start=1)
    ]
    return header, rows, trailer


def write_marker_table(
    path: Path,
    matrix: Supermatrix,
    taxa: Sequence[str],
    *,
    label_for: Callable[[str], str | None] | None = None,
    force: bool = False,
) -> Path:
    header, rows, trailer = marker_table(matrix, taxa, label_for=label_for)
    return write_tsv(path, header, rows, trailer=trailer, force=force)
