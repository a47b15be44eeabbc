from __future__ import annotations

import gzip
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator

from orthomatrix.exceptions import OrthoMatrixUsageError
from orthomatrix.utils.io import ensure_dir

_DEFLINE_FIELD = re.compile(r"(gi|seed_gi|taxon|mrca)\|([0-9]+)")


@dataclass(frozen=True, slots=True)
class FastaRecord:
    """Simple FASTA record."""

    header: str
    sequence: str


@dataclass(frozen=True, slots=True)
class SequenceMeta:
    """Identifiers carried by a candidate-alignment defline.

    Deflines look like `gi|<id>|seed_gi|<seed>|taxon|<taxon>|mrca|<root>`,
    optionally followed by a `/start-end` range.
    """

    seq_id: str | None
    seed_id: str | None
    taxon_id: str | None
    cluster_root_id: str | None

    @classmethod
    def from_defline(cls, defline: str) -> "SequenceMeta":
        fields: dict[str, str] = {}
        for key, value in _DEFLINE_FIELD.findall(defline):
            fields.setdefault(key, value)
        return cls(
            seq_id=fields.get("gi"),
            seed_id=fields.get("seed_gi"),
            taxon_id=fields.get("taxon"),
            cluster_root_id=fields.get("mrca"),
        )


@dataclass(frozen=True, slots=True)
class AlignedSequence:
    defline: str
    sequence: str
    meta: SequenceMeta


@dataclass(frozen=True, slots=True)
class Alignment:
    """A read-only multiple sequence alignment with parsed defline metadata."""

    name: str
    records: tuple[AlignedSequence, ...]
    path: Path | None = None

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[AlignedSequence]:
        return iter(self.records)

    @property
    def ncol(self) -> int:
        return len(self.records[0].sequence) if self.records else 0

    def taxa(self) -> list[str]:
        """Distinct taxon ids in order of first appearance."""

        seen: dict[str, None] = {}
        for record in self.records:
            if record.meta.taxon_id is not None:
                seen.setdefault(record.meta.taxon_id, None)
        return list(seen)

    def records_for_taxon(self, taxon_id: str) -> list[AlignedSequence]:
        return [record for record in self.records if record.meta.taxon_id == taxon_id]

    def sequences_for_taxon(self, taxon_id: str) -> list[str]:
        return [record.sequence for record in self.records_for_taxon(taxon_id)]

    def seed_id(self) -> str | None:
        for record in self.records:
            if record.meta.seed_id is not None:
                return record.meta.seed_id
        return None


def _open_text(path: Path):
    if path.suffix == ".gz":
        return gzip.open(path, "rt", encoding="utf-8")
    return path.open("r", encoding="utf-8")


def iter_fasta_lines(lines: Iterable[str]) -> Iterator[FastaRecord]:
    header: str | None = None
    seq_chunks: list[str] = []

    for raw_line in lines:
        line = raw_line.strip()
        if not line:
            continue
        if line.startswith(">"):
            if header is not None:
                yield FastaRecord(header=header, sequence="".join(seq_chunks).upper())
            header = line[1:].strip()
            seq_chunks = []
        elif header is not None:
            seq_chunks.append(line.replace(" ", ""))

    if header is not None:
        yield FastaRecord(header=header, sequence="".join(seq_chunks).upper())


def read_fasta_records(path: Path) -> list[FastaRecord]:
    """Read FASTA records, preserving order and full deflines."""

    with _open_text(path) as handle:
        return list(iter_fasta_lines(handle))


def parse_fasta_text(text: str) -> list[FastaRecord]:
    return list(iter_fasta_lines(text.splitlines()))


def count_fasta_records(path: Path) -> int:
    with _open_text(path) as handle:
        return sum(1 for line in handle if line.startswith(">"))


def write_fasta_records(
    path: Path,
    records: Iterable[FastaRecord],
    line_width: int | None = None,
    *,
    force: bool = False,
) -> Path:
    """Write FASTA records, unwrapped unless `line_width` is given."""

    ensure_dir(path.parent)
    if path.exists() and not force:
        raise OrthoMatrixUsageError(f"Refusing to overwrite existing file without --force: {path}")
    with path.open("w", encoding="utf-8") as handle:
        for record in records:
            handle.write(f">{record.header}\n")
            sequence = record.sequence
            if not line_width:
                handle.write(f"{sequence}\n")
                continue
            for start in range(0, len(sequence), line_width):
                handle.write(f"{sequence[start:start + line_width]}\n")

    return path


def alignment_from_records(name: str, records: Iterable[FastaRecord], *, path: Path | None = None) -> Alignment:
    aligned = tuple(
        AlignedSequence(
            defline=record.header,
            sequence=record.sequence,
            meta=SequenceMeta.from_defline(record.header),
        )
        for record in records
    )
    lengths = {len(record.sequence) for record in aligned}
    if len(lengths) > 1:
        raise OrthoMatrixUsageError(
            f"Alignment {name} has rows of unequal length: {sorted(lengths)}"
        )
    return Alignment(name=name, records=aligned, path=path)


def read_alignment(path: Path) -> Alignment:
    return alignment_from_records(str(path), read_fasta_records(path), path=path)


def alignment_to_records(alignment: Alignment) -> list[FastaRecord]:
    return [FastaRecord(header=record.defline, sequence=record.sequence) for record in alignment]


def dedup_alignment(alignment: Alignment) -> Alignment:
    """Keep one row per member sequence id (or per defline when no id is present)."""

    seen: set[str] = set()
    kept: list[AlignedSequence] = []
    for record in alignment:
        key = record.meta.seq_id if record.meta.seq_id is not None else record.defline
        if key in seen:
            continue
        seen.add(key)
        kept.append(record)
    return Alignment(name=alignment.name, records=tuple(kept), path=alignment.path)


def degap(sequence: str) -> str:
    return sequence.replace("-", "").replace(".", "")
