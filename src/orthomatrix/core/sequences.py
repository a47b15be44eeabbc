from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Protocol

from orthomatrix.core.fasta import Alignment, SequenceMeta, degap, read_fasta_records


@dataclass(frozen=True, slots=True)
class SequenceRecord:
    seq_id: str
    taxon_id: str | None
    sequence: str
    source: str | None = None


class SequenceStore(Protocol):
    def get(self, seq_id: str) -> SequenceRecord | None: ...


class AlignmentSequenceStore:
    """Raw sequences recovered by degapping the rows of candidate alignments."""

    def __init__(self, alignments: Iterable[Alignment]) -> None:
        self._records: dict[str, SequenceRecord] = {}
        for alignment in alignments:
            for row in alignment:
                seq_id = row.meta.seq_id
                if seq_id is None or seq_id in self._records:
                    continue
                self._records[seq_id] = SequenceRecord(
                    seq_id=seq_id,
                    taxon_id=row.meta.taxon_id,
                    sequence=degap(row.sequence),
                    source=alignment.name,
                )

    def __len__(self) -> int:
        return len(self._records)

    def get(self, seq_id: str) -> SequenceRecord | None:
        return self._records.get(seq_id)


class FastaSequenceStore:
    """Sequences from a FASTA file whose deflines start with the sequence id."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._records: dict[str, SequenceRecord] = {}
        for record in read_fasta_records(path):
            meta = SequenceMeta.from_defline(record.header)
            seq_id = meta.seq_id or record.header.split()[0].split("|")[0]
            self._records.setdefault(
                seq_id,
                SequenceRecord(
                    seq_id=seq_id,
                    taxon_id=meta.taxon_id,
                    sequence=degap(record.sequence),
                    source=str(path),
                ),
            )

    def get(self, seq_id: str) -> SequenceRecord | None:
        return self._records.get(seq_id)


class ChainedSequenceStore:
    def __init__(self, *stores: SequenceStore) -> None:
        self.stores = stores

    def get(self, seq_id: str) -> SequenceRecord | None:
        for store in self.stores:
            record = store.get(seq_id)
            if record is not None:
                return record
        return None
