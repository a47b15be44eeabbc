from __future__ import annotations

import csv
from dataclasses import dataclass, field
from pathlib import Path

from orthomatrix.core.ids import natural_sorted
from orthomatrix.exceptions import OrthoMatrixUsageError
from orthomatrix.logging import get_logger
from orthomatrix.utils.validation import validate_nonempty_file

logger = get_logger(__name__)

# Ranks eligible for the supermatrix, most specific last.
VALID_RANKS = ("species", "subspecies", "varietas", "forma")
_NULL_VALUES = {"", "NA", "N/A", "NULL", "None"}


@dataclass(frozen=True, slots=True)
class TaxonRecord:
    taxon_id: str
    genus: str
    rank: str
    name: str | None = None


@dataclass(slots=True)
class TaxaTable:
    records: dict[str, TaxonRecord] = field(default_factory=dict)

    def __contains__(self, taxon_id: object) -> bool:
        return taxon_id in self.records

    def __len__(self) -> int:
        return len(self.records)

    def genera(self) -> list[str]:
        return natural_sorted({record.genus for record in self.records.values()})

    def taxa_for_genus(self) -> dict[str, list[str]]:
        grouped: dict[str, list[str]] = {}
        for record in self.records.values():
            grouped.setdefault(record.genus, []).append(record.taxon_id)
        return {genus: natural_sorted(members) for genus, members in sorted(grouped.items())}

    def display_name(self, taxon_id: str) -> str | None:
        record = self.records.get(taxon_id)
        if record is None:
            return None
        return record.name


def _clean(value: str | None) -> str:
    stripped = (value or "").strip()
    return "" if stripped in _NULL_VALUES else stripped


def parse_taxa_table(path: Path) -> TaxaTable:
    """Read a tab-separated taxa table into taxon records grouped by genus.

    Each row contributes the taxon at its most specific valid rank (forma,
    varietas, subspecies, species). Rows without a genus or without any valid
    rank are skipped with a warning.
    """

    validate_nonempty_file(path, "Taxa table")

    with path.open("r", encoding="utf-8", newline="") as handle:
        reader = csv.DictReader(handle, delimiter="\t")
        if reader.fieldnames is None:
            raise OrthoMatrixUsageError(f"Taxa table has no header row: {path}")
        header = [name.strip() for name in reader.fieldnames]
        if "genus" not in header:
            raise OrthoMatrixUsageError(f"Missing required column `genus` in taxa table: {path}")
        if not any(rank in header for rank in VALID_RANKS):
            raise OrthoMatrixUsageError(
                f"Taxa table needs at least one of the columns {', '.join(VALID_RANKS)}: {path}"
            )
        rows = [{str(key).strip(): value for key, value in row.items() if key is not None} for row in reader]

    table = TaxaTable()
    for row_number, row in enumerate(rows, start=2):
        genus = _clean(row.get("genus"))
        resolved = [(rank, _clean(row.get(rank))) for rank in VALID_RANKS if _clean(row.get(rank))]
        if not genus or not resolved:
            logger.warning(
                "Taxa table row %d (%s) has no genus or species-level id, skipping",
                row_number,
                _clean(row.get("name")) or "unnamed",
            )
            continue

        rank, taxon_id = resolved[-1]
        existing = table.records.get(taxon_id)
        if existing is not None and existing.genus != genus:
            logger.warning(
                "Taxon %s listed under genera %s and %s; keeping %s",
                taxon_id,
                existing.genus,
                genus,
                existing.genus,
            )
            continue
        table.records.setdefault(
            taxon_id,
            TaxonRecord(taxon_id=taxon_id, genus=genus, rank=rank, name=_clean(row.get("name")) or None),
        )

    if not table.records:
        raise OrthoMatrixUsageError(f"Taxa table contains no usable taxa: {path}")

    logger.info("Read %d taxa in %d genera from %s", len(table), len(table.genera()), path)
    return table
