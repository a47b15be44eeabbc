from __future__ import annotations

import logging
from pathlib import Path

from orthomatrix.runners.base import ToolRunner
from orthomatrix.utils.subprocess import CommandResult

TABULAR_FIELDS = ("qseqid", "sseqid", "qstart", "qend", "sstart", "send", "qlen", "slen")


class MakeBlastDbRunner(ToolRunner):
    """Wrapper around `makeblastdb` for nucleotide databases."""

    def __init__(
        self,
        executable: str = "makeblastdb",
        *,
        timeout: float | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(executable, timeout=timeout, logger=logger)

    def make_db(self, *, input_fasta: Path, dry_run: bool = False) -> CommandResult:
        return self.run(["-in", input_fasta, "-dbtype", "nucl"], dry_run=dry_run)


class BlastnRunner(ToolRunner):
    """Wrapper around `blastn` producing a tabular (outfmt 6) report."""

    def __init__(
        self,
        executable: str = "blastn",
        *,
        timeout: float | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(executable, timeout=timeout, logger=logger)

    def search(
        self,
        *,
        query: Path,
        database: Path,
        threads: int = 1,
        dry_run: bool = False,
    ) -> CommandResult:
        return self.run(
            [
                "-query",
                query,
                "-db",
                database,
                "-outfmt",
                "6 " + " ".join(TABULAR_FIELDS),
                "-num_threads",
                str(threads),
            ],
            dry_run=dry_run,
        )
