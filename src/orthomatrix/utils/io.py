from __future__ import annotations

import csv
from pathlib import Path
from typing import Any, Iterable, Sequence

from orthomatrix.exceptions import OrthoMatrixUsageError


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def _check_overwrite(path: Path, force: bool) -> None:
    if path.exists() and not force:
        raise OrthoMatrixUsageError(f"Refusing to overwrite existing file without --force: {path}")


def write_text(path: Path, content: str, *, force: bool = False) -> Path:
    ensure_dir(path.parent)
    _check_overwrite(path, force)
    path.write_text(content, encoding="utf-8")
    return path


def write_tsv(
    path: Path,
    header: Sequence[str],
    rows: Iterable[Sequence[Any]],
    *,
    trailer: Sequence[str] = (),
    force: bool = False,
) -> Path:
    """Write a TSV table; `trailer` lines are appended verbatim after a blank line."""

    ensure_dir(path.parent)
    _check_overwrite(path, force)

    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle, delimiter="\t", lineterminator="\n")
        writer.writerow(header)
        for row in rows:
            writer.writerow(list(row))
        if trailer:
            handle.write("\n")
            for line in trailer:
                handle.write(f"{line}\n")

    return path


def write_path_list(path: Path, paths: Iterable[Path], *, force: bool = False) -> Path:
    """Write a flat manifest, one path per line."""

    lines = [str(item) for item in paths]
    content = "\n".join(lines) + ("\n" if lines else "")
    return write_text(path, content, force=force)
