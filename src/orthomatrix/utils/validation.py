from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable

from orthomatrix.exceptions import OrthoMatrixUsageError
from orthomatrix.logging import get_logger

ALIGNMENT_SUFFIXES = (".fa", ".fasta", ".fas", ".fa.gz", ".fasta.gz")
SEED_FILENAME_PATTERN = re.compile(r"^(\d+)-.+\.fa")

logger = get_logger(__name__)


def _matches_suffix(path: Path, suffixes: Iterable[str]) -> bool:
    lowered = path.name.lower()
    return any(lowered.endswith(suffix) for suffix in suffixes)


def _resolve_listed_path(base_dir: Path, value: str) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    return path


def validate_existing_file(path: Path, label: str) -> None:
    if not path.exists():
        raise OrthoMatrixUsageError(f"{label} does not exist: {path}")
    if not path.is_file():
        raise OrthoMatrixUsageError(f"{label} is not a file: {path}")


def validate_nonempty_file(path: Path, label: str) -> None:
    validate_existing_file(path, label)
    if path.stat().st_size == 0:
        raise OrthoMatrixUsageError(f"{label} is empty: {path}")


def validate_optional_file(path: Path | None, label: str) -> None:
    if path is None:
        return
    validate_existing_file(path, label)


def seed_id_from_filename(path: Path) -> str | None:
    """Return the seed sequence id encoded as `<seed_id>-<descriptor>.fa`."""

    match = SEED_FILENAME_PATTERN.match(path.name)
    if match is None:
        return None
    return match.group(1)


def read_alignment_list(list_path: Path) -> list[Path]:
    """Read an alignment manifest, skipping blank lines and missing files.

    Relative entries are resolved against the current working directory first
    and then against the manifest's own directory.
    """

    validate_nonempty_file(list_path, "Alignment list")

    paths: list[Path] = []
    seen: set[Path] = set()
    with list_path.open("r", encoding="utf-8") as handle:
        for raw_line in handle:
            line = raw_line.strip()
            if not line:
                continue

            path = Path(line).expanduser()
            if not path.is_absolute() and not path.exists():
                path = _resolve_listed_path(list_path.parent, line)

            if not path.is_file():
                logger.warning("Alignment listed in %s does not exist, skipping: %s", list_path, line)
                continue
            if not _matches_suffix(path, ALIGNMENT_SUFFIXES):
                logger.warning("Unexpected alignment file extension, reading anyway: %s", path)
            path = path.resolve()
            if path in seen:
                continue
            seen.add(path)
            paths.append(path)

    if not paths:
        raise OrthoMatrixUsageError(f"No readable alignment files listed in {list_path}")

    return paths
