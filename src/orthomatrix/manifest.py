from __future__ import annotations

import json
import subprocess
import sys
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any, Sequence

from orthomatrix import __version__

MANIFEST_FILENAME = "orthomatrix_manifest.json"
TRACKED_DISTRIBUTIONS = ("typer", "pydantic", "rich", "PyYAML")


@dataclass(slots=True)
class RunManifest:
    command: str
    argv: list[str]
    started_at: str
    ended_at: str | None
    status: str
    cwd: str
    outdir: str
    dry_run: bool
    mock: bool
    threads: int
    parallel_backend: str
    config_path: str | None
    git_commit: str | None
    versions: dict[str, str]
    tools: dict[str, str]
    parameters: dict[str, Any]
    input_paths: list[str]
    output_paths: list[str] = field(default_factory=list)
    planned_steps: list[str] = field(default_factory=list)
    summary: dict[str, Any] = field(default_factory=dict)


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _distribution_versions(names: Sequence[str]) -> dict[str, str]:
    versions: dict[str, str] = {}
    for name in names:
        try:
            versions[name.lower()] = version(name)
        except PackageNotFoundError:
            versions[name.lower()] = "unknown"
    return versions


def _detect_git_commit(cwd: Path) -> str | None:
    try:
        process = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            cwd=cwd,
            check=True,
            capture_output=True,
            text=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return None
    return process.stdout.strip() or None


def create_run_manifest(
    *,
    command: str,
    argv: Sequence[str],
    outdir: Path,
    dry_run: bool,
    mock: bool,
    threads: int,
    parallel_backend: str,
    config_path: Path | None,
    parameters: dict[str, Any],
    input_paths: Sequence[Path],
    planned_steps: Sequence[str],
) -> RunManifest:
    return RunManifest(
        command=command,
        argv=list(argv),
        started_at=_utcnow_iso(),
        ended_at=None,
        status="running",
        cwd=str(Path.cwd()),
        outdir=str(outdir),
        dry_run=dry_run,
        mock=mock,
        threads=threads,
        parallel_backend=parallel_backend,
        config_path=str(config_path) if config_path is not None else None,
        git_commit=_detect_git_commit(Path.cwd()),
        versions={
            "orthomatrix": __version__,
            "python": sys.version.split()[0],
            **_distribution_versions(TRACKED_DISTRIBUTIONS),
        },
        tools={},
        parameters=parameters,
        input_paths=[str(path) for path in input_paths],
        planned_steps=list(planned_steps),
    )


def finalize_manifest(
    manifest: RunManifest,
    *,
    status: str,
    output_paths: Sequence[Path | str],
    summary: dict[str, Any] | None = None,
) -> RunManifest:
    manifest.status = status
    manifest.ended_at = _utcnow_iso()
    manifest.output_paths = [str(path) for path in output_paths]
    if summary:
        manifest.summary.update(summary)
    return manifest


def write_manifest(outdir: Path, manifest: RunManifest) -> Path:
    outdir.mkdir(parents=True, exist_ok=True)
    manifest_path = outdir / MANIFEST_FILENAME
    manifest_path.write_text(
        json.dumps(asdict(manifest), indent=2, ensure_ascii=True, default=str),
        encoding="utf-8",
    )
    return manifest_path
