from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Mapping, TypeVar

import yaml
from pydantic import BaseModel, ConfigDict, Field, PositiveInt, ValidationError, model_validator

from orthomatrix.exceptions import OrthoMatrixUsageError
from orthomatrix.parallel import ParallelBackend


class CommonConfig(BaseModel):
    """Shared command options across OrthoMatrix subcommands."""

    model_config = ConfigDict(extra="forbid")

    outdir: Path = Field(default_factory=Path.cwd)
    workdir: Path | None = None
    threads: PositiveInt = 1
    parallel_backend: ParallelBackend = "threads"
    command_timeout: float | None = Field(default=None, gt=0)
    mock: bool = False
    dry_run: bool = False
    force: bool = False
    log_file: Path | None = None
    verbose: bool = False
    quiet: bool = False

    @model_validator(mode="after")
    def _validate_verbosity(self) -> "CommonConfig":
        if self.verbose and self.quiet:
            raise ValueError("`verbose` and `quiet` cannot both be true.")
        return self


class OrthologizeConfig(CommonConfig):
    infile: Path = Path("aligned.txt")
    outfile: Path = Path("merged.txt")
    sequences_fasta: Path | None = None

    overlap_threshold: float = Field(default=0.51, ge=0.0, le=1.0)
    max_distance: float = Field(default=0.1, gt=0.0, le=1.0)
    min_singleton_sequences: PositiveInt = 3
    word_size: PositiveInt = 11

    blastn_bin: str = "blastn"
    makeblastdb_bin: str = "makeblastdb"
    muscle_bin: str = "muscle"


class BBMergeConfig(CommonConfig):
    alnfile: Path = Path("merged.txt")
    taxafile: Path = Path("species.tsv")
    outfile: Path = Path("supermatrix.phy")
    format: Literal["phylip", "fasta"] = "phylip"
    markersfile: Path = Path("markers-backbone.tsv")
    exemplars_file: Path = Path("exemplars.tsv")

    min_coverage: PositiveInt = 3
    max_coverage: PositiveInt | None = None
    missing_chars: str = Field(default="-?N", min_length=1)

    @model_validator(mode="after")
    def _validate_coverage_bounds(self) -> "BBMergeConfig":
        if self.max_coverage is not None and self.max_coverage < self.min_coverage:
            raise ValueError("`max_coverage` must be >= `min_coverage`.")
        return self


class OrthoMatrixConfig(BaseModel):
    """Top-level YAML config model."""

    model_config = ConfigDict(extra="forbid")

    orthologize: OrthologizeConfig | None = None
    bbmerge: BBMergeConfig | None = None


def load_config(config_path: Path | None) -> OrthoMatrixConfig:
    """Load and validate a YAML config file."""

    if config_path is None:
        return OrthoMatrixConfig()

    if not config_path.exists():
        raise OrthoMatrixUsageError(f"Config file does not exist: {config_path}")

    if not config_path.is_file():
        raise OrthoMatrixUsageError(f"Config path is not a file: {config_path}")

    payload_raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if payload_raw is None:
        payload_raw = {}

    if not isinstance(payload_raw, dict):
        raise OrthoMatrixUsageError("Config YAML must be a key/value mapping at the top level.")

    try:
        return OrthoMatrixConfig.model_validate(payload_raw)
    except ValidationError as exc:
        raise OrthoMatrixUsageError(f"Invalid config file: {config_path}\n{exc}") from exc


T = TypeVar("T", bound=CommonConfig)


def merge_command_config(
    *,
    config_path: Path | None,
    section: str,
    model_cls: type[T],
    cli_overrides: Mapping[str, Any],
) -> T:
    """Merge YAML config values with explicit CLI overrides and validate."""

    root = load_config(config_path)
    section_model = getattr(root, section)

    merged: dict[str, Any] = {}
    if section_model is not None:
        merged.update(section_model.model_dump(exclude_none=True))

    for key, value in cli_overrides.items():
        if value is not None:
            merged[key] = value

    try:
        return model_cls.model_validate(merged)
    except ValidationError as exc:
        raise OrthoMatrixUsageError(f"Invalid merged config for `{section}`:\n{exc}") from exc
