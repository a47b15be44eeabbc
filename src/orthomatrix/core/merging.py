from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, Protocol, Sequence

from orthomatrix.core.clustering import OrthologousCluster
from orthomatrix.core.distance import DEFAULT_MISSING_CHARS, mean_pairwise_distance
from orthomatrix.core.fasta import (
    alignment_from_records,
    alignment_to_records,
    count_fasta_records,
    dedup_alignment,
    parse_fasta_text,
    read_fasta_records,
    write_fasta_records,
)
from orthomatrix.exceptions import OrthoMatrixUsageError
from orthomatrix.logging import get_logger
from orthomatrix.runners.muscle import MuscleRunner
from orthomatrix.utils.subprocess import CommandExecutionError

logger = get_logger(__name__)

MIN_INFORMATIVE_SEQUENCES = 3


class ProfileAligner(Protocol):
    def align(self, left: Path, right: Path) -> str: ...


class MuscleProfileAligner:
    def __init__(self, runner: MuscleRunner) -> None:
        self.runner = runner

    def align(self, left: Path, right: Path) -> str:
        return self.runner.profile(in1=left, in2=right).stdout


class PaddedProfileAligner:
    """In-process stand-in for a profile aligner.

    Rows of the narrower block are padded with trailing gaps and the two
    blocks are stacked; no columns are realigned.
    """

    def align(self, left: Path, right: Path) -> str:
        records = read_fasta_records(left) + read_fasta_records(right)
        width = max((len(record.sequence) for record in records), default=0)
        return "".join(f">{record.header}\n{record.sequence.ljust(width, '-')}\n" for record in records)


@dataclass(frozen=True, slots=True)
class MergeTask:
    cluster: OrthologousCluster
    files: tuple[Path, ...]
    output_path: Path


@dataclass(slots=True)
class MergeOutcome:
    cluster_id: int
    status: str
    output_path: Path | None
    sequence_count: int = 0
    accepted: list[Path] = field(default_factory=list)
    rejected: list[Path] = field(default_factory=list)


def accepts_merge(distance: float, max_distance: float) -> bool:
    return distance < max_distance


def files_for_cluster(cluster: OrthologousCluster, files_by_seed: Mapping[str, Sequence[Path]]) -> tuple[Path, ...]:
    files: dict[Path, None] = {}
    for seed_id in cluster.seed_ids:
        for path in files_by_seed.get(seed_id, ()):
            files.setdefault(path, None)
    return tuple(files)


def order_by_size(files: Iterable[Path]) -> list[Path]:
    """Order files by descending sequence count, ties by path."""

    sizes = {path: count_fasta_records(path) for path in files}
    return sorted(sizes, key=lambda path: (-sizes[path], str(path)))


def merge_cluster(
    task: MergeTask,
    *,
    aligner: ProfileAligner,
    max_distance: float,
    min_sequences: int = MIN_INFORMATIVE_SEQUENCES,
    missing_chars: str = DEFAULT_MISSING_CHARS,
) -> MergeOutcome:
    """Progressively profile-align one cluster's alignments into `task.output_path`."""

    cluster_id = task.cluster.cluster_id
    merged = task.output_path

    if not task.files:
        logger.warning("Cluster %d has no alignment files, skipping", cluster_id)
        return MergeOutcome(cluster_id=cluster_id, status="empty", output_path=None)

    if len(task.files) == 1:
        only = task.files[0]
        num_seqs = count_fasta_records(only)
        if num_seqs >= min_sequences:
            merged.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(only, merged)
            logger.info("Writing singleton %s [%s]", merged, only)
            return MergeOutcome(
                cluster_id=cluster_id,
                status="singleton",
                output_path=merged,
                sequence_count=num_seqs,
                accepted=[only],
            )
        logger.info("Rejecting singleton cluster %d (%d sequences), %s not written", cluster_id, num_seqs, only)
        return MergeOutcome(cluster_id=cluster_id, status="dropped", output_path=None, rejected=[only])

    ordered = order_by_size(task.files)
    merged.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(ordered[0], merged)
    logger.info("Starting %s [%s]", merged, ordered[0])

    outcome = MergeOutcome(
        cluster_id=cluster_id,
        status="seed_only",
        output_path=merged,
        accepted=[ordered[0]],
    )

    for idx, candidate in enumerate(ordered[1:], start=1):
        logger.debug("Attempting to merge %s and %s (#%d of %d)", merged, candidate, idx, len(ordered) - 1)
        try:
            result = aligner.align(merged, candidate)
        except CommandExecutionError as exc:
            logger.warning("Profile alignment of %s and %s failed: %s", merged, candidate, exc)
            outcome.rejected.append(candidate)
            continue

        records = parse_fasta_text(result)
        if not records:
            logger.warning("Profile alignment of %s and %s produced no sequences", merged, candidate)
            outcome.rejected.append(candidate)
            continue

        try:
            alignment = alignment_from_records(str(merged), records)
        except OrthoMatrixUsageError as exc:
            logger.warning("Profile alignment of %s and %s is malformed: %s", merged, candidate, exc)
            outcome.rejected.append(candidate)
            continue

        distance = mean_pairwise_distance([row.sequence for row in alignment], missing_chars=missing_chars)
        if not accepts_merge(distance, max_distance):
            logger.info(
                "Rejecting %s from %s, too distant (%.4f >= %.4f)", candidate, merged, distance, max_distance
            )
            outcome.rejected.append(candidate)
            continue

        deduped = dedup_alignment(alignment)
        if len(deduped) < min_sequences:
            logger.info("Rejecting %s from %s, too few sequences (%d)", candidate, merged, len(deduped))
            outcome.rejected.append(candidate)
            continue

        write_fasta_records(merged, alignment_to_records(deduped), force=True)
        outcome.accepted.append(candidate)
        outcome.status = "merged"
        logger.info("Merged %s and %s (mean distance %.4f)", merged, candidate, distance)

    outcome.sequence_count = count_fasta_records(merged)
    logger.info("Done merging %s", merged)
    return outcome


def build_merge_tasks(
    clusters: Iterable[OrthologousCluster],
    files_by_seed: Mapping[str, Sequence[Path]],
    *,
    outdir: Path,
) -> list[MergeTask]:
    return [
        MergeTask(
            cluster=cluster,
            files=files_for_cluster(cluster, files_by_seed),
            output_path=outdir / f"cluster{cluster.cluster_id}.fa",
        )
        for cluster in clusters
    ]


def merged_paths(outcomes: Iterable[MergeOutcome]) -> list[Path]:
    """Paths of persisted merged alignments, in cluster id order."""

    kept = [outcome for outcome in outcomes if outcome.output_path is not None]
    kept.sort(key=lambda outcome: outcome.cluster_id)
    return [outcome.output_path for outcome in kept if outcome.output_path is not None]
