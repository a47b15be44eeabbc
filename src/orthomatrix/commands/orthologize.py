from __future__ import annotations

import sys
from functools import partial
from pathlib import Path

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from orthomatrix.config import OrthologizeConfig, merge_command_config
from orthomatrix.core.clustering import single_linkage_clusters
from orthomatrix.core.fasta import Alignment, read_alignment
from orthomatrix.core.merging import (
    MergeOutcome,
    MuscleProfileAligner,
    PaddedProfileAligner,
    ProfileAligner,
    build_merge_tasks,
    merge_cluster,
    merged_paths,
)
from orthomatrix.core.sequences import AlignmentSequenceStore, ChainedSequenceStore, FastaSequenceStore, SequenceStore
from orthomatrix.core.similarity import (
    BlastSimilaritySearch,
    LocalSimilaritySearch,
    SimilaritySearch,
    build_similarity_graph,
)
from orthomatrix.exceptions import OrthoMatrixError, OrthoMatrixUsageError
from orthomatrix.logging import configure_logging, get_logger
from orthomatrix.manifest import create_run_manifest, finalize_manifest, write_manifest
from orthomatrix.parallel import create_parallel_service
from orthomatrix.paths import OrthologizeLayout, create_orthologize_layout
from orthomatrix.runners import BlastnRunner, MakeBlastDbRunner, MuscleRunner
from orthomatrix.utils.io import write_path_list, write_tsv
from orthomatrix.utils.validation import read_alignment_list, seed_id_from_filename, validate_optional_file

app = typer.Typer(help="Cluster candidate alignments by seed similarity and merge orthologous clusters.")
console = Console()

CLUSTER_TABLE_HEADER = ["cluster_id", "n_seeds", "seed_ids", "status", "output"]


def _print_plan(step_plan: list[str]) -> None:
    console.print("[bold]Orthologize step plan[/bold]")
    for idx, step in enumerate(step_plan, start=1):
        console.print(f"  {idx}. {step}")


def _group_by_seed(alignments: list[Alignment]) -> dict[str, list[Path]]:
    """Map each seed id (from the file name, else the deflines) to its alignment files."""

    logger = get_logger("orthomatrix.orthologize")
    files_by_seed: dict[str, list[Path]] = {}
    for alignment in alignments:
        if alignment.path is None:
            continue
        seed_id = seed_id_from_filename(alignment.path) or alignment.seed_id()
        if seed_id is None:
            logger.warning("Cannot determine seed id for %s, skipping", alignment.path)
            continue
        files_by_seed.setdefault(seed_id, []).append(alignment.path)
    return files_by_seed


def _build_backends(cfg: OrthologizeConfig) -> tuple[SimilaritySearch, ProfileAligner, dict[str, str]]:
    logger = get_logger("orthomatrix.orthologize")
    if cfg.mock:
        return (
            LocalSimilaritySearch(word_size=cfg.word_size),
            PaddedProfileAligner(),
            {"blastn": "mock", "makeblastdb": "mock", "muscle": "mock"},
        )

    makeblastdb = MakeBlastDbRunner(cfg.makeblastdb_bin, timeout=cfg.command_timeout, logger=logger)
    blastn = BlastnRunner(cfg.blastn_bin, timeout=cfg.command_timeout, logger=logger)
    muscle = MuscleRunner(cfg.muscle_bin, timeout=cfg.command_timeout, logger=logger)
    for tool_name, runner in (("makeblastdb", makeblastdb), ("blastn", blastn), ("muscle", muscle)):
        if not runner.is_available():
            raise OrthoMatrixUsageError(
                f"Required external tool not found in PATH: {runner.executable}. "
                f"Install {tool_name} or run with --mock."
            )

    return (
        BlastSimilaritySearch(makeblastdb=makeblastdb, blastn=blastn, threads=cfg.threads),
        MuscleProfileAligner(muscle),
        {"blastn": cfg.blastn_bin, "makeblastdb": cfg.makeblastdb_bin, "muscle": cfg.muscle_bin},
    )


def _cluster_rows(outcomes: list[MergeOutcome], seeds_by_cluster: dict[int, tuple[str, ...]]) -> list[list[str]]:
    rows: list[list[str]] = []
    for outcome in sorted(outcomes, key=lambda item: item.cluster_id):
        seed_ids = seeds_by_cluster.get(outcome.cluster_id, ())
        rows.append(
            [
                str(outcome.cluster_id),
                str(len(seed_ids)),
                ",".join(seed_ids),
                outcome.status,
                str(outcome.output_path) if outcome.output_path is not None else "",
            ]
        )
    return rows


def _write_cluster_outputs(
    layout: OrthologizeLayout,
    outcomes: list[MergeOutcome],
    seeds_by_cluster: dict[int, tuple[str, ...]],
    *,
    force: bool,
) -> list[Path]:
    write_tsv(layout.clusters_tsv, CLUSTER_TABLE_HEADER, _cluster_rows(outcomes, seeds_by_cluster), force=force)
    merged = merged_paths(outcomes)
    write_path_list(layout.manifest_list, merged, force=force)
    return merged


def run_orthologize(
    *,
    config_path: Path | None,
    infile: Path | None,
    outfile: Path | None,
    sequences_fasta: Path | None,
    outdir: Path | None,
    workdir: Path | None,
    overlap_threshold: float | None,
    max_distance: float | None,
    min_singleton_sequences: int | None,
    word_size: int | None,
    blastn_bin: str | None,
    makeblastdb_bin: str | None,
    muscle_bin: str | None,
    threads: int | None,
    parallel_backend: str | None,
    command_timeout: float | None,
    mock: bool | None,
    dry_run: bool | None,
    force: bool | None,
    log_file: Path | None,
    verbose: bool | None,
    quiet: bool | None,
) -> int:
    try:
        cfg = merge_command_config(
            config_path=config_path,
            section="orthologize",
            model_cls=OrthologizeConfig,
            cli_overrides={
                "infile": infile,
                "outfile": outfile,
                "sequences_fasta": sequences_fasta,
                "outdir": outdir,
                "workdir": workdir,
                "overlap_threshold": overlap_threshold,
                "max_distance": max_distance,
                "min_singleton_sequences": min_singleton_sequences,
                "word_size": word_size,
                "blastn_bin": blastn_bin,
                "makeblastdb_bin": makeblastdb_bin,
                "muscle_bin": muscle_bin,
                "threads": threads,
                "parallel_backend": parallel_backend,
                "command_timeout": command_timeout,
                "mock": mock,
                "dry_run": dry_run,
                "force": force,
                "log_file": log_file,
                "verbose": verbose,
                "quiet": quiet,
            },
        )
        configure_logging(verbose=cfg.verbose, quiet=cfg.quiet, log_file=cfg.log_file)
        logger = get_logger("orthomatrix.orthologize")

        alignment_paths = read_alignment_list(cfg.infile)
        validate_optional_file(cfg.sequences_fasta, "Sequences FASTA")

        layout = create_orthologize_layout(cfg.outdir, cfg.outfile, workdir=cfg.workdir)

        step_plan = [
            f"Read {len(alignment_paths)} candidate alignments listed in {cfg.infile}",
            "Look up one sequence per distinct seed",
            "Run all-vs-all similarity search (BLASTN or in-process mock)",
            f"Retain hits covering > {cfg.overlap_threshold:.2f} of query and hit",
            "Cluster seeds by single linkage",
            f"Merge cluster alignments under {layout.workdir} (max distance {cfg.max_distance})",
            f"Write {layout.clusters_tsv.name} and merged-alignment list {layout.manifest_list}",
        ]

        manifest = create_run_manifest(
            command="orthologize",
            argv=sys.argv,
            outdir=layout.root,
            dry_run=cfg.dry_run,
            mock=cfg.mock,
            threads=cfg.threads,
            parallel_backend=cfg.parallel_backend,
            config_path=config_path,
            parameters={
                "overlap_threshold": cfg.overlap_threshold,
                "max_distance": cfg.max_distance,
                "min_singleton_sequences": cfg.min_singleton_sequences,
                "word_size": cfg.word_size,
                "command_timeout": cfg.command_timeout,
            },
            input_paths=[cfg.infile, *alignment_paths],
            planned_steps=step_plan,
        )
        write_manifest(layout.root, manifest)

        _print_plan(step_plan)
        if cfg.dry_run:
            logger.info("Dry-run requested; stopping before similarity search and merging.")
            finalize_manifest(manifest, status="dry-run", output_paths=[])
            write_manifest(layout.root, manifest)
            return 0

        for path in (layout.clusters_tsv, layout.manifest_list):
            if path.exists() and not cfg.force:
                raise OrthoMatrixUsageError(f"Refusing to overwrite existing file without --force: {path}")

        search, aligner, tool_versions = _build_backends(cfg)
        manifest.tools.update(tool_versions)

        alignments = [read_alignment(path) for path in alignment_paths]
        files_by_seed = _group_by_seed(alignments)
        logger.info("Read %d alignments for %d distinct seeds", len(alignments), len(files_by_seed))

        store: SequenceStore = AlignmentSequenceStore(alignments)
        if cfg.sequences_fasta is not None:
            store = ChainedSequenceStore(FastaSequenceStore(cfg.sequences_fasta), store)

        hit_graph, missing_seeds = build_similarity_graph(
            files_by_seed,
            store=store,
            search=search,
            seeds_fasta=layout.seeds_fasta,
            overlap_threshold=cfg.overlap_threshold,
        )
        clusters = single_linkage_clusters(hit_graph, extra_seeds=files_by_seed)
        if missing_seeds:
            logger.warning("%d seeds without sequence were kept as singleton clusters", len(missing_seeds))

        tasks = build_merge_tasks(clusters, files_by_seed, outdir=layout.workdir)
        if not cfg.force:
            existing = [task.output_path for task in tasks if task.output_path.exists()]
            if existing:
                raise OrthoMatrixUsageError(
                    f"Refusing to overwrite {len(existing)} existing cluster alignments without --force "
                    f"(e.g. {existing[0]})"
                )

        service = create_parallel_service(cfg.parallel_backend, cfg.threads)
        worker = partial(
            merge_cluster,
            aligner=aligner,
            max_distance=cfg.max_distance,
            min_sequences=cfg.min_singleton_sequences,
        )

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            task_id = progress.add_task("Merging clusters", total=len(tasks))
            outcomes = service.parallel_map(
                worker,
                tasks,
                on_result=lambda _outcome: progress.advance(task_id),
            )

        seeds_by_cluster = {cluster.cluster_id: cluster.seed_ids for cluster in clusters}
        merged = service.run_once_on_coordinator(
            partial(_write_cluster_outputs, layout, outcomes, seeds_by_cluster, force=cfg.force)
        )

        statuses: dict[str, int] = {}
        for outcome in outcomes:
            statuses[outcome.status] = statuses.get(outcome.status, 0) + 1

        finalize_manifest(
            manifest,
            status="completed",
            output_paths=[layout.clusters_tsv, layout.manifest_list, *merged],
            summary={
                "alignments": len(alignments),
                "seeds": len(files_by_seed),
                "seeds_without_sequence": len(missing_seeds),
                "clusters": len(clusters),
                "merged_alignments": len(merged),
                "cluster_status": statuses,
            },
        )
        write_manifest(layout.root, manifest)
        logger.info("Wrote %d merged alignments to %s", len(merged), layout.manifest_list)
        return 0

    except OrthoMatrixError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        return exc.exit_code
    except Exception as exc:  # pragma: no cover - defensive catch-all
        get_logger("orthomatrix.orthologize").exception("Unhandled orthologize error")
        console.print(f"[red]Unexpected error:[/red] {exc}")
        return 1


@app.callback(invoke_without_command=True)
def orthologize_callback(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", help="YAML config file."),
    infile: Path | None = typer.Option(
        None,
        "--infile",
        "-i",
        help="List of candidate alignment files, one path per line (<seed_id>-<descriptor>.fa).",
    ),
    outfile: Path | None = typer.Option(
        None,
        "--outfile",
        "-o",
        help="Merged-alignment list to write (relative paths are placed under --outdir).",
    ),
    sequences_fasta: Path | None = typer.Option(
        None,
        "--sequences",
        help="Optional FASTA of raw seed sequences, looked up before the alignments themselves.",
    ),
    outdir: Path | None = typer.Option(None, "--outdir", help="Output root directory."),
    workdir: Path | None = typer.Option(None, "--workdir", help="Directory for cluster<id>.fa files."),
    overlap_threshold: float | None = typer.Option(
        None,
        "--overlap-threshold",
        min=0.0,
        max=1.0,
        help="Fraction of query and hit length a similarity hit must exceed.",
    ),
    max_distance: float | None = typer.Option(
        None,
        "--max-distance",
        min=0.0,
        max=1.0,
        help="Mean pairwise distance below which a profile merge is accepted.",
    ),
    min_singleton_sequences: int | None = typer.Option(
        None,
        "--min-singleton-sequences",
        min=1,
        help="Minimum number of sequences for a single-file cluster to be kept.",
    ),
    word_size: int | None = typer.Option(None, "--word-size", min=1, help="Minimum match length in mock search."),
    blastn_bin: str | None = typer.Option(None, "--blastn-bin", help="blastn executable."),
    makeblastdb_bin: str | None = typer.Option(None, "--makeblastdb-bin", help="makeblastdb executable."),
    muscle_bin: str | None = typer.Option(None, "--muscle-bin", help="MUSCLE executable."),
    threads: int | None = typer.Option(None, "--threads", min=1, help="Worker count."),
    parallel_backend: str | None = typer.Option(
        None,
        "--parallel-backend",
        help="sequential, threads or processes.",
    ),
    command_timeout: float | None = typer.Option(
        None,
        "--command-timeout",
        min=0.0,
        help="Timeout in seconds for each external tool call.",
    ),
    mock: bool | None = typer.Option(None, "--mock/--no-mock", help="Mock mode without external binaries."),
    dry_run: bool | None = typer.Option(None, "--dry-run", help="Plan only, do not write outputs."),
    force: bool | None = typer.Option(None, "--force", help="Overwrite existing output files."),
    log_file: Path | None = typer.Option(None, "--log-file", help="Write JSON logs to this file."),
    verbose: bool | None = typer.Option(None, "--verbose", help="Enable verbose logging."),
    quiet: bool | None = typer.Option(None, "--quiet", help="Only show errors."),
) -> None:
    if ctx.invoked_subcommand is not None:
        return

    exit_code = run_orthologize(
        config_path=config,
        infile=infile,
        outfile=outfile,
        sequences_fasta=sequences_fasta,
        outdir=outdir,
        workdir=workdir,
        overlap_threshold=overlap_threshold,
        max_distance=max_distance,
        min_singleton_sequences=min_singleton_sequences,
        word_size=word_size,
        blastn_bin=blastn_bin,
        makeblastdb_bin=makeblastdb_bin,
        muscle_bin=muscle_bin,
        threads=threads,
        parallel_backend=parallel_backend,
        command_timeout=command_timeout,
        mock=mock,
        dry_run=dry_run,
        force=force,
        log_file=log_file,
        verbose=verbose,
        quiet=quiet,
    )
    raise typer.Exit(exit_code)
