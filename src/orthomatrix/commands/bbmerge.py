from __future__ import annotations

import sys
from functools import partial
from pathlib import Path

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from orthomatrix.config import BBMergeConfig, merge_command_config
from orthomatrix.core.adjacency import build_adjacency, candidate_pool
from orthomatrix.core.coverage import select_alignments
from orthomatrix.core.exemplars import ExemplarSet, exemplar_taxa, select_exemplars
from orthomatrix.core.fasta import Alignment, read_alignment
from orthomatrix.core.ids import natural_key
from orthomatrix.core.supermatrix import assemble_supermatrix, write_marker_table, write_supermatrix
from orthomatrix.core.taxa import parse_taxa_table
from orthomatrix.exceptions import OrthoMatrixError, OrthoMatrixUsageError
from orthomatrix.logging import configure_logging, get_logger
from orthomatrix.manifest import create_run_manifest, finalize_manifest, write_manifest
from orthomatrix.parallel import create_parallel_service
from orthomatrix.paths import create_bbmerge_layout
from orthomatrix.utils.io import write_tsv
from orthomatrix.utils.validation import read_alignment_list, validate_nonempty_file

app = typer.Typer(help="Select exemplar taxa and markers and write the backbone supermatrix.")
console = Console()


def _print_plan(step_plan: list[str]) -> None:
    console.print("[bold]BBmerge step plan[/bold]")
    for idx, step in enumerate(step_plan, start=1):
        console.print(f"  {idx}. {step}")


def _read_alignments(paths: list[Path]) -> list[Alignment]:
    alignments: list[Alignment] = []
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task_id = progress.add_task("Reading alignments", total=len(paths))
        for path in paths:
            alignments.append(read_alignment(path))
            progress.advance(task_id)
    return alignments


def _exemplar_rows(exemplars: ExemplarSet) -> list[list[str]]:
    return [
        [genus, taxon_id]
        for genus in sorted(exemplars, key=natural_key)
        for taxon_id in exemplars[genus]
    ]


def run_bbmerge(
    *,
    config_path: Path | None,
    alnfile: Path | None,
    taxafile: Path | None,
    outfile: Path | None,
    fmt: str | None,
    markersfile: Path | None,
    exemplars_file: Path | None,
    outdir: Path | None,
    min_coverage: int | None,
    max_coverage: int | None,
    missing_chars: str | None,
    threads: int | None,
    parallel_backend: str | None,
    dry_run: bool | None,
    force: bool | None,
    log_file: Path | None,
    verbose: bool | None,
    quiet: bool | None,
) -> int:
    try:
        cfg = merge_command_config(
            config_path=config_path,
            section="bbmerge",
            model_cls=BBMergeConfig,
            cli_overrides={
                "alnfile": alnfile,
                "taxafile": taxafile,
                "outfile": outfile,
                "format": fmt,
                "markersfile": markersfile,
                "exemplars_file": exemplars_file,
                "outdir": outdir,
                "min_coverage": min_coverage,
                "max_coverage": max_coverage,
                "missing_chars": missing_chars,
                "threads": threads,
                "parallel_backend": parallel_backend,
                "dry_run": dry_run,
                "force": force,
                "log_file": log_file,
                "verbose": verbose,
                "quiet": quiet,
            },
        )
        configure_logging(verbose=cfg.verbose, quiet=cfg.quiet, log_file=cfg.log_file)
        logger = get_logger("orthomatrix.bbmerge")

        alignment_paths = read_alignment_list(cfg.alnfile)
        validate_nonempty_file(cfg.taxafile, "Taxa table")

        layout = create_bbmerge_layout(
            cfg.outdir,
            outfile=cfg.outfile,
            markersfile=cfg.markersfile,
            exemplars_file=cfg.exemplars_file,
        )

        step_plan = [
            f"Read {len(alignment_paths)} merged alignments listed in {cfg.alnfile}",
            f"Read taxa table {cfg.taxafile}",
            f"Build taxon adjacency and drop taxa in fewer than {cfg.min_coverage} alignments",
            "Choose up to two exemplar taxa per genus from the largest connected subset",
            f"Select alignments until every exemplar has coverage {cfg.min_coverage}",
            f"Write {cfg.format} supermatrix {layout.supermatrix} and markers table {layout.markers_tsv}",
        ]

        manifest = create_run_manifest(
            command="bbmerge",
            argv=sys.argv,
            outdir=layout.root,
            dry_run=cfg.dry_run,
            mock=cfg.mock,
            threads=cfg.threads,
            parallel_backend=cfg.parallel_backend,
            config_path=config_path,
            parameters={
                "min_coverage": cfg.min_coverage,
                "max_coverage": cfg.max_coverage,
                "missing_chars": cfg.missing_chars,
                "format": cfg.format,
            },
            input_paths=[cfg.alnfile, cfg.taxafile, *alignment_paths],
            planned_steps=step_plan,
        )
        write_manifest(layout.root, manifest)

        _print_plan(step_plan)
        if cfg.dry_run:
            logger.info("Dry-run requested; stopping before exemplar selection.")
            finalize_manifest(manifest, status="dry-run", output_paths=[])
            write_manifest(layout.root, manifest)
            return 0

        for path in (layout.supermatrix, layout.markers_tsv, layout.exemplars_tsv):
            if path.exists() and not cfg.force:
                raise OrthoMatrixUsageError(f"Refusing to overwrite existing file without --force: {path}")

        if cfg.max_coverage is not None:
            logger.info("max_coverage=%d is left to upstream filtering and not applied here", cfg.max_coverage)

        taxa_table = parse_taxa_table(cfg.taxafile)
        alignments = _read_alignments(alignment_paths)

        graph = build_adjacency(alignments, known_taxa=taxa_table.records)
        working, components = candidate_pool(graph, cfg.min_coverage)
        if not components:
            raise OrthoMatrixError(
                f"No taxa occur in at least {cfg.min_coverage} alignments; cannot select exemplars"
            )

        service = create_parallel_service(cfg.parallel_backend, cfg.threads)
        exemplars = select_exemplars(
            taxa_table,
            working,
            components[0],
            alignments,
            service=service,
            missing_chars=cfg.missing_chars,
        )
        taxa = exemplar_taxa(exemplars)

        selection = service.run_once_on_coordinator(
            partial(
                select_alignments,
                taxa,
                working.alignments_for_taxon,
                working.taxa_for_alignment,
                min_coverage=cfg.min_coverage,
            )
        )
        by_name = {alignment.name: alignment for alignment in alignments}
        selected = [by_name[name] for name in selection.alignments]
        rows_taxa = [taxon_id for taxon_id in taxa if taxon_id in selection.coverage]

        matrix = assemble_supermatrix(selected, rows_taxa, missing_chars=cfg.missing_chars)
        write_supermatrix(layout.supermatrix, matrix, fmt=cfg.format, force=cfg.force)
        write_marker_table(
            layout.markers_tsv,
            matrix,
            rows_taxa,
            label_for=taxa_table.display_name,
            force=cfg.force,
        )
        write_tsv(layout.exemplars_tsv, ["genus", "taxon_id"], _exemplar_rows(exemplars), force=cfg.force)

        finalize_manifest(
            manifest,
            status="completed",
            output_paths=[layout.supermatrix, layout.markers_tsv, layout.exemplars_tsv],
            summary={
                "alignments": len(alignments),
                "taxa": len(taxa_table),
                "component_sizes": [len(component) for component in components],
                "genera_with_exemplars": len(exemplars),
                "exemplars": len(rows_taxa),
                "selected_alignments": len(selected),
                "nchar": matrix.nchar,
                "removed_columns": matrix.removed_columns,
            },
        )
        write_manifest(layout.root, manifest)
        logger.info("DONE, supermatrix written to %s", layout.supermatrix)
        return 0

    except OrthoMatrixError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        return exc.exit_code
    except Exception as exc:  # pragma: no cover - defensive catch-all
        get_logger("orthomatrix.bbmerge").exception("Unhandled bbmerge error")
        console.print(f"[red]Unexpected error:[/red] {exc}")
        return 1


@app.callback(invoke_without_command=True)
def bbmerge_callback(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", help="YAML config file."),
    alnfile: Path | None = typer.Option(
        None,
        "--alnfile",
        "-a",
        help="List of merged alignment files, one path per line.",
    ),
    taxafile: Path | None = typer.Option(
        None,
        "--taxafile",
        "-t",
        help="Taxa table TSV with a genus column and species/subspecies/varietas/forma columns.",
    ),
    outfile: Path | None = typer.Option(None, "--outfile", "-o", help="Supermatrix file name."),
    fmt: str | None = typer.Option(None, "--format", "-f", help="Supermatrix format: phylip or fasta."),
    markersfile: Path | None = typer.Option(None, "--markersfile", "-m", help="Markers table file name."),
    exemplars_file: Path | None = typer.Option(None, "--exemplars-file", help="Exemplar list file name."),
    outdir: Path | None = typer.Option(None, "--outdir", help="Output root directory."),
    min_coverage: int | None = typer.Option(
        None,
        "--min-coverage",
        min=1,
        help="Minimum number of alignments an exemplar taxon must occur in.",
    ),
    max_coverage: int | None = typer.Option(
        None,
        "--max-coverage",
        min=1,
        help="Upper coverage bound recorded for upstream filtering.",
    ),
    missing_chars: str | None = typer.Option(
        None,
        "--missing-chars",
        help="Characters treated as gap or missing data in distances and column stripping.",
    ),
    threads: int | None = typer.Option(None, "--threads", min=1, help="Worker count."),
    parallel_backend: str | None = typer.Option(
        None,
        "--parallel-backend",
        help="sequential, threads or processes.",
    ),
    dry_run: bool | None = typer.Option(None, "--dry-run", help="Plan only, do not write outputs."),
    force: bool | None = typer.Option(None, "--force", help="Overwrite existing output files."),
    log_file: Path | None = typer.Option(None, "--log-file", help="Write JSON logs to this file."),
    verbose: bool | None = typer.Option(None, "--verbose", help="Enable verbose logging."),
    quiet: bool | None = typer.Option(None, "--quiet", help="Only show errors."),
) -> None:
    if ctx.invoked_subcommand is not None:
        return

    exit_code = run_bbmerge(
        config_path=config,
        alnfile=alnfile,
        taxafile=taxafile,
        outfile=outfile,
        fmt=fmt,
        markersfile=markersfile,
        exemplars_file=exemplars_file,
        outdir=outdir,
        min_coverage=min_coverage,
        max_coverage=max_coverage,
        missing_chars=missing_chars,
        threads=threads,
        parallel_backend=parallel_backend,
        dry_run=dry_run,
        force=force,
        log_file=log_file,
        verbose=verbose,
        quiet=quiet,
    )
    raise typer.Exit(exit_code)
