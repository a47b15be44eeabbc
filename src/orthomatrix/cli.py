from __future__ import annotations

import platform
import sys

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from orthomatrix import __version__
from orthomatrix.commands import bbmerge, orthologize

console = Console()
SUBCOMMANDS = ["orthologize", "bbmerge"]

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    help=(
        "OrthoMatrix command-line toolkit for merging orthologous candidate alignments "
        "and assembling an exemplar backbone supermatrix."
    ),
)

app.add_typer(
    orthologize.app,
    name="orthologize",
    help="Cluster candidate alignments by seed similarity and merge orthologous clusters.",
)
app.add_typer(bbmerge.app, name="bbmerge", help="Select exemplars and markers and write the supermatrix.")


def _print_startup_intro(command_name: str) -> None:
    banner = Panel(
        f"[bold cyan]OrthoMatrix {__version__}[/bold cyan]\n"
        "[white]Backbone supermatrix assembly[/white]",
        title="[bold]CLI Start[/bold]",
        border_style="cyan",
        expand=False,
    )
    console.print(banner)

    stats = Table(
        title="[bold]Session Summary[/bold]",
        box=box.SIMPLE_HEAVY,
        show_header=False,
        expand=False,
    )
    stats.add_column("Key", style="bold cyan")
    stats.add_column("Value", style="white")
    stats.add_row("Command", command_name)
    stats.add_row("Subcommands", str(len(SUBCOMMANDS)))
    stats.add_row("Python", sys.version.split()[0])
    stats.add_row("Platform", f"{platform.system()} {platform.release()}")
    console.print(stats)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"OrthoMatrix {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show OrthoMatrix version and exit.",
    ),
) -> None:
    if ctx.invoked_subcommand:
        _print_startup_intro(ctx.invoked_subcommand)
