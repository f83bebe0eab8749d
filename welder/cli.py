"""
Command-line interface for welder.
Turns raw pixel art into ship-ready asset packs.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import typer
from rich.console import Console
from rich.table import Table
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.markup import escape

from . import __version__
from .config import DEFAULT_CONFIG_NAME, WelderConfig, parse_resolutions
from .errors import WelderError
from .pipeline import Transition, run_build, run_preview
from .packaging import package as package_outputs
from .publish import publish as publish_package
from .scaffold import run_checks, scaffold_project

# Initialize typer app and rich console
app = typer.Typer(
    name="welder",
    help="Turn raw pixel art into ship-ready asset packs.",
    add_completion=False,
    rich_markup_mode="rich",
    epilog="""
[bold]Examples:[/bold]
  [cyan]welder init --name "Tiny Dungeon"[/cyan]     Scaffold welder.toml and folders
  [cyan]welder build --res 1,2,4 --clean[/cyan]      Export every tier from scratch
  [cyan]welder preview --style sheet[/cyan]          Render the store sheet preview
  [cyan]welder package --include-previews[/cyan]     Zip exports and previews
    """
)
console = Console()


@dataclass
class Context:
    """Options shared by every command."""
    cwd: Path
    config: Optional[Path]
    verbose: int


def _setup_logging(verbose: int) -> None:
    """Route the ``welder`` logger through Rich."""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose >= 2:
        level = logging.DEBUG

    logger = logging.getLogger("welder")
    logger.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=console, show_path=False, show_time=verbose >= 2)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    logger.propagate = False


def _version_callback(value: bool):
    if value:
        console.print(f"welder {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    cwd: Path = typer.Option(Path("."), "-C", "--cwd", help="Project directory"),
    config_file: Optional[Path] = typer.Option(None, "--config", help=f"Configuration file (default: {DEFAULT_CONFIG_NAME})"),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Increase log verbosity (-v, -vv)"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True,
                                 help="Show version and exit")
):
    """Turn raw pixel art into ship-ready asset packs."""
    _setup_logging(verbose)
    ctx.obj = Context(cwd=cwd, config=config_file, verbose=verbose)


def _load_config(ctx: typer.Context, profile: str) -> WelderConfig:
    """Load and validate configuration, exiting on any problem."""
    options: Context = ctx.obj
    try:
        config = WelderConfig.load(options.config, profile=profile, root=options.cwd)
    except WelderError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    errors = config.validate()
    if errors:
        console.print("[red]✗ Configuration is invalid:[/red]")
        for error in errors:
            console.print(f"  • {escape(error)}")
        raise typer.Exit(1)

    return config


def _spinner() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    )


@app.command()
def init(
    ctx: typer.Context,
    name: Optional[str] = typer.Option(None, "--name", help="Pack name"),
    author: Optional[str] = typer.Option(None, "--author", help="Pack author"),
    brand: Optional[str] = typer.Option(None, "--brand", help="Brand or studio name"),
    input_dir: str = typer.Option("src", "--input", help="Source image directory"),
    yes: bool = typer.Option(False, "--yes", help="Overwrite an existing welder.toml")
):
    """Scaffold welder.toml and project folders."""
    options: Context = ctx.obj
    try:
        created = scaffold_project(options.cwd, name=name, author=author, brand=brand,
                                   input_dir=input_dir, overwrite=yes)
    except WelderError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    for path in created:
        console.print(f"[green]✓[/green] Created {path}")


@app.command()
def doctor(
    ctx: typer.Context,
    profile: str = typer.Option("default", "--profile", help="Configuration profile"),
    butler: bool = typer.Option(False, "--butler", help="Also check for the butler uploader")
):
    """Verify environment, config, and external dependencies."""
    options: Context = ctx.obj
    checks = run_checks(options.cwd, options.config, profile=profile, check_butler=butler)

    table = Table(show_header=False)
    table.add_column("Status", width=3)
    table.add_column("Check", style="cyan")
    table.add_column("Detail", style="green")

    for check in checks:
        status = "[green]✓[/green]" if check.ok else "[red]✗[/red]"
        table.add_row(status, check.name, escape(check.detail))

    console.print(table)

    if not all(check.ok for check in checks):
        raise typer.Exit(1)


@app.command()
def build(
    ctx: typer.Context,
    profile: str = typer.Option("default", "--profile", help="Configuration profile"),
    res: Optional[str] = typer.Option(None, "--res", help="Comma-separated tiers, e.g. 1,2,4"),
    clean: bool = typer.Option(False, "--clean", help="Remove previous exports first"),
    dry_run: bool = typer.Option(False, "--dry-run", help="List outputs without writing anything")
):
    """Build exports (resize, organize) into dist/."""
    config = _load_config(ctx, profile)

    try:
        resolutions = parse_resolutions(res) if res else None
        with _spinner() as progress:
            task = progress.add_task("Building exports...", total=None)

            def on_state(transition: Transition):
                progress.update(task, description=f"build: {transition}")

            result = run_build(config, resolutions=resolutions, clean=clean,
                               dry_run=dry_run, listener=on_state)
    except WelderError as e:
        console.print(f"[red]Build failed:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    prefix = "[yellow]DRY RUN:[/yellow] Would write" if dry_run else "[green]✓[/green] Wrote"
    if clean:
        verb = "Would remove" if dry_run else "Removed"
        console.print(f"{verb} {len(result.removed)} stale files")
    for path in result.files:
        console.print(f"  {path}", highlight=False)
    tiers = ", ".join(tier.label for tier in result.tiers)
    console.print(f"{prefix} {result.file_count} files ({tiers})")


@app.command()
def preview(
    ctx: typer.Context,
    profile: str = typer.Option("default", "--profile", help="Configuration profile"),
    style: Optional[str] = typer.Option(None, "--style", help="sheet, grid or both (default: preview.styles)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Plan layouts without writing anything")
):
    """Generate preview images (sheet/grid)."""
    if style is not None and style not in ("sheet", "grid", "both"):
        console.print(f"[red]Invalid style:[/red] {escape(style)} (expected sheet, grid or both)")
        raise typer.Exit(1)

    config = _load_config(ctx, profile)

    try:
        with _spinner() as progress:
            task = progress.add_task("Generating previews...", total=None)

            def on_state(transition: Transition):
                progress.update(task, description=f"preview: {transition}")

            result = run_preview(config, style=style, dry_run=dry_run, listener=on_state)
    except WelderError as e:
        console.print(f"[red]Preview failed:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    table = Table()
    table.add_column("Style", style="cyan")
    table.add_column("Canvas", style="green")
    table.add_column("Items")
    for preview_style, plan in result.plans.items():
        table.add_row(preview_style.value, f"{plan.canvas_width}x{plan.canvas_height}",
                      str(len(plan.placements)))
    console.print(table)

    for warning in result.diagnostics:
        console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")

    prefix = "[yellow]DRY RUN:[/yellow] Would write" if dry_run else "[green]✓[/green] Wrote"
    for path in result.files:
        console.print(f"{prefix} {path}", highlight=False)


@app.command()
def package(
    ctx: typer.Context,
    profile: str = typer.Option("default", "--profile", help="Configuration profile"),
    out: Optional[Path] = typer.Option(None, "--out", help="Archive path"),
    include_previews: bool = typer.Option(False, "--include-previews", help="Also package dist/previews")
):
    """Create a versioned zip in dist/package/."""
    config = _load_config(ctx, profile)

    try:
        result = package_outputs(config, out=out, include_previews=include_previews)
    except WelderError as e:
        console.print(f"[red]Packaging failed:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] Packaged {len(result.entries)} entries into {result.archive}",
                  highlight=False)
    console.print(f"  sha256 {result.sha256}", highlight=False)


@app.command()
def publish(
    ctx: typer.Context,
    profile: str = typer.Option("default", "--profile", help="Configuration profile"),
    channel: Optional[str] = typer.Option(None, "--channel", help="itch.io channel"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the butler command without running it"),
    yes: bool = typer.Option(False, "--yes", help="Do not ask for confirmation")
):
    """Package + publish to itch.io via butler."""
    config = _load_config(ctx, profile)

    if not dry_run and not yes:
        target = f"{config.publish.target}:{channel or config.publish.channel}"
        if not typer.confirm(f"Publish {config.pack.name} {config.pack.semver} to {target}?"):
            console.print("[yellow]Aborted.[/yellow]")
            raise typer.Exit(1)

    try:
        result = publish_package(config, channel=channel, dry_run=dry_run)
    except WelderError as e:
        console.print(f"[red]Publish failed:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    command = " ".join(result.command)
    if result.dry_run:
        console.print(f"[yellow]DRY RUN:[/yellow] Would run: {command}", highlight=False)
    else:
        console.print(f"[green]✓[/green] Published with: {command}", highlight=False)
        if result.output:
            console.print(result.output, highlight=False)


if __name__ == "__main__":
    app()
