"""Rich command-line interface powered by Typer."""

from __future__ import annotations

import logging
import shutil
import time
from concurrent.futures import TimeoutError as FutureTimeout
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from mosaic_creator.config import (
    MosaicSettings,
    PatternKind,
    parse_cell_size,
    parse_print_size,
    parse_ratio,
)
from mosaic_creator.errors import GenerationCancelled, MosaicError
from mosaic_creator.generator import MosaicGenerator
from mosaic_creator.plan import plan_mosaic
from mosaic_creator.progress import CancellationToken, GenerationProgress

app = typer.Typer(
    name="mosaic-creator",
    help="Build print-ready photomosaics from a folder of cell photos.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=True)],
    )


def _collect_images(folder: Path, extensions: frozenset[str]) -> list[Path]:
    if not folder.exists():
        return []
    return sorted(
        f for f in folder.iterdir()
        if f.is_file() and f.suffix.lower() in extensions
    )


def _build_settings(
    print_size: str,
    cell_size: str,
    color_change: float,
    pattern: PatternKind,
    ratio: str,
    use_all: bool,
    mirror: bool,
    spacing: int,
    color_space: str,
    output_format: str,
    report: bool,
) -> MosaicSettings:
    try:
        return MosaicSettings(
            print_size=parse_print_size(print_size),
            cell_size=parse_cell_size(cell_size),
            color_change_percent=color_change,
            pattern=pattern,
            parquet_ratio=parse_ratio(ratio),
            use_all_images=use_all,
            mirror_images=mirror,
            duplicate_spacing=spacing,
            color_space=color_space,
            output_format=output_format,
            write_usage_report=report,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


# Defaults come from MosaicSettings - single source of truth
_DEFAULTS = MosaicSettings()
_DEFAULT_RATIO = "{}:{}".format(*_DEFAULTS.parquet_ratio)


# -- generate command --------------------------------------------------

@app.command()
def generate(
    target: Path = typer.Argument(..., help="Photograph to reproduce"),
    cells_dir: Path = typer.Argument(..., help="Folder with cell photos"),
    output: Path = typer.Option(Path("output/mosaic.png"), "--output", "-o"),
    print_size: str = typer.Option(
        _DEFAULTS.print_size.label, "--print-size", "-s",
        help="Preset (e.g. '20x30') or custom WxH in inches",
    ),
    cell_size: str = typer.Option(
        _DEFAULTS.cell_size.label, "--cell-size", "-c",
        help="Preset (e.g. '15mm') or edge length in millimetres",
    ),
    color_change: float = typer.Option(
        _DEFAULTS.color_change_percent, "--color-change",
        help="0-100, how far tiles are tinted toward the target",
    ),
    pattern: PatternKind = typer.Option(_DEFAULTS.pattern, "--pattern", "-p"),
    ratio: str = typer.Option(_DEFAULT_RATIO, "--ratio", help="Parquet landscape:portrait ratio"),
    use_all: bool = typer.Option(
        _DEFAULTS.use_all_images, "--use-all/--no-use-all",
        help="Place every photo once before repeating any",
    ),
    mirror: bool = typer.Option(
        _DEFAULTS.mirror_images, "--mirror/--no-mirror", help="Offer mirrored copies",
    ),
    spacing: int = typer.Option(
        _DEFAULTS.duplicate_spacing, "--spacing",
        help="Minimum cell distance between repeats of a photo",
    ),
    color_space: str = typer.Option(_DEFAULTS.color_space, "--color-space", help="'rgb' or 'lab'"),
    report: bool = typer.Option(
        _DEFAULTS.write_usage_report, "--report/--no-report", help="Write a usage CSV",
    ),
    workers: int | None = typer.Option(None, "--workers", "-w", help="Worker threads"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Render TARGET as a mosaic of the photos in CELLS_DIR."""
    _setup_logging(verbose)

    output_format = "jpeg" if output.suffix.lower() in {".jpg", ".jpeg"} else "png"
    settings = _build_settings(
        print_size, cell_size, color_change, pattern, ratio,
        use_all, mirror, spacing, color_space, output_format, report,
    )

    cells = _collect_images(cells_dir, settings.SUPPORTED_EXTENSIONS)
    if not cells:
        console.print(f"\n[yellow]No images found in {cells_dir}/[/yellow]")
        raise typer.Exit(1)

    output.parent.mkdir(parents=True, exist_ok=True)

    console.print(Panel.fit(
        f"[bold]MOSAIC CREATOR[/bold]\n"
        f"Print: {settings.print_size.label} in  |  Cell: {settings.cell_size.label}\n"
        f"Pattern: {settings.pattern.value}  |  Colour change: {settings.color_change_percent:g}%\n"
        f"Cell photos: {len(cells)}",
        border_style="cyan",
    ))

    token = CancellationToken()
    t_total = time.perf_counter()
    with MosaicGenerator(max_workers=workers) as generator, Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
    ) as bar:
        task = bar.add_task("starting", total=100)

        def _on_progress(event: GenerationProgress) -> None:
            bar.update(task, completed=event.percent, description=event.stage.value)

        future = generator.submit(
            target, cells, settings, output.parent, progress=_on_progress, cancel=token,
        )
        try:
            while True:
                try:
                    result = future.result(timeout=0.2)
                    break
                except FutureTimeout:
                    continue
                except KeyboardInterrupt:
                    token.cancel()
        except GenerationCancelled:
            console.print("[yellow]Cancelled - no output written[/yellow]")
            raise typer.Exit(130) from None
        except MosaicError as exc:
            console.print(f"[red]✗[/red] {exc}")
            raise typer.Exit(1) from exc

    shutil.move(result.output_file_path, output)
    if result.usage_report_path is not None:
        report_path = output.with_name(f"{output.stem}_usage.csv")
        shutil.move(result.usage_report_path, report_path)
        console.print(f"  Usage report: {report_path}")

    for failure in result.decode_failures:
        console.print(f"  [yellow]skipped[/yellow] {failure.path.name}: {failure.reason}")

    elapsed = time.perf_counter() - t_total
    console.print(
        f"[green]✓[/green] Saved to {output}  "
        f"[dim]{result.output_width}x{result.output_height} px  "
        f"{result.grid_columns}x{result.grid_rows} cells  "
        f"{result.used_cell_photos}/{result.total_cell_photos} photos  "
        f"time={elapsed:.1f}s[/dim]"
    )


# -- plan command ------------------------------------------------------

@app.command()
def plan(
    target: Path = typer.Argument(..., help="Photograph to reproduce"),
    cells_dir: Path = typer.Argument(..., help="Folder with cell photos"),
    print_size: str = typer.Option(_DEFAULTS.print_size.label, "--print-size", "-s"),
    cell_size: str = typer.Option(_DEFAULTS.cell_size.label, "--cell-size", "-c"),
    pattern: PatternKind = typer.Option(_DEFAULTS.pattern, "--pattern", "-p"),
    ratio: str = typer.Option(_DEFAULT_RATIO, "--ratio"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Show grid size and photo reuse for TARGET without rendering."""
    _setup_logging(verbose)

    settings = _build_settings(
        print_size, cell_size, _DEFAULTS.color_change_percent, pattern, ratio,
        _DEFAULTS.use_all_images, _DEFAULTS.mirror_images, _DEFAULTS.duplicate_spacing,
        _DEFAULTS.color_space, _DEFAULTS.output_format, False,
    )
    cells = _collect_images(cells_dir, settings.SUPPORTED_EXTENSIONS)
    try:
        result = plan_mosaic(settings, target, cells)
    except MosaicError as exc:
        console.print(f"[red]✗[/red] {exc}")
        raise typer.Exit(1) from exc

    table = Table(title="Mosaic plan", show_header=False)
    table.add_row("Output", f"{result.output_width}x{result.output_height} px")
    table.add_row("Grid", f"{result.grid_columns} x {result.grid_rows}")
    table.add_row("Cells", str(result.total_cells))
    if pattern is PatternKind.PARQUET:
        table.add_row("Landscape / portrait cells", f"{result.landscape_cells} / {result.portrait_cells}")
    table.add_row(
        "Photos (L / P / S)",
        f"{result.total_photos} ({result.landscape_photos} / "
        f"{result.portrait_photos} / {result.square_photos})",
    )
    if result.unreadable_photos:
        table.add_row("Unreadable", str(result.unreadable_photos))
    table.add_row("Uses per photo", str(result.required_uses))
    table.add_row("Recommended max uses", str(result.recommended_max_uses))
    if result.suggested_ratio is not None:
        landscape, portrait = result.suggested_ratio
        table.add_row("Suggested ratio", f"{landscape}:{portrait}")
    console.print(table)


if __name__ == "__main__":
    app()
