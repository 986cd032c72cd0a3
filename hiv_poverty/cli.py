"""
CLI for the HIV burden / poverty analysis.
"""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from config.settings import Settings, get_settings

app = typer.Typer(
    name="hivpov",
    help="HIV burden concentration and multidimensional poverty analysis",
)
console = Console()


def setup_logging(level: str | None = None) -> None:
    """Configure logging with rich output."""
    logging.basicConfig(
        level=level or get_settings().log_level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _settings(**overrides) -> Settings:
    """Settings with CLI options applied on top of env/.env values."""
    overrides = {k: v for k, v in overrides.items() if v is not None}
    return Settings(**overrides) if overrides else get_settings()


def _share_table(selection) -> Table:
    table = Table(
        title=f"Burden by country, {selection.reference_year} "
        f"(threshold {selection.threshold:.0%})"
    )
    table.add_column("Rank", justify="right")
    table.add_column("Country", style="cyan")
    table.add_column("PLHIV", justify="right")
    table.add_column("Cum. share", justify="right")
    table.add_column("Selected", style="green")

    for row in selection.summary.itertuples(index=False):
        table.add_row(
            str(row.rank),
            row.country,
            f"{row.plhiv_latest:,.0f}",
            f"{row.cum_share:.3f}",
            "yes" if row.rank <= selection.cutoff_position else "",
        )
    return table


@app.command("select-countries")
def select_countries(
    burden_path: Path = typer.Argument(..., help="Burden estimates CSV"),
    threshold: Optional[float] = typer.Option(None, help="Cumulative burden share to cover"),
    reference_year: Optional[int] = typer.Option(None, help="Selection year (default: latest)"),
):
    """Select the countries that jointly hold the threshold share of burden."""
    setup_logging()

    from hiv_poverty.data.loaders import load_burden_table
    from hiv_poverty.data.normalize import normalize_burden
    from hiv_poverty.model.selection import select_top_countries

    try:
        settings = _settings(burden_threshold=threshold, reference_year=reference_year)
        burden = normalize_burden(load_burden_table(burden_path))
        selection = select_top_countries(
            burden,
            threshold=settings.burden_threshold,
            reference_year=settings.reference_year,
        )
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    console.print(_share_table(selection))
    console.print(
        f"\n[bold]{len(selection)} countries[/bold] cover "
        f"{selection.covered_share:.1%}: {', '.join(selection.countries)}"
    )


@app.command()
def merge(
    burden_path: Path = typer.Argument(..., help="Burden estimates CSV"),
    poverty_path: Path = typer.Argument(..., help="Poverty workbook or CSV"),
    threshold: Optional[float] = typer.Option(None, help="Cumulative burden share to cover"),
    reference_year: Optional[int] = typer.Option(None, help="Selection year (default: latest)"),
    output: Optional[Path] = typer.Option(None, help="Write merged rows to this CSV"),
):
    """Merge the selected countries' burden series with the poverty data."""
    setup_logging()

    from hiv_poverty.data.loaders import load_burden_table, load_poverty_table
    from hiv_poverty.data.merge import merge_datasets, merge_diagnostics, subset_series
    from hiv_poverty.data.normalize import normalize_burden, normalize_poverty
    from hiv_poverty.model.selection import select_top_countries

    try:
        settings = _settings(burden_threshold=threshold, reference_year=reference_year)
        burden = normalize_burden(load_burden_table(burden_path))
        poverty = normalize_poverty(
            load_poverty_table(poverty_path, header_rows=settings.poverty_header_rows)
        )
        selection = select_top_countries(
            burden,
            threshold=settings.burden_threshold,
            reference_year=settings.reference_year,
        )
        merged = merge_datasets(subset_series(burden, selection), poverty)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    diagnostics = merge_diagnostics(merged)
    console.print(f"[bold]Merged rows: {diagnostics.n_rows}[/bold]")
    console.print(f"Countries: {diagnostics.n_countries}  Years: {diagnostics.n_years}")
    console.print("\nRows per country:")
    for country, count in diagnostics.rows_per_country.items():
        console.print(f"  {country}: {count}")

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        merged.to_csv(output, index=False)
        console.print(f"\nSaved merged rows to {output}")


@app.command()
def analyze(
    burden_path: Optional[Path] = typer.Option(None, help="Burden estimates CSV"),
    poverty_path: Optional[Path] = typer.Option(None, help="Poverty workbook or CSV"),
    threshold: Optional[float] = typer.Option(None, help="Cumulative burden share to cover"),
    reference_year: Optional[int] = typer.Option(None, help="Selection year (default: latest)"),
    output_dir: Optional[Path] = typer.Option(None, help="Output directory"),
):
    """Run selection, merge, model dispatch and association end to end."""
    setup_logging()

    from hiv_poverty.data.loaders import load_burden_table, load_poverty_table
    from hiv_poverty.model.dispatcher import ModelFitError
    from hiv_poverty.pipeline import AnalysisPipeline

    try:
        settings = _settings(burden_threshold=threshold, reference_year=reference_year)
        pipeline = AnalysisPipeline(settings)

        burden_raw = load_burden_table(burden_path) if burden_path else None
        poverty_raw = (
            load_poverty_table(poverty_path, header_rows=settings.poverty_header_rows)
            if poverty_path
            else None
        )

        console.print("[bold]Running analysis...[/bold]")
        result = pipeline.run(burden_raw=burden_raw, poverty_raw=poverty_raw)
    except (FileNotFoundError, ValueError, ModelFitError) as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    console.print(_share_table(result.selection))
    console.print(f"\nMerged rows: {len(result.merged)}")
    console.print(result.model.summary())
    console.print("\n[bold]Association[/bold]")
    console.print(result.association.summary())

    paths = pipeline.save_outputs(result, output_dir)
    console.print(f"\nResults saved to {paths['model_coefficients'].parent}")


if __name__ == "__main__":
    app()
