"""
CLI for the minimum legal drinking age study.

Usage:
    rdd mlda estimate --outcome all
    rdd mlda compare --outcome mva
    rdd mlda placebo --outcome all --workers 4
    rdd mlda restrict --outcome all --lower 20 --upper 22
    rdd mlda report --output outputs/mlda
"""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

app = typer.Typer(
    name="mlda",
    help="Minimum Legal Drinking Age RDD Study",
    no_args_is_help=True,
)
console = Console()


def setup_logging(level: str | None = None) -> None:
    """Configure logging with rich output."""
    from config.settings import get_settings

    logging.basicConfig(
        level=level or get_settings().log_level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def _settings(**overrides):
    from pydantic import ValidationError

    from config.settings import Settings, get_settings

    settings = get_settings()
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if not overrides:
        return settings
    try:
        return Settings(**{**settings.model_dump(), **overrides})
    except ValidationError as e:
        _fail(e)


def _observations(outcome: str, data: Optional[Path], settings):
    from shared.data.mlda import MLDALoader

    loader = MLDALoader(path=data, running_variable=settings.running_variable)
    try:
        return loader.observations(outcome)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)


def _fail(error: Exception) -> None:
    console.print(f"[red]{type(error).__name__}: {escape(str(error))}[/red]")
    raise typer.Exit(1)


@app.command("estimate")
def estimate(
    outcome: str = typer.Option("all", help="Outcome column"),
    cutpoint: Optional[float] = typer.Option(None, help="Cutpoint (default from settings)"),
    order: Optional[int] = typer.Option(None, help="Polynomial order"),
    slope_mode: Optional[str] = typer.Option(None, help="shared | separate"),
    data: Optional[Path] = typer.Option(None, help="Dataset path"),
):
    """Estimate the discontinuity with a single specification."""
    from shared.rdd.errors import RDDError
    from studies.drinking_age.src.analysis import RDDAnalysis

    setup_logging()
    settings = _settings(cutpoint=cutpoint, polynomial_order=order, slope_mode=slope_mode)
    observations = _observations(outcome, data, settings)

    try:
        fit = RDDAnalysis(settings=settings).estimate(observations)
    except RDDError as e:
        _fail(e)

    console.print(f"\n[bold cyan]Sharp RDD: {outcome}[/bold cyan] ({fit.spec.label})\n")

    table = Table(title="Coefficients")
    table.add_column("Term", style="cyan")
    table.add_column("Estimate", justify="right")
    table.add_column("Std. Error", justify="right")
    for name, (value, se) in fit.coefficient_table().items():
        style = "bold" if name == "treated" else None
        table.add_row(name, f"{value:.4f}", f"{se:.4f}", style=style)
    console.print(table)

    level = int(round(fit.confidence_level * 100))
    console.print(f"\nDiscontinuity: [bold]{fit.discontinuity_estimate:.4f}[/bold]")
    console.print(f"{level}% CI: [{fit.ci_low:.4f}, {fit.ci_high:.4f}]")
    console.print(f"AIC: {fit.aic:.2f}   N: {fit.n_observations}\n")


@app.command("compare")
def compare(
    outcome: str = typer.Option("all", help="Outcome column"),
    cutpoint: Optional[float] = typer.Option(None, help="Cutpoint (default from settings)"),
    data: Optional[Path] = typer.Option(None, help="Dataset path"),
):
    """Rank the model ladder by AIC."""
    from shared.rdd.errors import RDDError
    from studies.drinking_age.src.analysis import RDDAnalysis

    setup_logging()
    settings = _settings(cutpoint=cutpoint)
    observations = _observations(outcome, data, settings)

    try:
        result = RDDAnalysis(settings=settings).run_outcome(
            observations, outcome, run_placebo=False, run_restriction=False,
        )
    except RDDError as e:
        _fail(e)

    table = Table(title=f"Model Comparison: {outcome}")
    table.add_column("Rank", justify="right")
    table.add_column("Model", style="cyan")
    table.add_column("Discontinuity", justify="right")
    table.add_column("Std. Error", justify="right")
    table.add_column("AIC", justify="right")
    table.add_column("dAIC", justify="right")
    table.add_column("Weight", justify="right")
    for entry in result.ranking:
        fit = entry.fit
        table.add_row(
            str(entry.rank),
            entry.label,
            f"{fit.discontinuity_estimate:.4f}",
            f"{fit.discontinuity_se:.4f}",
            f"{fit.aic:.2f}",
            f"{entry.delta_aic:.2f}",
            f"{entry.akaike_weight:.3f}",
        )
    console.print(table)

    for failure in result.failures:
        console.print(f"[yellow]{failure.label}: {failure.reason} ({escape(failure.message)})[/yellow]")


@app.command("placebo")
def placebo(
    outcome: str = typer.Option("all", help="Outcome column"),
    trim: Optional[int] = typer.Option(None, help="Distinct extreme values dropped from the grid"),
    workers: Optional[int] = typer.Option(None, help="Worker threads"),
    data: Optional[Path] = typer.Option(None, help="Dataset path"),
    output: Optional[Path] = typer.Option(None, help="Write the profile to CSV"),
):
    """Sweep placebo cutpoints over the observed age grid."""
    from shared.rdd.errors import RDDError
    from studies.drinking_age.src.analysis import RDDAnalysis

    setup_logging()
    settings = _settings(placebo_trim=trim, placebo_workers=workers)
    observations = _observations(outcome, data, settings)

    try:
        analysis = RDDAnalysis(settings=settings)
        profile = analysis.sweeper.sweep(
            observations, analysis.cutpoint, order=analysis.order, slope_mode=analysis.slope_mode,
        )
    except RDDError as e:
        _fail(e)

    table = Table(title=f"Placebo Cutpoints: {outcome}")
    table.add_column("Cutpoint", justify="right")
    table.add_column("LATE", justify="right")
    table.add_column("CI", justify="right")
    table.add_column("Position")
    for row in profile:
        style = "bold green" if row.position.value == "true_cutpoint" else None
        table.add_row(
            f"{row.cutpoint:.3f}",
            f"{row.local_average_treatment_effect:.4f}",
            f"[{row.ci_low:.4f}, {row.ci_high:.4f}]",
            row.position.value,
            style=style,
        )
    console.print(table)

    if profile.omitted:
        console.print(f"[yellow]Omitted {len(profile.omitted)} cutpoint(s):[/yellow]")
        for skipped in profile.omitted:
            console.print(f"  {skipped.cutpoint:g}: {escape(skipped.reason)}")

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        profile.to_frame().to_csv(output, index=False)
        console.print(f"Saved placebo profile to {output}")


@app.command("restrict")
def restrict(
    outcome: str = typer.Option("all", help="Outcome column"),
    lower: Optional[float] = typer.Option(None, help="Inclusive lower bound"),
    upper: Optional[float] = typer.Option(None, help="Inclusive upper bound"),
    data: Optional[Path] = typer.Option(None, help="Dataset path"),
):
    """Re-estimate on a restricted window around the cutpoint."""
    from shared.rdd.errors import RDDError
    from studies.drinking_age.src.analysis import RDDAnalysis

    setup_logging()
    settings = _settings()
    default_lower, default_upper = settings.restriction_bandwidth
    lower = default_lower if lower is None else lower
    upper = default_upper if upper is None else upper
    observations = _observations(outcome, data, settings)

    try:
        analysis = RDDAnalysis(settings=settings)
        fit = analysis.restrictor.fit(
            observations, analysis.cutpoint, lower, upper, analysis.order, analysis.slope_mode,
        )
    except RDDError as e:
        _fail(e)

    console.print(f"\n[bold cyan]Restricted sample [{lower:g}, {upper:g}]: {outcome}[/bold cyan]\n")
    console.print(f"Discontinuity: [bold]{fit.discontinuity_estimate:.4f}[/bold]")
    console.print(f"CI: [{fit.ci_low:.4f}, {fit.ci_high:.4f}]")
    console.print(f"N: {fit.n_observations} (below={fit.n_below}, above={fit.n_above})\n")


@app.command("report")
def report(
    outcomes: Optional[str] = typer.Option(None, help="Comma-separated outcomes (default from settings)"),
    data: Optional[Path] = typer.Option(None, help="Dataset path"),
    output: Optional[Path] = typer.Option(None, help="Directory for summary and CSV outputs"),
):
    """Run the full walkthrough for several outcomes."""
    from shared.data.mlda import MLDALoader
    from shared.rdd.errors import RDDError
    from shared.rdd.scoring import ModelScorer
    from studies.drinking_age.src.analysis import RDDAnalysis

    setup_logging()
    settings = _settings()
    loader = MLDALoader(path=data, running_variable=settings.running_variable)
    try:
        df = loader.fetch()
    except (FileNotFoundError, ValueError) as e:
        _fail(e)

    selected = [o.strip() for o in outcomes.split(",")] if outcomes else None
    try:
        results = RDDAnalysis(settings=settings).run_study(df, selected)
    except RDDError as e:
        _fail(e)

    for result in results.values():
        console.print(result.summary())

    if output:
        output.mkdir(parents=True, exist_ok=True)
        for name, result in results.items():
            (output / f"{name}_summary.txt").write_text(result.summary())
            ModelScorer.to_frame(result.ranking).to_csv(output / f"{name}_models.csv", index=False)
            if result.placebo is not None:
                result.placebo.to_frame().to_csv(output / f"{name}_placebo.csv", index=False)
        console.print(f"\nSaved {len(results)} outcome reports to {output}")
