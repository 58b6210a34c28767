"""
Sharp RDD toolkit: unified CLI.

Usage:
    rdd list-studies
    rdd mlda <command>
    rdd config show
    rdd config set <key> <value>
    rdd config doctor
"""

import re
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from studies.drinking_age.src.cli import app as mlda_app

app = typer.Typer(
    name="rdd",
    help="Sharp Regression Discontinuity estimation and sensitivity checks",
    no_args_is_help=True,
)
config_app = typer.Typer(
    name="config",
    help="Configuration management commands",
)
app.add_typer(config_app, name="config")
app.add_typer(mlda_app, name="mlda", help="Minimum legal drinking age study commands")

console = Console()


@app.command("list-studies")
def list_studies():
    """List all available studies."""
    table = Table(title="RDD Studies")

    table.add_column("Study", style="cyan", no_wrap=True)
    table.add_column("Description", style="white")
    table.add_column("CLI", style="yellow")

    table.add_row(
        "drinking_age",
        "Legal drinking age 21 -> mortality by cause",
        "rdd mlda",
    )

    console.print(table)


# ============================================================================
# Config Commands
# ============================================================================

@config_app.command("show")
def config_show():
    """Show current configuration."""
    from config.settings import get_settings

    settings = get_settings()

    table = Table(title="RDD Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("cutpoint", f"{settings.cutpoint:g}")
    table.add_row("polynomial_order", str(settings.polynomial_order))
    table.add_row("slope_mode", settings.slope_mode)
    table.add_row("confidence_level", f"{settings.confidence_level:g}")
    table.add_row("cov_type", settings.cov_type)
    table.add_row("strict_range", str(settings.strict_range))
    table.add_row("", "")
    lower, upper = settings.restriction_bandwidth
    table.add_row("restriction_bandwidth", f"[{lower:g}, {upper:g}]")
    table.add_row("placebo_trim", str(settings.placebo_trim))
    table.add_row("placebo_workers", str(settings.placebo_workers))
    table.add_row("", "")
    table.add_row("running_variable", settings.running_variable)
    table.add_row("outcomes", ", ".join(settings.outcomes))
    table.add_row("dataset_path", str(settings.dataset_path))
    table.add_row("dataset_url", settings.dataset_url or "[dim]<not set>[/dim]")
    table.add_row("model_ladder", str(settings.ladder_path))
    table.add_row("output_dir", str(settings.output_dir))
    table.add_row("log_level", settings.log_level)

    console.print(table)


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Configuration key (e.g. CUTPOINT)"),
    value: str = typer.Argument(..., help="New value"),
    env_file: Path = typer.Option(Path(".env"), help="Environment file to edit"),
):
    """Set a configuration value in .env (keys are stored with the RDD_ prefix)."""
    content = env_file.read_text() if env_file.exists() else ""
    key_upper = key.upper()
    if not key_upper.startswith("RDD_"):
        key_upper = f"RDD_{key_upper}"

    # Replace existing line or append
    pattern = re.compile(rf"^{re.escape(key_upper)}=.*$", re.MULTILINE)
    if pattern.search(content):
        content = pattern.sub(lambda _: f"{key_upper}={value}", content)
    else:
        content = content.rstrip("\n") + ("\n" if content else "") + f"{key_upper}={value}\n"

    env_file.write_text(content)
    console.print(f"[green]Set {key_upper} in {env_file}[/green]")


@config_app.command("doctor")
def config_doctor():
    """Diagnose configuration: dataset, model ladder, settings consistency."""
    from config.settings import get_settings
    from shared.data.mlda import MLDALoader
    from studies.drinking_age.src.analysis import load_ladder

    settings = get_settings()
    issues: list[str] = []
    ok: list[str] = []

    console.print(Panel("[bold cyan]Configuration Doctor[/bold cyan]"))

    # Dataset
    if settings.dataset_path.exists():
        ok.append(f"Dataset exists: {settings.dataset_path}")
        try:
            loader = MLDALoader(running_variable=settings.running_variable)
            available = loader.available_outcomes()
            x_min, x_max = loader.fetch()[settings.running_variable].agg(["min", "max"])
            if x_min <= settings.cutpoint <= x_max:
                ok.append(f"Cutpoint {settings.cutpoint:g} inside [{x_min:g}, {x_max:g}]")
            else:
                issues.append(f"Cutpoint {settings.cutpoint:g} outside [{x_min:g}, {x_max:g}]")
            missing = [o for o in settings.outcomes if o not in available]
            if missing:
                issues.append(f"Configured outcomes missing from dataset: {missing}")
            else:
                ok.append(f"All {len(settings.outcomes)} configured outcomes present")
        except ValueError as e:
            issues.append(str(e))
    elif settings.dataset_url:
        ok.append(f"Dataset will be downloaded from {settings.dataset_url}")
    else:
        issues.append(f"Dataset not found: {settings.dataset_path} (and RDD_DATASET_URL not set)")

    # Model ladder
    if settings.ladder_path.exists():
        try:
            ladder = load_ladder(settings.ladder_path)
            ok.append(f"Model ladder lists {len(ladder)} specifications")
        except ValueError as e:
            issues.append(str(e))
    else:
        issues.append(f"Model ladder not found: {settings.ladder_path} (built-in ladder used)")

    # Restriction window
    lower, upper = settings.restriction_bandwidth
    if lower <= settings.cutpoint <= upper:
        ok.append(f"Restriction window [{lower:g}, {upper:g}] contains the cutpoint")
    else:
        issues.append(f"Restriction window [{lower:g}, {upper:g}] excludes cutpoint {settings.cutpoint:g}")

    # Display results
    for item in ok:
        console.print(f"  [green]OK[/green]  {item}")
    for item in issues:
        console.print(f"  [yellow]!![/yellow]  {item}")

    console.print()
    if not issues:
        console.print("[bold green]All checks passed.[/bold green]")
    else:
        console.print(f"[yellow]{len(issues)} issue(s) found.[/yellow]")


if __name__ == "__main__":
    app()
