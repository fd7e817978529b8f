"""Command-line interface for tariff cost calculations."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import db
from .collectors import octopus_csv
from .config import load_settings
from .errors import TariffCalcError
from .models import Account, IntervalType
from .periods import period_label
from .rates import FlatRateTariff
from .service import TariffService
from .summary import calculation_to_dict, format_calculation_text
from .tariffs import load_tariffs_from_yaml, save_tariffs_to_db

console = Console()

INTERVAL_CHOICES = [t.value.lower() for t in IntervalType]


def handle_errors(func):
    """Report library errors as a red message and a non-zero exit."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except TariffCalcError as err:
            console.print(f"[red]{err}[/red]")
            raise SystemExit(1) from err

    return wrapper


def parse_moment(value: str | None, reference: datetime | None = None) -> datetime:
    """Parse a --date value; naive input takes the timezone of the stored data."""
    moment = datetime.fromisoformat(value) if value else datetime.now(timezone.utc)
    if reference is not None:
        if reference.tzinfo is None and moment.tzinfo is not None:
            moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
        elif reference.tzinfo is not None and moment.tzinfo is None:
            moment = moment.replace(tzinfo=reference.tzinfo)
    return moment


@click.group()
@click.option("--db-path", type=click.Path(), help="Path to SQLite database")
@click.option("--config", "config_path", type=click.Path(), help="Path to tariffs.yaml")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, db_path, config_path, verbose):
    """Tariff calculator - price metered electricity usage over reporting periods."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    ctx.ensure_object(dict)
    try:
        settings = load_settings()
    except ValueError as err:
        raise click.UsageError(str(err)) from err
    if db_path:
        settings.db_path = Path(db_path)
    if config_path:
        settings.config_path = Path(config_path)
    ctx.obj["settings"] = settings
    ctx.obj["db_path"] = settings.db_path


# Database commands
@cli.group()
def database():
    """Database management commands."""
    pass


@database.command("init")
@click.pass_context
def db_init(ctx):
    """Initialize the database schema."""
    settings = ctx.obj["settings"]
    db.init_db(settings.db_path)
    console.print("[green]Database initialized successfully[/green]")

    if settings.config_path and settings.config_path.exists():
        config = load_tariffs_from_yaml(settings.config_path, settings.vat_rate)
        count = save_tariffs_to_db(config, settings.db_path)
        console.print(f"[green]Loaded {count} rate(s) from {settings.config_path}[/green]")


@database.command("stats")
@click.pass_context
def db_stats(ctx):
    """Show database statistics."""
    stats = db.get_stats(ctx.obj["db_path"])

    table = Table(title="Database Statistics")
    table.add_column("Category", style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("Range")

    consumption = stats["consumption"]
    table.add_row(
        "Consumption slots",
        str(consumption["count"]),
        f"{consumption['earliest'] or 'N/A'} → {consumption['latest'] or 'N/A'}",
    )
    table.add_row("  └ total kWh", f"{consumption['total_kwh']:.3f}", "")

    for code, counts in stats["rates_by_tariff"].items():
        table.add_row(
            f"Rates {code}",
            str(counts["unit_rates"]),
            f"{counts['standing_charges']} standing charge(s)",
        )

    table.add_row("Cached calculations", str(stats["tariff_calculations"]["count"]), "")

    console.print(table)


# Import commands
@cli.group("import")
def import_cmd():
    """Import data from various sources."""
    pass


@import_cmd.command("consumption")
@click.option("--csv", "csv_path", type=click.Path(exists=True), help="Path to consumption CSV export")
@click.pass_context
def import_consumption(ctx, csv_path):
    """Import half-hourly consumption from CSV."""
    if not csv_path:
        console.print("[red]Please specify --csv path[/red]")
        return

    db.init_db(ctx.obj["db_path"])
    result = octopus_csv.import_from_csv(Path(csv_path), ctx.obj["db_path"])
    console.print(f"[green]Imported {result['imported']} readings[/green]")
    if result["skipped"]:
        console.print(f"[yellow]Skipped {result['skipped']} duplicates[/yellow]")


# Tariff commands
@cli.group()
def tariff():
    """Tariff management commands."""
    pass


@tariff.command("load")
@click.pass_context
def tariff_load(ctx):
    """Load tariff rates from the YAML config into the database."""
    settings = ctx.obj["settings"]
    if not settings.config_path or not settings.config_path.exists():
        console.print("[red]No tariffs.yaml found; pass --config or set TARIFFCALC_CONFIG[/red]")
        return

    config = load_tariffs_from_yaml(settings.config_path, settings.vat_rate)
    db.init_db(settings.db_path)
    count = save_tariffs_to_db(config, settings.db_path)
    console.print(f"[green]Loaded {count} new rate(s) for {', '.join(config.tariff_codes) or 'no tariffs'}[/green]")


def _resolve_target(settings, tariff_code, manual, unit_rate, standing_charge):
    """Pick what to price: a manual plan, a tariff code, or the configured account."""
    config = None
    if settings.config_path and settings.config_path.exists():
        config = load_tariffs_from_yaml(settings.config_path, settings.vat_rate)

    if unit_rate is not None:
        plan = FlatRateTariff.from_exc_vat(unit_rate, standing_charge or 0.0, settings.vat_rate)
        return plan.tariff_code, plan
    if manual:
        if config is None or config.manual is None:
            raise click.UsageError("No manual plan configured; pass --unit-rate or add a 'manual' section")
        return config.manual.tariff_code, config.manual
    if tariff_code:
        return tariff_code, None
    if config is not None and config.account is not None:
        return config.account, None
    raise click.UsageError("Specify --tariff, --manual or configure an account in tariffs.yaml")


@cli.command()
@click.option("--date", help="Date inside the period (YYYY-MM-DD), defaults to now")
@click.option(
    "--interval",
    type=click.Choice(INTERVAL_CHOICES, case_sensitive=False),
    default="monthly",
    help="Reporting interval",
)
@click.option("--billing-day", type=int, help="Day of month billing periods start (1-31)")
@click.option("--tariff", "tariff_code", help="Tariff code to price with")
@click.option("--manual", is_flag=True, help="Use the manual flat-rate plan from config")
@click.option("--unit-rate", type=float, help="Manual unit rate, pence/kWh exc VAT")
@click.option("--standing-charge", type=float, help="Manual standing charge, pence/day exc VAT")
@click.option("--refresh", is_flag=True, help="Recalculate even if a cached result exists")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
@handle_errors
def cost(ctx, date, interval, billing_day, tariff_code, manual, unit_rate, standing_charge, refresh, as_json):
    """Calculate the cost of a billing period."""
    settings = ctx.obj["settings"]
    if billing_day is not None:
        settings.billing_day = billing_day

    target, plan = _resolve_target(settings, tariff_code, manual, unit_rate, standing_charge)
    db.init_db(settings.db_path)
    bounds = db.load_coverage_bounds(settings.db_path)
    moment = parse_moment(date, bounds[0] if bounds else None)
    interval_type = IntervalType.parse(interval)

    service = TariffService.from_settings(settings, manual=plan)
    calculation = asyncio.run(service.calculate(moment, interval_type, target, force=refresh))
    period = service.boundary(moment, interval_type)
    data = calculation_to_dict(calculation, period, interval_type, settings.billing_day)
    data["tariff"] = target.cache_code if isinstance(target, Account) else target

    if as_json:
        console.print(json.dumps(data, indent=2))
    else:
        console.print(format_calculation_text(data))


@cli.command()
@click.option("--date", help="Date inside the first period (YYYY-MM-DD), defaults to now")
@click.option(
    "--interval",
    type=click.Choice(INTERVAL_CHOICES, case_sensitive=False),
    default="monthly",
    help="Reporting interval",
)
@click.option("--billing-day", type=int, help="Day of month billing periods start (1-31)")
@click.option("--count", default=6, help="Number of periods to list, going backwards")
@click.pass_context
@handle_errors
def periods(ctx, date, interval, billing_day, count):
    """List reporting periods and whether consumption data covers them."""
    settings = ctx.obj["settings"]
    if billing_day is not None:
        settings.billing_day = billing_day

    db.init_db(settings.db_path)
    bounds = db.load_coverage_bounds(settings.db_path)
    moment = parse_moment(date, bounds[0] if bounds else None)
    interval_type = IntervalType.parse(interval)
    service = TariffService.from_settings(settings)

    table = Table(title=f"{interval_type.value.title()} periods")
    table.add_column("Period", style="cyan")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Data")

    for step in range(count):
        period = service.boundary(service.shift(moment, interval_type, -step), interval_type)
        if bounds is None or not period.overlaps_with_data(*bounds):
            status = "[dim]none[/dim]"
        elif period.start >= bounds[0] and period.end <= bounds[1]:
            status = "[green]complete[/green]"
        else:
            status = "[yellow]partial[/yellow]"
        table.add_row(
            period_label(period, interval_type, settings.billing_day),
            f"{period.start:%Y-%m-%d %H:%M}",
            f"{period.end:%Y-%m-%d %H:%M}",
            status,
        )

    console.print(table)

    previous, following = asyncio.run(service.navigation(moment, interval_type))
    if previous or following:
        console.print(
            f"Navigation: previous {previous.date() if previous else '-'}, "
            f"next {following.date() if following else '-'}"
        )


if __name__ == "__main__":
    cli()
