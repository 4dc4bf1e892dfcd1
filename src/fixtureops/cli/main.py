"""fixtureops command line interface."""

from __future__ import annotations

import json
import logging

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from fixtureops import __version__
from fixtureops.config import FixtureOpsSettings, load_settings
from fixtureops.errors import BinaryNotFoundError, FixtureOpsError
from fixtureops.infra.docker import sweep_orphans
from fixtureops.live.binary import locate_binary
from fixtureops.preflight import AvailabilityProbe, AvailabilityResult, AvailabilityStatus, SystemKind
from fixtureops.telemetry.report import LiveCheckReport

console = Console()


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _fail(error: FixtureOpsError) -> None:
    console.print(
        Panel(Text(error.format_verbose()), title=f"[red]{error.__class__.__name__}[/red]", border_style="red")
    )
    raise SystemExit(1)


@click.group()
@click.version_option(__version__, prog_name="fixtureops")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    envvar="FIXTUREOPS_CONFIG",
    help="YAML settings file",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """Manage fixtureops test resources."""
    try:
        settings = load_settings(config_path)
    except FixtureOpsError as e:
        _fail(e)
    setup_logging("DEBUG" if verbose else settings.log_level)
    ctx.obj = settings


def _probe_weaver(settings: FixtureOpsSettings, probe: AvailabilityProbe) -> AvailabilityResult:
    try:
        binary = locate_binary(override=settings.weaver_binary, version=settings.weaver_version)
    except BinaryNotFoundError as e:
        return AvailabilityResult(
            status=AvailabilityStatus.BINARY_NOT_FOUND,
            system=SystemKind.VALIDATION_BINARY,
            message=e.message,
            details={"attempts": e.attempts},
        )
    return probe.check(SystemKind.VALIDATION_BINARY, binary=str(binary))


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.pass_obj
def doctor(settings: FixtureOpsSettings, output_json: bool) -> None:
    """Check that docker and weaver are usable.

    Exit codes:
        0 - Both systems are available
        1 - At least one check failed
    """
    probe = AvailabilityProbe(timeout=settings.probe_timeout, docker_binary=settings.docker_binary)
    results = [
        ("Docker daemon", probe.check(SystemKind.CONTAINER_RUNTIME)),
        ("Weaver binary", _probe_weaver(settings, probe)),
    ]
    failed = sum(1 for _, result in results if not result.available)

    if output_json:
        payload = {
            "checks": [
                {"name": name, "status": result.status.value, "message": result.message}
                for name, result in results
            ],
            "ready": failed == 0,
        }
        click.echo(json.dumps(payload, indent=2))
        raise SystemExit(0 if failed == 0 else 1)

    table = Table(show_header=False, box=None)
    table.add_column("Status", width=3)
    table.add_column("Check", width=16)
    table.add_column("Result")
    for name, result in results:
        if result.available:
            table.add_row("[green]OK[/green]", name, f"[green]{escape(result.message)}[/green]")
        else:
            table.add_row("[red]!![/red]", name, f"[red]{result.status.value}: {escape(result.message)}[/red]")

    console.print("\n[bold blue]fixtureops doctor[/bold blue]")
    console.print(table)

    if failed:
        console.print(f"[red]{failed} check(s) failed[/red]")
        raise SystemExit(1)
    console.print("[green]All checks passed[/green]")


@cli.command()
@click.option("--all-sessions", is_flag=True, help="Also remove containers of running sessions")
@click.pass_obj
def sweep(settings: FixtureOpsSettings, all_sessions: bool) -> None:
    """Remove containers leaked by earlier test runs."""
    try:
        removed = sweep_orphans(all_sessions=all_sessions, docker_binary=settings.docker_binary)
    except FixtureOpsError as e:
        _fail(e)
    if removed:
        console.print(f"Removed {len(removed)} container(s): {', '.join(c[:12] for c in removed)}")
    else:
        console.print("[dim]No orphaned containers[/dim]")


@cli.command()
@click.argument("directory", type=click.Path(file_okay=False), required=False)
@click.pass_obj
def report(settings: FixtureOpsSettings, directory: str | None) -> None:
    """Summarise a weaver live-check report.

    Exits 1 when the report contains violations.
    """
    try:
        parsed = LiveCheckReport.from_report_dir(directory or settings.weaver_output_dir)
    except FixtureOpsError as e:
        _fail(e)

    stats = parsed.statistics
    if stats is not None and stats.total_entities is not None:
        console.print(f"[dim]{stats.total_entities} entities, {stats.total_advisories or 0} advisories[/dim]")

    summary = parsed.violations_summary()
    if parsed.has_violations:
        console.print(f"[red]{escape(summary)}[/red]")
        raise SystemExit(1)
    console.print(f"[green]{escape(summary)}[/green]")


def main() -> None:
    cli()
