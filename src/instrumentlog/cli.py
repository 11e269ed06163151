from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from instrumentlog.artifacts.junit import ReportWriter
from instrumentlog.artifacts.schema import find_reports, validate_report
from instrumentlog.config.loader import load_config
from instrumentlog.device.resolver import StaticDeviceResolver, resolve_device
from instrumentlog.errors import ConfigurationError
from instrumentlog.runner.pool import DeviceSession, SessionOutcome, run_sessions

app = typer.Typer(add_completion=False, no_args_is_help=True)
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log per-test details"),
) -> None:
    """Turn recorded instrumentation test events into surefire reports."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _print_outcomes(outcomes: list[SessionOutcome]) -> None:
    table = Table(title="Instrumentation Results", show_lines=False)
    table.add_column("Device")
    table.add_column("Status")
    table.add_column("Tests", justify="right")
    table.add_column("Failures", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Violations", justify="right")
    for outcome in outcomes:
        if outcome.status == "success":
            status = "[green]PASS[/green]"
        elif outcome.status == "failed":
            status = "[red]FAIL[/red]"
        else:
            status = "[yellow]ERROR[/yellow]"
        result = outcome.result
        table.add_row(
            outcome.label,
            status,
            str(result.tests) if result else "-",
            str(result.failures) if result else "-",
            str(result.skipped) if result else "-",
            str(len(outcome.violations)),
        )
    console.print(table)
    for outcome in outcomes:
        if outcome.error:
            console.print(f"[red]{outcome.label}:[/red] {outcome.error}")
        if outcome.result is not None and outcome.result.failure:
            console.print(
                f"[red]{outcome.label} run failed:[/red] {outcome.result.failure}"
            )
        for error in outcome.write_errors:
            console.print(f"[red]Not persisted:[/red] {error}")


@app.command()
def run(
    config: str = typer.Argument(
        ...,
        help="Path to an instrumentlog.yaml file or the directory containing it",
    ),
    output_dir: Optional[str] = typer.Option(
        None,
        help="Output directory override",
    ),
    max_workers: Optional[int] = typer.Option(
        None,
        help="Number of devices processed in parallel",
    ),
) -> None:
    """Replay the recorded event logs of every configured device."""
    try:
        report_config = load_config(Path(config))
    except ConfigurationError as exc:
        console.print(f"[red]Failed to load config:[/red] {exc}")
        raise typer.Exit(code=1)

    writer = ReportWriter(
        Path(output_dir) if output_dir else Path(report_config.output_dir),
        report_suffix=report_config.report_suffix,
    )
    sessions = [
        DeviceSession(
            resolver=device,
            events_path=Path(device.events),
        )
        for device in report_config.devices
    ]
    try:
        outcomes = run_sessions(
            sessions,
            writer,
            max_workers=max_workers or report_config.max_workers,
        )
    except ConfigurationError as exc:
        console.print(f"[red]Invalid run settings:[/red] {exc}")
        raise typer.Exit(code=1)

    _print_outcomes(outcomes)
    console.print(f"Reports written to: {writer.output_root}")
    raise typer.Exit(code=0 if all(outcome.passed for outcome in outcomes) else 1)


@app.command()
def replay(
    events: str = typer.Argument(..., help="JSON Lines file with recorded lifecycle events"),
    serial: str = typer.Option(..., "--serial", help="Device serial number"),
    avd: str = typer.Option("", "--avd", help="Virtual device name, empty for hardware"),
    manufacturer: str = typer.Option("", "--manufacturer", help="Device manufacturer"),
    model: str = typer.Option("", "--model", help="Device model"),
    output_dir: str = typer.Option("instrumentlog_out", "--output-dir", help="Report root directory"),
    suffix: str = typer.Option("", "--suffix", help="Suffix appended to the device directory"),
) -> None:
    """Replay one device's recorded event log."""
    try:
        device = resolve_device(serial, avd_name=avd, manufacturer=manufacturer, model=model)
    except ConfigurationError as exc:
        console.print(f"[red]Invalid device:[/red] {exc}")
        raise typer.Exit(code=1)

    writer = ReportWriter(Path(output_dir), report_suffix=suffix)
    session = DeviceSession(resolver=StaticDeviceResolver(device), events_path=Path(events))
    outcomes = run_sessions([session], writer, max_workers=1)

    _print_outcomes(outcomes)
    console.print(f"Reports written to: {writer.run_dir(device)}")
    raise typer.Exit(code=0 if outcomes[0].passed else 1)


@app.command()
def validate(
    path: str = typer.Argument(..., help="Report file or directory containing TEST-*.xml files"),
) -> None:
    """Validate reports against the surefire report schema."""
    target = Path(path)
    if not target.exists():
        console.print(f"[red]Not found:[/red] {target}")
        raise typer.Exit(code=1)
    reports = find_reports(target)
    if not reports:
        console.print(f"[yellow]No reports found under:[/yellow] {target}")
        raise typer.Exit(code=1)

    invalid = 0
    for report in reports:
        problems = validate_report(report)
        if problems:
            invalid += 1
            for problem in problems:
                console.print(f"[red]INVALID[/red] {problem}")
        else:
            console.print(f"[green]VALID[/green] {report}")
    console.print(f"{len(reports) - invalid}/{len(reports)} reports valid")
    raise typer.Exit(code=0 if invalid == 0 else 1)
