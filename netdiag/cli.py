"""
Command-line entry point.

Usage:
    diag run [--endpoints FILE] [--timeout SECONDS] [--family any|4|6]
             [--concurrency N] [--format text|json] [--fail-fast]
             [--nameserver IP] [--gateway IP[:PORT]]
    diag endpoints

Exit codes: 0 healthy, 1 degraded, 2 unhealthy, 3 invocation error.
"""

import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .diagnostics import (
    DiagnosticPipeline,
    EndpointRegistry,
    PipelineOptions,
    ProbeRunner,
    ReportGenerator,
    load_endpoints_file,
)
from .diagnostics.reports import STYLES
from .errors import ConfigError, InternalError
from .utils import Config, get_logger, level_for_verbosity, setup_logging

logger = get_logger(__name__)

EXIT_INVOCATION_ERROR = 3

app = typer.Typer(
    name="diag",
    help="Network health checks: DNS, TCP and HTTPS probes against a list of endpoints.",
    add_completion=False
)
console = Console()
err_console = Console(stderr=True)


def _fail(message: str) -> None:
    err_console.print(f"[bold red]Error:[/bold red] {escape(message)}")
    raise typer.Exit(EXIT_INVOCATION_ERROR)


def _load_config(config_file: Optional[Path], **overrides) -> Config:
    return Config.load(config_file).with_overrides(**overrides)


def _build_registry(config: Config, endpoints_file: Optional[Path], extend: bool,
                    exclude: Optional[List[str]]) -> EndpointRegistry:
    path = endpoints_file or (Path(config.endpoints_file) if config.endpoints_file else None)
    endpoints = load_endpoints_file(path) if path else None
    return EndpointRegistry.from_options(endpoints=endpoints, extend=extend,
                                        exclude=exclude or ())


def _configure_logging(ctx: typer.Context, config: Config) -> None:
    obj = ctx.ensure_object(dict)
    level = level_for_verbosity(obj.get("verbosity", 0), config.log_level)
    setup_logging(level, obj.get("log_file"))


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(0, "--verbose", "-v", count=True,
                                help="-v for progress, -vv for debug output (stderr)"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also write a debug log here"),
):
    """Network diagnostic tool."""
    ctx.ensure_object(dict).update(verbosity=verbose, log_file=log_file)


@app.command("run")
def run_command(
    ctx: typer.Context,
    endpoints_file: Optional[Path] = typer.Option(
        None, "--endpoints", help="JSON or YAML endpoint list replacing the defaults"),
    extend: bool = typer.Option(False, "--extend", help="Add --endpoints to the defaults instead"),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", help="Skip endpoint by name"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Per-probe timeout (seconds)"),
    run_timeout: Optional[float] = typer.Option(
        None, "--run-timeout", help="Whole-run timeout (seconds, 0 disables)"),
    family: Optional[str] = typer.Option(None, "--family", help="any | 4 | 6"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", help="Concurrent probes"),
    output_format: str = typer.Option("text", "--format", help="text | json"),
    fail_fast: bool = typer.Option(False, "--fail-fast",
                                   help="Stop probing an endpoint at its first failure"),
    nameserver: Optional[List[str]] = typer.Option(
        None, "--nameserver", help="Query this resolver instead of the system ones"),
    gateway: Optional[str] = typer.Option(
        None, "--gateway", help="Also check that this IP[:PORT] answers, e.g. 8.8.8.8"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Also write the report here"),
    config_file: Optional[Path] = typer.Option(None, "--config", help="JSON config file"),
):
    """Run the DNS, TCP and HTTP probes and print the report."""
    try:
        if output_format not in STYLES:
            raise ConfigError(f"must be one of {', '.join(STYLES)}", field="--format")
        config = _load_config(
            config_file,
            default_timeout=timeout,
            run_timeout=run_timeout,
            family=family,
            concurrency=concurrency,
            fail_fast=fail_fast or None,
            nameservers=list(nameserver) if nameserver else None,
            gateway=gateway,
        )
        registry = _build_registry(config, endpoints_file, extend, exclude)
    except ConfigError as e:
        _fail(str(e))

    _configure_logging(ctx, config)

    pipeline = DiagnosticPipeline(
        runner=ProbeRunner.from_config(config),
        options=PipelineOptions.from_config(config)
    )

    try:
        report = pipeline.run(registry.list())
    except InternalError as e:
        logger.exception("Diagnostic run aborted")
        _fail(f"internal error: {e}")
    except KeyboardInterrupt:
        pipeline.cancel()
        _fail("interrupted")

    text = ReportGenerator().format(report, output_format)
    typer.echo(text)

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text + "\n", encoding="utf-8")
        logger.info(f"Report saved to {output}")

    ctx.ensure_object(dict)["exit_code"] = report.exit_code


@app.command("endpoints")
def endpoints_command(
    ctx: typer.Context,
    endpoints_file: Optional[Path] = typer.Option(
        None, "--endpoints", help="JSON or YAML endpoint list replacing the defaults"),
    extend: bool = typer.Option(False, "--extend", help="Add --endpoints to the defaults instead"),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", help="Skip endpoint by name"),
    config_file: Optional[Path] = typer.Option(None, "--config", help="JSON config file"),
):
    """List the endpoints a run would probe."""
    try:
        config = _load_config(config_file)
        registry = _build_registry(config, endpoints_file, extend, exclude)
    except ConfigError as e:
        _fail(str(e))

    _configure_logging(ctx, config)

    table = Table(title="Endpoints")
    table.add_column("Name", style="cyan")
    table.add_column("Host")
    table.add_column("Port", justify="right")
    table.add_column("Family")
    table.add_column("HTTP URL")
    for endpoint in registry.list():
        table.add_row(endpoint.name, endpoint.host, str(endpoint.port),
                      endpoint.family.label, endpoint.url or "-")
    console.print(table)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the CLI and return its exit code.

    Usage errors, bad configuration and internal errors all exit with 3;
    a completed run leaves its report's exit code in the context object.
    """
    command = typer.main.get_command(app)
    state = {}
    try:
        command.main(args=argv, prog_name="diag", standalone_mode=True, obj=state)
    except SystemExit as e:
        if e.code not in (None, 0):
            return EXIT_INVOCATION_ERROR
    return state.get("exit_code", 0)


def entrypoint() -> None:
    sys.exit(main())
