"""Typer application and CLI entry point for modelroute.

The root app carries the global output flags, the ``auth`` sub-command
group, and the ``resolve`` command, which reports which adapter a model
resolves to without sending any chat request.

:func:`main` is the console-script entry point declared in
``pyproject.toml``.  A :class:`~modelroute.exceptions.ModelRouteError`
escaping a command exits with that error's code; any other exception is
written to a crash log under the data directory.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from modelroute import __version__
from modelroute.commands.auth import auth_app
from modelroute.exceptions import ModelRouteError
from modelroute.exit_codes import EXIT_GENERIC_FAILURE

app = typer.Typer(
    name="modelroute",
    help="Resolve LLM models to provider backends and manage OAuth logins.",
    no_args_is_help=True,
    add_completion=True,
    rich_markup_mode="rich",
)

app.add_typer(auth_app, name="auth", help="Provider login and stored credentials.")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"modelroute {__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool = False) -> None:
    """Send ``modelroute.*`` log records to stderr through Rich.

    Records at ``WARNING`` and above are shown by default, everything with
    ``verbose``.  Calling this again replaces the previous handler.
    """
    package_logger = logging.getLogger("modelroute")
    for handler in list(package_logger.handlers):
        if isinstance(handler, RichHandler):
            package_logger.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        show_time=verbose,
        rich_tracebacks=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Install the output manager and logging before every sub-command."""
    from modelroute.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    configure_logging(verbose)


@app.command("resolve")
def resolve_command(
    model: Optional[str] = typer.Argument(
        None, help="Model or route name (default: agents.defaults.model)."
    ),
    provider: Optional[str] = typer.Option(
        None, "--provider", "-p", help="Override agents.defaults.provider."
    ),
) -> None:
    """Show which adapter and model id MODEL resolves to.

    No chat request is sent, but OAuth-backed families need a stored
    credential and local gateways are probed.

    Example::

        modelroute resolve groq/llama-3.1-70b
        modelroute --json resolve fast
    """
    from modelroute.config import resolve_config
    from modelroute.output import error, print_record, suggest
    from modelroute.providers import resolve

    try:
        config = resolve_config(cli_model=model, cli_provider=provider)
        adapter, model_id = resolve(config)
    except ModelRouteError as exc:
        error(str(exc))
        hint = getattr(exc, "hint", None)
        if hint:
            suggest(f"Run: {hint}")
        raise typer.Exit(code=exc.exit_code) from None

    print_record(
        {
            "requested": config.agents.defaults.model,
            "adapter": adapter.name,
            "model_id": model_id or adapter.default_model(),
        }
    )


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write the current traceback under ``<data_dir>/logs`` and return its path."""
    from modelroute.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``modelroute`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from modelroute.output import error

        if isinstance(exc, ModelRouteError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
