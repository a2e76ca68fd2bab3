"""chartrender CLI

Usage:
    chartrender template ./mychart                      # print rendered documents
    chartrender template ./mychart -f prod.yaml         # with a values file
    chartrender template ./mychart -o out/              # write files instead
    chartrender plugin validate plugin.yaml             # check a plugin declaration
    chartrender version
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from ._version import __version__
from .chart.loader import load_chart_dir
from .config import DEFAULT_CONFIG_FILE, EngineSettings
from .context import ReleaseInfo
from .engine import Engine
from .exceptions import PluginConfigError, RenderError
from .plugin import load_plugin_file
from .values import read_values_files

console = Console()

app = typer.Typer(no_args_is_help=True)
plugin_app = typer.Typer(no_args_is_help=True, help="Plugin declarations.")
app.add_typer(plugin_app, name="plugin")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the chartrender CLI.

    Log levels:
    - Normal: Only warnings/errors shown
    - Verbose (-v): INFO level
    - Debug (CHARTRENDER_DEBUG=1): DEBUG level, render phases and overrides
    """
    debug = bool(os.environ.get("CHARTRENDER_DEBUG"))
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    handler = RichHandler(
        console=Console(stderr=True),
        show_time=verbose,
        show_path=debug,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger = logging.getLogger("chartrender")
    logger.setLevel(level)
    logger.handlers = [handler]
    logger.propagate = False


def _fail(message: str) -> None:
    typer.secho(f"Error: {message}", err=True, fg=typer.colors.RED)
    raise typer.Exit(code=1)


@app.command()
def template(
    chart_dir: Path = typer.Argument(..., help="Chart directory."),
    values: Optional[List[Path]] = typer.Option(
        None, "-f", "--values", help="Values file; repeat for more, later wins."
    ),
    release_name: str = typer.Option("release-name", "--release-name"),
    namespace: str = typer.Option("default", "-n", "--namespace"),
    strict: Optional[bool] = typer.Option(
        None, "--strict/--no-strict", help="Fail on undefined variables."
    ),
    live: bool = typer.Option(
        False, "--live", help="Disable the sandbox and look up resources in the cluster."
    ),
    config_file: Path = typer.Option(
        Path(DEFAULT_CONFIG_FILE), "--config", help="Engine settings file."
    ),
    output_dir: Optional[Path] = typer.Option(
        None, "-o", "--output-dir", help="Write documents here instead of stdout."
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose"),
) -> None:
    """Render a chart and its subcharts."""
    setup_logging(verbose)

    try:
        settings = EngineSettings.load(config_file)
        if strict is not None:
            settings = settings.model_copy(update={"strict": strict})

        lookup = None
        capabilities = None
        if live:
            from .kube import KubernetesLookup, discover_capabilities, setup

            settings = settings.model_copy(update={"sandbox": False})
            api_client = setup()
            lookup = KubernetesLookup(api_client)
            capabilities = discover_capabilities(api_client)

        chart = load_chart_dir(chart_dir)
        overrides = read_values_files([str(p) for p in values or []])
        release = ReleaseInfo(name=release_name, namespace=namespace)
        outputs = Engine(settings, lookup, capabilities).render(chart, overrides, release)
    except RenderError as exc:
        _fail(str(exc))
    except OSError as exc:
        _fail(str(exc))

    if output_dir is not None:
        for key, data in outputs.items():
            target = output_dir / key
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        typer.echo(f"Wrote {len(outputs)} file(s) to {output_dir}")
        return

    for key, data in outputs.items():
        typer.echo(f"---\n# Source: {key}\n{data.decode('utf-8').rstrip()}")


@plugin_app.command("validate")
def plugin_validate(
    plugin_file: Path = typer.Argument(..., help="Plugin declaration (type + config)."),
) -> None:
    """Validate a plugin declaration."""
    try:
        config = load_plugin_file(str(plugin_file))
    except PluginConfigError as exc:
        _fail(str(exc))
    except OSError as exc:
        _fail(str(exc))

    console.print(f"[green]valid[/green] {config.plugin_type} plugin")


@app.command()
def version() -> None:
    """Show version and exit."""
    typer.echo(f"chartrender {__version__}")


if __name__ == "__main__":
    app()
