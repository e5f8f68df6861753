"""layerview CLI

Operator commands around the template engine.

Usage:
    layerview render page.html@app --data '{"name": "World"}'
    layerview render page.html@app --path /admin/users -c layerview.yaml
    layerview compile page.html@app layout.html@app    # warm the cache
    layerview clear-cache
    layerview -v render ...                            # verbose logging
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import List, NoReturn, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from layerview._version import __version__
from layerview.config import ViewConfig
from layerview.engine import TemplateEngine
from layerview.errors import LayerviewError
from layerview.request import RequestContext

CONFIG_FILENAME = "layerview.yaml"

console = Console(stderr=True)

app = typer.Typer(
    help="Compile and render layered templates.", no_args_is_help=True
)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the CLI.

    Log levels:
    - Normal: only warnings/errors shown
    - Verbose (-v): INFO, shows artifact publication and cache clears
    - Debug (LAYERVIEW_DEBUG=1): DEBUG, shows cache hits and compile steps
    """
    debug = bool(os.environ.get("LAYERVIEW_DEBUG"))
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    handler = RichHandler(
        console=console,
        show_time=verbose,
        show_path=debug,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    pkg_logger = logging.getLogger("layerview")
    pkg_logger.setLevel(level)
    pkg_logger.handlers = [handler]
    pkg_logger.propagate = False


def exit_with_error(message: str, exit_code: int = 1) -> NoReturn:
    """Exit the program with an error message."""
    typer.echo(f"Error: {message}", err=True)
    sys.exit(exit_code)


def find_config() -> Optional[Path]:
    """Find layerview.yaml in the current directory or its parents."""
    cwd = Path.cwd()
    for parent in [cwd] + list(cwd.parents):
        candidate = parent / CONFIG_FILENAME
        if candidate.exists():
            return candidate
    return None


def load_engine(config_path: Optional[Path]) -> TemplateEngine:
    path = config_path or find_config()
    if config_path is not None and not config_path.exists():
        exit_with_error(f"Config file not found: {config_path}")

    try:
        config = ViewConfig.load(path) if path else ViewConfig()
        return TemplateEngine(config)
    except LayerviewError as e:
        exit_with_error(str(e))


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"layerview {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose logging."),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    setup_logging(verbose)


ConfigOption = typer.Option(None, "-c", "--config", help="Path to layerview.yaml.")


@app.command()
def render(
    ref: str = typer.Argument(..., help="Template reference, e.g. page.html@app"),
    config: Optional[Path] = ConfigOption,
    data: Optional[str] = typer.Option(
        None, "-d", "--data", help="Template variables as a JSON object."
    ),
    path: str = typer.Option("/", "--path", help="Request path for scoped vars."),
) -> None:
    """Render a template and print the result."""
    variables = {}
    if data:
        try:
            variables = json.loads(data)
        except json.JSONDecodeError as e:
            exit_with_error(f"--data is not valid JSON: {e}")
        if not isinstance(variables, dict):
            exit_with_error("--data must be a JSON object")

    engine = load_engine(config)
    try:
        output = engine.render_to_string(
            ref, variables, request=RequestContext(path=path)
        )
    except LayerviewError as e:
        exit_with_error(str(e))

    typer.echo(output, nl=False)


@app.command("compile")
def compile_templates(
    refs: List[str] = typer.Argument(..., help="Template references to compile."),
    config: Optional[Path] = ConfigOption,
) -> None:
    """Compile templates ahead of time and print their artifact paths."""
    engine = load_engine(config)
    if not engine.cache.enabled:
        typer.secho(
            "Cache is disabled; templates are checked but nothing is written.",
            fg=typer.colors.YELLOW,
            err=True,
        )

    for ref in refs:
        try:
            artifact = engine.compile(ref)
        except LayerviewError as e:
            exit_with_error(str(e))
        typer.echo(f"{ref} -> {artifact.cache_path or '(in memory)'}")


@app.command("clear-cache")
def clear_cache(config: Optional[Path] = ConfigOption) -> None:
    """Delete compiled artifacts from the cache directory."""
    engine = load_engine(config)
    removed = engine.clear_cache()
    typer.echo(f"Removed {removed} compiled template(s) from {engine.cache.cache_dir}")


if __name__ == "__main__":
    app()
