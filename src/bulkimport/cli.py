# src/bulkimport/cli.py
"""bulkimport Command Line Interface.

Entry point for the bulkimport CLI tool.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
import typer
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError
from pydantic import ValidationError

from bulkimport import __version__
from bulkimport.contracts.enums import ExitCode, RunStatus
from bulkimport.contracts.errors import (
    BulkImportError,
    PipelineConfigurationError,
    RunAlreadyLockedError,
)
from bulkimport.contracts.keys import RegistryKeys
from bulkimport.core.config import ImportSettings, load_settings, with_overrides
from bulkimport.plugins.config_base import PluginConfigError

if TYPE_CHECKING:
    from bulkimport.plugins.manager import PluginManager

__all__ = ["app"]

# Module-level singleton for plugin manager
_plugin_manager_cache: PluginManager | None = None


def _get_plugin_manager() -> PluginManager:
    """Get initialized plugin manager (singleton)."""
    global _plugin_manager_cache

    from bulkimport.plugins.manager import PluginManager

    if _plugin_manager_cache is None:
        manager = PluginManager()
        manager.register_builtin_plugins()
        _plugin_manager_cache = manager
    return _plugin_manager_cache


app = typer.Typer(
    name="bulkimport",
    help="bulkimport: split, observe and import large CSV files.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"bulkimport version {__version__}")
        raise typer.Exit()


def _load_environment(env_file: Path | None) -> Path | None:
    """Export BULKIMPORT_* overrides (and ${VAR} values) from a .env file.

    Variables already set in the process environment win. Without an
    explicit env_file, the nearest .env from the working directory upwards
    is used, if any.

    Returns:
        The file that was loaded, or None

    Raises:
        typer.Exit: If env_file was given but does not exist
    """
    from dotenv import find_dotenv, load_dotenv

    if env_file is None:
        found = find_dotenv(usecwd=True)
        if not found:
            return None
        env_file = Path(found)
    elif not env_file.is_file():
        typer.secho(f"Error: .env file not found: {env_file}", fg=typer.colors.RED, err=True)
        raise typer.Exit(ExitCode.CONFIG_ERROR)

    load_dotenv(env_file, override=False)
    return env_file


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(
        False,
        "--no-dotenv",
        help="Skip loading .env file.",
    ),
    env_file: Path | None = typer.Option(
        None,
        "--env-file",
        help="Path to .env file (skips automatic search).",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log at DEBUG level (row traces included).",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Write logs to stderr as one JSON object per line.",
    ),
) -> None:
    """bulkimport: split, observe and import large CSV files."""
    from bulkimport.core.logging import configure_logging

    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "INFO")

    if no_dotenv:
        if env_file is not None:
            typer.secho("Warning: --env-file ignored because --no-dotenv is set.", fg=typer.colors.YELLOW, err=True)
        return

    loaded = _load_environment(env_file)
    if loaded is not None:
        structlog.get_logger(__name__).debug("Loaded environment file", path=str(loaded))


def _load_settings_or_exit(settings: str) -> ImportSettings:
    """Load settings, reporting problems as a configuration error exit."""
    settings_path = Path(settings).expanduser()
    try:
        return load_settings(settings_path)
    except (YamlParserError, YamlScannerError) as e:
        typer.echo(f"YAML syntax error in {settings}: {e.problem}", err=True)
        raise typer.Exit(ExitCode.CONFIG_ERROR) from None
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings}", err=True)
        raise typer.Exit(ExitCode.CONFIG_ERROR) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(ExitCode.CONFIG_ERROR) from None


@app.command()
def run(
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    serial: str | None = typer.Option(
        None,
        "--serial",
        help="Run token (default: generated).",
    ),
    source: Path | None = typer.Option(
        None,
        "--source",
        help="Source CSV file (overrides source_file from settings).",
    ),
) -> None:
    """Execute an import run.

    Exit codes: 0 completed, 1 completed with failed bunches, 2 failed,
    3 another run holds the lock, 4 configuration error.
    """
    from bulkimport.engine.pipeline import build_pipeline

    config = _load_settings_or_exit(settings)
    if source is not None:
        config = with_overrides(config, source_file=source)
    if config.debug_mode:
        from bulkimport.core.logging import enable_row_traces

        enable_row_traces()

    try:
        pipeline = build_pipeline(config, plugin_manager=_get_plugin_manager())
    except (PipelineConfigurationError, PluginConfigError) as e:
        typer.echo(f"Error building observer chain: {e}", err=True)
        raise typer.Exit(ExitCode.CONFIG_ERROR) from None

    try:
        result = pipeline.run(serial)
    except RunAlreadyLockedError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(ExitCode.ALREADY_RUNNING) from None
    except PipelineConfigurationError as e:
        typer.echo(f"Configuration error during run: {e}", err=True)
        raise typer.Exit(ExitCode.CONFIG_ERROR) from None
    except BulkImportError as e:
        typer.echo(f"Import failed: {e}", err=True)
        raise typer.Exit(ExitCode.FAILED) from None

    typer.echo(
        f"Run {result.serial} {result.status}: {len(result.bunch_results)} bunches, "
        f"{result.rows_processed} rows, {result.rows_invalid} invalid"
    )
    if result.status == RunStatus.DEGRADED:
        for failed in result.failed_bunches:
            typer.echo(f"  - bunch {failed.bunch.path.name}: {failed.error}", err=True)
        raise typer.Exit(ExitCode.DEGRADED)


@app.command()
def unlock(
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    serial: str = typer.Option(
        ...,
        "--serial",
        help="Serial of the stale run to remove from the lock file.",
    ),
) -> None:
    """Remove a stale run serial from the lock file."""
    from bulkimport.core.lock import RunLock

    config = _load_settings_or_exit(settings)
    lock = RunLock(config.pid_filename)
    if serial not in lock.active_serials():
        typer.echo(f"Serial {serial} is not listed in {config.pid_filename}")
        return
    lock.release(serial)
    typer.echo(f"Released serial {serial} from {config.pid_filename}")


@app.command()
def status(
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
) -> None:
    """Print the status group of the file registry as JSON."""
    from bulkimport.core.registry import FileStatusRegistry

    config = _load_settings_or_exit(settings)
    if config.registry.backend != "file" or config.registry.path is None:
        typer.echo("Error: status requires registry.backend 'file' with a registry.path", err=True)
        raise typer.Exit(ExitCode.CONFIG_ERROR)

    registry = FileStatusRegistry(config.registry.path)
    group = registry.get_attribute(RegistryKeys.STATUS)
    if group is None:
        typer.echo(f"No status recorded in {config.registry.path}", err=True)
        raise typer.Exit(ExitCode.FAILED)
    typer.echo(json.dumps(group, indent=2, sort_keys=True, default=str))


@app.command()
def observers() -> None:
    """List registered observers."""
    for cls in _get_plugin_manager().get_observers():
        typer.echo(f"{cls.name:<24} {cls.plugin_version}")


if __name__ == "__main__":
    app()
