"""Typer-powered command line for inspecting capture-node configuration.

``capconfig check`` runs the same load and validation the daemon performs at
start-up and exits non-zero on any fatal problem, which makes it suitable
for provisioning hooks. ``capconfig show`` renders the fully resolved
settings for a node.
"""
from __future__ import annotations

import logging
import os
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__
from .catalog import CATALOG, DONT_SAVE_TAGS_KEY, field_by_key
from .config import (
    CaptureConfig,
    ConfigError,
    ConfigState,
    determine_config_path,
    determine_node_name,
)
from .exit_codes import ExitCode

LOGGER = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    "-c",
    dir_okay=False,
    help="Path to the capture config.ini (defaults to $CAPCONFIG_CONFIG_FILE).",
)
NODE_OPTION = typer.Option(
    None,
    "--node",
    "-n",
    help="Node name used as the most specific section (defaults to the short host name).",
)
PCAP_FILE_OPTION = typer.Option(
    None,
    "--pcapfile",
    "-r",
    help="Offline capture file to read instead of a live interface.",
)
DEBUG_OPTION = typer.Option(
    False,
    "--debug",
    "-d",
    help="Enable debug logging and the resolved-value dump.",
)
SET_OPTION = typer.Option(
    None,
    "--set",
    metavar="KEY=VALUE",
    help="Override a key ahead of every config section (repeatable).",
)
SHOW_JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit the configuration as JSON instead of a table.",
)
SHOW_YAML_OPTION = typer.Option(
    False,
    "--yaml",
    help="Emit the configuration as YAML instead of a table.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Capture daemon configuration tool.

        Resolves config.ini for a node exactly as the capture daemon does
        (node section, then node class, then the default section) and
        reports the result or the fatal error that would stop start-up.
        """
    ).strip(),
)


@dataclass
class CliOptions:
    """Root options shared by every command."""

    config_file: Path | None
    node: str | None
    pcap_file: str | None
    debug: bool
    overrides: dict[str, str]


@dataclass
class RuntimeContext:
    """Loaded configuration state shared by commands."""

    state: ConfigState
    config: CaptureConfig


def configure_logging(debug: bool) -> None:
    """Route log records through Rich; ``debug`` also enables the value dump."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=err_console,
                show_path=debug,
                show_time=True,
                show_level=True,
                markup=False,
                rich_tracebacks=True,
            )
        ],
        force=True,
    )


def _parse_overrides(raw_values: list[str] | None) -> dict[str, str]:
    """Turn ``KEY=VALUE`` strings into an override mapping."""
    overrides: dict[str, str] = {}
    for item in raw_values or []:
        key, separator, value = item.partition("=")
        key = key.strip()
        if not separator or not key:
            raise typer.BadParameter(
                f"Expected KEY=VALUE, got {item!r}.", param_hint="--set"
            )
        if key != DONT_SAVE_TAGS_KEY:
            try:
                field_by_key(key)
            except KeyError:
                raise typer.BadParameter(
                    f"Unknown configuration key '{key}'.", param_hint="--set"
                ) from None
        overrides[key] = value
    return overrides


def _ensure_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    options = runtime if isinstance(runtime, CliOptions) else CliOptions(
        config_file=None, node=None, pcap_file=None, debug=False, overrides={}
    )
    env = dict(os.environ)
    state = ConfigState(
        determine_config_path(options.config_file, env),
        determine_node_name(options.node, env),
        pcap_file=options.pcap_file,
        debug=options.debug,
        overrides=options.overrides,
    )
    ctx.call_on_close(state.teardown)
    LOGGER.debug("Loading %s for node %s.", state.config_file, state.node_name)
    try:
        config = state.init()
    except ConfigError as exc:
        _command_error(str(exc))

    runtime = RuntimeContext(state=state, config=config)
    ctx.obj = runtime
    return runtime


def _command_error(message: str) -> NoReturn:
    err_console.print(f"[red]{escape(message)}[/red]")
    raise typer.Exit(code=ExitCode.CONFIG)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the capconfig version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    node: str | None = NODE_OPTION,
    pcap_file: str | None = PCAP_FILE_OPTION,
    debug: bool = DEBUG_OPTION,
    set_values: list[str] | None = SET_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        console.print(f"capconfig {__version__}")
        raise typer.Exit(code=ExitCode.OK)

    configure_logging(debug)
    ctx.obj = CliOptions(
        config_file=config_file,
        node=node,
        pcap_file=pcap_file,
        debug=debug,
        overrides=_parse_overrides(set_values),
    )

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=ExitCode.OK)


@app.command()
def check(ctx: typer.Context) -> None:
    """Load and validate the configuration the way the daemon does at start-up."""
    runtime = _ensure_runtime(ctx)
    config = runtime.config
    if config.interface is not None:
        source = f"interface {config.interface}"
    else:
        source = f"pcap file {config.pcap_file}"
    console.print(
        f"[green]Configuration OK[/green] for node {escape(config.node_name)} "
        f"(class {escape(str(config.node_class))}); packet source: {escape(source)}."
    )


@app.command()
def show(
    ctx: typer.Context,
    json_output: bool = SHOW_JSON_OPTION,
    yaml_output: bool = SHOW_YAML_OPTION,
) -> None:
    """Display the resolved configuration for this node."""
    if json_output and yaml_output:
        raise typer.BadParameter("Choose only one of --json or --yaml.")
    runtime = _ensure_runtime(ctx)
    config = runtime.config

    if json_output:
        console.print_json(data=config.to_dict())
        return
    if yaml_output:
        typer.echo(yaml.safe_dump(config.to_dict(), sort_keys=False), nl=False)
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Key", style="bold")
    table.add_column("Value")

    table.add_row("configFile", escape(str(config.config_file)))
    table.add_row("nodeName", escape(config.node_name))
    table.add_row("pcapFile", escape(_render(config.pcap_file)))
    for spec in CATALOG:
        table.add_row(spec.key, escape(_render(getattr(config, spec.attribute))))
    table.add_row(DONT_SAVE_TAGS_KEY, escape(", ".join(sorted(config.dont_save_tags))))

    console.print(table)


def _render(value: object) -> str:
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


__all__ = ["app", "configure_logging"]
