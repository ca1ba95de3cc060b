from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import typer

from fnrelease.core.config import DeployConfig, apply_env_overrides, load_config_or_default
from fnrelease.core.context import BuildContext, build_context_from_env
from fnrelease.core.errors import ErrorCode
from fnrelease.core.result import Err
from fnrelease.output.console import ConsoleProtocol, RichConsole


@dataclass(frozen=True, slots=True)
class CLIContext:
    config: DeployConfig
    build: BuildContext
    console: ConsoleProtocol


def build_context(config_path: Path) -> CLIContext:
    """Read config file and CI environment once, at the process boundary."""
    config_result = load_config_or_default(config_path)
    if isinstance(config_result, Err):
        typer.echo(f"error: {config_result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

    return CLIContext(
        config=apply_env_overrides(config_result.value, os.environ),
        build=build_context_from_env(os.environ),
        console=RichConsole(),
    )
