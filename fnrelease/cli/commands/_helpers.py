"""Shared helpers for CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, NoReturn, TypeVar

import typer

from fnrelease.core.errors import ErrorCode
from fnrelease.core.result import Err, Result
from fnrelease.output.console import Style

if TYPE_CHECKING:
    from fnrelease.cli.context import CLIContext


T = TypeVar("T")
E = TypeVar("E")

DEFAULT_CONFIG_PATH = Path("fnrelease.toml")
DEFAULT_METADATA_PATH = Path("package.json")


def exit_on_error[T, E](
    result: Result[T, E],
    ctx: CLIContext,
    error_code: ErrorCode = ErrorCode.DEPLOY_ERROR,
) -> T:
    """Return the Ok value, or print the error and exit with ``error_code``.

    Expects error objects to have a 'message' and optionally 'hint' or 'path'.
    """
    if isinstance(result, Err):
        error = result.error
        message: str = getattr(error, "message", str(error))
        hint: object = getattr(error, "hint", None) or getattr(error, "path", None)
        ctx.console.error(message)
        if hint:
            ctx.console.print(f"hint: {hint}", Style.DIM)
        exit_with_code(int(error_code))
    return result.value


def exit_with_code(code: int) -> NoReturn:
    raise typer.Exit(code=code)
