"""Error presentation utilities.

Centralized error formatting and exit code mapping for deployment failures.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fnrelease.core.errors import ErrorCode
from fnrelease.output.console import Style
from fnrelease.services.deploy.errors import DeployErrorKind, OrchestrationError

if TYPE_CHECKING:
    from fnrelease.output.console import ConsoleProtocol

__all__ = ["print_deploy_error", "exit_code_for"]


def print_deploy_error(error: OrchestrationError, console: ConsoleProtocol) -> None:
    """Print a fatal deployment error with the context needed to remediate it."""
    console.error(error.message)
    console.detail("function", error.function_name)
    console.detail("version", error.version)
    if error.stage is not None:
        console.detail("stage", error.stage)
    console.detail("failed after", error.state)
    if error.hint:
        console.print(f"hint: {error.hint}", Style.DIM)


def exit_code_for(kind: DeployErrorKind) -> int:
    match kind:
        case "invalid_input":
            return int(ErrorCode.USER_ERROR)
        case "config_invalid":
            return int(ErrorCode.ENV_ERROR)
        case "network_error":
            return int(ErrorCode.NETWORK_ERROR)
        case "publish_failed" | "infra_failed" | "promote_failed" | "cleanup_failed":
            return int(ErrorCode.DEPLOY_ERROR)
