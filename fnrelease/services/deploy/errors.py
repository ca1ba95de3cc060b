from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


DeployErrorKind = Literal[
    "invalid_input",
    "config_invalid",
    "network_error",
    "publish_failed",
    "infra_failed",
    "promote_failed",
    "cleanup_failed",
]


@dataclass(frozen=True, slots=True)
class CollaboratorError:
    """Failure reported by an external collaborator (S3, CloudFormation, Lambda)."""

    kind: DeployErrorKind
    message: str
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class OrchestrationError:
    """A fatal deployment failure with enough context for manual remediation.

    ``state`` is the last state the run reached before failing.
    """

    kind: DeployErrorKind
    message: str
    stage: str | None
    function_name: str
    version: str
    state: str
    hint: str | None = None
