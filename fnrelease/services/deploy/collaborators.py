"""Contracts of the external systems the orchestrator drives.

The orchestrator only sees these protocols; ``aws.py`` implements them with
boto3 and the tests implement them with in-memory fakes. Every call is
expected to complete (Ok or Err) before the next stage starts; timeouts are
enforced by the implementations, not by the orchestrator.
"""

from __future__ import annotations

from typing import Protocol

from fnrelease.core.result import Result
from fnrelease.services.deploy.errors import CollaboratorError
from fnrelease.services.deploy.model import (
    ArtifactRef,
    ChangeSetDescriptor,
    DeploymentOptions,
    InfraResult,
    PackageMetadata,
    PromotionResult,
)

StackParameters = tuple[tuple[str, str], ...]


class ArtifactPublisher(Protocol):
    def publish(
        self,
        metadata: PackageMetadata,
        options: DeploymentOptions,
        deployment_key: str,
    ) -> Result[ArtifactRef, CollaboratorError]:
        """Upload the packaged function under ``deployment_key``.

        Publishing a key that already exists is a no-op (``uploaded=False``).
        """
        ...

    def latest_version(
        self,
        bucket: str,
        function_name: str,
    ) -> Result[str | None, CollaboratorError]:
        """Version of the most recently published artifact, None if nothing is published."""
        ...


class InfrastructureDeployer(Protocol):
    def apply(
        self,
        template: str,
        change_set: ChangeSetDescriptor,
        parameters: StackParameters,
    ) -> Result[InfraResult, CollaboratorError]: ...


class StagePromoter(Protocol):
    def promote(
        self,
        stage: str,
        function_name: str,
        deployment_key: str,
    ) -> Result[PromotionResult, CollaboratorError]:
        """Make the artifact at ``deployment_key`` live for ``stage``."""
        ...


class VersionJanitor(Protocol):
    def cleanup(self, function_name: str) -> Result[int, CollaboratorError]:
        """Delete function versions no stage points at; return how many were removed."""
        ...
