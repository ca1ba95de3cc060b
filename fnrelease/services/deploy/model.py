from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True, slots=True)
class PackageMetadata:
    """Identity of the function being released (from the metadata file)."""

    name: str
    version: str
    description: str | None = None


@dataclass(frozen=True, slots=True)
class DeploymentOptions:
    bucket: str
    source_directory: str
    regions: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class DeploymentTarget:
    stage_name: str
    is_main_line: bool


@dataclass(frozen=True, slots=True)
class ChangeSetDescriptor:
    name: str
    stack_name: str


@dataclass(frozen=True, slots=True)
class ArtifactRef:
    bucket: str
    key: str
    # False when the key was already published and the upload was skipped.
    uploaded: bool

    @property
    def url(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


@dataclass(frozen=True, slots=True)
class InfraResult:
    stack_name: str
    change_set_name: str
    # False when the change set turned out to be empty.
    changed: bool


@dataclass(frozen=True, slots=True)
class PromotionResult:
    stage: str
    function_name: str
    function_version: str


class DeployState(Enum):
    """Progress of a single orchestration run."""

    START = "start"
    VERSION_RESOLVED = "version_resolved"
    ARTIFACT_PUBLISHED = "artifact_published"
    INFRA_APPLIED = "infra_applied"
    STAGE_PROMOTED = "stage_promoted"
    CLEANED_UP = "cleaned_up"
    DONE = "done"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


def deployment_key(function_name: str, version: str, artifact_name: str) -> str:
    """Storage key of one published artifact: ``{function}/{version}/{artifact}``.

    Promotions point Lambda at this key and the ``latest`` lookup parses it
    back, so the layout must stay stable.
    """
    return f"{function_name}/{version}/{artifact_name}"


def version_from_key(function_name: str, key: str) -> str | None:
    prefix = f"{function_name}/"
    if not key.startswith(prefix):
        return None
    parts = key[len(prefix) :].split("/")
    if len(parts) != 2 or not parts[0]:
        return None
    return parts[0]
