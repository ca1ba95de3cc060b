"""Deployment orchestration.

One run walks a strict chain of stages; each stage starts only after the
previous one returned Ok:

    start -> version_resolved -> artifact_published -> [infra_applied]
          -> stage_promoted -> [cleaned_up] -> done

Bracketed stages only run for main-line builds. Any fatal error moves the run
to ``failed`` and stops it. Nothing already done is rolled back: the artifact
stays published and applied infrastructure stays applied, so re-running the
same build is the retry path (publish is keyed, promotion and cleanup are
idempotent). Cleanup failures are reported but never fail the run.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from pathlib import Path
from uuid import uuid4

from fnrelease.core.config import DeployConfig
from fnrelease.core.context import BuildContext
from fnrelease.core.result import Err, Ok, Result
from fnrelease.output.console import ConsoleProtocol, Style
from fnrelease.services.deploy.collaborators import (
    ArtifactPublisher,
    InfrastructureDeployer,
    StagePromoter,
    VersionJanitor,
)
from fnrelease.services.deploy.errors import (
    CollaboratorError,
    DeployErrorKind,
    OrchestrationError,
)
from fnrelease.services.deploy.model import (
    ArtifactRef,
    ChangeSetDescriptor,
    DeploymentOptions,
    DeploymentTarget,
    DeployState,
    InfraResult,
    PackageMetadata,
    PromotionResult,
    deployment_key,
)
from fnrelease.services.deploy.version import (
    RefKind,
    Version,
    classify_ref,
    deployment_target,
    resolve_version,
)

_CHANGE_SET_UNSAFE_RE = re.compile(r"[^A-Za-z0-9-]+")
_SERVICE_NAME_PARAMETER = "serviceName"


@dataclass(frozen=True, slots=True)
class DeployPlan:
    function_name: str
    version: Version
    ref_kind: RefKind
    target: DeploymentTarget
    deployment_key: str
    options: DeploymentOptions
    # Only main-line runs touch infrastructure.
    change_set: ChangeSetDescriptor | None
    parameters: tuple[tuple[str, str], ...]


@dataclass(frozen=True, slots=True)
class DeployResult:
    plan: DeployPlan
    artifact: ArtifactRef
    infra: InfraResult | None
    promotion: PromotionResult
    removed_versions: int | None
    cleanup_error: CollaboratorError | None
    states: tuple[DeployState, ...]


def change_set_name(context: BuildContext) -> str:
    """Change-set name unique to this CI run.

    Two runs of the same build number (re-runs, concurrent pushes) must not
    collide on an in-flight change set, so the CI run id (or a random token
    for local runs) is part of the name.
    """
    build = _CHANGE_SET_UNSAFE_RE.sub("-", context.build_number or "1").strip("-") or "1"
    scope = _CHANGE_SET_UNSAFE_RE.sub("-", context.run_id or "").strip("-")
    if not scope:
        scope = uuid4().hex[:8]
    return f"main-{build}-{scope}"[:128]


def _read_template(path: Path) -> Result[str, CollaboratorError]:
    try:
        return Ok(path.read_text(encoding="utf-8"))
    except OSError as e:
        return Err(
            CollaboratorError(
                kind="infra_failed",
                message=f"cannot read template: {e}",
                hint="Set deploy.template in the config file.",
            )
        )


def plan_deployment(
    config: DeployConfig,
    context: BuildContext,
    metadata: PackageMetadata,
) -> Result[DeployPlan, OrchestrationError]:
    """Everything a run would do, computed without touching AWS."""
    version = resolve_version(context)
    ref_kind = classify_ref(
        context.ref_name,
        main_line_ref=config.main_line_ref,
        fallback_stage=config.fallback_stage,
        production_stage=config.production_stage,
    )
    target = deployment_target(ref_kind, production_stage=config.production_stage)

    bucket = config.deployment_bucket
    if bucket is None:
        return Err(
            OrchestrationError(
                kind="config_invalid",
                message="deployment bucket is not configured",
                stage=target.stage_name,
                function_name=metadata.name,
                version=str(version),
                state=str(DeployState.VERSION_RESOLVED),
                hint="Set DEPLOYMENT_BUCKET and AWS_ACCOUNT_ID "
                "(or deploy.bucket_prefix and deploy.account_id).",
            )
        )

    change_set: ChangeSetDescriptor | None = None
    if target.is_main_line:
        change_set = ChangeSetDescriptor(name=change_set_name(context), stack_name=metadata.name)

    parameters = dict(config.stack_parameters)
    parameters.setdefault(_SERVICE_NAME_PARAMETER, metadata.name)

    return Ok(
        DeployPlan(
            function_name=metadata.name,
            version=version,
            ref_kind=ref_kind,
            target=target,
            deployment_key=deployment_key(metadata.name, str(version), config.artifact_name),
            options=DeploymentOptions(
                bucket=bucket,
                source_directory=config.source_directory,
                regions=config.regions,
            ),
            change_set=change_set,
            parameters=tuple(parameters.items()),
        )
    )


class DeploymentOrchestrator:
    def __init__(
        self,
        *,
        config: DeployConfig,
        publisher: ArtifactPublisher,
        deployer: InfrastructureDeployer,
        promoter: StagePromoter,
        janitor: VersionJanitor,
        console: ConsoleProtocol,
    ) -> None:
        self._config = config
        self._publisher = publisher
        self._deployer = deployer
        self._promoter = promoter
        self._janitor = janitor
        self._console = console

    def plan(
        self,
        context: BuildContext,
        metadata: PackageMetadata,
    ) -> Result[DeployPlan, OrchestrationError]:
        return plan_deployment(self._config, context, metadata)

    def _failure(
        self,
        plan: DeployPlan,
        states: list[DeployState],
        *,
        kind: DeployErrorKind,
        error: CollaboratorError,
    ) -> Err[OrchestrationError]:
        reached = states[-1]
        states.append(DeployState.FAILED)
        self._console.print(f"{reached} -> {DeployState.FAILED}", Style.DIM)
        return Err(
            OrchestrationError(
                kind="network_error" if error.kind == "network_error" else kind,
                message=error.message,
                stage=plan.target.stage_name,
                function_name=plan.function_name,
                version=str(plan.version),
                state=str(reached),
                hint=error.hint,
            )
        )

    def deploy(
        self,
        context: BuildContext,
        metadata: PackageMetadata,
    ) -> Result[DeployResult, OrchestrationError]:
        console = self._console
        states: list[DeployState] = [DeployState.START]

        planned = self.plan(context, metadata)
        if isinstance(planned, Err):
            return planned
        plan = planned.value
        states.append(DeployState.VERSION_RESOLVED)

        console.header(f"Deploying {plan.function_name} ({plan.version})")
        console.print(
            f"stage: {plan.target.stage_name}"
            + (" (main line)" if plan.target.is_main_line else ""),
            Style.DIM,
        )

        console.print(f"publish {plan.deployment_key}", Style.DIM)
        published = self._publisher.publish(
            replace(metadata, version=str(plan.version)),
            plan.options,
            plan.deployment_key,
        )
        if isinstance(published, Err):
            return self._failure(plan, states, kind="publish_failed", error=published.error)
        artifact = published.value
        states.append(DeployState.ARTIFACT_PUBLISHED)
        if artifact.uploaded:
            console.success(f"published {artifact.url}")
        else:
            console.info(f"already published: {artifact.url}")

        infra: InfraResult | None = None
        if plan.change_set is not None:
            change_set = plan.change_set
            console.print(
                f"apply template: stack={change_set.stack_name} change_set={change_set.name}",
                Style.DIM,
            )
            template = _read_template(Path(self._config.template))
            if isinstance(template, Err):
                return self._failure(plan, states, kind="infra_failed", error=template.error)

            applied = self._deployer.apply(template.value, change_set, plan.parameters)
            if isinstance(applied, Err):
                return self._failure(plan, states, kind="infra_failed", error=applied.error)
            infra = applied.value
            states.append(DeployState.INFRA_APPLIED)
            if infra.changed:
                console.success(f"stack {infra.stack_name} updated")
            else:
                console.info(f"stack {infra.stack_name} unchanged")

        console.print(f"promote {plan.function_name} -> {plan.target.stage_name}", Style.DIM)
        promoted = self._promoter.promote(
            plan.target.stage_name,
            plan.function_name,
            plan.deployment_key,
        )
        if isinstance(promoted, Err):
            return self._failure(plan, states, kind="promote_failed", error=promoted.error)
        promotion = promoted.value
        states.append(DeployState.STAGE_PROMOTED)
        console.success(
            f"{promotion.stage} -> {promotion.function_name}:{promotion.function_version}"
        )

        removed: int | None = None
        cleanup_error: CollaboratorError | None = None
        if plan.target.is_main_line:
            cleaned = self._janitor.cleanup(plan.function_name)
            if isinstance(cleaned, Err):
                cleanup_error = cleaned.error
                console.warning(f"version cleanup failed: {cleanup_error.message}")
                if cleanup_error.hint:
                    console.print(f"hint: {cleanup_error.hint}", Style.DIM)
            else:
                removed = cleaned.value
                states.append(DeployState.CLEANED_UP)
                console.print(f"removed {removed} unreferenced versions", Style.DIM)

        states.append(DeployState.DONE)
        return Ok(
            DeployResult(
                plan=plan,
                artifact=artifact,
                infra=infra,
                promotion=promotion,
                removed_versions=removed,
                cleanup_error=cleanup_error,
                states=tuple(states),
            )
        )
