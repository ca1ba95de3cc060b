from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from uuid import UUID

import pytest

from fnrelease.core.config import DeployConfig
from fnrelease.core.context import BuildContext
from fnrelease.core.result import Err, Ok, Result
from fnrelease.output.console import MockConsole
from fnrelease.services.deploy import orchestrator as orchestrator_mod
from fnrelease.services.deploy.errors import CollaboratorError
from fnrelease.services.deploy.model import (
    ArtifactRef,
    ChangeSetDescriptor,
    DeploymentOptions,
    DeployState,
    InfraResult,
    PackageMetadata,
    PromotionResult,
)
from fnrelease.services.deploy.orchestrator import (
    DeploymentOrchestrator,
    change_set_name,
    plan_deployment,
)

MAIN = BuildContext(ref_name="refs/heads/main", build_number="42", run_id="9001")
FEATURE = BuildContext(ref_name="refs/heads/feature/login", build_number="7")
METADATA = PackageMetadata(name="vanish", version="0.0.0", description="demo")


@dataclass
class FakeAws:
    """In-memory stand-in for the four collaborators, recording every call."""

    calls: list[str] = field(default_factory=lambda: [])
    published_keys: set[str] = field(default_factory=lambda: set())
    uploads: int = 0
    templates: list[tuple[str, ChangeSetDescriptor, tuple[tuple[str, str], ...]]] = field(
        default_factory=lambda: []
    )
    fail_publish: bool = False
    fail_apply: bool = False
    fail_promote: bool = False
    fail_cleanup: bool = False

    def publish(
        self, metadata: PackageMetadata, options: DeploymentOptions, deployment_key: str
    ) -> Result[ArtifactRef, CollaboratorError]:
        self.calls.append(f"publish:{deployment_key}:{metadata.version}")
        if self.fail_publish:
            return Err(CollaboratorError(kind="publish_failed", message="bucket missing"))
        if deployment_key in self.published_keys:
            return Ok(ArtifactRef(bucket=options.bucket, key=deployment_key, uploaded=False))
        self.published_keys.add(deployment_key)
        self.uploads += 1
        return Ok(ArtifactRef(bucket=options.bucket, key=deployment_key, uploaded=True))

    def latest_version(
        self, bucket: str, function_name: str
    ) -> Result[str | None, CollaboratorError]:
        return Ok(None)

    def apply(
        self,
        template: str,
        change_set: ChangeSetDescriptor,
        parameters: tuple[tuple[str, str], ...],
    ) -> Result[InfraResult, CollaboratorError]:
        self.calls.append(f"apply:{change_set.name}")
        self.templates.append((template, change_set, parameters))
        if self.fail_apply:
            return Err(
                CollaboratorError(kind="infra_failed", message="rollback", hint="see events")
            )
        return Ok(InfraResult(change_set.stack_name, change_set.name, changed=True))

    def promote(
        self, stage: str, function_name: str, deployment_key: str
    ) -> Result[PromotionResult, CollaboratorError]:
        self.calls.append(f"promote:{stage}:{deployment_key}")
        if self.fail_promote:
            return Err(CollaboratorError(kind="promote_failed", message="alias conflict"))
        return Ok(PromotionResult(stage=stage, function_name=function_name, function_version="12"))

    def cleanup(self, function_name: str) -> Result[int, CollaboratorError]:
        self.calls.append(f"cleanup:{function_name}")
        if self.fail_cleanup:
            return Err(CollaboratorError(kind="cleanup_failed", message="throttled", hint="v3"))
        return Ok(2)


def _config(tmp_path: Path) -> DeployConfig:
    template = tmp_path / "template.json"
    template.write_text('{"Resources": {}}', encoding="utf-8")
    return DeployConfig(
        bucket_prefix="deploy",
        account_id="123456789012",
        template=str(template),
        stack_parameters=(("dnsName", "vanish"),),
    )


def _orchestrator(tmp_path: Path, aws: FakeAws, console: MockConsole | None = None):
    return DeploymentOrchestrator(
        config=_config(tmp_path),
        publisher=aws,
        deployer=aws,
        promoter=aws,
        janitor=aws,
        console=console or MockConsole(),
    )


def _names(calls: list[str]) -> list[str]:
    return [c.split(":", 1)[0] for c in calls]


def test_main_line_runs_every_stage_in_order(tmp_path: Path) -> None:
    aws = FakeAws()
    result = _orchestrator(tmp_path, aws).deploy(MAIN, METADATA)

    assert isinstance(result, Ok)
    assert _names(aws.calls) == ["publish", "apply", "promote", "cleanup"]
    assert aws.calls[0] == "publish:vanish/0.0.42/lambda.zip:0.0.42"
    assert aws.calls[2] == "promote:production:vanish/0.0.42/lambda.zip"
    assert result.value.states == (
        DeployState.START,
        DeployState.VERSION_RESOLVED,
        DeployState.ARTIFACT_PUBLISHED,
        DeployState.INFRA_APPLIED,
        DeployState.STAGE_PROMOTED,
        DeployState.CLEANED_UP,
        DeployState.DONE,
    )
    assert result.value.removed_versions == 2


def test_main_line_applies_template_with_parameters(tmp_path: Path) -> None:
    aws = FakeAws()
    _orchestrator(tmp_path, aws).deploy(MAIN, METADATA)

    assert len(aws.templates) == 1
    template, change_set, parameters = aws.templates[0]
    assert template == '{"Resources": {}}'
    assert change_set == ChangeSetDescriptor(name="main-42-9001", stack_name="vanish")
    assert parameters == (("dnsName", "vanish"), ("serviceName", "vanish"))


def test_branch_build_only_publishes_and_promotes(tmp_path: Path) -> None:
    aws = FakeAws()
    result = _orchestrator(tmp_path, aws).deploy(FEATURE, METADATA)

    assert isinstance(result, Ok)
    assert _names(aws.calls) == ["publish", "promote"]
    assert aws.calls[1] == "promote:feature-login:vanish/0.0.7/lambda.zip"
    assert result.value.infra is None
    assert result.value.removed_versions is None
    assert DeployState.INFRA_APPLIED not in result.value.states


def test_redeploy_of_same_build_does_not_duplicate_artifact(tmp_path: Path) -> None:
    aws = FakeAws()
    orchestrator = _orchestrator(tmp_path, aws)

    first = orchestrator.deploy(FEATURE, METADATA)
    second = orchestrator.deploy(FEATURE, METADATA)

    assert isinstance(first, Ok) and isinstance(second, Ok)
    assert aws.uploads == 1
    assert first.value.artifact.uploaded is True
    assert second.value.artifact.uploaded is False


def test_publish_failure_stops_the_run(tmp_path: Path) -> None:
    aws = FakeAws(fail_publish=True)
    result = _orchestrator(tmp_path, aws).deploy(MAIN, METADATA)

    assert isinstance(result, Err)
    assert result.error.kind == "publish_failed"
    assert result.error.state == "version_resolved"
    assert _names(aws.calls) == ["publish"]


def test_apply_failure_prevents_promotion_and_cleanup(tmp_path: Path) -> None:
    aws = FakeAws(fail_apply=True)
    result = _orchestrator(tmp_path, aws).deploy(MAIN, METADATA)

    assert isinstance(result, Err)
    error = result.error
    assert error.kind == "infra_failed"
    assert error.state == "artifact_published"
    assert error.stage == "production"
    assert error.function_name == "vanish"
    assert error.version == "0.0.42"
    assert error.hint == "see events"
    assert _names(aws.calls) == ["publish", "apply"]


def test_missing_template_is_an_infra_failure(tmp_path: Path) -> None:
    aws = FakeAws()
    config = DeployConfig(
        bucket_prefix="deploy",
        account_id="1",
        template=str(tmp_path / "missing.json"),
    )
    orchestrator = DeploymentOrchestrator(
        config=config,
        publisher=aws,
        deployer=aws,
        promoter=aws,
        janitor=aws,
        console=MockConsole(),
    )
    result = orchestrator.deploy(MAIN, METADATA)

    assert isinstance(result, Err)
    assert result.error.kind == "infra_failed"
    assert "cannot read template" in result.error.message
    assert _names(aws.calls) == ["publish"]


def test_promote_failure_is_fatal_and_skips_cleanup(tmp_path: Path) -> None:
    aws = FakeAws(fail_promote=True)
    result = _orchestrator(tmp_path, aws).deploy(MAIN, METADATA)

    assert isinstance(result, Err)
    assert result.error.kind == "promote_failed"
    assert result.error.state == "infra_applied"
    assert _names(aws.calls) == ["publish", "apply", "promote"]


def test_cleanup_failure_does_not_fail_the_run(tmp_path: Path) -> None:
    aws = FakeAws(fail_cleanup=True)
    console = MockConsole()
    result = _orchestrator(tmp_path, aws, console).deploy(MAIN, METADATA)

    assert isinstance(result, Ok)
    assert result.value.cleanup_error is not None
    assert result.value.removed_versions is None
    assert DeployState.CLEANED_UP not in result.value.states
    assert result.value.states[-1] == DeployState.DONE
    assert console.has_warning()
    assert console.find("hint: v3")


def test_network_errors_keep_their_kind(tmp_path: Path) -> None:
    class Offline(FakeAws):
        def publish(self, metadata, options, deployment_key):  # type: ignore[override]
            return Err(CollaboratorError(kind="network_error", message="endpoint unreachable"))

    result = _orchestrator(tmp_path, Offline()).deploy(FEATURE, METADATA)
    assert isinstance(result, Err)
    assert result.error.kind == "network_error"


def test_missing_bucket_fails_before_any_call(tmp_path: Path) -> None:
    aws = FakeAws()
    orchestrator = DeploymentOrchestrator(
        config=DeployConfig(),
        publisher=aws,
        deployer=aws,
        promoter=aws,
        janitor=aws,
        console=MockConsole(),
    )
    result = orchestrator.deploy(MAIN, METADATA)

    assert isinstance(result, Err)
    assert result.error.kind == "config_invalid"
    assert aws.calls == []


def test_plan_for_branch_has_no_change_set(tmp_path: Path) -> None:
    result = plan_deployment(_config(tmp_path), FEATURE, METADATA)
    assert isinstance(result, Ok)
    plan = result.value
    assert plan.change_set is None
    assert plan.options.bucket == "deploy-123456789012-eu-west-1"
    assert plan.options.regions == ("eu-west-1",)
    assert plan.deployment_key == "vanish/0.0.7/lambda.zip"


def test_change_set_name_uses_run_id() -> None:
    assert change_set_name(BuildContext(build_number="5", run_id="777")) == "main-5-777"


def test_change_set_name_without_run_id_is_unique(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        orchestrator_mod, "uuid4", lambda: UUID("12345678-1234-5678-1234-567812345678")
    )
    assert change_set_name(BuildContext()) == "main-1-12345678"


def test_change_set_name_is_sanitized() -> None:
    assert change_set_name(BuildContext(build_number="4", run_id="run_5.1")) == "main-4-run-5-1"


def test_branch_named_production_never_moves_production_alias(tmp_path: Path) -> None:
    aws = FakeAws()
    build = BuildContext(ref_name="refs/heads/production", build_number="5")
    result = _orchestrator(tmp_path, aws).deploy(build, METADATA)

    assert isinstance(result, Ok)
    assert aws.calls[-1] == "promote:branch-production:vanish/0.0.5/lambda.zip"
    assert result.value.plan.target.is_main_line is False
