from __future__ import annotations

from pathlib import Path

import typer

from fnrelease.cli.commands._helpers import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_METADATA_PATH,
    exit_on_error,
    exit_with_code,
)
from fnrelease.cli.context import CLIContext, build_context
from fnrelease.core.errors import ErrorCode
from fnrelease.core.result import Err
from fnrelease.output.console import Style
from fnrelease.output.errors import exit_code_for, print_deploy_error
from fnrelease.services.deploy.aws import S3ArtifactPublisher, build_aws_collaborators
from fnrelease.services.deploy.metadata import load_package_metadata, stamp_version
from fnrelease.services.deploy.model import PackageMetadata
from fnrelease.services.deploy.orchestrator import (
    DeploymentOrchestrator,
    DeployPlan,
    DeployResult,
    plan_deployment,
)
from fnrelease.services.deploy.version import resolve_version


def _load_metadata(ctx: CLIContext, path: Path) -> PackageMetadata:
    return exit_on_error(load_package_metadata(path), ctx, ErrorCode.IO_ERROR)


def _require_bucket(ctx: CLIContext) -> str:
    bucket = ctx.config.deployment_bucket
    if bucket is None:
        ctx.console.error("deployment bucket is not configured")
        ctx.console.print(
            "hint: set DEPLOYMENT_BUCKET and AWS_ACCOUNT_ID "
            "(or deploy.bucket_prefix and deploy.account_id)",
            Style.DIM,
        )
        exit_with_code(int(ErrorCode.ENV_ERROR))
    return bucket


def _print_plan(ctx: CLIContext, plan: DeployPlan) -> None:
    console = ctx.console
    console.detail("function", plan.function_name)
    console.detail("version", str(plan.version))
    console.detail("stage", plan.target.stage_name)
    console.detail("main line", "yes" if plan.target.is_main_line else "no")
    console.detail("artifact", f"s3://{plan.options.bucket}/{plan.deployment_key}")
    if plan.change_set is not None:
        console.detail("stack", plan.change_set.stack_name)
        console.detail("change set", plan.change_set.name)


def _print_result(ctx: CLIContext, result: DeployResult) -> None:
    console = ctx.console
    console.newline()
    _print_plan(ctx, result.plan)
    console.detail("function version", result.promotion.function_version)
    if result.removed_versions is not None:
        console.detail("cleaned up", str(result.removed_versions))
    console.success(f"{result.plan.function_name} {result.plan.version} is live")


def version(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", help="Deployment config (TOML)"),
) -> None:
    """Print the version this build resolves to."""
    ctx = build_context(config)
    typer.echo(str(resolve_version(ctx.build)))


def setup(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", help="Deployment config (TOML)"),
    metadata: Path = typer.Option(DEFAULT_METADATA_PATH, "--metadata", help="Package metadata"),
) -> None:
    """Stamp the resolved version into the package metadata file."""
    ctx = build_context(config)
    resolved = str(resolve_version(ctx.build))
    stamped = exit_on_error(stamp_version(metadata, resolved), ctx, ErrorCode.IO_ERROR)
    ctx.console.print(f"Building package {stamped.name} ({stamped.version})")


def plan(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", help="Deployment config (TOML)"),
    metadata: Path = typer.Option(DEFAULT_METADATA_PATH, "--metadata", help="Package metadata"),
) -> None:
    """Show what a deploy of this build would do, without calling AWS."""
    ctx = build_context(config)
    package = _load_metadata(ctx, metadata)
    planned = plan_deployment(ctx.config, ctx.build, package)
    if isinstance(planned, Err):
        print_deploy_error(planned.error, ctx.console)
        exit_with_code(exit_code_for(planned.error.kind))
    _print_plan(ctx, planned.value)


def deploy(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", help="Deployment config (TOML)"),
    metadata: Path = typer.Option(DEFAULT_METADATA_PATH, "--metadata", help="Package metadata"),
) -> None:
    """Publish, (on the main line) apply infrastructure, promote and clean up."""
    ctx = build_context(config)
    package = _load_metadata(ctx, metadata)
    bucket = _require_bucket(ctx)

    aws = build_aws_collaborators(ctx.config, bucket=bucket)
    orchestrator = DeploymentOrchestrator(
        config=ctx.config,
        publisher=aws.publisher,
        deployer=aws.deployer,
        promoter=aws.promoter,
        janitor=aws.janitor,
        console=ctx.console,
    )

    result = orchestrator.deploy(ctx.build, package)
    if isinstance(result, Err):
        ctx.console.error("Failed to push new application version")
        print_deploy_error(result.error, ctx.console)
        exit_with_code(exit_code_for(result.error.kind))
    _print_result(ctx, result.value)


def latest(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", help="Deployment config (TOML)"),
    metadata: Path = typer.Option(DEFAULT_METADATA_PATH, "--metadata", help="Package metadata"),
) -> None:
    """Print the most recently published artifact version."""
    ctx = build_context(config)
    package = _load_metadata(ctx, metadata)
    bucket = _require_bucket(ctx)

    publisher = S3ArtifactPublisher(region=ctx.config.region)
    listed = publisher.latest_version(bucket, package.name)
    if isinstance(listed, Err):
        ctx.console.error(listed.error.message)
        if listed.error.hint:
            ctx.console.print(f"hint: {listed.error.hint}", Style.DIM)
        exit_with_code(exit_code_for(listed.error.kind))
    found = listed.value
    if found is None:
        ctx.console.warning(f"nothing published for {package.name} in {bucket}")
        exit_with_code(int(ErrorCode.USER_ERROR))
    typer.echo(found)
