"""boto3 implementations of the deployment collaborators.

- ``S3ArtifactPublisher``: zip + put into the deployment bucket, keyed by
  deployment key, skipped when the key already exists.
- ``CloudFormationDeployer``: change set create/execute on the function stack.
- ``LambdaStagePromoter``: publish a function version from the artifact and
  move the stage alias onto it.
- ``LambdaVersionJanitor``: delete versions no alias points at.

botocore errors are converted to ``CollaboratorError`` here and nowhere else.
Clients are injectable so tests can pass fakes.
"""

from __future__ import annotations

import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from fnrelease.core.config import DeployConfig
from fnrelease.core.result import Err, Ok, Result
from fnrelease.services.deploy.errors import CollaboratorError, DeployErrorKind
from fnrelease.services.deploy.model import (
    ArtifactRef,
    ChangeSetDescriptor,
    DeploymentOptions,
    InfraResult,
    PackageMetadata,
    PromotionResult,
    version_from_key,
)
from fnrelease.services.deploy.package import build_archive
from fnrelease.services.deploy.timeouts import (
    AWS_CONNECT_TIMEOUT_SECONDS,
    AWS_MAX_ATTEMPTS,
    AWS_READ_TIMEOUT_SECONDS,
    CHANGE_SET_WAIT_DELAY_SECONDS,
    CHANGE_SET_WAIT_MAX_ATTEMPTS,
    FUNCTION_UPDATE_WAIT_DELAY_SECONDS,
    FUNCTION_UPDATE_WAIT_MAX_ATTEMPTS,
    S3_UPLOAD_READ_TIMEOUT_SECONDS,
    STACK_WAIT_DELAY_SECONDS,
    STACK_WAIT_MAX_ATTEMPTS,
)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
_PRECONDITION_CODES = {"PreconditionFailed", "412"}
_ALIAS_CONFLICT_CODES = {"PreconditionFailedException", "ResourceConflictException"}
_STACK_CAPABILITIES = ["CAPABILITY_IAM", "CAPABILITY_NAMED_IAM", "CAPABILITY_AUTO_EXPAND"]
_EMPTY_CHANGE_SET_MARKERS = (
    "didn't contain changes",
    "No updates are to be performed",
)


def make_client(
    service: str,
    *,
    region: str,
    read_timeout: float = AWS_READ_TIMEOUT_SECONDS,
) -> Any:
    import boto3
    from botocore.config import Config

    return boto3.client(
        service,
        region_name=region,
        config=Config(
            connect_timeout=AWS_CONNECT_TIMEOUT_SECONDS,
            read_timeout=read_timeout,
            retries={"max_attempts": AWS_MAX_ATTEMPTS, "mode": "standard"},
        ),
    )


def _error_code(exc: Exception) -> str | None:
    response = getattr(exc, "response", None)
    if not isinstance(response, dict):
        return None
    error = response.get("Error", {})
    if not isinstance(error, dict):
        return None
    code = error.get("Code")
    return code if isinstance(code, str) else None


def _aws_error(
    exc: Exception,
    *,
    kind: DeployErrorKind,
    message: str,
    hint: str | None = None,
) -> CollaboratorError:
    from botocore.exceptions import ConnectionError, HTTPClientError

    if isinstance(exc, (ConnectionError, HTTPClientError)):
        return CollaboratorError(kind="network_error", message=f"{message}: {exc}", hint=hint)
    return CollaboratorError(kind=kind, message=f"{message}: {exc}", hint=hint)


class S3ArtifactPublisher:
    def __init__(self, *, region: str, client: Any = None) -> None:
        self._client = client or make_client(
            "s3", region=region, read_timeout=S3_UPLOAD_READ_TIMEOUT_SECONDS
        )

    def _exists(self, bucket: str, key: str) -> Result[bool, CollaboratorError]:
        from botocore.exceptions import BotoCoreError, ClientError

        message = f"cannot inspect s3://{bucket}/{key}"
        try:
            self._client.head_object(Bucket=bucket, Key=key)
            return Ok(True)
        except ClientError as exc:
            if _error_code(exc) in _NOT_FOUND_CODES:
                return Ok(False)
            return Err(_aws_error(exc, kind="publish_failed", message=message))
        except BotoCoreError as exc:
            return Err(_aws_error(exc, kind="publish_failed", message=message))

    def publish(
        self,
        metadata: PackageMetadata,
        options: DeploymentOptions,
        deployment_key: str,
    ) -> Result[ArtifactRef, CollaboratorError]:
        from botocore.exceptions import BotoCoreError, ClientError

        exists = self._exists(options.bucket, deployment_key)
        if isinstance(exists, Err):
            return exists
        if exists.value:
            return Ok(ArtifactRef(bucket=options.bucket, key=deployment_key, uploaded=False))

        message = f"upload failed: {deployment_key}"
        with tempfile.TemporaryDirectory(prefix="fnrelease-") as tmp:
            archive = build_archive(
                source_dir=Path(options.source_directory),
                out_path=Path(tmp) / Path(deployment_key).name,
            )
            if isinstance(archive, Err):
                return archive

            try:
                with archive.value.path.open("rb") as body:
                    self._client.put_object(
                        Bucket=options.bucket,
                        Key=deployment_key,
                        Body=body,
                        ContentType="application/zip",
                        Metadata={
                            "function": metadata.name,
                            "version": metadata.version,
                            "sha256": archive.value.sha256,
                        },
                        IfNoneMatch="*",
                    )
            except ClientError as exc:
                if _error_code(exc) in _PRECONDITION_CODES:
                    # Another run published the same key first.
                    return Ok(
                        ArtifactRef(bucket=options.bucket, key=deployment_key, uploaded=False)
                    )
                return Err(_aws_error(exc, kind="publish_failed", message=message))
            except (BotoCoreError, OSError) as exc:
                return Err(_aws_error(exc, kind="publish_failed", message=message))

        return Ok(ArtifactRef(bucket=options.bucket, key=deployment_key, uploaded=True))

    def latest_version(
        self,
        bucket: str,
        function_name: str,
    ) -> Result[str | None, CollaboratorError]:
        from botocore.exceptions import BotoCoreError, ClientError

        latest: dict[str, Any] | None = None
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket, Prefix=f"{function_name}/"):
                for item in page.get("Contents", []):
                    if version_from_key(function_name, item["Key"]) is None:
                        continue
                    if latest is None or item["LastModified"] > latest["LastModified"]:
                        latest = item
        except (BotoCoreError, ClientError) as exc:
            return Err(_aws_error(exc, kind="publish_failed", message=f"cannot list s3://{bucket}"))

        if latest is None:
            return Ok(None)
        return Ok(version_from_key(function_name, latest["Key"]))


class CloudFormationDeployer:
    def __init__(self, *, region: str, client: Any = None) -> None:
        self._client = client or make_client("cloudformation", region=region)

    def _change_set_type(self, stack_name: str) -> Result[str, CollaboratorError]:
        from botocore.exceptions import BotoCoreError, ClientError

        message = f"cannot describe stack {stack_name}"
        try:
            response = self._client.describe_stacks(StackName=stack_name)
        except ClientError as exc:
            if _error_code(exc) == "ValidationError" and "does not exist" in str(exc):
                return Ok("CREATE")
            return Err(_aws_error(exc, kind="infra_failed", message=message))
        except BotoCoreError as exc:
            return Err(_aws_error(exc, kind="infra_failed", message=message))

        stacks = response.get("Stacks", [])
        # A stack left in REVIEW_IN_PROGRESS never finished its first create.
        if not stacks or stacks[0].get("StackStatus") == "REVIEW_IN_PROGRESS":
            return Ok("CREATE")
        return Ok("UPDATE")

    def _is_empty_change_set(self, change_set: ChangeSetDescriptor) -> bool:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            described = self._client.describe_change_set(
                ChangeSetName=change_set.name,
                StackName=change_set.stack_name,
            )
        except (BotoCoreError, ClientError):
            return False
        reason = str(described.get("StatusReason", ""))
        return described.get("Status") == "FAILED" and any(
            marker in reason for marker in _EMPTY_CHANGE_SET_MARKERS
        )

    def _delete_change_set(
        self,
        change_set: ChangeSetDescriptor,
        *,
        hint: str,
    ) -> Result[None, CollaboratorError]:
        """Remove a change set that will never be executed."""
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            self._client.delete_change_set(
                ChangeSetName=change_set.name,
                StackName=change_set.stack_name,
            )
        except (BotoCoreError, ClientError) as exc:
            message = "cannot delete empty change set"
            return Err(_aws_error(exc, kind="infra_failed", message=message, hint=hint))
        return Ok(None)

    def apply(
        self,
        template: str,
        change_set: ChangeSetDescriptor,
        parameters: tuple[tuple[str, str], ...],
    ) -> Result[InfraResult, CollaboratorError]:
        from botocore.exceptions import BotoCoreError, ClientError, WaiterError

        change_set_type = self._change_set_type(change_set.stack_name)
        if isinstance(change_set_type, Err):
            return change_set_type
        creating = change_set_type.value == "CREATE"

        hint = f"stack={change_set.stack_name} change_set={change_set.name}"
        try:
            self._client.create_change_set(
                StackName=change_set.stack_name,
                ChangeSetName=change_set.name,
                ChangeSetType=change_set_type.value,
                TemplateBody=template,
                Parameters=[{"ParameterKey": k, "ParameterValue": v} for k, v in parameters],
                Capabilities=_STACK_CAPABILITIES,
            )
        except (BotoCoreError, ClientError) as exc:
            return Err(
                _aws_error(exc, kind="infra_failed", message="create change set failed", hint=hint)
            )

        try:
            self._client.get_waiter("change_set_create_complete").wait(
                StackName=change_set.stack_name,
                ChangeSetName=change_set.name,
                WaiterConfig={
                    "Delay": CHANGE_SET_WAIT_DELAY_SECONDS,
                    "MaxAttempts": CHANGE_SET_WAIT_MAX_ATTEMPTS,
                },
            )
        except WaiterError as exc:
            if self._is_empty_change_set(change_set):
                deleted = self._delete_change_set(change_set, hint=hint)
                if isinstance(deleted, Err):
                    return deleted
                return Ok(
                    InfraResult(
                        stack_name=change_set.stack_name,
                        change_set_name=change_set.name,
                        changed=False,
                    )
                )
            return Err(
                _aws_error(exc, kind="infra_failed", message="change set failed", hint=hint)
            )
        except (BotoCoreError, ClientError) as exc:
            return Err(
                _aws_error(exc, kind="infra_failed", message="change set failed", hint=hint)
            )

        waiter_name = "stack_create_complete" if creating else "stack_update_complete"
        try:
            self._client.execute_change_set(
                ChangeSetName=change_set.name,
                StackName=change_set.stack_name,
            )
            self._client.get_waiter(waiter_name).wait(
                StackName=change_set.stack_name,
                WaiterConfig={
                    "Delay": STACK_WAIT_DELAY_SECONDS,
                    "MaxAttempts": STACK_WAIT_MAX_ATTEMPTS,
                },
            )
        except (BotoCoreError, ClientError) as exc:
            return Err(
                _aws_error(exc, kind="infra_failed", message="stack deployment failed", hint=hint)
            )

        return Ok(
            InfraResult(
                stack_name=change_set.stack_name,
                change_set_name=change_set.name,
                changed=True,
            )
        )


class LambdaStagePromoter:
    def __init__(self, *, region: str, bucket: str, client: Any = None) -> None:
        self._bucket = bucket
        self._client = client or make_client("lambda", region=region)

    def _point_alias(
        self,
        *,
        function_name: str,
        stage: str,
        version: str,
    ) -> Result[None, CollaboratorError]:
        from botocore.exceptions import BotoCoreError, ClientError

        hint = f"function={function_name} stage={stage} version={version}"
        alias: dict[str, Any] | None
        try:
            alias = self._client.get_alias(FunctionName=function_name, Name=stage)
        except ClientError as exc:
            if _error_code(exc) != "ResourceNotFoundException":
                return Err(
                    _aws_error(exc, kind="promote_failed", message="cannot read alias", hint=hint)
                )
            alias = None
        except BotoCoreError as exc:
            return Err(
                _aws_error(exc, kind="promote_failed", message="cannot read alias", hint=hint)
            )

        try:
            if alias is None:
                self._client.create_alias(
                    FunctionName=function_name,
                    Name=stage,
                    FunctionVersion=version,
                    Description=f"stage {stage}",
                )
            else:
                # RevisionId turns a concurrent promotion of the same stage into a conflict.
                self._client.update_alias(
                    FunctionName=function_name,
                    Name=stage,
                    FunctionVersion=version,
                    RevisionId=alias["RevisionId"],
                )
        except ClientError as exc:
            if _error_code(exc) in _ALIAS_CONFLICT_CODES:
                return Err(
                    CollaboratorError(
                        kind="promote_failed",
                        message=f"stage {stage} was changed by another run",
                        hint=f"{hint}; re-run the deployment to promote again",
                    )
                )
            return Err(
                _aws_error(exc, kind="promote_failed", message="cannot move alias", hint=hint)
            )
        except BotoCoreError as exc:
            return Err(
                _aws_error(exc, kind="promote_failed", message="cannot move alias", hint=hint)
            )

        return Ok(None)

    def promote(
        self,
        stage: str,
        function_name: str,
        deployment_key: str,
    ) -> Result[PromotionResult, CollaboratorError]:
        from botocore.exceptions import BotoCoreError, ClientError

        hint = f"s3://{self._bucket}/{deployment_key}"
        try:
            response = self._client.update_function_code(
                FunctionName=function_name,
                S3Bucket=self._bucket,
                S3Key=deployment_key,
                Publish=True,
            )
            self._client.get_waiter("function_updated_v2").wait(
                FunctionName=function_name,
                WaiterConfig={
                    "Delay": FUNCTION_UPDATE_WAIT_DELAY_SECONDS,
                    "MaxAttempts": FUNCTION_UPDATE_WAIT_MAX_ATTEMPTS,
                },
            )
        except (BotoCoreError, ClientError) as exc:
            return Err(
                _aws_error(exc, kind="promote_failed", message="code update failed", hint=hint)
            )

        version = str(response["Version"])
        pointed = self._point_alias(function_name=function_name, stage=stage, version=version)
        if isinstance(pointed, Err):
            return pointed

        return Ok(
            PromotionResult(stage=stage, function_name=function_name, function_version=version)
        )


class LambdaVersionJanitor:
    def __init__(self, *, region: str, client: Any = None) -> None:
        self._client = client or make_client("lambda", region=region)

    def _referenced_versions(self, function_name: str) -> set[str]:
        referenced: set[str] = set()
        paginator = self._client.get_paginator("list_aliases")
        for page in paginator.paginate(FunctionName=function_name):
            for alias in page.get("Aliases", []):
                referenced.add(str(alias["FunctionVersion"]))
                routing = alias.get("RoutingConfig") or {}
                referenced.update(str(v) for v in routing.get("AdditionalVersionWeights", {}))
        return referenced

    def _published_versions(self, function_name: str) -> list[str]:
        versions: list[str] = []
        paginator = self._client.get_paginator("list_versions_by_function")
        for page in paginator.paginate(FunctionName=function_name):
            for item in page.get("Versions", []):
                version = str(item["Version"])
                if version != "$LATEST":
                    versions.append(version)
        return versions

    def cleanup(self, function_name: str) -> Result[int, CollaboratorError]:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            referenced = self._referenced_versions(function_name)
            stale = [v for v in self._published_versions(function_name) if v not in referenced]
        except (BotoCoreError, ClientError) as exc:
            message = f"cannot list versions of {function_name}"
            return Err(_aws_error(exc, kind="cleanup_failed", message=message))

        removed = 0
        failed: list[str] = []
        for version in stale:
            try:
                self._client.delete_function(FunctionName=function_name, Qualifier=version)
                removed += 1
            except ClientError as exc:
                if _error_code(exc) == "ResourceNotFoundException":
                    continue
                failed.append(version)
            except BotoCoreError:
                failed.append(version)

        if failed:
            return Err(
                CollaboratorError(
                    kind="cleanup_failed",
                    message=f"removed {removed} versions, {len(failed)} could not be deleted",
                    hint="versions: " + ", ".join(failed),
                )
            )
        return Ok(removed)


@dataclass(frozen=True, slots=True)
class AwsCollaborators:
    publisher: S3ArtifactPublisher
    deployer: CloudFormationDeployer
    promoter: LambdaStagePromoter
    janitor: LambdaVersionJanitor


def build_aws_collaborators(config: DeployConfig, *, bucket: str) -> AwsCollaborators:
    lambda_client = make_client("lambda", region=config.region)
    return AwsCollaborators(
        publisher=S3ArtifactPublisher(region=config.region),
        deployer=CloudFormationDeployer(region=config.region),
        promoter=LambdaStagePromoter(region=config.region, bucket=bucket, client=lambda_client),
        janitor=LambdaVersionJanitor(region=config.region, client=lambda_client),
    )
