"""Typed deployment configuration.

The configuration is read once at the CLI boundary (TOML file plus a couple
of environment overrides) and handed to the orchestrator as a frozen value.
Nothing below the CLI reads process-wide settings.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path

from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_str, get_table

__all__ = [
    "DeployConfig",
    "ConfigError",
    "load_config",
    "load_config_or_default",
    "apply_env_overrides",
    "DEFAULT_REGION",
    "DEFAULT_MAIN_LINE_REF",
    "DEFAULT_PRODUCTION_STAGE",
    "DEFAULT_FALLBACK_STAGE",
    "DEFAULT_ARTIFACT_NAME",
]

DEFAULT_REGION = "eu-west-1"
DEFAULT_SOURCE_DIRECTORY = "src"
DEFAULT_TEMPLATE = "template/cloudformation.json"
DEFAULT_MAIN_LINE_REF = "refs/heads/main"
DEFAULT_PRODUCTION_STAGE = "production"
DEFAULT_FALLBACK_STAGE = "local"
DEFAULT_ARTIFACT_NAME = "lambda.zip"

ENV_BUCKET_PREFIX = "DEPLOYMENT_BUCKET"
ENV_ACCOUNT_ID = "AWS_ACCOUNT_ID"


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class DeployConfig:
    """Everything the orchestrator needs besides the build context.

    Attributes:
        region: AWS region the function lives in.
        bucket_prefix: First part of the deployment bucket name.
        account_id: AWS account id, second part of the bucket name.
        source_directory: Directory zipped into the function artifact.
        template: Path of the infrastructure template (JSON or YAML).
        main_line_ref: Ref whose builds deploy infrastructure.
        production_stage: Stage name used for main-line builds.
        fallback_stage: Stage name used when no ref is known (local runs).
        artifact_name: Last segment of every deployment key.
        stack_parameters: Template parameters, in declaration order.
    """

    region: str = DEFAULT_REGION
    bucket_prefix: str | None = None
    account_id: str | None = None
    source_directory: str = DEFAULT_SOURCE_DIRECTORY
    template: str = DEFAULT_TEMPLATE
    main_line_ref: str = DEFAULT_MAIN_LINE_REF
    production_stage: str = DEFAULT_PRODUCTION_STAGE
    fallback_stage: str = DEFAULT_FALLBACK_STAGE
    artifact_name: str = DEFAULT_ARTIFACT_NAME
    stack_parameters: tuple[tuple[str, str], ...] = ()

    @property
    def deployment_bucket(self) -> str | None:
        """``{bucket_prefix}-{account_id}-{region}``, or None when incomplete."""
        if not self.bucket_prefix or not self.account_id:
            return None
        return f"{self.bucket_prefix}-{self.account_id}-{self.region}"

    @property
    def regions(self) -> tuple[str, ...]:
        return (self.region,)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> DeployConfig:
        """Create DeployConfig from a mapping (parsed TOML)."""
        deploy: StrDict = get_table(data, "deploy") or {}
        stack: StrDict = get_table(data, "stack") or {}
        params: StrDict = get_table(stack, "parameters") or {}

        parameters: list[tuple[str, str]] = []
        for key, value in params.items():
            if isinstance(value, bool) or not isinstance(value, (str, int, float)):
                raise ValueError(f"stack parameter {key!r} must be a string or number")
            parameters.append((key, str(value)))

        return cls(
            region=get_str(deploy, "region") or DEFAULT_REGION,
            bucket_prefix=get_str(deploy, "bucket_prefix"),
            account_id=get_str(deploy, "account_id"),
            source_directory=get_str(deploy, "source_directory") or DEFAULT_SOURCE_DIRECTORY,
            template=get_str(deploy, "template") or DEFAULT_TEMPLATE,
            main_line_ref=get_str(deploy, "main_line_ref") or DEFAULT_MAIN_LINE_REF,
            production_stage=get_str(deploy, "production_stage") or DEFAULT_PRODUCTION_STAGE,
            fallback_stage=get_str(deploy, "fallback_stage") or DEFAULT_FALLBACK_STAGE,
            artifact_name=get_str(deploy, "artifact_name") or DEFAULT_ARTIFACT_NAME,
            stack_parameters=tuple(parameters),
        )


def apply_env_overrides(config: DeployConfig, environ: Mapping[str, str]) -> DeployConfig:
    """Return a copy of config with bucket settings taken from the CI environment."""
    bucket_prefix = (environ.get(ENV_BUCKET_PREFIX) or "").strip() or config.bucket_prefix
    account_id = (environ.get(ENV_ACCOUNT_ID) or "").strip() or config.account_id
    return replace(config, bucket_prefix=bucket_prefix, account_id=account_id)


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(ConfigError("Config root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))


def load_config(path: Path) -> Result[DeployConfig, ConfigError]:
    """Load and parse deployment configuration from a TOML file."""
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(DeployConfig.from_dict(result.value))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config structure: {e}", path=path))


def load_config_or_default(path: Path) -> Result[DeployConfig, ConfigError]:
    """Like load_config, but a missing file yields the defaults.

    A file that exists but cannot be parsed is still an error.
    """
    if not path.exists():
        return Ok(DeployConfig())
    return load_config(path)
