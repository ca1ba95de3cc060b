"""Core domain types: results, config, build context."""

from .config import ConfigError, DeployConfig, load_config, load_config_or_default
from .context import BuildContext, build_context_from_env
from .errors import ErrorCode
from .result import Err, Ok, Result

__all__ = [
    # config
    "ConfigError",
    "DeployConfig",
    "load_config",
    "load_config_or_default",
    # context
    "BuildContext",
    "build_context_from_env",
    # errors
    "ErrorCode",
    # result
    "Err",
    "Ok",
    "Result",
]
