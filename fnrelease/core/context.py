"""Build context assembled once from the CI environment."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

__all__ = ["BuildContext", "build_context_from_env"]

ENV_REF = "GITHUB_REF"
ENV_BUILD_NUMBER = "GITHUB_RUN_NUMBER"
ENV_PULL_REQUEST = "PULL_REQUEST_ID"
ENV_RUN_ID = "GITHUB_RUN_ID"


@dataclass(frozen=True, slots=True)
class BuildContext:
    """CI facts a single orchestration run is derived from.

    Attributes:
        ref_name: Git ref being built (e.g. ``refs/heads/main``).
        build_number: Monotonic CI build counter.
        pull_request_id: Pull request id, when building a PR.
        run_id: Unique id of this CI run; scopes change-set names.
    """

    ref_name: str | None = None
    build_number: str | None = None
    pull_request_id: str | None = None
    run_id: str | None = None


def _read(environ: Mapping[str, str], key: str) -> str | None:
    value = environ.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def build_context_from_env(environ: Mapping[str, str]) -> BuildContext:
    return BuildContext(
        ref_name=_read(environ, ENV_REF),
        build_number=_read(environ, ENV_BUILD_NUMBER),
        pull_request_id=_read(environ, ENV_PULL_REQUEST),
        run_id=_read(environ, ENV_RUN_ID),
    )
