"""Version resolution and ref classification.

Both are pure functions of the build context: the same CI inputs always give
the same version and the same deployment target.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from fnrelease.core.context import BuildContext
from fnrelease.services.deploy.model import DeploymentTarget


_RELEASE_RE = re.compile(r"^(?:refs/heads/)?release[/-](\d+(?:\.\d+){0,3})$", re.IGNORECASE)
_FALSY_PR_RE = re.compile(r"false", re.IGNORECASE)
_STAGE_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_-]+")

BRANCH_REF_PREFIX = "refs/heads/"
DEFAULT_BASE = "0.0"
_SEGMENTS = 3
_MAX_STAGE_LENGTH = 128


@dataclass(frozen=True, slots=True)
class Version:
    """Three dotted segments.

    Segments stay strings: a non-numeric pull request id is still a valid
    segment, it just does not order numerically.
    """

    major: str
    minor: str
    patch: str

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def as_ints(self) -> tuple[int, int, int] | None:
        if not all(s.isdigit() for s in (self.major, self.minor, self.patch)):
            return None
        return (int(self.major), int(self.minor), int(self.patch))


@dataclass(frozen=True, slots=True)
class MainLine:
    pass


@dataclass(frozen=True, slots=True)
class ReleaseBranch:
    base: str
    stage_name: str


@dataclass(frozen=True, slots=True)
class OtherBranch:
    stage_name: str


type RefKind = MainLine | ReleaseBranch | OtherBranch


def release_base(ref_name: str | None) -> str | None:
    """Dotted number of a release branch (``release/2.3`` -> ``2.3``), else None.

    A ref that starts like a release branch but carries a non-numeric suffix
    (``release/next``) is not a release branch.
    """
    if not ref_name:
        return None
    m = _RELEASE_RE.match(ref_name)
    if m is None:
        return None
    return m.group(1)


def is_falsy_marker(pull_request_id: str) -> bool:
    return _FALSY_PR_RE.search(pull_request_id) is not None


def resolve_version(context: BuildContext) -> Version:
    pr = context.pull_request_id
    if pr and not is_falsy_marker(pr):
        base = f"0.{pr}"
    else:
        base = release_base(context.ref_name) or DEFAULT_BASE

    segments = f"{base}.{context.build_number or '0'}".split(".")
    segments += ["0"] * (_SEGMENTS - len(segments))
    major, minor, patch = segments[:_SEGMENTS]
    return Version(major, minor, patch)


def normalize_stage_name(ref_name: str) -> str:
    """Turn a branch ref into a Lambda alias-safe stage name.

    Returns an empty string when nothing usable is left.
    """
    name = ref_name.removeprefix(BRANCH_REF_PREFIX)
    name = _STAGE_UNSAFE_RE.sub("-", name).strip("-")
    if name.isdigit():
        # Lambda rejects purely numeric alias names.
        name = f"branch-{name}"
    return name[:_MAX_STAGE_LENGTH]


def _off_production(stage: str, production_stage: str) -> str:
    if stage == production_stage:
        return f"branch-{stage}"[:_MAX_STAGE_LENGTH]
    return stage


def classify_ref(
    ref_name: str | None,
    *,
    main_line_ref: str,
    fallback_stage: str,
    production_stage: str,
) -> RefKind:
    """Classify a ref. Only the main line ever gets ``production_stage``."""
    if not ref_name:
        return OtherBranch(stage_name=_off_production(fallback_stage, production_stage))
    if ref_name == main_line_ref:
        return MainLine()

    stage = normalize_stage_name(ref_name) or fallback_stage
    stage = _off_production(stage, production_stage)
    base = release_base(ref_name)
    if base is not None:
        return ReleaseBranch(base=base, stage_name=stage)
    return OtherBranch(stage_name=stage)


def deployment_target(kind: RefKind, *, production_stage: str) -> DeploymentTarget:
    match kind:
        case MainLine():
            return DeploymentTarget(stage_name=production_stage, is_main_line=True)
        case ReleaseBranch(stage_name=stage) | OtherBranch(stage_name=stage):
            return DeploymentTarget(stage_name=stage, is_main_line=False)
        case _:
            raise AssertionError(f"unexpected ref kind: {kind}")
