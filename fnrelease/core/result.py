"""Result type for explicit error handling.

Every step of a deployment can fail (an upload, a change set, an alias
update). Instead of raising across module seams, fallible functions return
either ``Ok(value)`` or ``Err(error)`` and the caller decides what a failure
means for the run.

Usage:
    def publish(key: str) -> Result[ArtifactRef, CollaboratorError]:
        if not key:
            return Err(CollaboratorError(kind="invalid_input", message="empty key"))
        return Ok(ArtifactRef(bucket="b", key=key, uploaded=True))

    match publish("svc/1.0.0/lambda.zip"):
        case Ok(ref):
            print(ref.key)
        case Err(error):
            print(error.message)
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Ok[T]:
    """A successful outcome.

    Attributes:
        value: The success value.
    """

    value: T

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err[E]:
    """A failed outcome.

    Attributes:
        error: The error value.
    """

    error: E

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


type Result[T, E] = Ok[T] | Err[E]
