from __future__ import annotations

from typing import Optional


class RotationError(RuntimeError):
    """Base error for a blue-green rotation run.

    Every error carries the `phase` of the run it aborted; the message is
    prefixed with it so a failed pipeline log points at the right step.
    """

    phase = "rotation"

    def __init__(self, message: str, *, phase: Optional[str] = None) -> None:
        if phase is not None:
            self.phase = phase
        self.detail = message
        super().__init__(f"{self.phase}: {message}")


class RetrievalError(RotationError):
    """The state store could not be read (unreachable, denied or timed out)."""

    phase = "priming"


class MissingPrimedStateError(RotationError):
    """The synchronous phase ran before priming completed."""

    phase = "priming"


class PrimingError(RotationError):
    """Priming was attempted a second time within one run."""

    phase = "priming"


class CorruptStateError(RotationError):
    """A persisted record exists but does not match the rotation state shape."""

    phase = "state"


class BuildError(RotationError):
    """The deployment builder failed for a slot."""

    phase = "build"


class PersistError(RotationError):
    """Writing the new state failed after the deployment was built."""

    phase = "persist"


class ConcurrentModificationError(PersistError):
    """A conditional write found the stored record changed since it was read."""


__all__ = [
    "RotationError",
    "RetrievalError",
    "MissingPrimedStateError",
    "PrimingError",
    "CorruptStateError",
    "BuildError",
    "PersistError",
    "ConcurrentModificationError",
]
