"""
Rotation state models, persistence backends and the priming bridge.

The rotation record is a small JSON document kept in SSM Parameter Store
(default) or in S3 encrypted with Fernet.
"""

from .errors import (
    BuildError,
    ConcurrentModificationError,
    CorruptStateError,
    MissingPrimedStateError,
    PersistError,
    PrimingError,
    RetrievalError,
    RotationError,
)
from .models import RotationState, Slot, SlotAssignment, dump_state, load_state
from .priming import PrimedState, PrimedValue, prime_state
from .store import DEFAULT_STATE_NAME, LoadResult, LoadStatus, MemoryStateStore, StateStore

__all__ = [
    "BuildError",
    "ConcurrentModificationError",
    "CorruptStateError",
    "MissingPrimedStateError",
    "PersistError",
    "PrimingError",
    "RetrievalError",
    "RotationError",
    "RotationState",
    "Slot",
    "SlotAssignment",
    "dump_state",
    "load_state",
    "PrimedState",
    "PrimedValue",
    "prime_state",
    "DEFAULT_STATE_NAME",
    "LoadResult",
    "LoadStatus",
    "MemoryStateStore",
    "StateStore",
]
