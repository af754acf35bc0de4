from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol

from .errors import ConcurrentModificationError
from .models import RotationState, dump_state, load_state


DEFAULT_STATE_NAME = "blue-green-state"


class LoadStatus(str, Enum):
    FOUND = "found"
    ABSENT = "absent"  # store reachable, no record yet
    UNKNOWN = "unknown"  # store unreachable; absence not confirmed


@dataclass(frozen=True)
class LoadResult:
    """Outcome of a store read.

    `token` is an opaque concurrency marker (S3 ETag, SSM parameter version,
    in-memory revision) usable as `if_match` on the next write.
    """

    status: LoadStatus
    state: Optional[RotationState] = None
    token: Optional[str] = None

    @classmethod
    def found(cls, state: RotationState, token: Optional[str] = None) -> "LoadResult":
        return cls(status=LoadStatus.FOUND, state=state, token=token)

    @classmethod
    def absent(cls) -> "LoadResult":
        return cls(status=LoadStatus.ABSENT)


class StateStore(Protocol):
    """Persistence contract for the single rotation record.

    - `get()` raises RetrievalError on transport/auth failure and
      CorruptStateError when the stored value does not parse.
    - `put()` raises PersistError on failure. With `if_match` the write only
      succeeds if the stored token still matches; with `create_only` only if
      no record exists. Either precondition failing raises
      ConcurrentModificationError. Returns the new token.
    """

    def get(self) -> LoadResult: ...

    def put(
        self,
        state: RotationState,
        *,
        if_match: Optional[str] = None,
        create_only: bool = False,
    ) -> Optional[str]: ...


class MemoryStateStore:
    """In-process store; keeps the serialized record to mirror real backends."""

    def __init__(self, initial: Optional[RotationState] = None) -> None:
        self._lock = threading.Lock()
        self._raw: Optional[str] = dump_state(initial) if initial is not None else None
        self._revision = 1 if initial is not None else 0
        self.writes: List[RotationState] = []

    @classmethod
    def from_raw(cls, raw: str) -> "MemoryStateStore":
        """Seed with an arbitrary stored string (used to simulate corrupt records)."""
        store = cls()
        store._raw = raw
        store._revision = 1
        return store

    def get(self) -> LoadResult:
        with self._lock:
            raw, revision = self._raw, self._revision
        if raw is None:
            return LoadResult.absent()
        return LoadResult.found(load_state(raw), token=str(revision))

    def put(
        self,
        state: RotationState,
        *,
        if_match: Optional[str] = None,
        create_only: bool = False,
    ) -> Optional[str]:
        with self._lock:
            if create_only and self._raw is not None:
                raise ConcurrentModificationError("rotation state already exists")
            if if_match is not None and (self._raw is None or str(self._revision) != if_match):
                raise ConcurrentModificationError(
                    f"rotation state revision changed (expected {if_match}, found {self._revision})"
                )
            self._raw = dump_state(state)
            self._revision += 1
            self.writes.append(state)
            return str(self._revision)
