from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError

from .errors import CorruptStateError


class Slot(str, Enum):
    """One of the two parallel deployment targets."""

    BLUE = "BLUE"
    GREEN = "GREEN"

    def other(self) -> "Slot":
        return Slot.GREEN if self is Slot.BLUE else Slot.BLUE


class RotationState(BaseModel):
    """
    Persisted blue-green rotation record.

    Fields
    - active_slot: the slot that received `current_version` on the last
      transition (serialized as `activeSlot`).
    - current_version: version most recently assigned to `active_slot`.
    - previous_version: version assigned to the other slot.

    Notes
    - Instances are frozen; a transition always produces a new record.
    - The stored object is the JSON encoding with camelCase keys, e.g.
        {"activeSlot":"BLUE","currentVersion":3,"previousVersion":2}
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    active_slot: Slot = Field(alias="activeSlot", description="Slot being rotated into")
    current_version: StrictInt = Field(alias="currentVersion", description="Version on the active slot")
    previous_version: StrictInt = Field(alias="previousVersion", description="Version on the other slot")

    @classmethod
    def bootstrap(cls) -> "RotationState":
        """Initial state used when no record has ever been persisted."""
        return cls(active_slot=Slot.BLUE, current_version=1, previous_version=1)


class SlotAssignment(BaseModel):
    """Version to deploy on each slot. Derived from a state, never persisted."""

    model_config = ConfigDict(frozen=True)

    blue: int
    green: int

    @classmethod
    def from_state(cls, state: RotationState) -> "SlotAssignment":
        if state.active_slot is Slot.BLUE:
            return cls(blue=state.current_version, green=state.previous_version)
        return cls(blue=state.previous_version, green=state.current_version)

    def version_for(self, slot: Slot) -> int:
        return self.blue if slot is Slot.BLUE else self.green

    def items(self) -> Iterator[Tuple[Slot, int]]:
        yield Slot.BLUE, self.blue
        yield Slot.GREEN, self.green

    def as_dict(self) -> Dict[str, int]:
        return {slot.value: version for slot, version in self.items()}


def dump_state(state: RotationState) -> str:
    # Deterministic JSON: stable key order, no extra whitespace
    return json.dumps(
        state.model_dump(by_alias=True, mode="json"), separators=(",", ":"), sort_keys=True
    )


def load_state(raw: Union[str, bytes, Mapping[str, Any], RotationState]) -> RotationState:
    """Parse a stored record, raising CorruptStateError on any shape violation."""
    if isinstance(raw, RotationState):
        # Revalidate: instances built with model_construct skip validation
        raw = {
            "activeSlot": raw.active_slot,
            "currentVersion": raw.current_version,
            "previousVersion": raw.previous_version,
        }
    if isinstance(raw, (str, bytes)):
        try:
            text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
            raw = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError) as ex:
            raise CorruptStateError("stored rotation state is not valid JSON") from ex
    if not isinstance(raw, Mapping):
        raise CorruptStateError(f"stored rotation state must be an object, got {type(raw).__name__}")
    try:
        return RotationState.model_validate(dict(raw))
    except ValidationError as ex:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in ex.errors()
        )
        raise CorruptStateError(f"invalid rotation state ({problems})") from ex
