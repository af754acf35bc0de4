from __future__ import annotations

import logging
from typing import Callable, Dict, Generic, Optional, TypeVar

from state.errors import BuildError, RotationError
from state.models import RotationState, Slot
from state.priming import PrimedState, PrimedValue
from state.store import LoadStatus, StateStore

from .rotator import rotate


logger = logging.getLogger(__name__)

H = TypeVar("H")

# (slot, version) -> handle for that slot's deployed artifact
Builder = Callable[[Slot, int], H]


class BlueGreenDeployment(Generic[H]):
    """
    Synchronous half of a rotation run.

    Construction reads the primed state, rotates it to `version` and calls
    `build` exactly once per slot with the version assigned to it. The
    resulting handles are exposed as `blue` and `green` for routing.
    Nothing is written until `persist()` is called.
    """

    def __init__(self, *, primed: PrimedState, version: int, build: Builder) -> None:
        self._primed: PrimedValue = primed.get()
        self.previous: RotationState = self._primed.state
        self.state, self.assignment = rotate(self.previous, version)

        if self.rotated:
            logger.info(
                "Rotating %s -> %s: %s gets v%s, %s keeps v%s",
                self.previous.active_slot.value,
                self.state.active_slot.value,
                self.state.active_slot.value,
                self.state.current_version,
                self.state.active_slot.other().value,
                self.state.previous_version,
            )
        else:
            logger.info("Version %s already active on %s; no rotation", version, self.state.active_slot.value)

        handles: Dict[Slot, H] = {}
        for slot, slot_version in self.assignment.items():
            handles[slot] = self._build(build, slot, slot_version)
        self.blue: H = handles[Slot.BLUE]
        self.green: H = handles[Slot.GREEN]

    @staticmethod
    def _build(build: Builder, slot: Slot, version: int) -> H:
        try:
            return build(slot, version)
        except RotationError:
            raise
        except Exception as ex:
            raise BuildError(f"builder failed for {slot.value} v{version}: {ex}") from ex

    @property
    def rotated(self) -> bool:
        return self.state != self.previous

    @property
    def primed(self) -> PrimedValue:
        return self._primed

    def handle_for(self, slot: Slot) -> H:
        return self.blue if slot is Slot.BLUE else self.green

    def persist(self, store: StateStore, *, conditional: bool = False) -> Optional[str]:
        """Write the new state back, unchanged states included.

        With `conditional`, the write is guarded by the token read during
        priming (or create-only when nothing was stored), raising
        ConcurrentModificationError if another run got there first. A state
        supplied as an override has no token and is always written plainly.
        """
        if_match: Optional[str] = None
        create_only = False
        if conditional and not self._primed.overridden:
            if self._primed.token is not None:
                if_match = self._primed.token
            elif self._primed.status in (LoadStatus.ABSENT, LoadStatus.UNKNOWN):
                create_only = True

        token = store.put(self.state, if_match=if_match, create_only=create_only)
        logger.info(
            "Persisted rotation state %s",
            self.state.model_dump(by_alias=True, mode="json"),
        )
        return token
