from __future__ import annotations

from typing import Any, Mapping, Optional, Tuple, Union

from state.models import RotationState, SlotAssignment, load_state


def rotate(
    prior: Optional[Union[RotationState, Mapping[str, Any]]],
    requested_version: int,
) -> Tuple[RotationState, SlotAssignment]:
    """
    Compute the next rotation state for `requested_version`.

    - No prior record: start from the bootstrap defaults (BLUE, 1, 1).
    - Same version as `prior.current_version`: the prior state is returned
      unchanged, so repeated runs converge instead of flipping slots.
    - Otherwise: flip the active slot, make `requested_version` current and
      the prior current version the previous one. The prior previous
      version is dropped; only two versions are ever tracked.

    The returned state is always meant to be written back, including the
    unchanged one. A malformed prior raises CorruptStateError.
    """
    if isinstance(requested_version, bool) or not isinstance(requested_version, int):
        raise TypeError(f"requested_version must be an int, got {type(requested_version).__name__}")

    current = RotationState.bootstrap() if prior is None else load_state(prior)

    if requested_version == current.current_version:
        new_state = current
    else:
        new_state = RotationState(
            active_slot=current.active_slot.other(),
            current_version=requested_version,
            previous_version=current.current_version,
        )

    return new_state, SlotAssignment.from_state(new_state)
