from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from .errors import MissingPrimedStateError, PrimingError, RetrievalError
from .models import RotationState, load_state
from .store import LoadStatus, StateStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrimedValue:
    """Resolved rotation state plus where it came from.

    `state` is always usable: ABSENT and UNKNOWN loads carry the bootstrap
    defaults. `token` is the store's concurrency marker, if any.
    """

    state: RotationState
    status: LoadStatus
    token: Optional[str] = None
    overridden: bool = False

    @property
    def bootstrapped(self) -> bool:
        return self.status is not LoadStatus.FOUND


class PrimedState:
    """
    Write-once holder bridging async retrieval into synchronous construction.

    - `set()` may be called exactly once; a second call raises PrimingError.
    - `get()` before `set()` raises MissingPrimedStateError every time.

    One instance is created per run and passed explicitly to whatever builds
    the deployment; there is no module-level instance.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value: Optional[PrimedValue] = None

    @property
    def is_primed(self) -> bool:
        return self._value is not None

    def set(self, value: PrimedValue) -> None:
        with self._lock:
            if self._value is not None:
                raise PrimingError("rotation state was already primed for this run")
            self._value = value

    def get(self) -> PrimedValue:
        value = self._value
        if value is None:
            raise MissingPrimedStateError(
                "rotation state has not been primed; run prime_state() before building the deployment"
            )
        return value


async def prime_state(
    store: StateStore,
    holder: PrimedState,
    *,
    override: Optional[Union[str, Mapping[str, Any], RotationState]] = None,
    strict: bool = False,
    timeout: Optional[float] = None,
) -> PrimedValue:
    """Fetch the rotation state once and stash it in `holder`.

    - `override`, when given, is used as the state and the store is not read.
    - A missing record bootstraps the defaults.
    - An unreachable store (RetrievalError or timeout) also bootstraps,
      logged at WARNING, unless `strict` is set, in which case the
      RetrievalError propagates.
    - CorruptStateError from the store always propagates.
    """
    if holder.is_primed:
        raise PrimingError("rotation state was already primed for this run")

    if override is not None:
        value = PrimedValue(state=load_state(override), status=LoadStatus.FOUND, overridden=True)
        logger.info("Using supplied rotation state override: %s", value.state.model_dump(by_alias=True, mode="json"))
        holder.set(value)
        return value

    # Dedicated executor, never joined: a hung store call must not hold up the run past `timeout`
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="state-priming")
    loop = asyncio.get_running_loop()
    try:
        result = await asyncio.wait_for(loop.run_in_executor(executor, store.get), timeout)
    except asyncio.TimeoutError as ex:
        error = RetrievalError(f"state store did not respond within {timeout}s")
        if strict:
            raise error from ex
        value = _unknown(error, strict=False)
    except RetrievalError as ex:
        value = _unknown(ex, strict=strict)
    else:
        if result.status is LoadStatus.FOUND and result.state is not None:
            value = PrimedValue(state=result.state, status=LoadStatus.FOUND, token=result.token)
        else:
            logger.info("No rotation state stored yet; starting from bootstrap defaults")
            value = PrimedValue(state=RotationState.bootstrap(), status=LoadStatus.ABSENT)
    finally:
        executor.shutdown(wait=False)

    holder.set(value)
    return value


def _unknown(error: RetrievalError, *, strict: bool) -> PrimedValue:
    if strict:
        raise error
    logger.warning("Rotation state unavailable, treating as first deployment: %s", error)
    return PrimedValue(state=RotationState.bootstrap(), status=LoadStatus.UNKNOWN)
