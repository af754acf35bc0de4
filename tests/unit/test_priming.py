from __future__ import annotations

import asyncio
import logging
import time
from typing import List

import pytest

from state.errors import CorruptStateError, MissingPrimedStateError, PrimingError, RetrievalError
from state.models import RotationState, Slot
from state.priming import PrimedState, PrimedValue, prime_state
from state.store import LoadResult, LoadStatus, MemoryStateStore


class _CountingStore:
    def __init__(self, result: LoadResult | None = None, error: Exception | None = None, delay: float = 0.0) -> None:
        self._result = result or LoadResult.absent()
        self._error = error
        self._delay = delay
        self.calls: List[str] = []

    def get(self) -> LoadResult:
        self.calls.append("get")
        if self._delay:
            time.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return self._result

    def put(self, state, *, if_match=None, create_only=False):  # noqa: ARG002
        raise AssertionError("priming must not write")


def _prime(store, holder, **kwargs) -> PrimedValue:
    return asyncio.run(prime_state(store, holder, **kwargs))


def test_get_before_priming_raises_every_time():
    holder = PrimedState()
    for _ in range(3):
        with pytest.raises(MissingPrimedStateError):
            holder.get()
    assert holder.is_primed is False


def test_found_state_and_token_are_primed():
    stored = RotationState(active_slot=Slot.GREEN, current_version=4, previous_version=3)
    store = MemoryStateStore(stored)
    holder = PrimedState()

    value = _prime(store, holder)

    assert value.state == stored
    assert value.status is LoadStatus.FOUND
    assert value.token == "1"
    assert value.bootstrapped is False
    assert holder.get() is value


def test_absent_store_bootstraps():
    holder = PrimedState()
    value = _prime(MemoryStateStore(), holder)
    assert value.state == RotationState.bootstrap()
    assert value.status is LoadStatus.ABSENT
    assert value.bootstrapped is True


def test_retrieval_error_bootstraps_and_warns(caplog):
    store = _CountingStore(error=RetrievalError("unreachable"))
    holder = PrimedState()

    with caplog.at_level(logging.WARNING, logger="state.priming"):
        value = _prime(store, holder)

    assert value.state == RotationState.bootstrap()
    assert value.status is LoadStatus.UNKNOWN
    assert "treating as first deployment" in caplog.text


def test_strict_mode_fails_on_unreachable_store():
    store = _CountingStore(error=RetrievalError("unreachable"))
    holder = PrimedState()
    with pytest.raises(RetrievalError):
        _prime(store, holder, strict=True)
    assert holder.is_primed is False


def test_timeout_is_treated_as_retrieval_error():
    store = _CountingStore(delay=2.0)
    holder = PrimedState()

    started = time.monotonic()
    value = _prime(store, holder, timeout=0.05)
    elapsed = time.monotonic() - started

    assert value.status is LoadStatus.UNKNOWN
    # the hung call is abandoned, not waited for
    assert elapsed < 1.0


def test_timeout_in_strict_mode_raises():
    store = _CountingStore(delay=2.0)
    started = time.monotonic()
    with pytest.raises(RetrievalError):
        _prime(store, PrimedState(), timeout=0.05, strict=True)
    assert time.monotonic() - started < 1.0


def test_corrupt_state_is_not_masked():
    store = MemoryStateStore.from_raw('{"activeSlot":"PURPLE","currentVersion":1,"previousVersion":1}')
    with pytest.raises(CorruptStateError):
        _prime(store, PrimedState())


def test_override_skips_store():
    store = _CountingStore()
    holder = PrimedState()
    value = _prime(store, holder, override='{"activeSlot":"GREEN","currentVersion":8,"previousVersion":7}')
    assert store.calls == []
    assert value.overridden is True
    assert value.state.active_slot is Slot.GREEN
    assert value.token is None


def test_second_priming_is_rejected_without_fetching():
    store = _CountingStore()
    holder = PrimedState()
    _prime(store, holder)
    with pytest.raises(PrimingError):
        _prime(store, holder)
    assert store.calls == ["get"]


def test_holder_set_is_write_once():
    holder = PrimedState()
    value = PrimedValue(state=RotationState.bootstrap(), status=LoadStatus.ABSENT)
    holder.set(value)
    with pytest.raises(PrimingError):
        holder.set(value)
    assert holder.get() is value
