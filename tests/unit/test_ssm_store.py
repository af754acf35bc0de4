from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import pytest
from botocore.exceptions import ClientError

from state.errors import ConcurrentModificationError, CorruptStateError, PersistError, RetrievalError
from state.models import RotationState, Slot
from state.ssm_store import SsmStateStore
from state.store import LoadStatus


class _FakeSSM:
    def __init__(self) -> None:
        self._params: Dict[str, Dict[str, Any]] = {}
        self.fail_with: Optional[str] = None
        self.puts: List[Dict[str, Any]] = []

    def seed(self, name: str, value: str) -> None:
        version = self._params.get(name, {}).get("Version", 0) + 1
        self._params[name] = {"Name": name, "Value": value, "Version": version, "Type": "String"}

    def get_parameter(self, *, Name: str):
        if self.fail_with:
            raise ClientError({"Error": {"Code": self.fail_with}}, "GetParameter")
        param = self._params.get(Name)
        if param is None:
            raise ClientError({"Error": {"Code": "ParameterNotFound"}}, "GetParameter")
        return {"Parameter": dict(param)}

    def put_parameter(self, *, Name: str, Value: str, Type: str, Overwrite: bool):
        if self.fail_with:
            raise ClientError({"Error": {"Code": self.fail_with}}, "PutParameter")
        if not Overwrite and Name in self._params:
            raise ClientError({"Error": {"Code": "ParameterAlreadyExists"}}, "PutParameter")
        self.puts.append({"Name": Name, "Value": Value, "Type": Type, "Overwrite": Overwrite})
        self.seed(Name, Value)
        return {"Version": self._params[Name]["Version"], "Tier": "Standard"}


def test_missing_parameter_is_absent():
    result = SsmStateStore(ssm=_FakeSSM()).get()
    assert result.status is LoadStatus.ABSENT


def test_empty_value_is_absent():
    ssm = _FakeSSM()
    ssm.seed("blue-green-state", "")
    assert SsmStateStore(ssm=ssm).get().status is LoadStatus.ABSENT


def test_put_then_get_uses_fixed_parameter_name():
    ssm = _FakeSSM()
    store = SsmStateStore(ssm=ssm)
    state = RotationState(active_slot=Slot.GREEN, current_version=2, previous_version=1)

    token = store.put(state)

    assert token == "1"
    assert ssm.puts[0]["Name"] == "blue-green-state"
    assert ssm.puts[0]["Type"] == "String"
    assert json.loads(ssm.puts[0]["Value"]) == {"activeSlot": "GREEN", "currentVersion": 2, "previousVersion": 1}

    result = store.get()
    assert result.state == state
    assert result.token == "1"


def test_corrupt_parameter_raises():
    ssm = _FakeSSM()
    ssm.seed("blue-green-state", '{"activeSlot":"PURPLE","currentVersion":1,"previousVersion":1}')
    with pytest.raises(CorruptStateError):
        SsmStateStore(ssm=ssm).get()


def test_access_denied_on_read_is_retrieval_error():
    ssm = _FakeSSM()
    ssm.fail_with = "AccessDeniedException"
    with pytest.raises(RetrievalError):
        SsmStateStore(ssm=ssm).get()


def test_failed_write_is_persist_error():
    ssm = _FakeSSM()
    ssm.fail_with = "ThrottlingException"
    with pytest.raises(PersistError) as ei:
        SsmStateStore(ssm=ssm).put(RotationState.bootstrap())
    assert ei.value.phase == "persist"


def test_if_match_rejects_newer_version():
    ssm = _FakeSSM()
    store = SsmStateStore(ssm=ssm, name="custom")
    store.put(RotationState.bootstrap())
    token = store.get().token
    store.put(RotationState(active_slot=Slot.GREEN, current_version=2, previous_version=1))

    with pytest.raises(ConcurrentModificationError):
        store.put(RotationState(active_slot=Slot.GREEN, current_version=3, previous_version=1), if_match=token)
    assert store.get().state.current_version == 2


def test_if_match_writes_when_version_unchanged():
    ssm = _FakeSSM()
    store = SsmStateStore(ssm=ssm)
    store.put(RotationState.bootstrap())
    token = store.put(RotationState.bootstrap(), if_match=store.get().token)
    assert token == "2"


def test_create_only_maps_already_exists_to_conflict():
    ssm = _FakeSSM()
    store = SsmStateStore(ssm=ssm)
    store.put(RotationState.bootstrap(), create_only=True)
    assert ssm.puts[0]["Overwrite"] is False
    with pytest.raises(ConcurrentModificationError):
        store.put(RotationState.bootstrap(), create_only=True)


def test_client_is_bounded_by_timeout(monkeypatch):
    configs = []

    def fake_client(service, **kwargs):
        configs.append(kwargs.get("config"))
        return _FakeSSM()

    monkeypatch.setattr("state.ssm_store.boto3.client", fake_client)
    SsmStateStore(name="/deploy/prod/rotation", timeout=2.5)
    SsmStateStore()

    assert configs[0].read_timeout == 2.5
    assert configs[0].connect_timeout == 2.5
    assert configs[1] is None
