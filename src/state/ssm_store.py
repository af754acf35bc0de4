from __future__ import annotations

import logging
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import ConcurrentModificationError, PersistError, RetrievalError
from .models import RotationState, dump_state, load_state
from .store import DEFAULT_STATE_NAME, LoadResult


logger = logging.getLogger(__name__)

ENV_PARAMETER = "STATE_PARAMETER"


def _error_code(e: ClientError) -> Optional[str]:
    return e.response.get("Error", {}).get("Code")


def client_config(timeout: Optional[float]) -> Optional[Config]:
    """botocore client config bounding each call by `timeout` seconds."""
    if timeout is None:
        return None
    return Config(connect_timeout=timeout, read_timeout=timeout, retries={"max_attempts": 2, "mode": "standard"})


class SsmStateStore:
    """
    Rotation state held in a Systems Manager Parameter Store `String` parameter.

    Usage
    - `get()` returns a LoadResult; a missing parameter (or empty value) is
      ABSENT, not an error. The token is the parameter `Version`.
    - `put(state)` overwrites the parameter (last writer wins).
    - `put(state, if_match=version)` first re-reads the parameter version and
      refuses to write on mismatch. Parameter Store has no conditional put,
      so this narrows the race window rather than closing it.
    - `put(state, create_only=True)` uses `Overwrite=False` and is atomic.
    """

    def __init__(
        self,
        *,
        ssm: Optional[object] = None,
        name: str = DEFAULT_STATE_NAME,
        region_name: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._ssm = ssm or boto3.client("ssm", region_name=region_name, config=client_config(timeout))
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def get(self) -> LoadResult:
        try:
            resp = self._ssm.get_parameter(Name=self._name)
        except ClientError as e:
            if _error_code(e) == "ParameterNotFound":
                return LoadResult.absent()
            raise RetrievalError(f"Failed to read SSM parameter {self._name}: {_error_code(e)}") from e
        except BotoCoreError as e:
            raise RetrievalError(f"Failed to reach SSM for parameter {self._name}") from e

        param = resp.get("Parameter", {})
        value = param.get("Value")
        if not value:
            return LoadResult.absent()
        version = param.get("Version")
        return LoadResult.found(load_state(value), token=str(version) if version is not None else None)

    def _current_version(self) -> Optional[str]:
        try:
            resp = self._ssm.get_parameter(Name=self._name)
        except ClientError as e:
            if _error_code(e) == "ParameterNotFound":
                return None
            raise PersistError(f"Failed to check SSM parameter {self._name}: {_error_code(e)}") from e
        except BotoCoreError as e:
            raise PersistError(f"Failed to reach SSM for parameter {self._name}") from e
        version = resp.get("Parameter", {}).get("Version")
        return str(version) if version is not None else None

    def put(
        self,
        state: RotationState,
        *,
        if_match: Optional[str] = None,
        create_only: bool = False,
    ) -> Optional[str]:
        if if_match is not None:
            current = self._current_version()
            if current != if_match:
                raise ConcurrentModificationError(
                    f"SSM parameter {self._name} changed (expected version {if_match}, found {current})"
                )

        try:
            resp = self._ssm.put_parameter(
                Name=self._name,
                Value=dump_state(state),
                Type="String",
                Overwrite=not create_only,
            )
        except ClientError as e:
            if create_only and _error_code(e) == "ParameterAlreadyExists":
                raise ConcurrentModificationError(
                    f"SSM parameter {self._name} was created by another run"
                ) from e
            raise PersistError(f"Failed to write SSM parameter {self._name}: {_error_code(e)}") from e
        except BotoCoreError as e:
            raise PersistError(f"Failed to reach SSM for parameter {self._name}") from e

        version = resp.get("Version")
        logger.debug("Wrote %s version %s", self._name, version)
        return str(version) if version is not None else None
