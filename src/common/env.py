from __future__ import annotations

import os
from typing import Dict, Iterable, Optional

import boto3
from botocore.exceptions import ClientError


_TRUE = {"1", "true", "yes", "on"}


def getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def getenv_bool(name: str, default: bool = False) -> bool:
    val = getenv(name)
    if val is None:
        return default
    return val.strip().lower() in _TRUE


def getenv_float(name: str, default: Optional[float] = None) -> Optional[float]:
    val = getenv(name)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError as ex:
        raise RuntimeError(f"Invalid configuration: {name} must be a number, got {val!r}") from ex


def require(v: Optional[str], what: str) -> str:
    if not v:
        raise RuntimeError(f"Missing required configuration: {what}")
    return v


def load_ssm_params(prefix: str, names: Iterable[str]) -> Dict[str, Optional[str]]:
    """Read decrypted SSM parameters `{prefix}{name}`; missing ones map to None."""
    ssm = boto3.client("ssm")
    out: Dict[str, Optional[str]] = {k: None for k in names}
    for name in out:
        full = f"{prefix}{name}"
        try:
            resp = ssm.get_parameter(Name=full, WithDecryption=True)
        except ClientError as e:
            # Leave as None if parameter missing or access denied
            code = e.response.get("Error", {}).get("Code")
            if code in ("ParameterNotFound", "AccessDeniedException"):
                continue
            raise
        val = resp.get("Parameter", {}).get("Value")
        out[name] = val if isinstance(val, str) and val != "" else None
    return out
