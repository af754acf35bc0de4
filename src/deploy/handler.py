from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from common.env import getenv, getenv_bool, getenv_float, load_ssm_params, require
from common.log import configure_logging
from rotation.deployment import BlueGreenDeployment, Builder
from state.errors import PersistError
from state.models import Slot
from state.priming import PrimedState, prime_state
from state.s3_store import DEFAULT_KEY, ENV_BUCKET, ENV_FERNET_KEY, ENV_KEY, S3StateStore
from state.ssm_store import ENV_PARAMETER, SsmStateStore
from state.store import DEFAULT_STATE_NAME, MemoryStateStore, StateStore


logger = logging.getLogger(__name__)

# Environment variable names
ENV_BACKEND = "STATE_BACKEND"  # ssm (default) | s3 | memory
ENV_PARAM_PREFIX = "PARAM_PREFIX"  # SSM prefix holding fernet_key for the s3 backend
ENV_OVERRIDE = "BLUE_GREEN_STATE"  # JSON record; skips retrieval when set
ENV_STRICT = "STATE_STRICT_RETRIEVAL"
ENV_CONDITIONAL = "STATE_CONDITIONAL_WRITES"
ENV_TIMEOUT = "STATE_TIMEOUT_SECONDS"
ENV_LOG_LEVEL = "LOG_LEVEL"

BACKENDS = ("ssm", "s3", "memory")
DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass
class RunConfig:
    backend: str = "ssm"
    override: Optional[str] = None
    strict: bool = False
    conditional: bool = False
    timeout: Optional[float] = DEFAULT_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls) -> "RunConfig":
        backend = (getenv(ENV_BACKEND, "ssm") or "ssm").lower()
        if backend not in BACKENDS:
            raise RuntimeError(
                f"Invalid configuration: {ENV_BACKEND} must be one of {', '.join(BACKENDS)}, got {backend!r}"
            )
        return cls(
            backend=backend,
            override=getenv(ENV_OVERRIDE),
            strict=getenv_bool(ENV_STRICT),
            conditional=getenv_bool(ENV_CONDITIONAL),
            timeout=getenv_float(ENV_TIMEOUT, DEFAULT_TIMEOUT_SECONDS),
        )


def build_store(backend: str, *, timeout: Optional[float] = None) -> StateStore:
    """Construct the configured store; AWS clients are bounded by `timeout` per call."""
    if backend == "ssm":
        return SsmStateStore(name=getenv(ENV_PARAMETER) or DEFAULT_STATE_NAME, timeout=timeout)
    if backend == "s3":
        bucket = require(getenv(ENV_BUCKET), ENV_BUCKET)
        key = getenv(ENV_KEY, DEFAULT_KEY) or DEFAULT_KEY
        fernet_key = getenv(ENV_FERNET_KEY)
        if not fernet_key:
            prefix = require(getenv(ENV_PARAM_PREFIX), f"{ENV_FERNET_KEY} or {ENV_PARAM_PREFIX}")
            params = load_ssm_params(prefix, ["fernet_key"])
            fernet_key = require(params.get("fernet_key"), f"{prefix}fernet_key")
        return S3StateStore(bucket=bucket, key=key, fernet_key=fernet_key, timeout=timeout)
    if backend == "memory":
        return MemoryStateStore()
    raise RuntimeError(f"Invalid configuration: unknown state backend {backend!r}")


def plan_builder(slot: Slot, version: int) -> Dict[str, Any]:
    """Default builder: describes what each slot should run without creating anything."""
    name = slot.value.lower()
    return {"slot": slot.value, "name": name, "version": version, "service": f"{name}-v{version}"}


def routing_plan(deployment: BlueGreenDeployment) -> List[Dict[str, Any]]:
    # Traffic is split evenly across both slots, as the router in front of them expects
    return [
        {"slot": slot.value, "version": version, "weight": 50}
        for slot, version in deployment.assignment.items()
    ]


def parse_version(raw: Any) -> int:
    if isinstance(raw, bool):
        raise ValueError("version must be an integer")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().lstrip("-").isdigit():
        return int(raw.strip())
    raise ValueError(f"version must be an integer, got {raw!r}")


def run_once(
    version: int,
    *,
    builder: Optional[Builder] = None,
    store: Optional[StateStore] = None,
    config: Optional[RunConfig] = None,
    dry_run: bool = False,
) -> Dict[str, Any]:
    """Prime, rotate, build both slots and persist the new rotation state."""
    config = config or RunConfig.from_env()
    store = store if store is not None else build_store(config.backend, timeout=config.timeout)

    holder = PrimedState()
    primed = asyncio.run(
        prime_state(
            store,
            holder,
            override=config.override,
            strict=config.strict,
            timeout=config.timeout,
        )
    )

    deployment = BlueGreenDeployment(primed=holder, version=version, build=builder or plan_builder)

    if dry_run:
        logger.info("Dry run; rotation state not written")
    else:
        try:
            deployment.persist(store, conditional=config.conditional)
        except PersistError:
            logger.error(
                "Slots were built for v%s but the rotation state was not saved; "
                "state tracking is stale until the run is retried",
                version,
            )
            raise

    return {
        "ok": True,
        "version": version,
        "rotated": deployment.rotated,
        "source": "override" if primed.overridden else primed.status.value,
        "previous": deployment.previous.model_dump(by_alias=True, mode="json"),
        "state": deployment.state.model_dump(by_alias=True, mode="json"),
        "assignment": deployment.assignment.as_dict(),
        "slots": {Slot.BLUE.value: deployment.blue, Slot.GREEN.value: deployment.green},
        "routes": routing_plan(deployment),
        "persisted": not dry_run,
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    configure_logging(getenv(ENV_LOG_LEVEL, "INFO"))
    version = parse_version((event or {}).get("version"))
    return run_once(version, dry_run=bool((event or {}).get("dry_run", False)))
