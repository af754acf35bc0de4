from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import httpx


logger = logging.getLogger(__name__)

ERROR_KEY = "error"


@dataclass
class ProbeResult:
    status_code: Optional[int]
    reason: str
    key: str


class TrafficProbe:
    """
    Polls a routed endpoint and tallies which `service:version` answered.

    Each backend answers `GET /` with JSON `{"service": ..., "version": ...}`.
    With both slots behind an even split, the tally shows how traffic lands
    on blue and green while a rotation rolls out.

    Notes
    - Transport failures and non-JSON bodies are counted under `error`.
    - `sleep` is injectable so tests don't wait.
    """

    def __init__(
        self,
        host: str,
        *,
        interval: float = 1.0,
        timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not host:
            raise ValueError("host is required")
        self._url = host if host.startswith(("http://", "https://")) else f"http://{host}"
        self._interval = interval
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self._sleep = sleep
        self.counts: Counter[str] = Counter()

    @property
    def url(self) -> str:
        return self._url

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "TrafficProbe":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def poll_once(self) -> ProbeResult:
        try:
            resp = self._client.get(self._url)
        except httpx.HTTPError as exc:
            logger.debug("Probe request failed: %s", exc)
            self.counts[ERROR_KEY] += 1
            return ProbeResult(status_code=None, reason=type(exc).__name__, key=ERROR_KEY)

        key = ERROR_KEY
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and "service" in body and "version" in body:
            key = f"{body['service']}:{body['version']}"
        self.counts[key] += 1
        return ProbeResult(status_code=resp.status_code, reason=resp.reason_phrase, key=key)

    def report(self) -> str:
        return " ".join(f"{key}={count}" for key, count in sorted(self.counts.items()))

    def run(self, count: Optional[int] = None, *, emit: Callable[[str], None] = print) -> Dict[str, int]:
        """Poll `count` times (forever when None), emitting one line per response."""
        emit(f"Running against {self._url}")
        done = 0
        while count is None or done < count:
            if done:
                self._sleep(self._interval)
            result = self.poll_once()
            status = result.status_code if result.status_code is not None else "---"
            emit(f"{status} {result.reason} {self.report()}")
            done += 1
        return dict(self.counts)
