"""
Bounded fan-out of probes over one phase's port list.

One task per port, admission gated by a semaphore. When a stop event is
supplied, the first confirmed result sets it and every task that has not
yet reached its probe skips its work.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence

from core.models import ScanResult
from policy.adaptive_timeout import AdaptiveTimeout
from probers.tds_prelogin import probe_port

log = logging.getLogger(__name__)

ProbeFn = Callable[[str, int, AdaptiveTimeout, Optional[asyncio.Event]], Awaitable[Optional[ScanResult]]]


async def run_phase(
    ip: str,
    ports: Sequence[int],
    timeouts: AdaptiveTimeout,
    max_parallelism: int,
    stop: Optional[asyncio.Event] = None,
    probe: ProbeFn = probe_port,
) -> List[ScanResult]:
    results: List[ScanResult] = []
    semaphore = asyncio.Semaphore(max_parallelism)

    def stopped() -> bool:
        return stop is not None and stop.is_set()

    async def _task(port: int) -> None:
        if stopped():
            return
        async with semaphore:
            if stopped():
                return
            result = await probe(ip, port, timeouts, stop)
        if result is not None:
            results.append(result)
            if stop is not None:
                stop.set()

    outcomes = await asyncio.gather(*(_task(p) for p in ports), return_exceptions=True)
    for port, outcome in zip(ports, outcomes):
        if isinstance(outcome, BaseException):
            log.debug("probe task for port %d raised %r", port, outcome)

    return sorted(results, key=lambda r: r.port)
