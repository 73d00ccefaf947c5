"""Waiting for a BLB to become available.

The BLB control plane applies every change asynchronously; a BLB only
accepts the next change once its status is back to "available". This is
the only place where a pass waits on a status transition, and it is used
after binding and after every mutating phase.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from .errors import LoadBalancerVanished, StabilizationTimeout
from .models import STATUS_UNKNOWN, LoadBalancer
from .resolver import LoadBalancerResolver
from .retry import RetryPolicy, Sleep

logger = logging.getLogger(__name__)


async def wait_until_available(
    resolver: LoadBalancerResolver,
    load_balancer: LoadBalancer,
    policy: RetryPolicy,
    sleep: Sleep = asyncio.sleep,
) -> LoadBalancer:
    """Poll a BLB until its status is "available".

    The cached status starts as "unknown" whatever the input says, so at
    least one poll always happens. Each poll is preceded by the policy delay.

    Args:
        resolver: Resolver used to describe the BLB.
        load_balancer: Last known snapshot of the BLB.
        policy: Poll budget.
        sleep: Sleep coroutine, replaceable in tests.

    Returns:
        The first snapshot observed as available.

    Raises:
        LoadBalancerVanished: If the BLB is absent on the final poll.
        StabilizationTimeout: If no poll observed "available".
        CloudApiError: If a describe call fails (not retried).
    """
    current = replace(load_balancer, status=STATUS_UNKNOWN)

    for attempt in range(1, policy.max_attempts + 1):
        await policy.pause(sleep)

        observed = await resolver.by_id(current.id)
        if observed is None:
            logger.info(
                "Load balancer not found while waiting",
                extra={"load_balancer_id": current.id, "attempt": attempt},
            )
            if attempt == policy.max_attempts:
                raise LoadBalancerVanished(current.id)
            continue

        current = observed
        if current.available:
            logger.debug(
                "Load balancer available",
                extra={"load_balancer_id": current.id, "attempt": attempt},
            )
            return current

        logger.info(
            "Load balancer not available yet",
            extra={"load_balancer_id": current.id, "status": current.status, "attempt": attempt},
        )

    raise StabilizationTimeout(current.id, policy.max_attempts, current.status)
