"""Lookup of existing BLBs by logical name or by id.

Absence is a normal outcome and is reported as None. Only transport
failures raise. Nothing here retries; waiting is the waiter's job.
"""

from __future__ import annotations

import logging

from .cloud import CloudClient, call_cloud
from .models import LoadBalancer

logger = logging.getLogger(__name__)


class LoadBalancerResolver:
    """Resolves BLBs through the describe APIs."""

    def __init__(self, client: CloudClient) -> None:
        self._client = client

    async def by_name(self, name: str) -> LoadBalancer | None:
        """Find the BLB whose name is exactly `name`.

        Args:
            name: Logical BLB name, already truncated to the API limit.

        Returns:
            The first matching BLB, or None if there is none.

        Raises:
            CloudApiError: If the describe call fails.
        """
        candidates = await call_cloud(
            self._client.describe_load_balancers, name=name, exactly_match=True
        )
        matches = [lb for lb in candidates if lb.name == name]
        if not matches:
            return None
        if len(matches) > 1:
            logger.warning(
                "Multiple load balancers share a logical name, using the first",
                extra={"load_balancer_name": name, "load_balancer_ids": [lb.id for lb in matches]},
            )
        return matches[0]

    async def by_id(self, load_balancer_id: str) -> LoadBalancer | None:
        """Find a BLB by id, or None if the cloud does not know it.

        Raises:
            CloudApiError: If the describe call fails.
        """
        return await call_cloud(self._client.describe_load_balancer_by_id, load_balancer_id)
