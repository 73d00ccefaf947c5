"""BLB creation and read-after-create stabilization."""

from __future__ import annotations

import asyncio
import logging

from .cloud import CloudClient, call_cloud
from .errors import CloudApiError, ReadAfterWriteTimeout
from .models import (
    CreateLoadBalancerArgs,
    DesiredState,
    LoadBalancer,
    ServiceDeclaration,
    load_balancer_name,
)
from .retry import RetryPolicy, Sleep
from .subnet import SubnetAllocator

logger = logging.getLogger(__name__)

DESCRIPTION_PREFIX = "auto generated by cce:"


class LoadBalancerCreator:
    """Creates BLBs for Services and waits until the describe API sees them."""

    def __init__(
        self,
        client: CloudClient,
        cluster_id: str,
        subnets: SubnetAllocator,
        policy: RetryPolicy,
        *,
        max_name_length: int,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._client = client
        self._cluster_id = cluster_id
        self._subnets = subnets
        self._policy = policy
        self._max_name_length = max_name_length
        self._sleep = sleep

    async def create(self, service: ServiceDeclaration, desired: DesiredState) -> str:
        """Create a BLB for the Service.

        Args:
            service: The Service the BLB serves.
            desired: Desired state derived from the Service.

        Returns:
            Id of the new BLB.

        Raises:
            CloudApiError: If the create call or a placement lookup fails.
            ReconcileError: Any placement failure from the subnet allocator.
        """
        placement = await self._subnets.resolve_subnet_for_load_balancer()
        args = CreateLoadBalancerArgs(
            name=load_balancer_name(self._cluster_id, service, self._max_name_length),
            vpc_id=placement.vpc_id,
            subnet_id=placement.subnet_id,
            description=f"{DESCRIPTION_PREFIX}{self._cluster_id}",
            allocate_vip=desired.allocate_vip,
        )
        logger.info(
            "Creating load balancer",
            extra={
                "service": service.qualified_name,
                "load_balancer_name": args.name,
                "vpc_id": args.vpc_id,
                "subnet_id": args.subnet_id,
                "allocate_vip": args.allocate_vip,
            },
        )
        load_balancer_id = await call_cloud(self._client.create_load_balancer, args)
        logger.info(
            "Load balancer created",
            extra={"service": service.qualified_name, "load_balancer_id": load_balancer_id},
        )
        return load_balancer_id

    async def describe_created(self, load_balancer_id: str) -> LoadBalancer:
        """Describe a freshly created BLB, tolerating read-after-write lag.

        One immediate attempt, then up to `max_attempts` retries each preceded
        by the policy delay.

        Raises:
            ReadAfterWriteTimeout: If the BLB never becomes visible.
            CloudApiError: If a describe call fails, or an exact-id match
                returns more than one record.
        """
        for attempt in range(self._policy.max_attempts + 1):
            if attempt:
                await self._policy.pause(self._sleep)

            records = await call_cloud(
                self._client.describe_load_balancers,
                load_balancer_id=load_balancer_id,
                exactly_match=True,
            )
            if len(records) == 1:
                return records[0]
            if len(records) > 1:
                raise CloudApiError(
                    "DescribeLoadBalancers",
                    f"exact match on {load_balancer_id} returned {len(records)} records",
                )

            logger.info(
                "Created load balancer not visible yet",
                extra={"load_balancer_id": load_balancer_id, "attempt": attempt},
            )

        raise ReadAfterWriteTimeout(load_balancer_id, self._policy.max_attempts + 1)
