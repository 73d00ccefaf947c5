"""Subnet placement for new BLBs.

BLBs cannot be placed in NAT subnets. When the cluster's first instance
sits in one, the controller places the BLB in a reserved general-purpose
subnet instead:

1. The first instance's subnet, if it is already general purpose ("BCC")
2. An existing reserved subnet in the same VPC, either the system
   predefined one or a previous "CCE-Reserve"
3. A new "CCE-Reserve" subnet with the next free block of the same mask,
   in the same zone and VPC

Synthesis walks forward through the address space and never retries a
candidate that failed to be created.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from dataclasses import dataclass

from .cloud import CloudClient, call_cloud
from .errors import (
    AddressSpaceExhausted,
    CloudApiError,
    ClusterInstancesNotFound,
    SubnetSynthesisTimeout,
)
from .models import SubnetCandidate
from .retry import RetryPolicy, Sleep

logger = logging.getLogger(__name__)

GENERAL_PURPOSE_SUBNET_TYPE = "BCC"
RESERVED_SUBNET_NAME = "CCE-Reserve"
SYSTEM_PREDEFINED_SUBNET_NAME = "系统预定义子网"

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


@dataclass(frozen=True)
class SubnetPlacement:
    """VPC and subnet chosen for a BLB."""

    vpc_id: str
    subnet_id: str


def next_subnet(network: IPNetwork) -> IPNetwork | None:
    """Return the block of the same size directly after `network`.

    Args:
        network: Current block.

    Returns:
        The next block, or None when it would leave the address space.
    """
    next_address = int(network.network_address) + network.num_addresses
    if next_address >= 2**network.max_prefixlen:
        return None
    return type(network)((next_address, network.prefixlen))


class SubnetAllocator:
    """Finds or creates a subnet the BLB can be placed in."""

    def __init__(
        self,
        client: CloudClient,
        cluster_id: str,
        policy: RetryPolicy,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._client = client
        self._cluster_id = cluster_id
        self._policy = policy
        self._sleep = sleep

    async def resolve_subnet_for_load_balancer(self) -> SubnetPlacement:
        """Choose the VPC and subnet for a new BLB.

        Returns:
            The placement to create the BLB in.

        Raises:
            ClusterInstancesNotFound: If the cluster has no instances.
            AddressSpaceExhausted: If no next block exists during synthesis.
            SubnetSynthesisTimeout: If every synthesized candidate failed.
            CloudApiError: If a describe or list call fails.
        """
        instances = await call_cloud(self._client.list_cluster_instances, self._cluster_id)
        if not instances:
            raise ClusterInstancesNotFound(self._cluster_id)
        preferred = instances[0]

        subnet = await call_cloud(self._client.describe_subnet, preferred.subnet_id)
        if subnet.subnet_type == GENERAL_PURPOSE_SUBNET_TYPE:
            return SubnetPlacement(vpc_id=preferred.vpc_id, subnet_id=preferred.subnet_id)

        for candidate in await call_cloud(self._client.list_subnets, subnet.vpc_id):
            if candidate.name in (SYSTEM_PREDEFINED_SUBNET_NAME, RESERVED_SUBNET_NAME):
                logger.info(
                    "Reusing reserved subnet for load balancer",
                    extra={"subnet_id": candidate.id, "subnet_name": candidate.name},
                )
                return SubnetPlacement(vpc_id=candidate.vpc_id, subnet_id=candidate.id)

        try:
            network: IPNetwork = ipaddress.ip_network(subnet.cidr, strict=False)
        except ValueError as e:
            raise CloudApiError(
                "DescribeSubnet", f"subnet {subnet.id} has invalid CIDR {subnet.cidr!r}"
            ) from e

        last_error: CloudApiError | None = None
        for attempt in range(1, self._policy.max_attempts + 1):
            candidate_network = next_subnet(network)
            if candidate_network is None:
                raise AddressSpaceExhausted(str(network)) from last_error
            network = candidate_network

            candidate = SubnetCandidate(
                name=RESERVED_SUBNET_NAME,
                cidr=str(network),
                zone=subnet.zone,
                vpc_id=subnet.vpc_id,
                subnet_type=GENERAL_PURPOSE_SUBNET_TYPE,
            )
            try:
                subnet_id = await call_cloud(self._client.create_subnet, candidate)
            except CloudApiError as e:
                last_error = e
                logger.warning(
                    "Reserved subnet creation failed, trying next block",
                    extra={
                        "cidr": candidate.cidr,
                        "attempt": attempt,
                        "max_attempts": self._policy.max_attempts,
                        "error": str(e),
                    },
                )
                if attempt < self._policy.max_attempts:
                    await self._policy.pause(self._sleep)
                continue

            logger.info(
                "Created reserved subnet for load balancer",
                extra={"subnet_id": subnet_id, "cidr": candidate.cidr, "vpc_id": subnet.vpc_id},
            )
            return SubnetPlacement(vpc_id=subnet.vpc_id, subnet_id=subnet_id)

        raise SubnetSynthesisTimeout(
            subnet.vpc_id, self._policy.max_attempts, str(network)
        ) from last_error
