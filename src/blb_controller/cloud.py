"""Cloud API boundary.

The BLB, VPC and CCE SDK clients are external collaborators. CloudClient
names the operations the controller consumes; implementations translate
SDK failures into CloudApiError and return None for absent resources.

SDK calls block, so they run in the default executor to keep the event
loop responsive and the pass cancellable at its top-level boundary.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

from .errors import CloudApiError
from .models import (
    BackendServer,
    CreateLoadBalancerArgs,
    Instance,
    Listener,
    LoadBalancer,
    Subnet,
    SubnetCandidate,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CloudClient(Protocol):
    """Operations consumed from the cloud SDK.

    All methods raise CloudApiError on transport or API failure.
    """

    # BLB
    def create_load_balancer(self, args: CreateLoadBalancerArgs) -> str: ...

    def describe_load_balancers(
        self,
        *,
        load_balancer_id: str | None = None,
        name: str | None = None,
        exactly_match: bool = True,
    ) -> list[LoadBalancer]: ...

    def describe_load_balancer_by_id(self, load_balancer_id: str) -> LoadBalancer | None: ...

    def list_listeners(self, load_balancer_id: str) -> list[Listener]: ...

    def create_listener(self, load_balancer_id: str, listener: Listener) -> None: ...

    def update_listener(self, load_balancer_id: str, listener: Listener) -> None: ...

    def delete_listeners(self, load_balancer_id: str, ports: list[int]) -> None: ...

    def describe_backend_servers(self, load_balancer_id: str) -> list[BackendServer]: ...

    def add_backend_servers(self, load_balancer_id: str, servers: list[BackendServer]) -> None: ...

    def remove_backend_servers(self, load_balancer_id: str, instance_ids: list[str]) -> None: ...

    # VPC
    def describe_subnet(self, subnet_id: str) -> Subnet: ...

    def list_subnets(self, vpc_id: str) -> list[Subnet]: ...

    def create_subnet(self, candidate: SubnetCandidate) -> str: ...

    # CCE
    def list_cluster_instances(self, cluster_id: str) -> list[Instance]: ...


async def call_cloud(operation: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking cloud SDK call in the default executor.

    Args:
        operation: Bound CloudClient method.
        *args: Positional arguments for the call.
        **kwargs: Keyword arguments for the call.

    Returns:
        The result of the call.

    Raises:
        CloudApiError: Propagated unchanged from the client, or raised for a
            TimeoutError leaking out of the SDK transport.
    """
    loop = asyncio.get_running_loop()
    name = getattr(operation, "__name__", "?")
    logger.debug("Cloud API call", extra={"operation": name})
    try:
        return await loop.run_in_executor(None, functools.partial(operation, *args, **kwargs))
    except TimeoutError as e:
        raise CloudApiError(name, f"request timed out: {e}") from e
