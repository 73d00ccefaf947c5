"""Backend membership reconciliation."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from .cloud import CloudClient, call_cloud
from .models import DEFAULT_BACKEND_WEIGHT, BackendServer, Node

logger = logging.getLogger(__name__)


@dataclass
class BackendPlan:
    """Members to add and remove so the BLB matches the candidate nodes."""

    to_add: list[BackendServer] = field(default_factory=list)
    to_remove: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (self.to_add or self.to_remove)


def plan_backends(current: Iterable[BackendServer], nodes: Iterable[Node]) -> BackendPlan:
    """Diff current members against the candidate nodes by instance id."""
    current_ids = {server.instance_id for server in current}
    desired_ids = {node.instance_id for node in nodes}
    return BackendPlan(
        to_add=[
            BackendServer(instance_id=instance_id, weight=DEFAULT_BACKEND_WEIGHT)
            for instance_id in sorted(desired_ids - current_ids)
        ],
        to_remove=sorted(current_ids - desired_ids),
    )


async def reconcile_backends(
    client: CloudClient, load_balancer_id: str, nodes: Iterable[Node]
) -> BackendPlan:
    """Make the BLB's backend members exactly the candidate nodes.

    Returns:
        The plan that was applied.

    Raises:
        CloudApiError: If a backend call fails.
    """
    current = await call_cloud(client.describe_backend_servers, load_balancer_id)
    plan = plan_backends(current, nodes)
    if plan.empty:
        logger.debug("Backends up to date", extra={"load_balancer_id": load_balancer_id})
        return plan

    logger.info(
        "Reconciling backend servers",
        extra={
            "load_balancer_id": load_balancer_id,
            "add": [server.instance_id for server in plan.to_add],
            "remove": plan.to_remove,
        },
    )
    if plan.to_add:
        await call_cloud(client.add_backend_servers, load_balancer_id, plan.to_add)
    if plan.to_remove:
        await call_cloud(client.remove_backend_servers, load_balancer_id, plan.to_remove)
    return plan
