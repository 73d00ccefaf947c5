"""Listener reconciliation.

Listeners are keyed by listener port. A port whose protocol changed is
recreated, since a BLB listener cannot switch protocol in place; any other
difference is applied as an update.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from .cloud import CloudClient, call_cloud
from .models import Listener

logger = logging.getLogger(__name__)


@dataclass
class ListenerPlan:
    """Changes needed to turn the current listener set into the desired one."""

    to_create: list[Listener] = field(default_factory=list)
    to_update: list[Listener] = field(default_factory=list)
    to_delete: list[int] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (self.to_create or self.to_update or self.to_delete)


def plan_listeners(current: Iterable[Listener], desired: Iterable[Listener]) -> ListenerPlan:
    """Diff current and desired listeners by port."""
    current_by_port = {listener.port: listener for listener in current}
    desired_by_port = {listener.port: listener for listener in desired}
    plan = ListenerPlan()

    for port in sorted(current_by_port.keys() - desired_by_port.keys()):
        plan.to_delete.append(port)

    for port in sorted(desired_by_port):
        wanted = desired_by_port[port]
        existing = current_by_port.get(port)
        if existing is None:
            plan.to_create.append(wanted)
        elif existing.protocol != wanted.protocol:
            plan.to_delete.append(port)
            plan.to_create.append(wanted)
        elif existing != wanted:
            plan.to_update.append(wanted)

    return plan


async def reconcile_listeners(
    client: CloudClient, load_balancer_id: str, desired: Iterable[Listener]
) -> ListenerPlan:
    """Make the BLB's listeners match `desired`.

    Deletes run first to free ports, then updates, then creations.

    Returns:
        The plan that was applied.

    Raises:
        CloudApiError: If any listener call fails. Changes already applied stay.
    """
    current = await call_cloud(client.list_listeners, load_balancer_id)
    plan = plan_listeners(current, desired)
    if plan.empty:
        logger.debug("Listeners up to date", extra={"load_balancer_id": load_balancer_id})
        return plan

    logger.info(
        "Reconciling listeners",
        extra={
            "load_balancer_id": load_balancer_id,
            "create": [listener.port for listener in plan.to_create],
            "update": [listener.port for listener in plan.to_update],
            "delete": plan.to_delete,
        },
    )

    if plan.to_delete:
        await call_cloud(client.delete_listeners, load_balancer_id, plan.to_delete)
    for listener in plan.to_update:
        await call_cloud(client.update_listener, load_balancer_id, listener)
    for listener in plan.to_create:
        await call_cloud(client.create_listener, load_balancer_id, listener)

    return plan
