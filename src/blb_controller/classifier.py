"""Corrective actions for reconcile errors.

A closed mapping: each error variant is listed with its action. Only a
BLB that vanished after being bound has one, which is to drop the
auto-managed id so the next pass falls back to lookup by name or creation
instead of retrying a dead id forever. A new variant has no action until
it is added here.
"""

from __future__ import annotations

import logging

from .annotations import ANNOTATION_CCE_ADD_LOAD_BALANCER_ID, AnnotationPatch
from .errors import (
    AddressSpaceExhausted,
    CloudApiError,
    ClusterInstancesNotFound,
    LoadBalancerConflict,
    LoadBalancerNotFound,
    LoadBalancerVanished,
    ReconcileError,
    ReconcileTimeout,
)

logger = logging.getLogger(__name__)


def apply_corrective_action(error: ReconcileError, patch: AnnotationPatch) -> None:
    """Record the annotation change that `error` calls for, if any.

    Args:
        error: Error raised while waiting on a bound BLB.
        patch: Annotation patch of the current pass.
    """
    match error:
        case LoadBalancerVanished(load_balancer_id=load_balancer_id):
            logger.warning(
                "Bound load balancer vanished, clearing its annotation",
                extra={"load_balancer_id": load_balancer_id},
            )
            patch.remove(ANNOTATION_CCE_ADD_LOAD_BALANCER_ID)
        case LoadBalancerNotFound() | ClusterInstancesNotFound():
            pass
        case LoadBalancerConflict():
            pass
        case ReconcileTimeout():
            pass
        case CloudApiError():
            pass
        case AddressSpaceExhausted():
            pass
        case _:
            logger.debug(
                "No corrective action for error", extra={"error_type": type(error).__name__}
            )
