"""Load balancer reconciliation for LoadBalancer Services.

This module implements one reconciliation pass for one Service:
1. Resolve the target BLB (declared, bound, found by name, or created)
2. Bind it to the Service through the auto-managed id annotation
3. Wait for the BLB to be available
4. Reconcile listeners, wait
5. Reconcile backend members, wait

BINDING PRECEDENCE:
- exist-id annotation: user-declared BLB, refused if it already has
  listeners and was never bound to this Service
- no binding yet: lookup by logical name recovers a lost annotation
  write, otherwise a new BLB is created
- id annotation: the bound BLB must still exist

STATE:
The pass never mutates the caller's annotations. It returns an
AnnotationPatch in the ReconcileResult and the caller persists it. Calling
again with the patched annotations converges on the same BLB without
creating another one.

The whole pass runs under a deadline and stops at the first failing phase.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .annotations import (
    ANNOTATION_CCE_ADD_LOAD_BALANCER_ID,
    ANNOTATION_LOAD_BALANCER_EXIST_ID,
    LOAD_BALANCER_IN_USE_SENTINEL,
    AnnotationPatch,
)
from .backends import BackendPlan, reconcile_backends
from .classifier import apply_corrective_action
from .cloud import CloudClient, call_cloud
from .config import ReconcilerConfig
from .creator import LoadBalancerCreator
from .errors import (
    CloudApiError,
    LoadBalancerConflict,
    LoadBalancerNotFound,
    ReconcileDeadlineExceeded,
    ReconcileError,
)
from .listeners import ListenerPlan, reconcile_listeners
from .models import DesiredState, LoadBalancer, Node, ServiceDeclaration, load_balancer_name
from .resolver import LoadBalancerResolver
from .retry import Sleep
from .subnet import SubnetAllocator
from .waiter import wait_until_available

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Result of a single reconciliation pass."""

    service: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    load_balancer: LoadBalancer | None = None
    created: bool = False
    listener_plan: ListenerPlan | None = None
    backend_plan: BackendPlan | None = None
    annotation_patch: AnnotationPatch = field(default_factory=AnnotationPatch)
    error: Exception | None = None

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        """Check if reconciliation succeeded."""
        return self.error is None

    @property
    def load_balancer_id(self) -> str | None:
        return self.load_balancer.id if self.load_balancer else None

    def apply_annotations(self, annotations: Mapping[str, str] | None) -> dict[str, str]:
        """Return `annotations` with this pass's patch applied."""
        return self.annotation_patch.apply(annotations)


class LoadBalancerReconciler:
    """Ensures the BLB of a Service exists and matches its desired state.

    Holds no state between passes; one instance can serve concurrent
    passes for different Services.
    """

    def __init__(
        self,
        client: CloudClient,
        config: ReconcilerConfig,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize reconciler.

        Args:
            client: Cloud SDK client.
            config: Validated reconciler configuration.
            sleep: Sleep coroutine used by every wait, replaceable in tests.
        """
        self._client = client
        self._config = config
        self._sleep = sleep
        self._resolver = LoadBalancerResolver(client)
        self._creator = LoadBalancerCreator(
            client,
            config.cluster_id,
            SubnetAllocator(client, config.cluster_id, config.subnet_creation, sleep),
            config.read_after_write,
            max_name_length=config.max_name_length,
            sleep=sleep,
        )

    async def ensure_load_balancer(
        self,
        service: ServiceDeclaration,
        nodes: Iterable[Node],
        desired: DesiredState | None = None,
        *,
        timeout_seconds: float | None = None,
    ) -> ReconcileResult:
        """Run one reconciliation pass for a Service.

        Args:
            service: The Service to reconcile.
            nodes: Candidate backend nodes.
            desired: Desired state, derived from `service` when omitted.
            timeout_seconds: Deadline for the pass; defaults to the configured one.

        Returns:
            ReconcileResult with the reconciled BLB or the error, and the
            annotation patch to persist in both cases.

        Raises:
            AnnotationError: If `desired` is omitted and annotations are invalid.
            InvalidServiceDeclaration: If the Service ports cannot become listeners.
        """
        if desired is None:
            desired = DesiredState.from_service(service)
        timeout = timeout_seconds or self._config.reconcile_timeout_seconds
        result = ReconcileResult(service=service.qualified_name)

        deadline = asyncio.timeout(timeout)
        try:
            async with deadline:
                result.load_balancer = await self._ensure(service, list(nodes), desired, result)
        except TimeoutError as e:
            if not deadline.expired():
                logger.exception("Unexpected timeout during reconciliation")
                result.error = e
            else:
                logger.error(
                    "Reconciliation deadline exceeded",
                    extra={"service": result.service, "timeout_seconds": timeout},
                )
                result.error = ReconcileDeadlineExceeded(result.service, timeout)
        except LoadBalancerConflict as e:
            logger.error(
                "Declared load balancer is already in use",
                extra={"service": result.service, "load_balancer_id": e.load_balancer_id},
            )
            result.error = e
        except LoadBalancerNotFound as e:
            logger.error(
                "Load balancer not found",
                extra={"service": result.service, "load_balancer_id": e.load_balancer_id},
            )
            result.error = e
        except CloudApiError as e:
            logger.error(
                "Cloud API error",
                extra={
                    "service": result.service,
                    "operation": e.operation,
                    "status_code": e.status_code,
                    "request_id": e.request_id,
                    "error": str(e),
                },
            )
            result.error = e
        except ReconcileError as e:
            logger.error(
                "Reconciliation failed",
                extra={"service": result.service, "kind": e.kind.value, "error": str(e)},
            )
            result.error = e
        except Exception as e:
            logger.exception("Unexpected error during reconciliation")
            result.error = e

        result.end_time = datetime.now(UTC)
        self._log_result(result)
        return result

    async def _ensure(
        self,
        service: ServiceDeclaration,
        nodes: list[Node],
        desired: DesiredState,
        result: ReconcileResult,
    ) -> LoadBalancer:
        load_balancer = await self._resolve_target(service, desired, result)

        load_balancer = await self._wait(load_balancer, result)

        logger.info(
            "Reconciling listeners",
            extra={"service": result.service, "load_balancer_id": load_balancer.id},
        )
        result.listener_plan = await reconcile_listeners(
            self._client, load_balancer.id, desired.listeners
        )
        load_balancer = await self._wait(load_balancer, result)

        logger.info(
            "Reconciling backend servers",
            extra={"service": result.service, "load_balancer_id": load_balancer.id},
        )
        result.backend_plan = await reconcile_backends(self._client, load_balancer.id, nodes)
        return await self._wait(load_balancer, result)

    async def _resolve_target(
        self,
        service: ServiceDeclaration,
        desired: DesiredState,
        result: ReconcileResult,
    ) -> LoadBalancer:
        """Find or create the BLB and record the binding in the patch."""
        if desired.existing_load_balancer_id:
            existing_id = desired.existing_load_balancer_id
            load_balancer = await self._resolver.by_id(existing_id)
            if load_balancer is None:
                raise LoadBalancerNotFound(existing_id)

            listeners = await call_cloud(self._client.list_listeners, load_balancer.id)
            if listeners and not desired.auto_managed_load_balancer_id:
                result.annotation_patch.set(
                    ANNOTATION_LOAD_BALANCER_EXIST_ID, LOAD_BALANCER_IN_USE_SENTINEL
                )
                raise LoadBalancerConflict(load_balancer.id, len(listeners))

            logger.info(
                "Using declared load balancer",
                extra={"service": result.service, "load_balancer_id": load_balancer.id},
            )
            self._bind(service, existing_id, result)
            return load_balancer

        if not desired.auto_managed_load_balancer_id:
            name = load_balancer_name(
                self._config.cluster_id, service, self._config.max_name_length
            )
            load_balancer = await self._resolver.by_name(name)
            if load_balancer is not None:
                logger.info(
                    "Recovered unbound load balancer by name",
                    extra={
                        "service": result.service,
                        "load_balancer_name": name,
                        "load_balancer_id": load_balancer.id,
                    },
                )
            else:
                load_balancer_id = await self._creator.create(service, desired)
                result.created = True
                # The id is reported even when the describe below times out
                self._bind(service, load_balancer_id, result)
                return await self._creator.describe_created(load_balancer_id)
            self._bind(service, load_balancer.id, result)
            return load_balancer

        bound_id = desired.auto_managed_load_balancer_id
        load_balancer = await self._resolver.by_id(bound_id)
        if load_balancer is None:
            raise LoadBalancerNotFound(
                bound_id, f"Bound load balancer {bound_id} no longer exists"
            )
        logger.debug(
            "Load balancer already bound",
            extra={"service": result.service, "load_balancer_id": bound_id},
        )
        return load_balancer

    def _bind(
        self, service: ServiceDeclaration, load_balancer_id: str, result: ReconcileResult
    ) -> None:
        if service.annotations.get(ANNOTATION_CCE_ADD_LOAD_BALANCER_ID) != load_balancer_id:
            result.annotation_patch.set(ANNOTATION_CCE_ADD_LOAD_BALANCER_ID, load_balancer_id)

    async def _wait(self, load_balancer: LoadBalancer, result: ReconcileResult) -> LoadBalancer:
        try:
            return await wait_until_available(
                self._resolver, load_balancer, self._config.stabilization, self._sleep
            )
        except ReconcileError as e:
            apply_corrective_action(e, result.annotation_patch)
            raise

    def _log_result(self, result: ReconcileResult) -> None:
        """Log reconciliation result with structured data."""
        extra: dict[str, Any] = {
            "service": result.service,
            "duration_seconds": result.duration_seconds,
            "load_balancer_id": result.load_balancer_id,
            "load_balancer_created": result.created,
            "annotations_changed": result.annotation_patch.changed,
        }
        if result.listener_plan is not None:
            extra["listeners_changed"] = not result.listener_plan.empty
        if result.backend_plan is not None:
            extra["backends_changed"] = not result.backend_plan.empty

        if result.error is not None:
            extra["error"] = str(result.error)
            extra["error_type"] = type(result.error).__name__
            logger.error("Reconciliation failed", extra=extra)
        else:
            logger.info("Reconciliation result", extra=extra)
